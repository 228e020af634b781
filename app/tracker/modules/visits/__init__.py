"""
Visits module.

Scope:
- Recording a visit (photo + date + optional note)
- Own visit list/detail/edit/delete
- First-visit-per-facility completion markers, kept in step with visit changes
"""
