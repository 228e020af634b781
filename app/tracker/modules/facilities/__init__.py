"""
Facilities module.

Scope:
- Facility records (name, type, address, company/team grouping, coordinates)
- Single add with best-effort geocoding
- Spreadsheet import (.xlsx/.csv) followed by a geocode pass
- Bulk geocoding of facilities missing coordinates (Mapbox)
"""
