import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.tracker.models import AuditEvent, Profile


def record_event(
    s: Session,
    *,
    actor: Profile | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper. Works outside a request (CLI scripts).
    """
    rid = request_id
    client_ip = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        client_ip = request.remote_addr
    ev = AuditEvent(
        request_id=rid,
        actor_profile_id=actor.id if actor else None,
        actor_name=actor.full_name if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=client_ip,
    )
    s.add(ev)
    return ev
