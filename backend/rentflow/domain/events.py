# backend/rentflow/domain/events.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent, WorkflowEvent, utcnow
from .actors import Actor


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, ensure_ascii=False, sort_keys=True, default=str)


def emit_workflow_event(
    db: Session,
    *,
    actor: Optional[Actor],
    event_type: str,
    contract_id: Optional[int] = None,
    payload: Optional[dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> WorkflowEvent:
    """
    Append a workflow event (the notification outbox).

    NOTE:
    - Does NOT commit. Adds + flushes only.
    - Callers decide when to commit.
    """
    ev = WorkflowEvent(
        contract_id=int(contract_id) if contract_id is not None else None,
        actor_user_id=int(actor.user_id) if actor is not None else None,
        actor_role=actor.role if actor is not None else None,
        event_type=str(event_type),
        payload_json=_dumps(payload or {}),
        created_at=created_at or utcnow(),
    )
    db.add(ev)
    db.flush()
    return ev


def emit_audit_event(
    db: Session,
    *,
    actor: Optional[Actor],
    action: str,
    entity_type: str,
    entity_id: Any,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """Flush-only, no commit."""
    ae = AuditEvent(
        actor_user_id=int(actor.user_id) if actor is not None else None,
        actor_role=actor.role if actor is not None else None,
        action=str(action),
        entity_type=str(entity_type),
        entity_id=str(entity_id),
        before_json=_dumps(before),
        after_json=_dumps(after),
        created_at=utcnow(),
    )
    db.add(ae)
    db.flush()
    return ae
