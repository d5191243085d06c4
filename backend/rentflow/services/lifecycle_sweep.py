# backend/rentflow/services/lifecycle_sweep.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable

from sqlalchemy import select

from ..domain.actors import SYSTEM_ACTOR
from ..domain.errors import LifecycleError
from ..domain.events import emit_workflow_event
from ..domain.lifecycle import ACTIVE, FULLY_SIGNED, SIGNED_STATUSES
from ..models import Contract, WorkflowEvent
from .checklist_workflow import URGENCY_OVERDUE
from .lifecycle_orchestrator import LifecycleOrchestrator
from .notifications import safe_notify

log = logging.getLogger("rentflow.sweep")

# -----------------------------------------------------------------------------
# Periodic sweep (advisory)
# -----------------------------------------------------------------------------
# Nothing here is needed for correctness: every rule is enforced when the
# parties act. The sweep moves contracts along on calendar events and nags
# about overdue checklists. Each item is its own unit of work; a race lost to
# a user action is logged and skipped.
# -----------------------------------------------------------------------------


@dataclass
class SweepReport:
    activated: list[int] = field(default_factory=list)
    expired: list[int] = field(default_factory=list)
    keys_completed: list[int] = field(default_factory=list)
    checklist_overdue: list[int] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "activated": self.activated,
            "expired": self.expired,
            "keys_completed": self.keys_completed,
            "checklist_overdue": self.checklist_overdue,
            "skipped": self.skipped,
        }


def _attempt(report: SweepReport, bucket: list[int], contract_id: int, step: str, fn: Callable[[], object]) -> None:
    try:
        fn()
    except LifecycleError as e:
        log.info(
            "sweep_skipped",
            extra={"contract_id": contract_id, "action": step},
        )
        report.skipped.append({"contract_id": contract_id, "step": step, "error": e.code})
        return
    bucket.append(contract_id)


def run_sweep(orch: LifecycleOrchestrator) -> SweepReport:
    report = SweepReport()
    now = orch.clock()
    today = now.date()
    db = orch.db

    # 1) keys whose confirmed slot has passed (may also activate the contract)
    for kc in orch.keys.due_for_completion(now):
        cid = int(kc.contract_id)
        _attempt(report, report.keys_completed, cid, "keys.complete",
                 lambda cid=cid: orch.complete_key_collection(cid, SYSTEM_ACTOR))

    # 2) fully signed contracts whose lease has started
    due_start = db.scalars(
        select(Contract.id).where(Contract.status == FULLY_SIGNED, Contract.start_date <= today)
    ).all()
    for cid in due_start:
        _attempt(report, report.activated, int(cid), "contract.activate",
                 lambda cid=cid: orch.activate(int(cid), SYSTEM_ACTOR))

    # 3) active contracts past their end date
    due_end = db.scalars(select(Contract.id).where(Contract.status == ACTIVE, Contract.end_date < today)).all()
    for cid in due_end:
        _attempt(report, report.expired, int(cid), "contract.expire",
                 lambda cid=cid: orch.expire(int(cid), SYSTEM_ACTOR))

    # 4) overdue checklists: one notification per contract per day
    candidates = db.scalars(
        select(Contract).where(
            Contract.status.in_(SIGNED_STATUSES),
            Contract.checklist_id.is_not(None),
            Contract.checklist_completed_at.is_(None),
        )
    ).all()
    since = now - timedelta(days=1)
    for c in candidates:
        if orch.checklist_urgency(c) != URGENCY_OVERDUE:
            continue
        already = db.scalar(
            select(WorkflowEvent.id).where(
                WorkflowEvent.contract_id == c.id,
                WorkflowEvent.event_type == "checklist.overdue",
                WorkflowEvent.created_at >= since,
            )
        )
        if already is not None:
            continue
        payload = {"contract_id": c.id, "checklist_id": c.checklist_id, "deadline": c.checklist_deadline.isoformat()}
        emit_workflow_event(db, actor=SYSTEM_ACTOR, event_type="checklist.overdue", contract_id=c.id, payload=payload,
                            created_at=now)
        db.commit()
        safe_notify(orch.notifier, "checklist.overdue", [int(c.tenant_id), int(c.landlord_id)], payload)
        report.checklist_overdue.append(int(c.id))

    log.info(
        "sweep_done",
        extra={"action": f"activated={len(report.activated)} expired={len(report.expired)} "
                         f"keys={len(report.keys_completed)} overdue={len(report.checklist_overdue)}"},
    )
    return report
