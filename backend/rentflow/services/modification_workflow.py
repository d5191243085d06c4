# backend/rentflow/services/modification_workflow.py
from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.actors import counter_party
from ..domain.errors import DuplicatePending, Forbidden, InvalidTransition, NotFound, ValidationFailed
from ..domain.lifecycle import MODIFIABLE_STATUSES
from ..models import Contract, ModificationRequest, utcnow
from .contract_store import guarded_update

log = logging.getLogger("rentflow.modifications")

TERMINATION = "termination"
AMENDMENT = "amendment"
REQUEST_TYPES = (TERMINATION, AMENDMENT)

AMENDMENT_TYPES = ("rent_change", "term_extension", "terms_update", "other")

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
WITHDRAWN = "withdrawn"


def pending_key(contract_id: int, request_type: str) -> str:
    return f"{int(contract_id)}:{request_type}"


def load_changes(req: ModificationRequest) -> dict[str, Any]:
    if not req.changes_json:
        return {}
    try:
        v = json.loads(req.changes_json)
    except ValueError:
        return {}
    return v if isinstance(v, dict) else {}


class ModificationWorkflow:
    """
    Termination and amendment requests: pending -> approved | rejected | withdrawn.

    Uniqueness of the pending request per (contract, type) is a database
    constraint on pending_key; resolution is a write conditioned on the row
    still being pending.
    """

    def __init__(self, db: Session, *, min_reason_length: int = 10):
        self.db = db
        self.min_reason_length = int(min_reason_length)

    def get(self, request_id: int) -> ModificationRequest:
        req = self.db.get(ModificationRequest, int(request_id))
        if req is None:
            raise NotFound(f"Request {request_id} not found", details={"request_id": request_id})
        return req

    def pending_for_contract(self, contract_id: int, request_type: Optional[str] = None) -> list[ModificationRequest]:
        q = select(ModificationRequest).where(
            ModificationRequest.contract_id == int(contract_id),
            ModificationRequest.status == PENDING,
        )
        if request_type:
            q = q.where(ModificationRequest.type == request_type)
        return list(self.db.scalars(q.order_by(ModificationRequest.id.asc())).all())

    def pending_for_contracts(self, contract_ids: Iterable[int]) -> list[ModificationRequest]:
        ids = [int(x) for x in contract_ids]
        if not ids:
            return []
        return list(
            self.db.scalars(
                select(ModificationRequest)
                .where(ModificationRequest.contract_id.in_(ids), ModificationRequest.status == PENDING)
                .order_by(ModificationRequest.created_at.desc(), ModificationRequest.id.desc())
            ).all()
        )

    def list_for_contract(self, contract_id: int) -> list[ModificationRequest]:
        return list(
            self.db.scalars(
                select(ModificationRequest)
                .where(ModificationRequest.contract_id == int(contract_id))
                .order_by(ModificationRequest.id.desc())
            ).all()
        )

    # ---------------------------------------------------------------------
    # validation
    # ---------------------------------------------------------------------
    def clean_reason(self, reason: Optional[str], *, what: str = "reason") -> str:
        text = (reason or "").strip()
        if len(text) < self.min_reason_length:
            raise ValidationFailed(
                f"The {what} must be at least {self.min_reason_length} characters",
                details={"length": len(text), "min_length": self.min_reason_length},
            )
        return text

    def check_termination(self, reason: Optional[str], desired_end_date: Optional[date], *, today: date) -> str:
        text = self.clean_reason(reason)
        if desired_end_date is None:
            raise ValidationFailed("A desired end date is required")
        if desired_end_date <= today:
            raise ValidationFailed(
                "The desired end date must be in the future",
                details={"desired_end_date": desired_end_date.isoformat(), "today": today.isoformat()},
            )
        return text

    def check_amendment(self, amendment_type: Optional[str], description: Optional[str], changes: Any) -> str:
        if amendment_type not in AMENDMENT_TYPES:
            raise ValidationFailed(
                f"Unknown amendment type {amendment_type!r}", details={"amendment_types": list(AMENDMENT_TYPES)}
            )
        text = self.clean_reason(description, what="description")
        if changes is not None and not isinstance(changes, dict):
            raise ValidationFailed("changes must be an object")
        return text

    @staticmethod
    def check_contract_open(contract: Contract) -> None:
        if contract.status not in MODIFIABLE_STATUSES:
            raise Forbidden(
                f"Changes can only be requested on a signed, running contract; this one is {contract.status}",
                details={"status": contract.status, "allowed_statuses": sorted(MODIFIABLE_STATUSES)},
            )

    # ---------------------------------------------------------------------
    # creation
    # ---------------------------------------------------------------------
    def create(
        self,
        contract: Contract,
        *,
        requester_id: int,
        requester_role: str,
        request_type: str,
        reason: str,
        desired_end_date: Optional[date] = None,
        amendment_type: Optional[str] = None,
        changes: Optional[dict[str, Any]] = None,
    ) -> ModificationRequest:
        key = pending_key(contract.id, request_type)

        # Friendly error for the common case; the unique constraint decides races.
        if self.pending_for_contract(contract.id, request_type):
            raise DuplicatePending(
                f"There is already a pending {request_type} request for this contract",
                details={"contract_id": contract.id, "type": request_type},
            )

        req = ModificationRequest(
            contract_id=contract.id,
            requester_id=int(requester_id),
            requester_role=requester_role,
            type=request_type,
            amendment_type=amendment_type,
            reason=reason,
            desired_end_date=desired_end_date,
            changes_json=json.dumps(changes, ensure_ascii=False, default=str) if changes is not None else None,
            status=PENDING,
            pending_key=key,
            created_at=utcnow(),
        )
        self.db.add(req)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicatePending(
                f"There is already a pending {request_type} request for this contract",
                details={"contract_id": contract.id, "type": request_type},
            ) from e

        log.info(
            "modification_requested",
            extra={"contract_id": contract.id, "actor_role": requester_role, "request_id_ref": req.id, "action": request_type},
        )
        return req

    # ---------------------------------------------------------------------
    # resolution
    # ---------------------------------------------------------------------
    def respond(
        self,
        req: ModificationRequest,
        *,
        approver_id: int,
        approver_role: str,
        approved: bool,
        message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ModificationRequest:
        if int(approver_id) == int(req.requester_id):
            raise Forbidden("You cannot respond to your own request", details={"request_id": req.id})
        if approver_role != counter_party(req.requester_role):
            raise Forbidden(
                f"Only the {counter_party(req.requester_role)} can respond to this request",
                details={"request_id": req.id, "requester_role": req.requester_role},
            )
        if req.status != PENDING:
            raise InvalidTransition(
                f"This request has already been {req.status}", details={"request_id": req.id, "status": req.status}
            )

        return self._resolve(
            req,
            status=APPROVED if approved else REJECTED,
            responded_by=int(approver_id),
            message=message,
            now=now or utcnow(),
        )

    def withdraw(self, req: ModificationRequest, *, requester_id: int, now: Optional[datetime] = None) -> ModificationRequest:
        if int(requester_id) != int(req.requester_id):
            raise Forbidden("Only the requester can withdraw this request", details={"request_id": req.id})
        if req.status != PENDING:
            raise InvalidTransition(
                f"This request has already been {req.status}", details={"request_id": req.id, "status": req.status}
            )
        return self._resolve(req, status=WITHDRAWN, responded_by=int(requester_id), message=None, now=now or utcnow())

    def reject_pending(
        self, contract_id: int, request_type: str, *, message: str, now: Optional[datetime] = None
    ) -> list[ModificationRequest]:
        out: list[ModificationRequest] = []
        for req in self.pending_for_contract(contract_id, request_type):
            out.append(self._resolve(req, status=REJECTED, responded_by=None, message=message, now=now or utcnow()))
        return out

    def _resolve(
        self,
        req: ModificationRequest,
        *,
        status: str,
        responded_by: Optional[int],
        message: Optional[str],
        now: datetime,
    ) -> ModificationRequest:
        guarded_update(
            self.db,
            req,
            values={
                "status": status,
                "pending_key": None,
                "responded_by": responded_by,
                "responded_at": now,
                "response_message": (message or "").strip() or None,
            },
            expect={"status": PENDING},
        )
        log.info(
            "modification_resolved",
            extra={"contract_id": req.contract_id, "request_id_ref": req.id, "to_status": status},
        )
        return req
