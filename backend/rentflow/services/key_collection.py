# backend/rentflow/services/key_collection.py
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from ..domain.lifecycle import SIGNED_STATUSES
from ..models import Contract, KeyCollection, utcnow
from .contract_store import guarded_update

log = logging.getLogger("rentflow.key_collection")

PROPOSED = "proposed"
CONFIRMED = "confirmed"
COMPLETED = "completed"


def _parse_dt(v: Any) -> Optional[datetime]:
    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, str) and v.strip():
        try:
            dt = datetime.fromisoformat(v.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def normalize_slots(slots: Any, *, now: datetime, max_slots: int) -> list[dict[str, Any]]:
    """Validate proposed slots; stored as naive-UTC ISO strings in proposal order."""
    if not isinstance(slots, list) or not slots:
        raise ValidationFailed("Propose at least one time slot")
    if len(slots) > int(max_slots):
        raise ValidationFailed(f"Propose at most {max_slots} time slots", details={"count": len(slots)})

    problems: list[str] = []
    out: list[dict[str, Any]] = []
    for i, s in enumerate(slots):
        if not isinstance(s, dict):
            problems.append(f"slots[{i}] must be an object")
            continue
        starts_at = _parse_dt(s.get("starts_at"))
        location = str(s.get("location") or "").strip()
        if starts_at is None:
            problems.append(f"slots[{i}].starts_at must be an ISO datetime")
        elif starts_at <= now:
            problems.append(f"slots[{i}].starts_at must be in the future")
        if not location:
            problems.append(f"slots[{i}].location is required")
        notes = s.get("notes")
        out.append(
            {
                "starts_at": starts_at.isoformat() if starts_at else None,
                "location": location,
                "notes": str(notes).strip() if notes else None,
            }
        )

    if problems:
        raise ValidationFailed("Invalid key collection slots", details={"problems": problems})
    return out


def load_slots(kc: KeyCollection) -> list[dict[str, Any]]:
    try:
        v = json.loads(kc.proposed_slots_json or "[]")
    except ValueError:
        return []
    return v if isinstance(v, list) else []


class KeyCollectionScheduler:
    """
    proposed -> confirmed -> completed, one live record per contract.

    Setting the contract's keys_collected flag is the orchestrator's job; this
    class only owns the KeyCollection row.
    """

    def __init__(self, db: Session, *, max_slots: int = 10):
        self.db = db
        self.max_slots = int(max_slots)

    def get_for_contract(self, contract_id: int) -> Optional[KeyCollection]:
        return self.db.scalar(select(KeyCollection).where(KeyCollection.contract_id == int(contract_id)))

    def require_for_contract(self, contract_id: int) -> KeyCollection:
        kc = self.get_for_contract(contract_id)
        if kc is None:
            raise NotFound(
                "No key collection has been proposed for this contract", details={"contract_id": contract_id}
            )
        return kc

    def propose(
        self,
        contract: Contract,
        *,
        role: str,
        user_id: int,
        slots: Any,
        now: Optional[datetime] = None,
    ) -> tuple[KeyCollection, Optional[list[dict[str, Any]]]]:
        """Returns (row, replaced slots or None for a first proposal)."""
        now = now or utcnow()
        if contract.status not in SIGNED_STATUSES:
            raise InvalidTransition(
                f"Key collection can be scheduled once the contract is fully signed; it is {contract.status}",
                details={"status": contract.status},
            )
        if not contract.deposit_paid:
            raise Forbidden(
                "You must pay the deposit before scheduling key collection",
                details={"contract_id": contract.id, "deposit_paid": False},
            )

        normalized = normalize_slots(slots, now=now, max_slots=self.max_slots)
        payload = json.dumps(normalized, separators=(",", ":"))

        existing = self.get_for_contract(contract.id)
        if existing is None:
            kc = KeyCollection(
                contract_id=contract.id,
                proposed_slots_json=payload,
                proposed_by_role=role,
                proposed_by_user_id=int(user_id),
                status=PROPOSED,
                revision=1,
                version=1,
                created_at=now,
                updated_at=now,
            )
            self.db.add(kc)
            self.db.flush()
            log.info("keys_proposed", extra={"contract_id": contract.id, "actor_role": role})
            return kc, None

        if existing.status == COMPLETED:
            raise InvalidTransition(
                "Keys have already been handed over", details={"contract_id": contract.id}
            )

        previous = load_slots(existing)
        guarded_update(
            self.db,
            existing,
            values={
                "proposed_slots_json": payload,
                "proposed_by_role": role,
                "proposed_by_user_id": int(user_id),
                "chosen_slot_index": None,
                "scheduled_for": None,
                "confirmed_at": None,
                "status": PROPOSED,
                "revision": int(existing.revision) + 1,
            },
            expect={"status": existing.status},
        )
        log.info(
            "keys_reproposed",
            extra={"contract_id": contract.id, "actor_role": role, "action": f"revision {existing.revision}"},
        )
        return existing, previous

    def confirm(
        self, kc: KeyCollection, *, role: str, slot_index: int, now: Optional[datetime] = None
    ) -> KeyCollection:
        now = now or utcnow()
        if role == kc.proposed_by_role:
            raise Forbidden(
                "The other party must confirm the slot you proposed",
                details={"proposed_by": kc.proposed_by_role},
            )
        if kc.status != PROPOSED:
            raise InvalidTransition(
                f"Only a proposed key collection can be confirmed; it is {kc.status}",
                details={"status": kc.status},
            )

        slots = load_slots(kc)
        try:
            idx = int(slot_index)
        except (TypeError, ValueError):
            raise ValidationFailed("slot_index must be an integer")
        if idx < 0 or idx >= len(slots):
            raise ValidationFailed(
                f"slot_index must be between 0 and {len(slots) - 1}", details={"slot_index": idx}
            )

        starts_at = _parse_dt(slots[idx].get("starts_at"))
        if starts_at is None or starts_at <= now:
            raise ValidationFailed("That slot is already in the past; propose new times", details={"slot_index": idx})

        guarded_update(
            self.db,
            kc,
            values={"status": CONFIRMED, "chosen_slot_index": idx, "scheduled_for": starts_at, "confirmed_at": now},
            expect={"status": PROPOSED},
        )
        log.info("keys_confirmed", extra={"contract_id": kc.contract_id, "actor_role": role})
        return kc

    def complete(self, kc: KeyCollection, *, now: Optional[datetime] = None) -> KeyCollection:
        now = now or utcnow()
        if kc.status != CONFIRMED:
            raise InvalidTransition(
                "Keys can be marked as collected once a slot is confirmed"
                if kc.status == PROPOSED
                else "Keys have already been handed over",
                details={"status": kc.status},
            )
        guarded_update(self.db, kc, values={"status": COMPLETED, "completed_at": now}, expect={"status": CONFIRMED})
        log.info("keys_completed", extra={"contract_id": kc.contract_id})
        return kc

    def due_for_completion(self, now: datetime) -> list[KeyCollection]:
        return list(
            self.db.scalars(
                select(KeyCollection)
                .where(KeyCollection.status == CONFIRMED, KeyCollection.scheduled_for <= now)
                .order_by(KeyCollection.id.asc())
            ).all()
        )
