# backend/rentflow/services/checklist_workflow.py
from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..domain.actors import LANDLORD, TENANT
from ..domain.checklist_templates import PROPERTY_TYPES, blank_rooms, template_rooms, validate_rooms
from ..domain.errors import (
    AlreadySigned,
    ChecklistFrozen,
    Forbidden,
    InvalidTransition,
    NotFound,
    OutOfOrder,
    ValidationFailed,
)
from ..domain.lifecycle import CHECKLIST_STATUSES
from ..models import ChecklistTemplate, Contract, MoveInChecklist, utcnow
from .contract_store import guarded_update

log = logging.getLogger("rentflow.checklist")

DRAFT = "draft"
TENANT_SIGNED = "tenant_signed"
COMPLETED = "completed"

URGENCY_NONE = "none"
URGENCY_OK = "ok"
URGENCY_DUE_SOON = "due_soon"
URGENCY_OVERDUE = "overdue"


def load_rooms(checklist: MoveInChecklist) -> list[dict[str, Any]]:
    try:
        v = json.loads(checklist.rooms_json or "[]")
    except ValueError:
        return []
    return v if isinstance(v, list) else []


def checklist_deadline(start_date: Optional[date], today: date, days: int) -> date:
    base = start_date if start_date and start_date > today else today
    return base + timedelta(days=int(days))


def checklist_urgency(
    deadline: Optional[date],
    *,
    completed: bool,
    today: date,
    due_soon_days: int,
) -> str:
    """
    UI signal only. An overdue checklist stays editable and signable.
    """
    if deadline is None or completed:
        return URGENCY_NONE
    remaining = (deadline - today).days
    if remaining < 0:
        return URGENCY_OVERDUE
    if remaining <= int(due_soon_days):
        return URGENCY_DUE_SOON
    return URGENCY_OK


def unassessed_items(rooms: list[dict[str, Any]]) -> list[str]:
    out: list[str] = []
    for r in rooms:
        for it in r.get("items") or []:
            if not it.get("condition"):
                out.append(f"{r.get('room')}: {it.get('name')}")
    return out


class ChecklistWorkflow:
    """
    draft -> tenant_signed -> completed

    Items are editable only in draft. The tenant's signature freezes the
    items and the tenant's notes; the landlord's signature completes it.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, checklist_id: int) -> MoveInChecklist:
        cl = self.db.get(MoveInChecklist, int(checklist_id))
        if cl is None:
            raise NotFound(f"Checklist {checklist_id} not found", details={"checklist_id": checklist_id})
        return cl

    def get_for_contract(self, contract_id: int) -> Optional[MoveInChecklist]:
        return self.db.scalar(select(MoveInChecklist).where(MoveInChecklist.contract_id == int(contract_id)))

    # ---------------------------------------------------------------------
    # creation
    # ---------------------------------------------------------------------
    def _skeleton(self, contract: Contract, template_id: Optional[int]) -> tuple[Optional[int], list[dict[str, Any]]]:
        if template_id is not None:
            tpl = self.db.get(ChecklistTemplate, int(template_id))
            if tpl is None:
                raise NotFound(f"Checklist template {template_id} not found", details={"template_id": template_id})
            if int(tpl.landlord_id) != int(contract.landlord_id):
                raise Forbidden("That template belongs to another landlord", details={"template_id": template_id})
        else:
            tpl = self.db.scalar(
                select(ChecklistTemplate)
                .where(ChecklistTemplate.landlord_id == contract.landlord_id, ChecklistTemplate.is_default.is_(True))
                .order_by(ChecklistTemplate.id.desc())
            )
        if tpl is None:
            return None, blank_rooms(None)
        return tpl.id, blank_rooms(json.loads(tpl.rooms_json or "[]"))

    def create(self, contract: Contract, *, template_id: Optional[int] = None) -> MoveInChecklist:
        if contract.status not in CHECKLIST_STATUSES:
            raise InvalidTransition(
                f"A move-in checklist cannot be created while the contract is {contract.status}",
                details={"status": contract.status, "allowed_statuses": sorted(CHECKLIST_STATUSES)},
            )

        tpl_id, rooms = self._skeleton(contract, template_id)
        payload = json.dumps(rooms, ensure_ascii=False)

        existing = self.get_for_contract(contract.id)
        if existing is not None:
            if existing.status != DRAFT:
                raise ChecklistFrozen(
                    "The checklist has been signed and can no longer be replaced",
                    details={"checklist_id": existing.id, "status": existing.status},
                )
            guarded_update(
                self.db,
                existing,
                values={"rooms_json": payload, "template_id": tpl_id},
                expect={"status": DRAFT},
            )
            log.info("checklist_replaced", extra={"contract_id": contract.id, "checklist_id": existing.id})
            return existing

        now = utcnow()
        cl = MoveInChecklist(
            contract_id=contract.id,
            template_id=tpl_id,
            rooms_json=payload,
            status=DRAFT,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.db.add(cl)
        self.db.flush()
        log.info("checklist_created", extra={"contract_id": contract.id, "checklist_id": cl.id})
        return cl

    # ---------------------------------------------------------------------
    # edits
    # ---------------------------------------------------------------------
    def update_items(self, checklist: MoveInChecklist, rooms: Any) -> MoveInChecklist:
        if checklist.status != DRAFT:
            raise ChecklistFrozen(
                "Checklist items are frozen once the tenant has signed",
                details={"checklist_id": checklist.id, "status": checklist.status},
            )
        normalized = validate_rooms(rooms)
        guarded_update(
            self.db,
            checklist,
            values={"rooms_json": json.dumps(normalized, ensure_ascii=False)},
            expect={"status": DRAFT},
        )
        return checklist

    def add_notes(self, checklist: MoveInChecklist, *, role: str, notes: str) -> MoveInChecklist:
        text = (notes or "").strip()
        if role == TENANT:
            if checklist.tenant_signature:
                raise ChecklistFrozen("Tenant notes are frozen once the tenant has signed")
            col = "tenant_notes"
        elif role == LANDLORD:
            if checklist.status == COMPLETED:
                raise ChecklistFrozen("Landlord notes are frozen once the checklist is completed")
            col = "landlord_notes"
        else:
            raise Forbidden(f"A {role} cannot add checklist notes")

        guarded_update(self.db, checklist, values={col: text or None}, expect={"status": checklist.status})
        return checklist

    # ---------------------------------------------------------------------
    # signatures
    # ---------------------------------------------------------------------
    def sign(self, checklist: MoveInChecklist, *, role: str, signature_blob: str, now: datetime) -> MoveInChecklist:
        blob = (signature_blob or "").strip()
        if not blob:
            raise ValidationFailed("A signature is required")

        if role == TENANT:
            if checklist.tenant_signature:
                raise AlreadySigned("The tenant has already signed this checklist")
            missing = unassessed_items(load_rooms(checklist))
            if missing:
                raise ValidationFailed(
                    "Rate the condition of every item before signing",
                    details={"unassessed": missing},
                )
            values = {"tenant_signature": blob, "tenant_signed_at": now, "status": TENANT_SIGNED}
            expect = {"status": DRAFT}
        elif role == LANDLORD:
            if checklist.landlord_signature:
                raise AlreadySigned("The landlord has already signed this checklist")
            if not checklist.tenant_signature or checklist.status != TENANT_SIGNED:
                raise OutOfOrder(
                    "The tenant must sign the checklist before the landlord",
                    details={"checklist_id": checklist.id, "status": checklist.status},
                )
            values = {"landlord_signature": blob, "landlord_signed_at": now, "status": COMPLETED}
            expect = {"status": TENANT_SIGNED}
        else:
            raise Forbidden(f"A {role} cannot sign the checklist")

        guarded_update(self.db, checklist, values=values, expect=expect)
        log.info(
            "checklist_signed",
            extra={"contract_id": checklist.contract_id, "checklist_id": checklist.id, "actor_role": role},
        )
        return checklist

    # ---------------------------------------------------------------------
    # templates
    # ---------------------------------------------------------------------
    def create_template(
        self,
        *,
        landlord_id: int,
        name: str,
        property_type: str = "apartment",
        rooms: Any,
        is_default: bool = False,
    ) -> ChecklistTemplate:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationFailed("Template name is required")
        if property_type not in PROPERTY_TYPES:
            raise ValidationFailed(
                f"Unknown property type {property_type!r}", details={"property_types": list(PROPERTY_TYPES)}
            )
        skeleton = template_rooms(rooms)

        if is_default:
            self.db.execute(
                update(ChecklistTemplate)
                .where(ChecklistTemplate.landlord_id == int(landlord_id))
                .values(is_default=False)
                .execution_options(synchronize_session=False)
            )

        tpl = ChecklistTemplate(
            landlord_id=int(landlord_id),
            name=clean_name,
            property_type=property_type,
            rooms_json=json.dumps(skeleton, ensure_ascii=False),
            is_default=bool(is_default),
            created_at=utcnow(),
        )
        self.db.add(tpl)
        self.db.flush()
        return tpl

    def get_owned_template(self, template_id: int, landlord_id: int) -> ChecklistTemplate:
        tpl = self.db.get(ChecklistTemplate, int(template_id))
        if tpl is None:
            raise NotFound(f"Checklist template {template_id} not found", details={"template_id": template_id})
        if int(tpl.landlord_id) != int(landlord_id):
            raise Forbidden("That template belongs to another landlord", details={"template_id": template_id})
        return tpl

    def update_template(
        self,
        tpl: ChecklistTemplate,
        *,
        name: Optional[str] = None,
        property_type: Optional[str] = None,
        rooms: Any = None,
        is_default: Optional[bool] = None,
    ) -> ChecklistTemplate:
        # Checklists already built from it keep their own copy of the rooms.
        if name is not None:
            clean_name = name.strip()
            if not clean_name:
                raise ValidationFailed("Template name is required")
            tpl.name = clean_name
        if property_type is not None:
            if property_type not in PROPERTY_TYPES:
                raise ValidationFailed(
                    f"Unknown property type {property_type!r}", details={"property_types": list(PROPERTY_TYPES)}
                )
            tpl.property_type = property_type
        if rooms is not None:
            tpl.rooms_json = json.dumps(template_rooms(rooms), ensure_ascii=False)
        if is_default:
            self.db.execute(
                update(ChecklistTemplate)
                .where(ChecklistTemplate.landlord_id == tpl.landlord_id, ChecklistTemplate.id != tpl.id)
                .values(is_default=False)
                .execution_options(synchronize_session=False)
            )
        if is_default is not None:
            tpl.is_default = bool(is_default)
        self.db.flush()
        return tpl

    def delete_template(self, tpl: ChecklistTemplate) -> None:
        self.db.delete(tpl)
        self.db.flush()
        log.info("checklist_template_deleted", extra={"template_id": tpl.id})

    def list_templates(self, landlord_id: int) -> list[ChecklistTemplate]:
        return list(
            self.db.scalars(
                select(ChecklistTemplate)
                .where(ChecklistTemplate.landlord_id == int(landlord_id))
                .order_by(ChecklistTemplate.is_default.desc(), ChecklistTemplate.id.asc())
            ).all()
        )
