# backend/rentflow/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..domain.actors import Actor
from ..domain.checklist_templates import blank_rooms
from ..models import ChecklistTemplate, Contract, utcnow
from ..services.lifecycle_orchestrator import LifecycleOrchestrator
from ..services.notifications import LoggingNotifier


@dataclass(frozen=True)
class SeedResult:
    landlord_id: int
    tenant_id: int
    template_id: int
    contract_id: int
    contract_status: str


def _get_or_create_template(orch: LifecycleOrchestrator, landlord: Actor) -> ChecklistTemplate:
    row = orch.db.scalar(
        select(ChecklistTemplate).where(
            ChecklistTemplate.landlord_id == landlord.user_id, ChecklistTemplate.is_default.is_(True)
        )
    )
    if row:
        return row
    rooms = blank_rooms()
    return orch.create_checklist_template(landlord, name="Standard apartment", rooms=rooms, is_default=True)


def _existing_contract(db: Session, *, property_id: int, tenant_id: int) -> Optional[Contract]:
    return db.scalar(
        select(Contract).where(Contract.property_id == int(property_id), Contract.tenant_id == int(tenant_id))
    )


def seed_demo(
    *,
    landlord_id: int = 1,
    tenant_id: int = 2,
    property_id: int = 100,
    monthly_rent: int = 95000,
    security_deposit: int = 190000,
    send: bool = True,
) -> SeedResult:
    db = SessionLocal()
    try:
        orch = LifecycleOrchestrator(db, notifier=LoggingNotifier())
        landlord = Actor.landlord(landlord_id)

        tpl = _get_or_create_template(orch, landlord)

        contract = _existing_contract(db, property_id=property_id, tenant_id=tenant_id)
        if contract is None:
            start = utcnow().date() + timedelta(days=14)
            contract = orch.create_contract(
                landlord,
                property_id=property_id,
                tenant_id=tenant_id,
                landlord_id=landlord_id,
                start_date=start,
                end_date=start + timedelta(days=365),
                monthly_rent=monthly_rent,
                security_deposit=security_deposit,
                terms="Twelve month residential lease. Rent due on the first of each month.",
                send_immediately=send,
            )

        return SeedResult(
            landlord_id=landlord_id,
            tenant_id=tenant_id,
            template_id=int(tpl.id),
            contract_id=int(contract.id),
            contract_status=contract.status,
        )
    finally:
        db.close()
