# backend/rentflow/services/contract_store.py
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..domain.errors import ConcurrentModification, InvalidTransition, NotFound
from ..domain.lifecycle import DELETABLE_STATUSES, check_edge
from ..models import Contract, MoveInChecklist, utcnow

log = logging.getLogger("rentflow.contract_store")


# -----------------------------------------------------------------------------
# Conditional writes (optimistic concurrency)
# -----------------------------------------------------------------------------
# Every write is an UPDATE conditioned on the version (and any extra column
# values) the caller read. Zero affected rows means someone else got there
# first; the caller reloads and re-validates.
# -----------------------------------------------------------------------------


def guarded_update(
    db: Session,
    row: Any,
    *,
    values: dict[str, Any],
    expect: Optional[dict[str, Any]] = None,
) -> Any:
    model = type(row)
    conds = [model.id == row.id]
    vals = dict(values)

    has_version = hasattr(model, "version")
    if has_version:
        conds.append(model.version == row.version)
        vals["version"] = int(row.version) + 1
    if hasattr(model, "updated_at") and "updated_at" not in vals:
        vals["updated_at"] = utcnow()

    for col, v in (expect or {}).items():
        conds.append(getattr(model, col) == v)

    res = db.execute(
        update(model).where(*conds).values(**vals).execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise ConcurrentModification(
            f"{model.__name__} {row.id} was changed by someone else; reload and try again",
            details={"entity": model.__tablename__, "id": row.id},
        )

    db.refresh(row)
    return row


class ContractStore:
    """
    Persistence for the contract aggregate.

    Status changes go through apply_transition, which validates the edge and
    the triggering role before the conditional write.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> Contract:
        now = utcnow()
        c = Contract(**fields)
        c.status = "draft"
        c.version = 1
        c.created_at = now
        c.updated_at = now
        self.db.add(c)
        self.db.flush()
        log.info("contract_created", extra={"contract_id": c.id, "to_status": c.status})
        return c

    def get(self, contract_id: int) -> Contract:
        c = self.db.get(Contract, int(contract_id))
        if c is None:
            raise NotFound(f"Contract {contract_id} not found", details={"contract_id": contract_id})
        return c

    def list_for_tenant(self, tenant_id: int) -> list[Contract]:
        return list(
            self.db.scalars(
                select(Contract).where(Contract.tenant_id == int(tenant_id)).order_by(Contract.id.desc())
            ).all()
        )

    def list_for_landlord(self, landlord_id: int) -> list[Contract]:
        return list(
            self.db.scalars(
                select(Contract).where(Contract.landlord_id == int(landlord_id)).order_by(Contract.id.desc())
            ).all()
        )

    def list_by_status(self, *statuses: str) -> list[Contract]:
        q = select(Contract).order_by(Contract.id.asc())
        if statuses:
            q = q.where(Contract.status.in_(statuses))
        return list(self.db.scalars(q).all())

    def apply_transition(
        self,
        contract: Contract,
        next_status: str,
        role: str,
        *,
        fields: Optional[dict[str, Any]] = None,
    ) -> Contract:
        current = contract.status
        check_edge(current, next_status, role)

        values = dict(fields or {})
        values["status"] = next_status
        guarded_update(self.db, contract, values=values, expect={"status": current})

        log.info(
            "contract_transition",
            extra={
                "contract_id": contract.id,
                "actor_role": role,
                "from_status": current,
                "to_status": next_status,
            },
        )
        return contract

    def update_fields(self, contract: Contract, fields: dict[str, Any]) -> Contract:
        if "status" in fields:
            raise ValueError("status changes must go through apply_transition")
        if not fields:
            return contract
        return guarded_update(self.db, contract, values=fields, expect={"status": contract.status})

    def delete(self, contract: Contract) -> None:
        if contract.status not in DELETABLE_STATUSES:
            raise InvalidTransition(
                f"A {contract.status} contract can no longer be deleted",
                details={"status": contract.status, "deletable_statuses": sorted(DELETABLE_STATUSES)},
            )

        # SQLite does not enforce ON DELETE CASCADE without a pragma.
        self.db.execute(delete(MoveInChecklist).where(MoveInChecklist.contract_id == contract.id))

        res = self.db.execute(
            delete(Contract)
            .where(
                Contract.id == contract.id,
                Contract.version == contract.version,
                Contract.status.in_(DELETABLE_STATUSES),
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise ConcurrentModification(
                f"Contract {contract.id} was changed by someone else; reload and try again",
                details={"entity": "contracts", "id": contract.id},
            )

        self.db.expunge(contract)
        log.info("contract_deleted", extra={"contract_id": contract.id})
