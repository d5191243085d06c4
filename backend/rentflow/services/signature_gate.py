# backend/rentflow/services/signature_gate.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..domain.actors import LANDLORD, TENANT
from ..domain.errors import AlreadySigned, InvalidTransition, OutOfOrder, ValidationFailed
from ..domain.lifecycle import DRAFT, FULLY_SIGNED, SENT_TO_TENANT, TENANT_SIGNED, missing_terms
from ..models import Contract


@dataclass(frozen=True)
class TransitionEffect:
    """What a gate decided: the next status plus the columns written with it."""

    next_status: str
    fields: dict[str, Any] = field(default_factory=dict)


def prepare_send(contract: Contract) -> TransitionEffect:
    if contract.status != DRAFT:
        raise InvalidTransition(
            f"Only a draft contract can be sent; this one is {contract.status}",
            details={"status": contract.status},
        )
    problems = missing_terms(
        start_date=contract.start_date,
        end_date=contract.end_date,
        monthly_rent=contract.monthly_rent,
        security_deposit=contract.security_deposit,
        currency=contract.currency,
        terms=contract.terms,
    )
    if problems:
        raise ValidationFailed("Contract terms are incomplete", details={"problems": problems})
    return TransitionEffect(next_status=SENT_TO_TENANT)


def prepare_sign(contract: Contract, role: str, signature_blob: str, *, now: datetime) -> TransitionEffect:
    """
    Decide the effect of a party signing.

    The signature columns are written in the same conditional update as the
    status change, so a signature never exists without its transition.
    """
    blob = (signature_blob or "").strip()
    if not blob:
        raise ValidationFailed("A signature is required")

    if role == TENANT:
        if contract.tenant_signature:
            raise AlreadySigned("The tenant has already signed this contract")
        if contract.status != SENT_TO_TENANT:
            raise InvalidTransition(
                f"The tenant cannot sign a contract that is {contract.status}",
                details={"status": contract.status},
            )
        return TransitionEffect(
            next_status=TENANT_SIGNED,
            fields={"tenant_signature": blob, "tenant_signed_at": now},
        )

    if role == LANDLORD:
        if contract.landlord_signature:
            raise AlreadySigned("The landlord has already signed this contract")
        if contract.status in (DRAFT, SENT_TO_TENANT) or not contract.tenant_signature:
            raise OutOfOrder(
                "The tenant must sign before the landlord",
                details={"status": contract.status},
            )
        if contract.status != TENANT_SIGNED:
            raise InvalidTransition(
                f"The landlord cannot sign a contract that is {contract.status}",
                details={"status": contract.status},
            )
        return TransitionEffect(
            next_status=FULLY_SIGNED,
            fields={"landlord_signature": blob, "landlord_signed_at": now},
        )

    raise InvalidTransition(f"A {role} does not sign contracts", details={"role": role})
