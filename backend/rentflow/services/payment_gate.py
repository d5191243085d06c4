# backend/rentflow/services/payment_gate.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..clients.stripe_client import PaymentProvider
from ..domain.errors import Forbidden, InvalidTransition, PaymentMismatch, ValidationFailed
from ..domain.lifecycle import SIGNED_STATUSES
from ..models import Contract, PaymentIntentRecord, utcnow
from .contract_store import guarded_update

log = logging.getLogger("rentflow.payment_gate")

DEPOSIT = "deposit"
RENT = "rent"
PAYMENT_KINDS = (DEPOSIT, RENT)

STRIPE_METHOD = "stripe"
MANUAL_METHODS = ("bank_transfer", "cash", "bizum", "other")

# Contract columns per payment kind.
_FLAG_COLUMNS = {
    DEPOSIT: ("deposit_paid", "deposit_paid_at", "deposit_payment_method", "deposit_payment_reference"),
    RENT: (
        "first_month_rent_paid",
        "first_month_rent_paid_at",
        "first_month_rent_payment_method",
        "first_month_rent_payment_reference",
    ),
}


@dataclass(frozen=True)
class IntentResult:
    client_secret: Optional[str]
    payment_intent_id: str
    amount: int
    currency: str
    kind: str
    platform_fee: int
    net_amount: int


def split_commission(amount: int, commission_pct: float) -> tuple[int, int]:
    """(platform_fee, net_amount) in minor units; fee rounded half-up."""
    fee = int((int(amount) * float(commission_pct) + 50) // 100)
    fee = max(0, min(fee, int(amount)))
    return fee, int(amount) - fee


def expected_amount(contract: Contract, kind: str) -> int:
    if kind == DEPOSIT:
        return int(contract.security_deposit)
    if kind == RENT:
        return int(contract.monthly_rent)
    raise ValueError(f"unknown payment kind: {kind!r}")


def is_paid(contract: Contract, kind: str) -> bool:
    return bool(getattr(contract, _FLAG_COLUMNS[kind][0]))


def paid_reference(contract: Contract, kind: str) -> Optional[str]:
    return getattr(contract, _FLAG_COLUMNS[kind][3])


def paid_fields(kind: str, *, method: str, reference: Optional[str], now: datetime) -> dict[str, Any]:
    flag, paid_at, method_col, ref_col = _FLAG_COLUMNS[kind]
    return {flag: True, paid_at: now, method_col: method, ref_col: reference}


class PaymentGate:
    """
    Deposit-before-rent ordering plus verification of provider references.

    The gate never writes contract columns itself: it returns the fields the
    orchestrator applies in its conditional contract write.
    """

    def __init__(self, db: Session, provider: PaymentProvider, *, commission_pct: float):
        self.db = db
        self.provider = provider
        self.commission_pct = float(commission_pct)

    # ---------------------------------------------------------------------
    # ordering
    # ---------------------------------------------------------------------
    def check_ordering(self, contract: Contract, kind: str) -> None:
        if kind not in PAYMENT_KINDS:
            raise ValidationFailed(f"Unknown payment type {kind!r}", details={"kinds": list(PAYMENT_KINDS)})
        if kind == RENT and not contract.deposit_paid:
            raise Forbidden(
                "The security deposit must be paid before the first month's rent",
                details={"contract_id": contract.id, "deposit_paid": False},
            )
        if contract.status not in SIGNED_STATUSES:
            raise InvalidTransition(
                f"Payments open once the contract is fully signed; it is {contract.status}",
                details={"status": contract.status, "allowed_statuses": sorted(SIGNED_STATUSES)},
            )

    # ---------------------------------------------------------------------
    # intents
    # ---------------------------------------------------------------------
    def create_intent(self, contract: Contract, kind: str) -> IntentResult:
        self.check_ordering(contract, kind)
        if is_paid(contract, kind):
            raise InvalidTransition(f"The {kind} has already been paid", details={"contract_id": contract.id})

        amount = expected_amount(contract, kind)
        if amount <= 0:
            raise ValidationFailed(f"Nothing to pay: the {kind} amount is {amount}")

        fee, net = split_commission(amount, self.commission_pct)
        currency = (contract.currency or "EUR").lower()
        intent = self.provider.create_payment_intent(
            amount=amount,
            currency=currency,
            metadata={
                "contract_id": str(contract.id),
                "type": kind,
                "platform_fee": str(fee),
                "net_amount": str(net),
            },
        )

        self.db.add(
            PaymentIntentRecord(
                contract_id=contract.id,
                kind=kind,
                amount=amount,
                currency=currency,
                platform_fee=fee,
                net_amount=net,
                provider=STRIPE_METHOD,
                provider_intent_id=intent.id,
                status="pending",
                created_at=utcnow(),
            )
        )
        self.db.flush()

        log.info(
            "payment_intent_created",
            extra={"contract_id": contract.id, "payment_intent_id": intent.id, "action": f"payment.{kind}"},
        )
        return IntentResult(
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
            amount=amount,
            currency=currency,
            kind=kind,
            platform_fee=fee,
            net_amount=net,
        )

    def find_record(self, payment_ref: str) -> Optional[PaymentIntentRecord]:
        return self.db.scalar(
            select(PaymentIntentRecord).where(PaymentIntentRecord.provider_intent_id == str(payment_ref))
        )

    # ---------------------------------------------------------------------
    # confirmation
    # ---------------------------------------------------------------------
    def prepare_confirm(
        self, contract: Contract, kind: str, payment_ref: str, *, now: datetime
    ) -> Optional[tuple[dict[str, Any], PaymentIntentRecord]]:
        """
        Verify a provider reference and return (contract fields, record) to
        apply, or None when this exact reference was already confirmed.
        """
        ref = (payment_ref or "").strip()
        if not ref:
            raise ValidationFailed("A payment reference is required")

        # A retry of an already applied confirmation stays a no-op whatever
        # the contract has moved on to since.
        if is_paid(contract, kind) and paid_reference(contract, kind) == ref:
            return None

        self.check_ordering(contract, kind)

        if is_paid(contract, kind):
            raise PaymentMismatch(
                f"The {kind} was already paid with a different reference",
                details={"contract_id": contract.id, "payment_ref": ref},
            )

        record = self.find_record(ref)
        if record is None:
            raise PaymentMismatch(
                "Unknown payment reference", details={"contract_id": contract.id, "payment_ref": ref}
            )
        if int(record.contract_id) != int(contract.id):
            raise PaymentMismatch(
                "This payment belongs to a different contract",
                details={"contract_id": contract.id, "payment_ref": ref},
            )
        if record.kind != kind:
            raise PaymentMismatch(
                f"This payment was created for the {record.kind}, not the {kind}",
                details={"contract_id": contract.id, "payment_ref": ref},
            )
        expected = expected_amount(contract, kind)
        if int(record.amount) != expected or record.currency != (contract.currency or "").lower():
            raise PaymentMismatch(
                "Payment amount does not match the contract",
                details={"expected": expected, "paid": record.amount, "currency": record.currency},
            )

        intent = self.provider.retrieve_payment_intent(ref)
        if not intent.succeeded:
            raise PaymentMismatch(
                f"Payment has not succeeded (provider status: {intent.status})",
                details={"payment_ref": ref, "provider_status": intent.status},
            )
        if int(intent.amount) != int(record.amount):
            raise PaymentMismatch(
                "Provider reports a different amount",
                details={"expected": record.amount, "provider_amount": intent.amount},
            )

        return paid_fields(kind, method=STRIPE_METHOD, reference=ref, now=now), record

    def mark_completed(self, record: PaymentIntentRecord, *, now: datetime) -> None:
        guarded_update(self.db, record, values={"status": "completed", "paid_at": now}, expect={"status": "pending"})

    def prepare_manual(
        self, contract: Contract, kind: str, *, method: str, reference: Optional[str], now: datetime
    ) -> dict[str, Any]:
        self.check_ordering(contract, kind)
        if method not in MANUAL_METHODS:
            raise ValidationFailed(
                f"Unknown payment method {method!r}", details={"methods": list(MANUAL_METHODS)}
            )
        if is_paid(contract, kind):
            raise PaymentMismatch(
                f"The {kind} is already recorded as paid",
                details={"contract_id": contract.id, "method": getattr(contract, _FLAG_COLUMNS[kind][2])},
            )
        ref = (reference or "").strip() or None
        return paid_fields(kind, method=method, reference=ref, now=now)
