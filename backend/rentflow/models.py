# backend/rentflow/models.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def utcnow() -> datetime:
    # Naive UTC everywhere; SQLite has no tz-aware DateTime.
    return datetime.now(timezone.utc).replace(tzinfo=None)


# -----------------------------
# Contract (root aggregate)
# -----------------------------
class Contract(Base):
    __tablename__ = "contracts"
    __table_args__ = (
        Index("ix_contracts_tenant_status", "tenant_id", "status"),
        Index("ix_contracts_landlord_status", "landlord_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    landlord_id: Mapped[int] = mapped_column(Integer, nullable=False)
    application_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Terms (money in minor currency units)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    monthly_rent: Mapped[int] = mapped_column(Integer, nullable=False)
    security_deposit: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    language: Mapped[str] = mapped_column(String(2), nullable=False, default="en")
    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)

    # Signatures (append-only)
    tenant_signature: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tenant_signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    landlord_signature: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    landlord_signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Payments (set true once, never reset)
    deposit_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deposit_payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    deposit_payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    first_month_rent_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    first_month_rent_paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    first_month_rent_payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    first_month_rent_payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Key handover
    keys_collected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    keys_collected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Move-in checklist
    checklist_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    checklist_deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    checklist_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Termination
    terminated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    termination_request_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    contract_pdf_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Optimistic concurrency: every write is conditioned on the version it read.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def model_dump(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "tenant_id": self.tenant_id,
            "landlord_id": self.landlord_id,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "monthly_rent": self.monthly_rent,
            "security_deposit": self.security_deposit,
            "currency": self.currency,
            "tenant_signed": self.tenant_signature is not None,
            "landlord_signed": self.landlord_signature is not None,
            "deposit_paid": bool(self.deposit_paid),
            "first_month_rent_paid": bool(self.first_month_rent_paid),
            "keys_collected": bool(self.keys_collected),
            "checklist_id": self.checklist_id,
            "version": self.version,
        }


# -----------------------------
# Payment intents created through the gate
# -----------------------------
class PaymentIntentRecord(Base):
    __tablename__ = "contract_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # deposit|rent
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    net_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    provider: Mapped[str] = mapped_column(String(30), nullable=False, default="stripe")
    provider_intent_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|completed

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Key collection
# -----------------------------
class KeyCollection(Base):
    __tablename__ = "key_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # JSON: [{"starts_at": iso, "location": str, "notes": str|null}, ...]
    proposed_slots_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    proposed_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    proposed_by_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    chosen_slot_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="proposed")  # proposed|confirmed|completed
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Move-in checklist
# -----------------------------
class ChecklistTemplate(Base):
    __tablename__ = "checklist_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    landlord_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    property_type: Mapped[str] = mapped_column(String(20), nullable=False, default="apartment")

    # JSON: [{"room": str, "items": [{"name": str}]}]
    rooms_json: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class MoveInChecklist(Base):
    __tablename__ = "move_in_checklists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    template_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # JSON: [{"room": str, "items": [{"name", "condition", "notes", "photos"}]}]
    rooms_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    tenant_signature: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tenant_signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    landlord_signature: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    landlord_signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tenant_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    landlord_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")  # draft|tenant_signed|completed

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Termination / amendment requests
# -----------------------------
class ModificationRequest(Base):
    __tablename__ = "modification_requests"
    __table_args__ = (
        # "<contract_id>:<type>" while pending, NULL once resolved: at most one
        # pending request per contract and type, enforced by the database.
        UniqueConstraint("pending_key", name="uq_modification_requests_pending_key"),
        Index("ix_modification_requests_contract_status", "contract_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    requester_id: Mapped[int] = mapped_column(Integer, nullable=False)
    requester_role: Mapped[str] = mapped_column(String(20), nullable=False)  # tenant|landlord

    type: Mapped[str] = mapped_column(String(20), nullable=False)  # termination|amendment
    amendment_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    desired_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    changes_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    pending_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    responded_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    response_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Event log / audit
# -----------------------------
class WorkflowEvent(Base):
    __tablename__ = "workflow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contract_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    event_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
