# backend/rentflow/schemas.py
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _loads(s: Optional[str], default: Any) -> Any:
    if not s:
        return default
    try:
        return json.loads(s)
    except ValueError:
        return default


# -------------------- Errors --------------------

class ErrorOut(BaseModel):
    error: str
    detail: str
    retryable: bool = False
    context: Optional[dict[str, Any]] = None


# -------------------- Contracts --------------------

class ContractCreate(BaseModel):
    property_id: int
    tenant_id: int
    landlord_id: int
    application_id: Optional[int] = None

    start_date: date
    end_date: date
    monthly_rent: int = Field(ge=0, description="minor currency units")
    security_deposit: int = Field(ge=0, description="minor currency units")
    currency: str = "EUR"
    language: Literal["en", "es"] = "en"
    terms: Optional[str] = None
    special_conditions: Optional[str] = None

    send_immediately: bool = False


class ContractUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    monthly_rent: Optional[int] = Field(default=None, ge=0)
    security_deposit: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = None
    language: Optional[Literal["en", "es"]] = None
    terms: Optional[str] = None
    special_conditions: Optional[str] = None


class ContractOut(BaseModel):
    id: int
    property_id: int
    tenant_id: int
    landlord_id: int
    application_id: Optional[int] = None
    status: str

    start_date: date
    end_date: date
    monthly_rent: int
    security_deposit: int
    currency: str
    language: str
    terms: Optional[str] = None
    special_conditions: Optional[str] = None

    tenant_signed_at: Optional[datetime] = None
    landlord_signed_at: Optional[datetime] = None

    deposit_paid: bool
    deposit_paid_at: Optional[datetime] = None
    deposit_payment_method: Optional[str] = None
    first_month_rent_paid: bool
    first_month_rent_paid_at: Optional[datetime] = None
    first_month_rent_payment_method: Optional[str] = None

    keys_collected: bool
    keys_collected_at: Optional[datetime] = None

    checklist_id: Optional[int] = None
    checklist_deadline: Optional[date] = None
    checklist_completed_at: Optional[datetime] = None
    checklist_urgency: Optional[str] = None

    terminated_at: Optional[datetime] = None
    termination_request_id: Optional[int] = None
    contract_pdf_url: Optional[str] = None

    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SignIn(BaseModel):
    signature: str


# -------------------- Payments --------------------

class PaymentIntentOut(BaseModel):
    client_secret: Optional[str] = None
    payment_intent_id: str
    amount: int
    currency: str
    kind: str
    platform_fee: int
    net_amount: int

    model_config = ConfigDict(from_attributes=True)


class PaymentConfirmIn(BaseModel):
    payment_ref: str


class ManualPaymentIn(BaseModel):
    kind: Literal["deposit", "rent"]
    method: str
    reference: Optional[str] = None


# -------------------- Key collection --------------------

class KeySlotIn(BaseModel):
    starts_at: datetime
    location: str
    notes: Optional[str] = None


class KeyProposeIn(BaseModel):
    slots: list[KeySlotIn]


class KeyConfirmIn(BaseModel):
    slot_index: int


class KeyCollectionOut(BaseModel):
    id: int
    contract_id: int
    status: str
    proposed_slots: list[dict[str, Any]]
    proposed_by_role: str
    chosen_slot_index: Optional[int] = None
    scheduled_for: Optional[datetime] = None
    revision: int
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, kc: Any) -> "KeyCollectionOut":
        return cls(
            id=kc.id,
            contract_id=kc.contract_id,
            status=kc.status,
            proposed_slots=_loads(kc.proposed_slots_json, []),
            proposed_by_role=kc.proposed_by_role,
            chosen_slot_index=kc.chosen_slot_index,
            scheduled_for=kc.scheduled_for,
            revision=kc.revision,
            confirmed_at=kc.confirmed_at,
            completed_at=kc.completed_at,
        )


# -------------------- Move-in checklist --------------------

class ChecklistItemIn(BaseModel):
    name: str
    condition: Optional[Literal["excellent", "good", "fair", "poor"]] = None
    notes: str = ""
    photos: list[str] = Field(default_factory=list)


class ChecklistRoomIn(BaseModel):
    room: str
    items: list[ChecklistItemIn] = Field(default_factory=list)


class ChecklistCreateIn(BaseModel):
    template_id: Optional[int] = None


class ChecklistItemsIn(BaseModel):
    rooms: list[ChecklistRoomIn]


class ChecklistNotesIn(BaseModel):
    notes: str


class ChecklistOut(BaseModel):
    id: int
    contract_id: int
    template_id: Optional[int] = None
    status: str
    rooms: list[dict[str, Any]]
    tenant_signed_at: Optional[datetime] = None
    landlord_signed_at: Optional[datetime] = None
    tenant_notes: Optional[str] = None
    landlord_notes: Optional[str] = None
    updated_at: datetime

    @classmethod
    def from_row(cls, cl: Any) -> "ChecklistOut":
        return cls(
            id=cl.id,
            contract_id=cl.contract_id,
            template_id=cl.template_id,
            status=cl.status,
            rooms=_loads(cl.rooms_json, []),
            tenant_signed_at=cl.tenant_signed_at,
            landlord_signed_at=cl.landlord_signed_at,
            tenant_notes=cl.tenant_notes,
            landlord_notes=cl.landlord_notes,
            updated_at=cl.updated_at,
        )


class TemplateItemIn(BaseModel):
    name: str


class TemplateRoomIn(BaseModel):
    room: str
    items: list[TemplateItemIn]


class ChecklistTemplateIn(BaseModel):
    name: str
    property_type: Literal["apartment", "house", "studio", "commercial", "other"] = "apartment"
    rooms: list[TemplateRoomIn]
    is_default: bool = False


class ChecklistTemplatePatch(BaseModel):
    name: Optional[str] = None
    property_type: Optional[Literal["apartment", "house", "studio", "commercial", "other"]] = None
    rooms: Optional[list[TemplateRoomIn]] = None
    is_default: Optional[bool] = None


class ChecklistTemplateOut(BaseModel):
    id: int
    landlord_id: int
    name: str
    property_type: str
    rooms: list[dict[str, Any]]
    is_default: bool

    @classmethod
    def from_row(cls, tpl: Any) -> "ChecklistTemplateOut":
        return cls(
            id=tpl.id,
            landlord_id=tpl.landlord_id,
            name=tpl.name,
            property_type=tpl.property_type,
            rooms=_loads(tpl.rooms_json, []),
            is_default=bool(tpl.is_default),
        )


# -------------------- Termination / amendment --------------------

class TerminationIn(BaseModel):
    # Length is checked by the workflow so the error carries its code.
    reason: str
    desired_end_date: date


class AmendmentIn(BaseModel):
    amendment_type: str
    description: str
    changes: dict[str, Any] = Field(default_factory=dict)


class RespondIn(BaseModel):
    approved: bool
    message: Optional[str] = None


class ModificationOut(BaseModel):
    id: int
    contract_id: int
    requester_id: int
    requester_role: str
    type: str
    amendment_type: Optional[str] = None
    reason: str
    desired_end_date: Optional[date] = None
    changes: Optional[dict[str, Any]] = None
    status: str
    responded_by: Optional[int] = None
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_row(cls, req: Any) -> "ModificationOut":
        return cls(
            id=req.id,
            contract_id=req.contract_id,
            requester_id=req.requester_id,
            requester_role=req.requester_role,
            type=req.type,
            amendment_type=req.amendment_type,
            reason=req.reason,
            desired_end_date=req.desired_end_date,
            changes=_loads(req.changes_json, None),
            status=req.status,
            responded_by=req.responded_by,
            responded_at=req.responded_at,
            response_message=req.response_message,
            created_at=req.created_at,
        )


# -------------------- Ops --------------------

class SweepOut(BaseModel):
    activated: list[int]
    expired: list[int]
    keys_completed: list[int]
    checklist_overdue: list[int]
    skipped: list[dict[str, Any]]


class WorkflowEventOut(BaseModel):
    id: int
    contract_id: Optional[int] = None
    actor_user_id: Optional[int] = None
    actor_role: Optional[str] = None
    event_type: str
    payload: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_row(cls, ev: Any) -> "WorkflowEventOut":
        return cls(
            id=ev.id,
            contract_id=ev.contract_id,
            actor_user_id=ev.actor_user_id,
            actor_role=ev.actor_role,
            event_type=ev.event_type,
            payload=_loads(ev.payload_json, {}),
            created_at=ev.created_at,
        )
