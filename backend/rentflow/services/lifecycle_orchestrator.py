# backend/rentflow/services/lifecycle_orchestrator.py
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..clients.stripe_client import PaymentProvider, StripeClient
from ..config import settings
from ..domain.actors import ADMIN, LANDLORD, SYSTEM, SYSTEM_ACTOR, TENANT, Actor
from ..domain.errors import Forbidden, InvalidTransition, ValidationFailed
from ..domain.events import emit_audit_event, emit_workflow_event
from ..domain.lifecycle import (
    ACTIVE,
    DRAFT,
    EXPIRED,
    FULLY_SIGNED,
    SIGNED_STATUSES,
    TERMINATED,
    require_capability,
    require_status,
    resolve_party,
)
from ..models import (
    ChecklistTemplate,
    Contract,
    KeyCollection,
    ModificationRequest,
    MoveInChecklist,
    WorkflowEvent,
    utcnow,
)
from .checklist_workflow import COMPLETED as CHECKLIST_COMPLETED
from .checklist_workflow import ChecklistWorkflow, checklist_deadline, checklist_urgency
from .contract_store import ContractStore
from .documents import DocumentRenderer
from .key_collection import KeyCollectionScheduler
from .modification_workflow import AMENDMENT, TERMINATION, ModificationWorkflow
from .notifications import LoggingNotifier, Notifier, safe_notify
from .payment_gate import DEPOSIT, RENT, IntentResult, PaymentGate
from .signature_gate import prepare_send, prepare_sign

log = logging.getLogger("rentflow.lifecycle")

# Terms a landlord may still edit while the contract is a draft.
EDITABLE_TERMS = (
    "start_date",
    "end_date",
    "monthly_rent",
    "security_deposit",
    "currency",
    "language",
    "terms",
    "special_conditions",
)


def _check_terms(
    *,
    start_date: Optional[date],
    end_date: Optional[date],
    monthly_rent: int,
    security_deposit: int,
    currency: Optional[str],
    language: str,
) -> str:
    """Shape checks shared by create and update; returns the normalized currency."""
    problems: list[str] = []
    if start_date is None or end_date is None:
        problems.append("start_date and end_date are required")
    elif end_date <= start_date:
        problems.append("end_date must be after start_date")
    if int(monthly_rent) < 0 or int(security_deposit) < 0:
        problems.append("amounts cannot be negative")
    cur = (currency or "").strip().upper()
    if len(cur) != 3 or not cur.isalpha():
        problems.append("currency must be a 3-letter code")
    if language not in ("en", "es"):
        problems.append("language must be en or es")
    if problems:
        raise ValidationFailed("Invalid contract terms", details={"problems": problems})
    return cur


class LifecycleOrchestrator:
    """
    The single entry point for every lifecycle action.

    Each public method runs as one unit of work: load the contract, resolve
    the caller's role on it, check the capability table, let the relevant
    workflow decide, write conditionally, emit events, commit. Notifications
    go out only after the commit succeeds.
    """

    def __init__(
        self,
        db: Session,
        *,
        payment_provider: Optional[PaymentProvider] = None,
        notifier: Optional[Notifier] = None,
        renderer: Optional[DocumentRenderer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.clock = clock or utcnow
        self.notifier = notifier or LoggingNotifier()
        self.renderer = renderer

        self.store = ContractStore(db)
        self.payments = PaymentGate(
            db, payment_provider or StripeClient(), commission_pct=settings.platform_commission_pct
        )
        self.keys = KeyCollectionScheduler(db, max_slots=settings.max_key_slots)
        self.checklists = ChecklistWorkflow(db)
        self.modifications = ModificationWorkflow(db, min_reason_length=settings.min_reason_length)

        self._outbox: list[tuple[str, list[int], dict[str, Any]]] = []

    # -----------------------------------------------------------------
    # plumbing
    # -----------------------------------------------------------------
    def _now(self) -> datetime:
        return self.clock()

    def _today(self) -> date:
        return self._now().date()

    @contextmanager
    def _unit(self) -> Iterator[None]:
        self._outbox = []
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            self._outbox = []
            raise
        outbox, self._outbox = self._outbox, []
        for event_type, recipients, payload in outbox:
            safe_notify(self.notifier, event_type, recipients, payload)

    def _load(self, contract_id: int, actor: Actor, action: str) -> tuple[Contract, str]:
        contract = self.store.get(contract_id)
        role = resolve_party(actor, contract)
        require_capability(action, role)
        return contract, role

    def _record(
        self,
        actor: Actor,
        event_type: str,
        contract: Contract,
        *,
        payload: Optional[dict[str, Any]] = None,
        entity_type: str = "contract",
        entity_id: Any = None,
        before: Optional[dict[str, Any]] = None,
        after: Optional[dict[str, Any]] = None,
    ) -> None:
        body: dict[str, Any] = {"contract_id": contract.id, "status": contract.status}
        body.update(payload or {})
        body = json.loads(json.dumps(body, default=str))

        emit_workflow_event(self.db, actor=actor, event_type=event_type, contract_id=contract.id, payload=body)
        emit_audit_event(
            self.db,
            actor=actor,
            action=event_type,
            entity_type=entity_type,
            entity_id=entity_id if entity_id is not None else contract.id,
            before=before,
            after=after,
        )

        recipients = [int(contract.tenant_id), int(contract.landlord_id)]
        if actor.is_party:
            recipients = [r for r in recipients if r != int(actor.user_id)]
        self._outbox.append((event_type, recipients, body))

        log.info(
            event_type,
            extra={
                "contract_id": contract.id,
                "actor_id": actor.user_id,
                "actor_role": actor.role,
                "action": event_type,
            },
        )

    # -----------------------------------------------------------------
    # contracts
    # -----------------------------------------------------------------
    def create_contract(
        self,
        actor: Actor,
        *,
        property_id: int,
        tenant_id: int,
        landlord_id: int,
        start_date: date,
        end_date: date,
        monthly_rent: int,
        security_deposit: int,
        currency: str = "EUR",
        language: str = "en",
        terms: Optional[str] = None,
        special_conditions: Optional[str] = None,
        application_id: Optional[int] = None,
        send_immediately: bool = False,
    ) -> Contract:
        require_capability("contract.create", actor.role)
        if actor.role == LANDLORD and int(actor.user_id) != int(landlord_id):
            raise Forbidden("Landlords can only create contracts for their own properties")
        if int(tenant_id) == int(landlord_id):
            raise ValidationFailed("Tenant and landlord must be different users")

        cur = _check_terms(
            start_date=start_date,
            end_date=end_date,
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            currency=currency,
            language=language,
        )

        with self._unit():
            contract = self.store.create(
                property_id=int(property_id),
                tenant_id=int(tenant_id),
                landlord_id=int(landlord_id),
                application_id=int(application_id) if application_id is not None else None,
                start_date=start_date,
                end_date=end_date,
                monthly_rent=int(monthly_rent),
                security_deposit=int(security_deposit),
                currency=cur,
                language=language,
                terms=terms,
                special_conditions=special_conditions,
                checklist_deadline=checklist_deadline(start_date, self._today(), settings.checklist_deadline_days),
            )
            self._record(actor, "contract.created", contract, after=contract.model_dump())
            if send_immediately:
                self._send(contract, actor, actor.role)
        return contract

    def update_contract(self, contract_id: int, actor: Actor, **changes: Any) -> Contract:
        """
        Edit the terms of a draft. Only the landlord on the contract may do it,
        and only before it is sent; completeness is still checked at send time.
        """
        unknown = sorted(set(changes) - set(EDITABLE_TERMS))
        if unknown:
            raise ValidationFailed(
                "These fields cannot be edited", details={"fields": unknown, "editable": list(EDITABLE_TERMS)}
            )
        cleared = sorted(k for k, v in changes.items() if v is None and k not in ("terms", "special_conditions"))
        if cleared:
            raise ValidationFailed("These fields cannot be cleared", details={"fields": cleared})

        with self._unit():
            contract, _ = self._load(contract_id, actor, "contract.update")
            require_status(contract, (DRAFT,), what="edit the terms")
            if not changes:
                return contract

            merged = {k: changes.get(k, getattr(contract, k)) for k in EDITABLE_TERMS}
            merged["currency"] = _check_terms(
                start_date=merged["start_date"],
                end_date=merged["end_date"],
                monthly_rent=merged["monthly_rent"],
                security_deposit=merged["security_deposit"],
                currency=merged["currency"],
                language=merged["language"],
            )
            fields = {k: v for k, v in merged.items() if k in changes}
            if "start_date" in changes:
                fields["checklist_deadline"] = checklist_deadline(
                    merged["start_date"], self._today(), settings.checklist_deadline_days
                )

            before = contract.model_dump()
            self.store.update_fields(contract, fields)
            self._record(
                actor,
                "contract.updated",
                contract,
                payload={"fields": sorted(changes)},
                before=before,
                after=contract.model_dump(),
            )
        return contract

    def get_contract(self, contract_id: int, actor: Actor) -> Contract:
        contract, _ = self._load(contract_id, actor, "contract.view")
        return contract

    def list_contracts_for(self, actor: Actor) -> list[Contract]:
        if actor.role == TENANT:
            return self.store.list_for_tenant(actor.user_id)
        if actor.role == LANDLORD:
            return self.store.list_for_landlord(actor.user_id)
        return self.store.list_by_status()

    def _send(self, contract: Contract, actor: Actor, role: str) -> None:
        require_capability("contract.send", role)
        effect = prepare_send(contract)
        before = contract.model_dump()
        self.store.apply_transition(contract, effect.next_status, role, fields=effect.fields)
        self._record(actor, "contract.sent", contract, before=before, after=contract.model_dump())

    def send_to_tenant(self, contract_id: int, actor: Actor) -> Contract:
        with self._unit():
            contract, role = self._load(contract_id, actor, "contract.send")
            self._send(contract, actor, role)
        return contract

    def sign(self, contract_id: int, actor: Actor, signature_blob: str) -> Contract:
        with self._unit():
            contract, role = self._load(contract_id, actor, "contract.sign")
            effect = prepare_sign(contract, role, signature_blob, now=self._now())
            before = contract.model_dump()
            self.store.apply_transition(contract, effect.next_status, role, fields=effect.fields)
            self._record(actor, f"contract.signed_by_{role}", contract, before=before, after=contract.model_dump())

            if contract.status == FULLY_SIGNED:
                self._render_pdf_best_effort(contract)
        return contract

    def _render_pdf_best_effort(self, contract: Contract) -> None:
        if self.renderer is None:
            return
        try:
            url = self.renderer.render_contract_pdf(contract)
        except Exception:
            log.exception("contract_pdf_failed", extra={"contract_id": contract.id})
            return
        self.store.update_fields(contract, {"contract_pdf_url": url})

    def generate_pdf(self, contract_id: int, actor: Actor) -> Contract:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "contract.pdf")
            if self.renderer is None:
                raise ValidationFailed("Document rendering is not configured")
            url = self.renderer.render_contract_pdf(contract)
            self.store.update_fields(contract, {"contract_pdf_url": url})
            self._record(actor, "contract.pdf_generated", contract, payload={"url": url})
        return contract

    def delete_contract(self, contract_id: int, actor: Actor) -> None:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "contract.delete")
            before = contract.model_dump()
            # Events reference the id only; capture what they need before the row goes.
            self._record(actor, "contract.deleted", contract, before=before)
            self.store.delete(contract)

    def _activate(self, contract: Contract, actor: Actor, role: str, *, reason: str) -> None:
        if role == SYSTEM and not (contract.keys_collected or contract.start_date <= self._today()):
            raise InvalidTransition(
                "The lease has not started and the keys have not been handed over",
                details={"start_date": contract.start_date.isoformat()},
            )
        before = contract.model_dump()
        self.store.apply_transition(contract, ACTIVE, role)
        self._record(actor, "contract.activated", contract, payload={"reason": reason}, before=before, after=contract.model_dump())

        if contract.checklist_id is None:
            self._create_checklist(contract, SYSTEM_ACTOR, template_id=None)

    def activate(self, contract_id: int, actor: Actor) -> Contract:
        with self._unit():
            contract, role = self._load(contract_id, actor, "contract.activate")
            self._activate(contract, actor, role, reason="start_date" if role == SYSTEM else "manual")
        return contract

    def expire(self, contract_id: int, actor: Actor) -> Contract:
        with self._unit():
            contract, role = self._load(contract_id, actor, "contract.expire")
            if role == SYSTEM and contract.end_date >= self._today():
                raise InvalidTransition(
                    "The lease has not ended yet", details={"end_date": contract.end_date.isoformat()}
                )
            before = contract.model_dump()
            self.store.apply_transition(contract, EXPIRED, role)
            self._record(actor, "contract.expired", contract, before=before, after=contract.model_dump())
        return contract

    # -----------------------------------------------------------------
    # payments
    # -----------------------------------------------------------------
    def _create_intent(self, contract_id: int, actor: Actor, kind: str) -> IntentResult:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "payment.intent")
            result = self.payments.create_intent(contract, kind)
            self._record(
                actor,
                f"payment.{kind}_intent_created",
                contract,
                payload={"payment_intent_id": result.payment_intent_id, "amount": result.amount},
                entity_type="payment",
                entity_id=result.payment_intent_id,
            )
        return result

    def create_deposit_payment_intent(self, contract_id: int, actor: Actor) -> IntentResult:
        return self._create_intent(contract_id, actor, DEPOSIT)

    def create_rent_payment_intent(self, contract_id: int, actor: Actor) -> IntentResult:
        return self._create_intent(contract_id, actor, RENT)

    def _confirm(self, contract: Contract, actor: Actor, kind: str, payment_ref: str) -> Contract:
        now = self._now()
        prepared = self.payments.prepare_confirm(contract, kind, payment_ref, now=now)
        if prepared is None:
            return contract

        fields, record = prepared
        before = contract.model_dump()
        self.store.update_fields(contract, fields)
        self.payments.mark_completed(record, now=now)
        self._record(
            actor,
            f"payment.{kind}_paid",
            contract,
            payload={"payment_intent_id": record.provider_intent_id, "amount": record.amount},
            before=before,
            after=contract.model_dump(),
        )
        return contract

    def confirm_deposit_payment(self, contract_id: int, actor: Actor, payment_ref: str) -> Contract:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "payment.confirm")
            self._confirm(contract, actor, DEPOSIT, payment_ref)
        return contract

    def confirm_rent_payment(self, contract_id: int, actor: Actor, payment_ref: str) -> Contract:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "payment.confirm")
            self._confirm(contract, actor, RENT, payment_ref)
        return contract

    def record_manual_payment(
        self, contract_id: int, actor: Actor, *, kind: str, method: str, reference: Optional[str] = None
    ) -> Contract:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "payment.manual")
            fields = self.payments.prepare_manual(contract, kind, method=method, reference=reference, now=self._now())
            before = contract.model_dump()
            self.store.update_fields(contract, fields)
            self._record(
                actor,
                f"payment.{kind}_paid",
                contract,
                payload={"method": method, "reference": reference},
                before=before,
                after=contract.model_dump(),
            )
        return contract

    def handle_payment_succeeded(self, payment_intent_id: str) -> Optional[Contract]:
        """Provider webhook: confirm through the same gate path as the client would."""
        with self._unit():
            record = self.payments.find_record(payment_intent_id)
            if record is None:
                log.warning("payment_webhook_unknown_intent", extra={"payment_intent_id": payment_intent_id})
                return None
            contract, _ = self._load(record.contract_id, SYSTEM_ACTOR, "payment.confirm")
            self._confirm(contract, SYSTEM_ACTOR, record.kind, payment_intent_id)
        return contract

    # -----------------------------------------------------------------
    # key collection
    # -----------------------------------------------------------------
    def propose_key_collection(self, contract_id: int, actor: Actor, slots: list[dict[str, Any]]) -> KeyCollection:
        with self._unit():
            contract, role = self._load(contract_id, actor, "keys.propose")
            kc, previous = self.keys.propose(contract, role=role, user_id=actor.user_id, slots=slots, now=self._now())
            self._record(
                actor,
                "keys.proposed",
                contract,
                payload={"revision": kc.revision, "slots": len(slots)},
                entity_type="key_collection",
                entity_id=kc.id,
                before={"slots": previous} if previous is not None else None,
                after={"slots": kc.proposed_slots_json, "proposed_by": role},
            )
        return kc

    def confirm_key_collection(self, contract_id: int, actor: Actor, slot_index: int) -> KeyCollection:
        with self._unit():
            contract, role = self._load(contract_id, actor, "keys.confirm")
            require_status(contract, SIGNED_STATUSES, what="confirm key collection")
            kc = self.keys.require_for_contract(contract.id)
            self.keys.confirm(kc, role=role, slot_index=slot_index, now=self._now())
            self._record(
                actor,
                "keys.confirmed",
                contract,
                payload={"slot_index": kc.chosen_slot_index, "scheduled_for": kc.scheduled_for},
                entity_type="key_collection",
                entity_id=kc.id,
            )
        return kc

    def complete_key_collection(self, contract_id: int, actor: Actor) -> KeyCollection:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "keys.complete")
            require_status(contract, SIGNED_STATUSES, what="hand over the keys")
            kc = self.keys.require_for_contract(contract.id)
            now = self._now()
            self.keys.complete(kc, now=now)

            before = contract.model_dump()
            self.store.update_fields(contract, {"keys_collected": True, "keys_collected_at": now})
            self._record(
                actor,
                "keys.collected",
                contract,
                entity_type="key_collection",
                entity_id=kc.id,
                before=before,
                after=contract.model_dump(),
            )

            if contract.status == FULLY_SIGNED:
                self._activate(contract, SYSTEM_ACTOR, SYSTEM, reason="keys_collected")
        return kc

    def get_key_collection(self, contract_id: int, actor: Actor) -> KeyCollection:
        contract, _ = self._load(contract_id, actor, "contract.view")
        return self.keys.require_for_contract(contract.id)

    # -----------------------------------------------------------------
    # move-in checklist
    # -----------------------------------------------------------------
    def _create_checklist(self, contract: Contract, actor: Actor, *, template_id: Optional[int]) -> MoveInChecklist:
        cl = self.checklists.create(contract, template_id=template_id)
        fields: dict[str, Any] = {}
        if contract.checklist_id != cl.id:
            fields["checklist_id"] = cl.id
            fields["checklist_deadline"] = checklist_deadline(
                contract.start_date, self._today(), settings.checklist_deadline_days
            )
        self.store.update_fields(contract, fields)
        self._record(
            actor,
            "checklist.created",
            contract,
            payload={"checklist_id": cl.id, "template_id": cl.template_id},
            entity_type="checklist",
            entity_id=cl.id,
        )
        return cl

    def create_checklist(self, contract_id: int, actor: Actor, template_id: Optional[int] = None) -> MoveInChecklist:
        with self._unit():
            contract, _ = self._load(contract_id, actor, "checklist.create")
            cl = self._create_checklist(contract, actor, template_id=template_id)
        return cl

    def _load_checklist(self, checklist_id: int, actor: Actor, action: str) -> tuple[MoveInChecklist, Contract, str]:
        cl = self.checklists.get(checklist_id)
        contract, role = self._load(cl.contract_id, actor, action)
        return cl, contract, role

    def get_checklist(self, checklist_id: int, actor: Actor) -> MoveInChecklist:
        cl, _, _ = self._load_checklist(checklist_id, actor, "contract.view")
        return cl

    def checklist_urgency(self, contract: Contract) -> str:
        return checklist_urgency(
            contract.checklist_deadline,
            completed=contract.checklist_completed_at is not None,
            today=self._today(),
            due_soon_days=settings.checklist_due_soon_days,
        )

    def update_checklist_items(self, checklist_id: int, actor: Actor, rooms: list[dict[str, Any]]) -> MoveInChecklist:
        with self._unit():
            cl, contract, _ = self._load_checklist(checklist_id, actor, "checklist.update")
            self.checklists.update_items(cl, rooms)
            self._record(actor, "checklist.updated", contract, entity_type="checklist", entity_id=cl.id)
        return cl

    def sign_checklist(self, checklist_id: int, actor: Actor, signature_blob: str) -> MoveInChecklist:
        with self._unit():
            cl, contract, role = self._load_checklist(checklist_id, actor, "checklist.sign")
            now = self._now()
            self.checklists.sign(cl, role=role, signature_blob=signature_blob, now=now)
            if cl.status == CHECKLIST_COMPLETED:
                self.store.update_fields(contract, {"checklist_completed_at": now})
            self._record(
                actor,
                f"checklist.signed_by_{role}",
                contract,
                payload={"checklist_id": cl.id, "checklist_status": cl.status},
                entity_type="checklist",
                entity_id=cl.id,
            )
        return cl

    def add_checklist_notes(self, checklist_id: int, actor: Actor, notes: str) -> MoveInChecklist:
        with self._unit():
            cl, contract, role = self._load_checklist(checklist_id, actor, "checklist.notes")
            self.checklists.add_notes(cl, role=role, notes=notes)
            self._record(actor, "checklist.notes_added", contract, entity_type="checklist", entity_id=cl.id)
        return cl

    def create_checklist_template(
        self,
        actor: Actor,
        *,
        name: str,
        rooms: list[dict[str, Any]],
        property_type: str = "apartment",
        is_default: bool = False,
    ) -> ChecklistTemplate:
        require_capability("checklist.template", actor.role)
        with self._unit():
            tpl = self.checklists.create_template(
                landlord_id=actor.user_id, name=name, property_type=property_type, rooms=rooms, is_default=is_default
            )
            emit_audit_event(
                self.db,
                actor=actor,
                action="checklist.template_created",
                entity_type="checklist_template",
                entity_id=tpl.id,
                after={"name": tpl.name, "is_default": tpl.is_default},
            )
        return tpl

    def update_checklist_template(
        self,
        template_id: int,
        actor: Actor,
        *,
        name: Optional[str] = None,
        property_type: Optional[str] = None,
        rooms: Optional[list[dict[str, Any]]] = None,
        is_default: Optional[bool] = None,
    ) -> ChecklistTemplate:
        require_capability("checklist.template", actor.role)
        with self._unit():
            tpl = self.checklists.get_owned_template(template_id, actor.user_id)
            before = {"name": tpl.name, "is_default": tpl.is_default}
            self.checklists.update_template(
                tpl, name=name, property_type=property_type, rooms=rooms, is_default=is_default
            )
            emit_audit_event(
                self.db,
                actor=actor,
                action="checklist.template_updated",
                entity_type="checklist_template",
                entity_id=tpl.id,
                before=before,
                after={"name": tpl.name, "is_default": tpl.is_default},
            )
        return tpl

    def delete_checklist_template(self, template_id: int, actor: Actor) -> None:
        require_capability("checklist.template", actor.role)
        with self._unit():
            tpl = self.checklists.get_owned_template(template_id, actor.user_id)
            emit_audit_event(
                self.db,
                actor=actor,
                action="checklist.template_deleted",
                entity_type="checklist_template",
                entity_id=tpl.id,
                before={"name": tpl.name, "is_default": tpl.is_default},
            )
            self.checklists.delete_template(tpl)

    def list_checklist_templates(self, actor: Actor) -> list[ChecklistTemplate]:
        require_capability("checklist.template", actor.role)
        return self.checklists.list_templates(actor.user_id)

    # -----------------------------------------------------------------
    # termination / amendment
    # -----------------------------------------------------------------
    def request_termination(
        self, contract_id: int, actor: Actor, *, reason: str, desired_end_date: date
    ) -> ModificationRequest:
        with self._unit():
            contract, role = self._load(contract_id, actor, "modification.request")
            text = self.modifications.check_termination(reason, desired_end_date, today=self._today())
            self.modifications.check_contract_open(contract)
            req = self.modifications.create(
                contract,
                requester_id=actor.user_id,
                requester_role=role,
                request_type=TERMINATION,
                reason=text,
                desired_end_date=desired_end_date,
            )
            self._record(
                actor,
                "termination.requested",
                contract,
                payload={"request_id": req.id, "desired_end_date": desired_end_date},
                entity_type="modification_request",
                entity_id=req.id,
            )
        return req

    def request_amendment(
        self,
        contract_id: int,
        actor: Actor,
        *,
        amendment_type: str,
        description: str,
        changes: Optional[dict[str, Any]] = None,
    ) -> ModificationRequest:
        with self._unit():
            contract, role = self._load(contract_id, actor, "modification.request")
            text = self.modifications.check_amendment(amendment_type, description, changes)
            self.modifications.check_contract_open(contract)
            req = self.modifications.create(
                contract,
                requester_id=actor.user_id,
                requester_role=role,
                request_type=AMENDMENT,
                reason=text,
                amendment_type=amendment_type,
                changes=changes or {},
            )
            self._record(
                actor,
                "amendment.requested",
                contract,
                payload={"request_id": req.id, "amendment_type": amendment_type},
                entity_type="modification_request",
                entity_id=req.id,
            )
        return req

    def _load_request(
        self, request_id: int, actor: Actor, action: str, request_type: Optional[str] = None
    ) -> tuple[ModificationRequest, Contract, str]:
        req = self.modifications.get(request_id)
        if request_type is not None and req.type != request_type:
            raise ValidationFailed(
                f"Request {request_id} is a {req.type} request, not a {request_type} request",
                details={"request_id": request_id, "type": req.type},
            )
        contract, role = self._load(req.contract_id, actor, action)
        return req, contract, role

    def respond_termination(
        self, request_id: int, actor: Actor, *, approved: bool, message: Optional[str] = None
    ) -> ModificationRequest:
        with self._unit():
            req, contract, role = self._load_request(request_id, actor, "modification.respond", TERMINATION)
            now = self._now()
            self.modifications.respond(
                req, approver_id=actor.user_id, approver_role=role, approved=approved, message=message, now=now
            )

            if approved:
                self.modifications.reject_pending(contract.id, AMENDMENT, message="contract terminated", now=now)
                before = contract.model_dump()
                self.store.apply_transition(
                    contract,
                    TERMINATED,
                    SYSTEM,
                    fields={
                        "end_date": req.desired_end_date,
                        "terminated_at": now,
                        "termination_request_id": req.id,
                    },
                )
                self._record(
                    actor,
                    "termination.approved",
                    contract,
                    payload={"request_id": req.id, "end_date": req.desired_end_date},
                    before=before,
                    after=contract.model_dump(),
                )
            else:
                self._record(
                    actor,
                    "termination.rejected",
                    contract,
                    payload={"request_id": req.id},
                    entity_type="modification_request",
                    entity_id=req.id,
                )
        return req

    def respond_amendment(
        self, request_id: int, actor: Actor, *, approved: bool, message: Optional[str] = None
    ) -> ModificationRequest:
        with self._unit():
            req, contract, role = self._load_request(request_id, actor, "modification.respond", AMENDMENT)
            self.modifications.respond(
                req, approver_id=actor.user_id, approver_role=role, approved=approved, message=message, now=self._now()
            )
            self._record(
                actor,
                "amendment.approved" if approved else "amendment.rejected",
                contract,
                payload={"request_id": req.id, "amendment_type": req.amendment_type},
                entity_type="modification_request",
                entity_id=req.id,
                after={"status": req.status, "changes": req.changes_json},
            )
        return req

    def withdraw_request(self, request_id: int, actor: Actor) -> ModificationRequest:
        with self._unit():
            req, contract, _ = self._load_request(request_id, actor, "modification.withdraw")
            self.modifications.withdraw(req, requester_id=actor.user_id, now=self._now())
            self._record(
                actor,
                f"{req.type}.withdrawn",
                contract,
                payload={"request_id": req.id},
                entity_type="modification_request",
                entity_id=req.id,
            )
        return req

    def list_requests(self, contract_id: int, actor: Actor) -> list[ModificationRequest]:
        contract, _ = self._load(contract_id, actor, "contract.view")
        return self.modifications.list_for_contract(contract.id)

    def list_pending_requests(self, actor: Actor) -> list[ModificationRequest]:
        """Pending requests on the actor's contracts that someone else raised."""
        contracts = self.list_contracts_for(actor)
        pending = self.modifications.pending_for_contracts(c.id for c in contracts)
        if actor.role in (ADMIN, SYSTEM):
            return pending
        return [r for r in pending if int(r.requester_id) != int(actor.user_id)]

    # -----------------------------------------------------------------
    # event feed
    # -----------------------------------------------------------------
    def list_events(self, contract_id: int, actor: Actor, *, limit: int = 100) -> list[WorkflowEvent]:
        contract, _ = self._load(contract_id, actor, "contract.view")
        return list(
            self.db.scalars(
                select(WorkflowEvent)
                .where(WorkflowEvent.contract_id == contract.id)
                .order_by(WorkflowEvent.id.desc())
                .limit(int(limit))
            ).all()
        )
