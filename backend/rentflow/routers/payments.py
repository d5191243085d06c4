# backend/rentflow/routers/payments.py
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from ..auth import get_actor
from ..clients.stripe_client import WebhookSignatureError, verify_webhook_signature
from ..deps import get_orchestrator
from ..domain.actors import Actor
from ..domain.errors import LifecycleError
from ..schemas import ContractOut, ManualPaymentIn, PaymentConfirmIn, PaymentIntentOut
from ..services.lifecycle_orchestrator import LifecycleOrchestrator
from .contracts import contract_out

log = logging.getLogger("rentflow.payments")

router = APIRouter(tags=["payments"])


@router.post("/contracts/{contract_id}/payments/deposit/intent", response_model=PaymentIntentOut)
def create_deposit_intent(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return PaymentIntentOut.model_validate(orch.create_deposit_payment_intent(contract_id, actor))


@router.post("/contracts/{contract_id}/payments/deposit/confirm", response_model=ContractOut)
def confirm_deposit(
    contract_id: int,
    payload: PaymentConfirmIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.confirm_deposit_payment(contract_id, actor, payload.payment_ref))


@router.post("/contracts/{contract_id}/payments/rent/intent", response_model=PaymentIntentOut)
def create_rent_intent(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return PaymentIntentOut.model_validate(orch.create_rent_payment_intent(contract_id, actor))


@router.post("/contracts/{contract_id}/payments/rent/confirm", response_model=ContractOut)
def confirm_rent(
    contract_id: int,
    payload: PaymentConfirmIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.confirm_rent_payment(contract_id, actor, payload.payment_ref))


@router.post("/contracts/{contract_id}/payments/manual", response_model=ContractOut)
def record_manual_payment(
    contract_id: int,
    payload: ManualPaymentIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    c = orch.record_manual_payment(
        contract_id, actor, kind=payload.kind, method=payload.method, reference=payload.reference
    )
    return contract_out(orch, c)


@router.post("/payments/webhook", response_model=dict)
async def stripe_webhook(request: Request, orch: LifecycleOrchestrator = Depends(get_orchestrator)):
    raw = await request.body()
    try:
        verify_webhook_signature(raw, request.headers.get("Stripe-Signature"))
    except WebhookSignatureError as e:
        log.warning("payment_webhook_rejected", extra={"action": str(e)})
        raise HTTPException(status_code=400, detail=str(e))

    try:
        event = json.loads(raw.decode("utf-8"))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_type = str(event.get("type") or "")
    if event_type != "payment_intent.succeeded":
        return {"received": True, "handled": False}

    intent_id = str(((event.get("data") or {}).get("object") or {}).get("id") or "")
    if not intent_id:
        raise HTTPException(status_code=400, detail="Event has no payment intent id")

    try:
        contract = await run_in_threadpool(orch.handle_payment_succeeded, intent_id)
    except LifecycleError as e:
        # A lost race is worth a provider redelivery; a business rejection never changes on retry.
        if e.retryable:
            raise
        log.warning("payment_webhook_not_applied", extra={"payment_intent_id": intent_id, "action": e.code})
        return {"received": True, "handled": False, "error": e.code}
    return {"received": True, "handled": contract is not None, "contract_id": contract.id if contract else None}
