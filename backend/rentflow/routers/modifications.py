# backend/rentflow/routers/modifications.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_actor
from ..deps import get_orchestrator
from ..domain.actors import Actor
from ..schemas import AmendmentIn, ModificationOut, RespondIn, TerminationIn
from ..services.lifecycle_orchestrator import LifecycleOrchestrator

router = APIRouter(tags=["modifications"])


@router.get("/contracts/{contract_id}/requests", response_model=list[ModificationOut])
def list_requests(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return [ModificationOut.from_row(r) for r in orch.list_requests(contract_id, actor)]


@router.post("/contracts/{contract_id}/termination", response_model=ModificationOut, status_code=201)
def request_termination(
    contract_id: int,
    payload: TerminationIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    req = orch.request_termination(
        contract_id, actor, reason=payload.reason, desired_end_date=payload.desired_end_date
    )
    return ModificationOut.from_row(req)


@router.post("/contracts/{contract_id}/amendment", response_model=ModificationOut, status_code=201)
def request_amendment(
    contract_id: int,
    payload: AmendmentIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    req = orch.request_amendment(
        contract_id,
        actor,
        amendment_type=payload.amendment_type,
        description=payload.description,
        changes=payload.changes,
    )
    return ModificationOut.from_row(req)


@router.get("/requests/pending", response_model=list[ModificationOut])
def list_pending(orch: LifecycleOrchestrator = Depends(get_orchestrator), actor: Actor = Depends(get_actor)):
    return [ModificationOut.from_row(r) for r in orch.list_pending_requests(actor)]


@router.post("/requests/{request_id}/termination/respond", response_model=ModificationOut)
def respond_termination(
    request_id: int,
    payload: RespondIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    req = orch.respond_termination(request_id, actor, approved=payload.approved, message=payload.message)
    return ModificationOut.from_row(req)


@router.post("/requests/{request_id}/amendment/respond", response_model=ModificationOut)
def respond_amendment(
    request_id: int,
    payload: RespondIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    req = orch.respond_amendment(request_id, actor, approved=payload.approved, message=payload.message)
    return ModificationOut.from_row(req)


@router.post("/requests/{request_id}/withdraw", response_model=ModificationOut)
def withdraw(
    request_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return ModificationOut.from_row(orch.withdraw_request(request_id, actor))
