# backend/rentflow/routers/contracts.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ..auth import get_actor
from ..deps import get_orchestrator
from ..domain.actors import Actor
from ..models import Contract
from ..schemas import ContractCreate, ContractOut, ContractUpdate, SignIn
from ..services.lifecycle_orchestrator import LifecycleOrchestrator

router = APIRouter(prefix="/contracts", tags=["contracts"])


def contract_out(orch: LifecycleOrchestrator, c: Contract) -> ContractOut:
    out = ContractOut.model_validate(c)
    out.checklist_urgency = orch.checklist_urgency(c)
    return out


@router.post("", response_model=ContractOut, status_code=201)
def create_contract(
    payload: ContractCreate,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    c = orch.create_contract(actor, **payload.model_dump())
    return contract_out(orch, c)


@router.get("", response_model=list[ContractOut])
def list_contracts(orch: LifecycleOrchestrator = Depends(get_orchestrator), actor: Actor = Depends(get_actor)):
    return [contract_out(orch, c) for c in orch.list_contracts_for(actor)]


@router.get("/{contract_id}", response_model=ContractOut)
def get_contract(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.get_contract(contract_id, actor))


@router.patch("/{contract_id}", response_model=ContractOut)
def update_contract(
    contract_id: int,
    payload: ContractUpdate,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    # only fields the client actually sent; an explicit null clears free text
    return contract_out(orch, orch.update_contract(contract_id, actor, **payload.model_dump(exclude_unset=True)))


@router.post("/{contract_id}/send", response_model=ContractOut)
def send_to_tenant(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.send_to_tenant(contract_id, actor))


@router.post("/{contract_id}/sign", response_model=ContractOut)
def sign_contract(
    contract_id: int,
    payload: SignIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.sign(contract_id, actor, payload.signature))


@router.post("/{contract_id}/activate", response_model=ContractOut)
def activate_contract(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.activate(contract_id, actor))


@router.post("/{contract_id}/expire", response_model=ContractOut)
def expire_contract(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.expire(contract_id, actor))


@router.post("/{contract_id}/pdf", response_model=ContractOut)
def generate_pdf(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return contract_out(orch, orch.generate_pdf(contract_id, actor))


@router.delete("/{contract_id}", status_code=204)
def delete_contract(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    orch.delete_contract(contract_id, actor)
    return Response(status_code=204)
