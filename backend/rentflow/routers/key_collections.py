# backend/rentflow/routers/key_collections.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_actor
from ..deps import get_orchestrator
from ..domain.actors import Actor
from ..schemas import KeyCollectionOut, KeyConfirmIn, KeyProposeIn
from ..services.lifecycle_orchestrator import LifecycleOrchestrator

router = APIRouter(prefix="/contracts/{contract_id}/key-collection", tags=["key-collection"])


@router.get("", response_model=KeyCollectionOut)
def get_key_collection(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return KeyCollectionOut.from_row(orch.get_key_collection(contract_id, actor))


@router.post("/propose", response_model=KeyCollectionOut)
def propose(
    contract_id: int,
    payload: KeyProposeIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    slots = [s.model_dump() for s in payload.slots]
    return KeyCollectionOut.from_row(orch.propose_key_collection(contract_id, actor, slots))


@router.post("/confirm", response_model=KeyCollectionOut)
def confirm(
    contract_id: int,
    payload: KeyConfirmIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return KeyCollectionOut.from_row(orch.confirm_key_collection(contract_id, actor, payload.slot_index))


@router.post("/complete", response_model=KeyCollectionOut)
def complete(
    contract_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return KeyCollectionOut.from_row(orch.complete_key_collection(contract_id, actor))
