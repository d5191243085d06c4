# backend/rentflow/routers/checklists.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ..auth import get_actor
from ..deps import get_orchestrator
from ..domain.actors import Actor
from ..schemas import (
    ChecklistCreateIn,
    ChecklistItemsIn,
    ChecklistNotesIn,
    ChecklistOut,
    ChecklistTemplateIn,
    ChecklistTemplateOut,
    ChecklistTemplatePatch,
    SignIn,
)
from ..services.lifecycle_orchestrator import LifecycleOrchestrator

router = APIRouter(tags=["checklists"])


@router.post("/contracts/{contract_id}/checklist", response_model=ChecklistOut, status_code=201)
def create_checklist(
    contract_id: int,
    payload: ChecklistCreateIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return ChecklistOut.from_row(orch.create_checklist(contract_id, actor, template_id=payload.template_id))


@router.get("/checklists/templates", response_model=list[ChecklistTemplateOut])
def list_templates(orch: LifecycleOrchestrator = Depends(get_orchestrator), actor: Actor = Depends(get_actor)):
    return [ChecklistTemplateOut.from_row(t) for t in orch.list_checklist_templates(actor)]


@router.post("/checklists/templates", response_model=ChecklistTemplateOut, status_code=201)
def create_template(
    payload: ChecklistTemplateIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    tpl = orch.create_checklist_template(
        actor,
        name=payload.name,
        property_type=payload.property_type,
        rooms=[r.model_dump() for r in payload.rooms],
        is_default=payload.is_default,
    )
    return ChecklistTemplateOut.from_row(tpl)


@router.patch("/checklists/templates/{template_id}", response_model=ChecklistTemplateOut)
def update_template(
    template_id: int,
    payload: ChecklistTemplatePatch,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    tpl = orch.update_checklist_template(
        template_id,
        actor,
        name=payload.name,
        property_type=payload.property_type,
        rooms=[r.model_dump() for r in payload.rooms] if payload.rooms is not None else None,
        is_default=payload.is_default,
    )
    return ChecklistTemplateOut.from_row(tpl)


@router.delete("/checklists/templates/{template_id}", status_code=204)
def delete_template(
    template_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    orch.delete_checklist_template(template_id, actor)
    return Response(status_code=204)


@router.get("/checklists/{checklist_id}", response_model=ChecklistOut)
def get_checklist(
    checklist_id: int,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return ChecklistOut.from_row(orch.get_checklist(checklist_id, actor))


@router.put("/checklists/{checklist_id}/items", response_model=ChecklistOut)
def update_items(
    checklist_id: int,
    payload: ChecklistItemsIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    rooms = [r.model_dump() for r in payload.rooms]
    return ChecklistOut.from_row(orch.update_checklist_items(checklist_id, actor, rooms))


@router.post("/checklists/{checklist_id}/sign", response_model=ChecklistOut)
def sign_checklist(
    checklist_id: int,
    payload: SignIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return ChecklistOut.from_row(orch.sign_checklist(checklist_id, actor, payload.signature))


@router.post("/checklists/{checklist_id}/notes", response_model=ChecklistOut)
def add_notes(
    checklist_id: int,
    payload: ChecklistNotesIn,
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return ChecklistOut.from_row(orch.add_checklist_notes(checklist_id, actor, payload.notes))
