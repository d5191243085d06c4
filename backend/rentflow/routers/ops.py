# backend/rentflow/routers/ops.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..auth import get_actor
from ..config import settings
from ..db import get_db
from ..deps import get_orchestrator
from ..domain.actors import Actor
from ..domain.lifecycle import require_capability
from ..schemas import SweepOut, WorkflowEventOut
from ..services.lifecycle_orchestrator import LifecycleOrchestrator
from ..services.lifecycle_sweep import run_sweep

router = APIRouter(tags=["ops"])


@router.get("/health", response_model=dict)
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"ok": True, "env": settings.app_env, "version": settings.app_version}


@router.get("/contracts/{contract_id}/events", response_model=list[WorkflowEventOut])
def contract_events(
    contract_id: int,
    limit: int = Query(default=100, ge=1, le=1000),
    orch: LifecycleOrchestrator = Depends(get_orchestrator),
    actor: Actor = Depends(get_actor),
):
    return [WorkflowEventOut.from_row(e) for e in orch.list_events(contract_id, actor, limit=limit)]


@router.post("/ops/sweep", response_model=SweepOut)
def trigger_sweep(orch: LifecycleOrchestrator = Depends(get_orchestrator), actor: Actor = Depends(get_actor)):
    require_capability("ops.sweep", actor.role)
    return SweepOut(**run_sweep(orch).as_dict())
