# backend/rentflow/cli/__main__.py
from __future__ import annotations

import argparse

from ..db import SessionLocal
from ..logging_config import configure_logging
from ..services.lifecycle_orchestrator import LifecycleOrchestrator
from ..services.lifecycle_sweep import run_sweep
from ..services.notifications import LoggingNotifier
from .seed_demo import seed_demo


def _sweep() -> dict:
    db = SessionLocal()
    try:
        orch = LifecycleOrchestrator(db, notifier=LoggingNotifier())
        return run_sweep(orch).as_dict()
    finally:
        db.close()


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m rentflow.cli")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("sweep", help="run the lifecycle sweep once (no celery needed)")

    seed = sub.add_parser("seed-demo", help="create a demo landlord template and contract")
    seed.add_argument("--landlord-id", type=int, default=1)
    seed.add_argument("--tenant-id", type=int, default=2)
    seed.add_argument("--property-id", type=int, default=100)
    seed.add_argument("--no-send", action="store_true")

    args = p.parse_args()
    configure_logging()

    if args.command == "sweep":
        print({"ok": True, "sweep": _sweep()})
        return

    out = seed_demo(
        landlord_id=args.landlord_id,
        tenant_id=args.tenant_id,
        property_id=args.property_id,
        send=(not args.no_send),
    )
    print(
        {
            "ok": True,
            "landlord_id": out.landlord_id,
            "tenant_id": out.tenant_id,
            "template_id": out.template_id,
            "contract_id": out.contract_id,
            "status": out.contract_status,
        }
    )


if __name__ == "__main__":
    main()
