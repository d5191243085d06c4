# backend/rentflow/domain/lifecycle.py
from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Optional

from .actors import ADMIN, LANDLORD, SYSTEM, TENANT, Actor
from .errors import Forbidden, InvalidTransition

# -----------------------------------------------------------------------------
# Contract lifecycle
# -----------------------------------------------------------------------------
# draft -> sent_to_tenant -> tenant_signed -> fully_signed -> active
#                                                   |           |-> terminated
#                                                   |           '-> expired
#                                                   '-> terminated
# -----------------------------------------------------------------------------

DRAFT = "draft"
SENT_TO_TENANT = "sent_to_tenant"
TENANT_SIGNED = "tenant_signed"
FULLY_SIGNED = "fully_signed"
ACTIVE = "active"
TERMINATED = "terminated"
EXPIRED = "expired"

STATUS_ORDER = [DRAFT, SENT_TO_TENANT, TENANT_SIGNED, FULLY_SIGNED, ACTIVE]
TERMINAL_STATUSES = frozenset({TERMINATED, EXPIRED})
ALL_STATUSES = tuple(STATUS_ORDER) + (TERMINATED, EXPIRED)

# Allowed edges and which party role may trigger each one.
EDGES: dict[tuple[str, str], frozenset[str]] = {
    (DRAFT, SENT_TO_TENANT): frozenset({LANDLORD}),
    (SENT_TO_TENANT, TENANT_SIGNED): frozenset({TENANT}),
    (TENANT_SIGNED, FULLY_SIGNED): frozenset({LANDLORD}),
    (FULLY_SIGNED, ACTIVE): frozenset({SYSTEM, ADMIN}),
    (FULLY_SIGNED, TERMINATED): frozenset({SYSTEM}),
    (ACTIVE, TERMINATED): frozenset({SYSTEM}),
    (ACTIVE, EXPIRED): frozenset({SYSTEM, ADMIN}),
}

DELETABLE_STATUSES = frozenset({DRAFT, SENT_TO_TENANT, TENANT_SIGNED})
SIGNED_STATUSES = frozenset({FULLY_SIGNED, ACTIVE})
CHECKLIST_STATUSES = frozenset({TENANT_SIGNED, FULLY_SIGNED, ACTIVE})
MODIFIABLE_STATUSES = frozenset({FULLY_SIGNED, ACTIVE})

# -----------------------------------------------------------------------------
# Capability table: action -> party roles allowed to invoke it.
# This is the only place role-based authorization lives.
# -----------------------------------------------------------------------------

ACTION_ROLES: dict[str, frozenset[str]] = {
    "contract.create": frozenset({LANDLORD, ADMIN}),
    "contract.view": frozenset({TENANT, LANDLORD, ADMIN, SYSTEM}),
    "contract.update": frozenset({LANDLORD}),
    "contract.send": frozenset({LANDLORD}),
    "contract.sign": frozenset({TENANT, LANDLORD}),
    "contract.delete": frozenset({LANDLORD, ADMIN}),
    "contract.activate": frozenset({SYSTEM, ADMIN}),
    "contract.expire": frozenset({SYSTEM, ADMIN}),
    "contract.pdf": frozenset({TENANT, LANDLORD, ADMIN}),
    "payment.intent": frozenset({TENANT}),
    "payment.confirm": frozenset({TENANT, SYSTEM}),
    "payment.manual": frozenset({LANDLORD, ADMIN}),
    "keys.propose": frozenset({TENANT, LANDLORD}),
    "keys.confirm": frozenset({TENANT, LANDLORD}),
    "keys.complete": frozenset({TENANT, LANDLORD, SYSTEM}),
    "checklist.create": frozenset({LANDLORD, SYSTEM}),
    "checklist.update": frozenset({TENANT, LANDLORD}),
    "checklist.sign": frozenset({TENANT, LANDLORD}),
    "checklist.notes": frozenset({TENANT, LANDLORD}),
    "checklist.template": frozenset({LANDLORD}),
    "modification.request": frozenset({TENANT, LANDLORD}),
    "modification.respond": frozenset({TENANT, LANDLORD}),
    "modification.withdraw": frozenset({TENANT, LANDLORD}),
    "ops.sweep": frozenset({ADMIN, SYSTEM}),
}

# Human-readable explanations for rejected actions, keyed by action.
ACTION_LABELS: dict[str, str] = {
    "contract.create": "create contracts",
    "contract.view": "view this contract",
    "contract.update": "edit the contract terms",
    "contract.send": "send the contract to the tenant",
    "contract.sign": "sign the contract",
    "contract.delete": "delete the contract",
    "contract.activate": "activate the contract",
    "contract.expire": "expire the contract",
    "contract.pdf": "generate the contract document",
    "payment.intent": "start a payment",
    "payment.confirm": "confirm a payment",
    "payment.manual": "record an off-platform payment",
    "keys.propose": "propose key collection slots",
    "keys.confirm": "confirm a key collection slot",
    "keys.complete": "complete the key handover",
    "checklist.create": "create the move-in checklist",
    "checklist.update": "edit the move-in checklist",
    "checklist.sign": "sign the move-in checklist",
    "checklist.notes": "add checklist notes",
    "checklist.template": "manage checklist templates",
    "modification.request": "request a contract change",
    "modification.respond": "respond to this request",
    "modification.withdraw": "withdraw this request",
    "ops.sweep": "run the lifecycle sweep",
}


def status_rank(status: str) -> int:
    """Position on the forward path; terminal states rank after active."""
    try:
        return STATUS_ORDER.index(status)
    except ValueError:
        return len(STATUS_ORDER)


def is_at_least(status: str, floor: str) -> bool:
    if status in TERMINAL_STATUSES:
        return False
    return status_rank(status) >= status_rank(floor)


def allowed_next(status: str) -> list[str]:
    return [to for (frm, to) in EDGES if frm == status]


def resolve_party(actor: Actor, contract: Any) -> str:
    """
    Map an actor onto its role for this specific contract.

    A tenant/landlord actor must actually be that party on the contract; the
    role claim alone is not enough. Admin and system pass through.
    """
    if actor.role in (ADMIN, SYSTEM):
        return actor.role
    if actor.role == TENANT and int(contract.tenant_id) == int(actor.user_id):
        return TENANT
    if actor.role == LANDLORD and int(contract.landlord_id) == int(actor.user_id):
        return LANDLORD
    raise Forbidden(
        "You are not a party to this contract",
        details={"contract_id": getattr(contract, "id", None), "actor_role": actor.role},
    )


def require_capability(action: str, party_role: str) -> None:
    allowed = ACTION_ROLES.get(action)
    if allowed is None:
        raise KeyError(f"unknown action: {action}")
    if party_role not in allowed:
        label = ACTION_LABELS.get(action, action)
        raise Forbidden(
            f"A {party_role} cannot {label}",
            details={"action": action, "role": party_role, "allowed_roles": sorted(allowed)},
        )


def check_edge(current: str, nxt: str, party_role: str) -> None:
    """
    Validate (current, next, role). InvalidTransition when the edge does not
    exist; Forbidden when it exists but this role may not trigger it.
    """
    roles = EDGES.get((current, nxt))
    if roles is None:
        raise InvalidTransition(
            f"Cannot move a contract from {current} to {nxt}",
            details={"from": current, "to": nxt, "allowed_next": allowed_next(current)},
        )
    if party_role not in roles:
        raise Forbidden(
            f"Only {' or '.join(sorted(roles))} may move a contract from {current} to {nxt}",
            details={"from": current, "to": nxt, "role": party_role},
        )


def require_status(contract: Any, allowed: Iterable[str], *, what: str, error: type = InvalidTransition) -> None:
    allowed_set = set(allowed)
    if contract.status not in allowed_set:
        raise error(
            f"Cannot {what} while the contract is {contract.status}",
            details={"status": contract.status, "allowed_statuses": sorted(allowed_set)},
        )


def missing_terms(
    *,
    start_date: Optional[date],
    end_date: Optional[date],
    monthly_rent: Optional[int],
    security_deposit: Optional[int],
    currency: Optional[str],
    terms: Optional[str],
) -> list[str]:
    """Reasons a contract's terms are not complete enough to send; empty means complete."""
    out: list[str] = []
    if start_date is None:
        out.append("start_date is required")
    if end_date is None:
        out.append("end_date is required")
    if start_date is not None and end_date is not None and end_date <= start_date:
        out.append("end_date must be after start_date")
    if monthly_rent is None or int(monthly_rent) <= 0:
        out.append("monthly_rent must be positive")
    if security_deposit is None or int(security_deposit) < 0:
        out.append("security_deposit must be zero or positive")
    if not currency or len(currency.strip()) != 3 or not currency.strip().isalpha():
        out.append("currency must be a 3-letter code")
    if not (terms or "").strip():
        out.append("terms text is required")
    return out
