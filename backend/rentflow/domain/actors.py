# backend/rentflow/domain/actors.py
from __future__ import annotations

from dataclasses import dataclass

TENANT = "tenant"
LANDLORD = "landlord"
ADMIN = "admin"
SYSTEM = "system"

ROLES = (TENANT, LANDLORD, ADMIN, SYSTEM)

# Roles that are a party to a contract (signers, payers, requesters).
PARTY_ROLES = (TENANT, LANDLORD)


@dataclass(frozen=True)
class Actor:
    """
    Explicit caller identity. Passed into every orchestrator call; nothing in
    the core reads the current user from ambient state.
    """

    user_id: int
    role: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"unknown actor role: {self.role!r}")

    @property
    def is_party(self) -> bool:
        return self.role in PARTY_ROLES

    @classmethod
    def tenant(cls, user_id: int) -> "Actor":
        return cls(user_id=int(user_id), role=TENANT)

    @classmethod
    def landlord(cls, user_id: int) -> "Actor":
        return cls(user_id=int(user_id), role=LANDLORD)

    @classmethod
    def admin(cls, user_id: int) -> "Actor":
        return cls(user_id=int(user_id), role=ADMIN)

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=0, role=SYSTEM)


SYSTEM_ACTOR = Actor.system()


def counter_party(role: str) -> str:
    if role == TENANT:
        return LANDLORD
    if role == LANDLORD:
        return TENANT
    raise ValueError(f"role {role!r} has no counter-party")
