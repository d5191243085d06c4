# backend/rentflow/auth.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt  # PyJWT
from fastapi import Header, HTTPException, Request

from .config import settings
from .domain.actors import ADMIN, LANDLORD, TENANT, Actor

# Roles a caller can claim over HTTP; "system" is reserved for workers.
CALLER_ROLES = (TENANT, LANDLORD, ADMIN)


# -------------------------
# JWT helpers
# -------------------------
def create_access_token(*, user_id: int, role: str, minutes: int = 60 * 24) -> str:
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(int(user_id)),
        "role": str(role),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=int(minutes))).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def _actor_from_claims(user_id: Any, role: Any) -> Actor:
    r = str(role or "").strip().lower()
    if r not in CALLER_ROLES:
        raise HTTPException(status_code=403, detail=f"Unsupported role: {r or 'none'}")
    try:
        uid = int(str(user_id).strip())
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid user id")
    if uid <= 0:
        raise HTTPException(status_code=401, detail="Invalid user id")
    return Actor(user_id=uid, role=r)


# -------------------------
# get_actor (FastAPI dependency)
# -------------------------
def get_actor(
    request: Request,
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Actor:
    """
    Auth modes supported (in priority order):
      1) Authorization: Bearer <token> (claims: sub, role)
      2) dev headers X-User-Id / X-User-Role (ONLY if settings.auth_mode == "dev")
    """
    if authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()
        claims = decode_access_token(token)
        if not claims.get("sub"):
            raise HTTPException(status_code=401, detail="Token missing sub")
        return _actor_from_claims(claims.get("sub"), claims.get("role"))

    if (settings.auth_mode or "").strip().lower() == "dev":
        user_id = request.headers.get(settings.dev_header_user_id)
        role = request.headers.get(settings.dev_header_user_role)
        if not user_id:
            raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_id} for dev auth")
        return _actor_from_claims(user_id, role)

    raise HTTPException(status_code=401, detail="Not authenticated")
