# storefront/api/deps.py
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Query

from storefront.domain.statuses import Role


@dataclass(frozen=True)
class Caller:
    """Identity forwarded by the gateway, already authenticated."""

    user_id: int
    role: str


def get_caller(
    user_id: int = Query(..., gt=0),
    role: Role = Query(Role.BUYER),
) -> Caller:
    return Caller(user_id=user_id, role=role.value)


def require_role(caller: Caller, *roles: Role):
    if caller.role not in {r.value for r in roles}:
        raise HTTPException(status_code=403, detail="Insufficient permissions")


def guest_owner(guest_id: str) -> str:
    return f"guest:{guest_id}"


def get_cart_owner(
    user_id: Optional[int] = Query(None, gt=0),
    guest_id: Optional[str] = Query(None, min_length=1, max_length=100),
) -> str:
    if user_id is not None:
        return str(user_id)
    if guest_id:
        return guest_owner(guest_id)
    raise HTTPException(status_code=400, detail="user_id or guest_id is required")
