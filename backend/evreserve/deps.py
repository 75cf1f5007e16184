from fastapi import Depends, Header, HTTPException, status

from .config import Settings, get_settings
from .database import unit_of_work
from .domain.policy import Actor, Role, TimeWindowPolicy
from .domain.repositories import UnitOfWork
from .utils.auth import decode_access_token

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


async def get_unit_of_work() -> UnitOfWork:
    return unit_of_work


def get_policy(settings: Settings = Depends(get_settings)) -> TimeWindowPolicy:
    return TimeWindowPolicy(
        max_advance_days=settings.max_advance_days,
        min_cancellation_hours=settings.min_cancellation_hours,
        min_modification_hours=settings.min_modification_hours,
    )


async def get_current_actor(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> Actor:
    if authorization is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers=_BEARER_CHALLENGE,
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers=_BEARER_CHALLENGE,
        )
    try:
        return decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers=_BEARER_CHALLENGE,
        ) from exc


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin role required")
    return actor
