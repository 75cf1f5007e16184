from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import jwt
from jwt import InvalidTokenError

from ..domain.policy import Actor, Role


def create_access_token(
    *,
    user_id: int,
    role: Role,
    secret: str,
    station_id: int | None = None,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload: dict[str, Any] = {"sub": str(user_id), "role": role.value, "iat": now, "exp": exp}
    if station_id is not None:
        payload["station_id"] = station_id
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> Actor:
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    sub = payload.get("sub")
    if sub is None:
        raise ValueError("token missing sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError) as exc:
        raise ValueError("token sub is not an integer") from exc

    try:
        role = Role(payload.get("role", Role.OWNER.value))
    except ValueError as exc:
        raise ValueError("token role is not recognised") from exc

    station_id = payload.get("station_id")
    if station_id is not None and not isinstance(station_id, int):
        raise ValueError("token station_id is not an integer")
    return Actor(user_id=user_id, role=role, station_id=station_id)
