from datetime import timedelta

import jwt
import pytest
from evreserve.config import Settings, get_settings
from evreserve.deps import get_current_actor, get_policy, require_admin
from evreserve.domain.policy import Actor, Role
from evreserve.utils.auth import create_access_token, decode_access_token
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

SECRET = "testsecret-testsecret-testsecret-32b"


@pytest.fixture(autouse=True)
def _set_auth_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_SECRET", SECRET)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _settings() -> Settings:
    return Settings(auth_secret=SECRET)


@pytest.mark.asyncio
async def test_get_current_actor_accepts_valid_token() -> None:
    token = create_access_token(user_id=5, role=Role.OPERATOR, station_id=3, secret=SECRET)
    actor = await get_current_actor(authorization=f"Bearer {token}", settings=_settings())
    assert actor == Actor(user_id=5, role=Role.OPERATOR, station_id=3)


@pytest.mark.asyncio
@pytest.mark.parametrize("header", [None, "Basic abc", "Bearer ", "Bearer not-a-jwt"])
async def test_get_current_actor_rejects_bad_headers(header: str | None) -> None:
    with pytest.raises(HTTPException) as excinfo:
        await get_current_actor(authorization=header, settings=_settings())
    assert excinfo.value.status_code == 401
    assert excinfo.value.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.asyncio
async def test_get_current_actor_rejects_expired_token() -> None:
    token = create_access_token(
        user_id=1,
        role=Role.OWNER,
        secret=SECRET,
        expires_delta=timedelta(seconds=-1),
    )
    with pytest.raises(HTTPException) as excinfo:
        await get_current_actor(authorization=f"Bearer {token}", settings=_settings())
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_actor_rejects_wrong_secret() -> None:
    token = create_access_token(user_id=1, role=Role.ADMIN, secret="other-secret-other-secret-other-32b")
    with pytest.raises(HTTPException) as excinfo:
        await get_current_actor(authorization=f"Bearer {token}", settings=_settings())
    assert excinfo.value.status_code == 401


def test_decode_rejects_unknown_role() -> None:
    token = jwt.encode({"sub": "1", "role": "superuser"}, SECRET, algorithm="HS256")
    with pytest.raises(ValueError):
        decode_access_token(token, secret=SECRET, algorithms=["HS256"])


def test_decode_defaults_to_owner_role() -> None:
    token = jwt.encode({"sub": "9"}, SECRET, algorithm="HS256")
    assert decode_access_token(token, secret=SECRET, algorithms=["HS256"]) == Actor(user_id=9, role=Role.OWNER)


@pytest.mark.asyncio
async def test_require_admin() -> None:
    admin = Actor(user_id=1, role=Role.ADMIN)
    assert await require_admin(actor=admin) is admin
    with pytest.raises(HTTPException) as excinfo:
        await require_admin(actor=Actor(user_id=2, role=Role.OPERATOR, station_id=1))
    assert excinfo.value.status_code == 403


def test_get_policy_uses_settings() -> None:
    policy = get_policy(Settings(max_advance_days=3, min_cancellation_hours=2, min_modification_hours=4))
    assert policy.max_advance_days == 3
    assert policy.min_cancellation_hours == 2
    assert policy.min_modification_hours == 4


def test_protected_route_over_http() -> None:
    app = FastAPI()

    @app.get("/protected")
    async def protected(actor: Actor = Depends(get_current_actor)) -> dict[str, str]:
        return {"role": actor.role.value}

    client = TestClient(app)
    token = create_access_token(user_id=1, role=Role.ADMIN, secret=SECRET)

    ok = client.get("/protected", headers={"Authorization": f"Bearer {token}"})
    assert ok.status_code == 200
    assert ok.json() == {"role": "admin"}

    missing = client.get("/protected")
    assert missing.status_code == 401
    assert missing.headers.get("www-authenticate", "").lower().startswith("bearer")
