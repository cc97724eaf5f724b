import asyncio
import time

import pytest
from starlette.applications import Starlette
from starlette.testclient import TestClient

from auth.errors import OAuthConfigurationError, OAuthFlowError, OAuthStateMismatchError
from auth.google import GOOGLE_AUTHORIZE_URL, GOOGLE_TOKEN_URL, GoogleProvider
from auth.models import CompletedSession, PendingSession
from auth.service import extract_bearer_token, sha256_hex
from tests.oauth_helpers import (
    PUBLIC_URL,
    _add_google_token_responses,
    _build_service,
    _query,
    sha256,
)


def _build_client(**kwargs):
    service, store = _build_service(cookie_secure=False, **kwargs)
    app = Starlette(routes=service.routes())
    return service, store, TestClient(app, base_url=PUBLIC_URL)


def test_sha256_hex() -> None:
    assert sha256_hex("tok123") == sha256("tok123")


@pytest.mark.parametrize(
    "header, expected",
    [(None, None), ("Basic abc", None), ("Bearer ", None), ("bearer tok", "tok")],
)
def test_extract_bearer_token(header, expected) -> None:
    assert extract_bearer_token(header) == expected


@pytest.mark.asyncio
async def test_start_stores_pending_session() -> None:
    service, store = _build_service()

    response = await service.start("/dashboard")

    pending = response.session
    assert isinstance(pending, PendingSession)
    assert pending.origin_uri == f"{PUBLIC_URL}/dashboard"
    assert await store.get(pending.temporary_token) == pending


@pytest.mark.asyncio
async def test_start_rejects_foreign_origin() -> None:
    service, store = _build_service()

    with pytest.raises(OAuthFlowError, match="not served by"):
        await service.start("https://evil.example.com/")

    assert len(store) == 0


@pytest.mark.asyncio
async def test_start_refuses_unconfigured_provider() -> None:
    service, _ = _build_service(provider=GoogleProvider())

    with pytest.raises(OAuthConfigurationError):
        await service.start("/")


@pytest.mark.asyncio
async def test_start_sweeps_expired_sessions() -> None:
    service, store = _build_service()
    await store.add(PendingSession("stale", "/", int(time.time()) - 5))

    await service.start("/")

    assert await store.get("stale") is None


@pytest.mark.asyncio
async def test_finish_round_trip_keeps_origin(httpx_mock) -> None:
    _add_google_token_responses(httpx_mock)
    service, store = _build_service()
    pending = (await service.start(f"{PUBLIC_URL}/dashboard")).session

    response = await service.finish("code-1", pending.state)

    completed = response.session
    assert isinstance(completed, CompletedSession)
    assert completed.origin_uri == f"{PUBLIC_URL}/dashboard"
    assert completed.internal_token == sha256("tok123")
    assert await store.get(pending.temporary_token) is None
    assert await service.authenticate(completed.internal_token) == completed


@pytest.mark.asyncio
async def test_finish_twice_fails(httpx_mock) -> None:
    _add_google_token_responses(httpx_mock)
    service, _ = _build_service()
    pending = (await service.start("/")).session
    await service.finish("code-1", pending.state)

    with pytest.raises(OAuthStateMismatchError, match="already used"):
        await service.finish("code-1", pending.state)


@pytest.mark.asyncio
async def test_failed_finish_registers_nothing(httpx_mock) -> None:
    httpx_mock.add_response(url=GOOGLE_TOKEN_URL, method="POST", status_code=500, text="boom")
    service, store = _build_service()
    pending = (await service.start("/")).session

    with pytest.raises(OAuthFlowError):
        await service.finish("code-1", pending.state)

    assert len(store) == 0


@pytest.mark.asyncio
async def test_authenticate_drops_expired_session() -> None:
    service, store = _build_service()
    expired = CompletedSession("internal", "access", "u1", f"{PUBLIC_URL}/", int(time.time()) - 1)
    await store.add(expired)

    assert await service.authenticate("internal") is None
    assert await store.get("internal") is None


@pytest.mark.asyncio
async def test_authenticate_ignores_pending_tokens() -> None:
    service, store = _build_service()
    pending = (await service.start("/")).session

    assert await service.authenticate(pending.temporary_token) is None
    assert await service.authenticate(None) is None


@pytest.mark.asyncio
async def test_logout_removes_completed_session() -> None:
    service, store = _build_service()
    await store.add(CompletedSession("internal", "a", "u1", "/", int(time.time()) + 60))

    await service.logout("internal")

    assert await store.get("internal") is None


def test_login_route_redirects_to_provider() -> None:
    _, store, client = _build_client()

    response = client.get("/oauth/login", params={"origin": "/dashboard"}, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith(GOOGLE_AUTHORIZE_URL)
    assert response.headers["cache-control"] == "no-store"
    assert len(store) == 1


def test_login_route_rejects_foreign_origin() -> None:
    _, store, client = _build_client()

    response = client.get(
        "/oauth/login",
        params={"origin": "https://evil.example.com/"},
        follow_redirects=False,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"
    assert len(store) == 0


def test_login_route_unconfigured_provider() -> None:
    _, _, client = _build_client(provider=GoogleProvider())

    response = client.get("/oauth/login", follow_redirects=False)

    assert response.status_code == 503
    assert response.json()["error"] == "temporarily_unavailable"


def test_callback_route_sets_cookie_and_redirects(httpx_mock) -> None:
    _add_google_token_responses(httpx_mock, access_token="tok123", user_id="u42")
    _, _, client = _build_client()
    login = client.get("/oauth/login", params={"origin": "/dashboard"}, follow_redirects=False)
    state = _query(login.headers["location"])["state"][0]

    response = client.get(
        "/oauth/callback",
        params={"code": "code-1", "state": state},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == f"{PUBLIC_URL}/dashboard"
    assert "httponly" in response.headers["set-cookie"].lower()
    assert client.cookies.get("oauthgate_session") == sha256("tok123")

    session = client.get("/oauth/session")
    assert session.status_code == 200
    assert session.json()["user"] == "u42"


def test_callback_route_replayed_state(httpx_mock) -> None:
    _add_google_token_responses(httpx_mock)
    _, _, client = _build_client()
    login = client.get("/oauth/login", follow_redirects=False)
    state = _query(login.headers["location"])["state"][0]
    client.get("/oauth/callback", params={"code": "c", "state": state}, follow_redirects=False)

    replay = client.get(
        "/oauth/callback",
        params={"code": "c", "state": state},
        follow_redirects=False,
    )

    assert replay.status_code == 400
    assert replay.json()["error"] == "invalid_state"


def test_callback_route_forged_state() -> None:
    _, _, client = _build_client()

    response = client.get("/oauth/callback", params={"code": "c", "state": "forged"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_state"


def test_callback_route_missing_code() -> None:
    _, _, client = _build_client()

    response = client.get("/oauth/callback", params={"state": "s"})

    assert response.status_code == 400
    assert response.json()["error_description"] == "Missing code or state."


def test_callback_route_provider_error() -> None:
    _, _, client = _build_client()

    response = client.get(
        "/oauth/callback",
        params={"error": "access_denied", "error_description": "User said no"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "provider_error"
    assert "User said no" in response.json()["error_description"]


def test_callback_route_upstream_failure(httpx_mock) -> None:
    httpx_mock.add_response(url=GOOGLE_TOKEN_URL, method="POST", status_code=503, text="down")
    _, _, client = _build_client()
    login = client.get("/oauth/login", follow_redirects=False)
    state = _query(login.headers["location"])["state"][0]

    response = client.get("/oauth/callback", params={"code": "c", "state": state})

    assert response.status_code == 502
    assert response.json()["error"] == "flow_failed"


def test_session_route_requires_authentication() -> None:
    _, _, client = _build_client()

    response = client.get("/oauth/session")

    assert response.status_code == 401


def test_session_route_accepts_bearer_token() -> None:
    _, store, client = _build_client()
    asyncio.run(store.add(CompletedSession("internal", "a", "u9", "/", int(time.time()) + 60)))

    response = client.get("/oauth/session", headers={"Authorization": "Bearer internal"})

    assert response.status_code == 200
    assert response.json()["user"] == "u9"


def test_logout_route_clears_session(httpx_mock) -> None:
    _add_google_token_responses(httpx_mock)
    _, store, client = _build_client()
    login = client.get("/oauth/login", follow_redirects=False)
    state = _query(login.headers["location"])["state"][0]
    client.get("/oauth/callback", params={"code": "c", "state": state}, follow_redirects=False)

    response = client.post("/oauth/logout")

    assert response.status_code == 204
    assert len(store) == 0
    assert client.get("/oauth/session").status_code == 401
