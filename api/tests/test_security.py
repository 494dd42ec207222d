from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

import marketplace.core.security as security
from conftest import CLIENT_ID, auth_headers, build_settings, make_client
from marketplace.services.errors import AuthenticationError, UpstreamUnavailableError


def test_missing_bearer_token_is_rejected(client) -> None:
    response = client.get("/api/jobs")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "authentication requires bearer token"}


def test_non_bearer_scheme_is_rejected(client) -> None:
    response = client.get("/api/jobs", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401


def test_token_rejected_by_identity_provider(client) -> None:
    response = client.get("/api/jobs", headers={"Authorization": "Bearer forged"})
    assert response.status_code == 401
    assert response.json()["error"] == "invalid bearer token"


def test_unregistered_user_is_rejected(client) -> None:
    response = client.get("/api/jobs", headers=auth_headers("99999999-9999-9999-9999-999999999999"))
    assert response.status_code == 401
    assert response.json()["error"] == "user is not registered"


def test_user_without_role_is_rejected(client, repository) -> None:
    repository.tables["users"][CLIENT_ID]["role"] = None
    response = client.get("/api/jobs", headers=auth_headers(CLIENT_ID))
    assert response.status_code == 401
    assert response.json()["error"] == "user has no marketplace role"


def test_unconfigured_identity_provider_returns_503(repository, users) -> None:
    client = make_client(repository, build_settings(supabase_url=None, supabase_anon_key=None))
    response = client.get("/api/jobs", headers=auth_headers(CLIENT_ID))
    assert response.status_code == 503
    assert response.json()["error"] == "identity provider is not configured"


def test_role_comes_from_users_row(client, repository, monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_fetch_supabase_user(**kwargs: Any) -> dict[str, Any]:
        return {"id": CLIENT_ID, "app_metadata": {"role": "admin"}}

    monkeypatch.setattr(security, "_fetch_supabase_user", fake_fetch_supabase_user)
    response = client.get(f"/api/jobs/freelancer/{CLIENT_ID}-other", headers={"Authorization": "Bearer any"})
    assert response.status_code == 403


def _mock_transport(status_code: int, payload: dict[str, Any]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/user"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer tok"
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


@pytest.fixture
def patched_async_client(monkeypatch: pytest.MonkeyPatch):
    def install(status_code: int, payload: dict[str, Any]) -> None:
        real_client = httpx.AsyncClient
        transport = _mock_transport(status_code, payload)

        def factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
            kwargs["transport"] = transport
            return real_client(*args, **kwargs)

        monkeypatch.setattr(security.httpx, "AsyncClient", factory)

    return install


async def _fetch() -> dict[str, Any]:
    return await security._fetch_supabase_user(
        supabase_url="http://supabase.test/",
        supabase_anon_key="anon-key",
        token="tok",
        timeout_seconds=1.0,
    )


def test_fetch_supabase_user_returns_identity(patched_async_client) -> None:
    patched_async_client(200, {"id": CLIENT_ID})
    assert asyncio.run(_fetch()) == {"id": CLIENT_ID}


def test_fetch_supabase_user_maps_401_to_authentication_error(patched_async_client) -> None:
    patched_async_client(401, {"msg": "bad jwt"})
    with pytest.raises(AuthenticationError):
        asyncio.run(_fetch())


def test_fetch_supabase_user_maps_5xx_to_upstream_error(patched_async_client) -> None:
    patched_async_client(502, {"msg": "down"})
    with pytest.raises(UpstreamUnavailableError):
        asyncio.run(_fetch())
