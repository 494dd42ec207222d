from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("MP_OTEL_ENABLED", "false")
os.environ.setdefault("MP_STORAGE_BACKEND", "memory")

import marketplace.core.security as security  # noqa: E402
from marketplace.core.config import Settings  # noqa: E402
from marketplace.main import create_app  # noqa: E402
from marketplace.services.errors import AuthenticationError  # noqa: E402
from marketplace.services.repository import get_repository  # noqa: E402
from marketplace.services.store import InMemoryRepository  # noqa: E402

CLIENT_ID = "11111111-1111-1111-1111-111111111111"
OTHER_CLIENT_ID = "22222222-2222-2222-2222-222222222222"
FREELANCER_ID = "33333333-3333-3333-3333-333333333333"
OTHER_FREELANCER_ID = "44444444-4444-4444-4444-444444444444"
ADMIN_ID = "55555555-5555-5555-5555-555555555555"


@dataclass(slots=True)
class Users:
    client: dict[str, Any]
    other_client: dict[str, Any]
    freelancer: dict[str, Any]
    other_freelancer: dict[str, Any]
    admin: dict[str, Any]


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer token-{user_id}"}


def build_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "otel_enabled": False,
        "storage_backend": "memory",
        "supabase_url": "http://supabase.test",
        "supabase_anon_key": "anon-key",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def users(repository: InMemoryRepository) -> Users:
    return Users(
        client=repository.add_user(user_id=CLIENT_ID, role="CLIENT", name="Cleo Client", email="cleo@example.com"),
        other_client=repository.add_user(user_id=OTHER_CLIENT_ID, role="CLIENT", name="Omar Client"),
        freelancer=repository.add_user(user_id=FREELANCER_ID, role="FREELANCER", name="Fatma Freelancer"),
        other_freelancer=repository.add_user(user_id=OTHER_FREELANCER_ID, role="FREELANCER", name="Hany Freelancer"),
        admin=repository.add_user(user_id=ADMIN_ID, role="ADMIN", name="Ada Admin"),
    )


@pytest.fixture
def fake_identity_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_fetch_supabase_user(**kwargs: Any) -> dict[str, Any]:
        token = kwargs["token"]
        if not token.startswith("token-"):
            raise AuthenticationError("invalid bearer token")
        return {"id": token.removeprefix("token-"), "app_metadata": {}, "user_metadata": {}}

    monkeypatch.setattr(security, "_fetch_supabase_user", fake_fetch_supabase_user)


def make_client(repository: InMemoryRepository, settings: Settings | None = None, **kwargs: Any) -> TestClient:
    app = create_app(settings or build_settings())
    app.dependency_overrides[get_repository] = lambda: repository
    return TestClient(app, **kwargs)


@pytest.fixture
def client(repository: InMemoryRepository, users: Users, fake_identity_provider: None) -> Iterator[TestClient]:
    test_client = make_client(repository)
    yield test_client
    test_client.app.dependency_overrides.clear()
