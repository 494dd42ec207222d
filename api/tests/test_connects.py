from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import FREELANCER_ID, auth_headers
from marketplace.core.auth import Principal, Role
from marketplace.services.connects import CONNECT_PACKAGES, ConnectService, find_package
from marketplace.services.errors import ValidationError

FREELANCER = auth_headers(FREELANCER_ID)


def test_packages_are_public(client: TestClient) -> None:
    response = client.get("/api/connect-purchase/packages")

    assert response.status_code == 200
    packages = response.json()
    assert [(p["id"], p["connects"], p["price"]) for p in packages] == [(1, 10, 100), (2, 40, 350), (3, 80, 600)]
    assert packages[1]["name"] == "Professional"


def test_purchase_professional_package(client: TestClient, repository) -> None:
    response = client.post("/api/connect-purchase/purchase", json={"packageId": 2}, headers=FREELANCER)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["replayed"] is False
    assert body["balance"] == 40
    assert body["transaction"]["status"] == "COMPLETED"
    assert body["transaction"]["price"] == 350
    assert body["transaction"]["amount"] == 40
    assert body["transaction"]["transaction_id"].startswith("txn_")
    assert body["connect"]["amount"] == 40
    assert repository.tables["users"][FREELANCER_ID]["connects"] == 40


def test_unknown_package_credits_nothing(client: TestClient, repository) -> None:
    response = client.post("/api/connect-purchase/purchase", json={"package_id": 9}, headers=FREELANCER)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid package selected"}
    assert repository.tables["users"][FREELANCER_ID]["connects"] == 0
    assert repository.tables["connect_transactions"] == {}


def test_purchase_requires_authentication(client: TestClient) -> None:
    response = client.post("/api/connect-purchase/purchase", json={"packageId": 1})
    assert response.status_code == 401


def test_purchase_idempotency_key_replays(client: TestClient, repository) -> None:
    headers = {**FREELANCER, "Idempotency-Key": "buy-1"}
    first = client.post("/api/connect-purchase/purchase", json={"packageId": 1}, headers=headers).json()
    replay = client.post("/api/connect-purchase/purchase", json={"packageId": 1}, headers=headers).json()

    assert replay["replayed"] is True
    assert replay["transaction"]["id"] == first["transaction"]["id"]
    assert replay["connect"]["id"] == first["connect"]["id"]
    assert replay["balance"] == 10
    assert len(repository.tables["connect_transactions"]) == 1

    other = client.post("/api/connect-purchase/purchase", json={"packageId": 3}, headers=headers)
    assert other.status_code == 409


def test_balance_lists_active_grants(client: TestClient) -> None:
    client.post("/api/connect-purchase/purchase", json={"packageId": 1}, headers=FREELANCER)
    client.post("/api/connect-purchase/purchase", json={"packageId": 3}, headers=FREELANCER)

    balance = client.get("/api/connect-purchase/balance", headers=FREELANCER).json()

    assert balance["connects"] == 90
    assert sorted(grant["amount"] for grant in balance["grants"]) == [10, 80]


def test_grant_expiry_uses_validity_days(repository, users) -> None:
    service = ConnectService(repository, validity_days=30)
    principal = Principal(user_id=FREELANCER_ID, role=Role.FREELANCER)
    before = datetime.now(timezone.utc)

    result = asyncio.run(service.purchase(principal, 1))

    expires_at = result["connect"]["expires_at"]
    assert before + timedelta(days=30) <= expires_at <= datetime.now(timezone.utc) + timedelta(days=30)


def test_expired_grants_are_hidden_from_balance(repository, users) -> None:
    service = ConnectService(repository)
    principal = Principal(user_id=FREELANCER_ID, role=Role.FREELANCER)
    result = asyncio.run(service.purchase(principal, 1))
    repository.tables["connects"][result["connect"]["id"]]["expires_at"] = datetime.now(timezone.utc) - timedelta(days=1)

    balance = asyncio.run(service.balance(principal))

    assert balance["grants"] == []
    assert balance["connects"] == 10


def test_find_package_and_catalog() -> None:
    assert find_package(2) is CONNECT_PACKAGES[1]
    assert find_package("2") is None
    with pytest.raises(ValidationError):
        asyncio.run(ConnectService(None).purchase(Principal(user_id="u", role=Role.CLIENT), 0))
