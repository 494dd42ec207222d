from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fastapi.testclient import TestClient

from conftest import CLIENT_ID, FREELANCER_ID, OTHER_CLIENT_ID, auth_headers
from marketplace.core.auth import Principal, Role
from marketplace.services.errors import ConflictError, NotFoundError, ValidationError
from marketplace.services.payments import PaymentService

CLIENT = auth_headers(CLIENT_ID)
OTHER_CLIENT = auth_headers(OTHER_CLIENT_ID)
FREELANCER = auth_headers(FREELANCER_ID)


@pytest.fixture
def accepted_proposal(client: TestClient) -> dict[str, Any]:
    job = client.post(
        "/api/jobs",
        json={"title": "Build site", "description": "d", "category": "web", "budget": 500, "skills": ["js"]},
        headers=CLIENT,
    ).json()
    proposal = client.post(
        f"/api/jobs/{job['id']}/proposals",
        json={"cover_letter": "hire me", "amount": 500},
        headers=FREELANCER,
    ).json()
    client.put(f"/api/jobs/{job['id']}/proposals/{proposal['id']}/accept", headers=CLIENT)
    return proposal


def _escrow(client: TestClient, proposal_id: str, amount: float = 500, **headers: str) -> Any:
    return client.post(
        "/api/payments/escrow",
        json={"proposalId": proposal_id, "amount": amount},
        headers={**CLIENT, **headers},
    )


def test_escrow_then_release(client: TestClient, accepted_proposal: dict[str, Any]) -> None:
    created = _escrow(client, accepted_proposal["id"])
    assert created.status_code == 201
    payment = created.json()
    assert payment["type"] == "ESCROW"
    assert payment["status"] == "PENDING"
    assert payment["amount"] == 500

    released = client.post(f"/api/payments/release/{payment['id']}", headers=CLIENT)

    assert released.status_code == 200
    assert released.json()["status"] == "COMPLETED"
    assert released.json()["type"] == "RELEASE"
    assert released.json()["id"] == payment["id"]


def test_refund_persists_reason(client: TestClient, accepted_proposal: dict[str, Any]) -> None:
    payment = _escrow(client, accepted_proposal["id"]).json()

    refunded = client.post(
        f"/api/payments/refund/{payment['id']}",
        json={"reason": "work not delivered"},
        headers=CLIENT,
    )

    body = refunded.json()
    assert body["status"] == "REFUNDED"
    assert body["type"] == "REFUND"
    assert body["refund_reason"] == "work not delivered"


def test_refund_without_body(client: TestClient, accepted_proposal: dict[str, Any]) -> None:
    payment = _escrow(client, accepted_proposal["id"]).json()
    refunded = client.post(f"/api/payments/refund/{payment['id']}", headers=CLIENT)
    assert refunded.status_code == 200
    assert refunded.json()["refund_reason"] is None


def test_release_is_repeatable_but_blocks_refund(client: TestClient, accepted_proposal: dict[str, Any]) -> None:
    payment = _escrow(client, accepted_proposal["id"]).json()
    client.post(f"/api/payments/release/{payment['id']}", headers=CLIENT)

    again = client.post(f"/api/payments/release/{payment['id']}", headers=CLIENT)
    assert again.status_code == 200
    assert again.json()["status"] == "COMPLETED"

    refund = client.post(f"/api/payments/refund/{payment['id']}", headers=CLIENT)
    assert refund.status_code == 409


def test_only_job_client_moves_money(client: TestClient, accepted_proposal: dict[str, Any]) -> None:
    forbidden = client.post(
        "/api/payments/escrow",
        json={"proposal_id": accepted_proposal["id"], "amount": 10},
        headers=OTHER_CLIENT,
    )
    assert forbidden.status_code == 403

    payment = _escrow(client, accepted_proposal["id"]).json()
    assert client.post(f"/api/payments/release/{payment['id']}", headers=FREELANCER).status_code == 403
    assert client.post(f"/api/payments/refund/{payment['id']}", headers=OTHER_CLIENT).status_code == 403


def test_escrow_validation_and_missing_records(client: TestClient, accepted_proposal: dict[str, Any]) -> None:
    assert _escrow(client, accepted_proposal["id"], amount=0).status_code == 400
    assert _escrow(client, accepted_proposal["id"], amount=1e11).status_code == 400
    assert _escrow(client, "missing-proposal").status_code == 404
    assert client.post("/api/payments/release/missing-payment", headers=CLIENT).status_code == 404


def test_escrow_idempotency_key_replays(client: TestClient, accepted_proposal: dict[str, Any], repository) -> None:
    first = _escrow(client, accepted_proposal["id"], **{"Idempotency-Key": "escrow-1"})
    replay = _escrow(client, accepted_proposal["id"], **{"Idempotency-Key": "escrow-1"})

    assert first.status_code == 201
    assert replay.status_code == 200
    assert replay.json()["id"] == first.json()["id"]
    assert len(repository.tables["payments"]) == 1

    mismatch = _escrow(client, accepted_proposal["id"], amount=20, **{"Idempotency-Key": "escrow-1"})
    assert mismatch.status_code == 409


def test_payment_history_embeds_proposal_and_job(client: TestClient, accepted_proposal: dict[str, Any]) -> None:
    older = _escrow(client, accepted_proposal["id"], amount=100).json()
    newer = _escrow(client, accepted_proposal["id"], amount=200).json()

    history = client.get("/api/payments/history", headers=CLIENT).json()

    assert [item["id"] for item in history] == [newer["id"], older["id"]]
    assert history[0]["proposal"]["id"] == accepted_proposal["id"]
    assert history[0]["proposal"]["job"]["title"] == "Build site"
    assert client.get("/api/payments/history", headers=FREELANCER).json() == []


def test_coerce_amount_rejects_non_positive(repository, users) -> None:
    service = PaymentService(repository)
    principal = Principal(user_id=CLIENT_ID, role=Role.CLIENT)
    with pytest.raises(ValidationError):
        asyncio.run(service.create_escrow(principal, "any", -1))
    with pytest.raises(NotFoundError):
        asyncio.run(service.create_escrow(principal, "any", 5))
    with pytest.raises(NotFoundError):
        asyncio.run(service.refund_payment(principal, "any"))


def test_conflict_for_foreign_idempotency_reuse(repository, users) -> None:
    service = PaymentService(repository)
    principal = Principal(user_id=CLIENT_ID, role=Role.CLIENT)

    async def seed() -> None:
        async with repository.transaction() as session:
            await session.insert_payment(
                user_id=CLIENT_ID,
                proposal_id="proposal-a",
                amount=10,
                type="ESCROW",
                idempotency_key="k",
            )

    asyncio.run(seed())
    with pytest.raises(ConflictError):
        asyncio.run(service.create_escrow(principal, "proposal-b", 10, idempotency_key="k"))
