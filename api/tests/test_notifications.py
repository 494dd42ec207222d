from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import CLIENT_ID, FREELANCER_ID, auth_headers
from marketplace.services.notifications import NotificationService

FREELANCER = auth_headers(FREELANCER_ID)
CLIENT = auth_headers(CLIENT_ID)


@pytest.fixture
def seeded(repository, users) -> list[dict]:
    service = NotificationService(repository)

    async def seed() -> list[dict]:
        return [
            await service.notify(FREELANCER_ID, "First", "one"),
            await service.notify(FREELANCER_ID, "Second", "two"),
            await service.notify(CLIENT_ID, "Client only", "three"),
        ]

    return asyncio.run(seed())


def test_list_is_scoped_and_newest_first(client: TestClient, seeded) -> None:
    titles = [item["title"] for item in client.get("/api/notifications", headers=FREELANCER).json()]
    assert titles == ["Second", "First"]


def test_mark_read_and_unread_count(client: TestClient, seeded) -> None:
    assert client.get("/api/notifications/unread/count", headers=FREELANCER).json()["count"] == 2

    response = client.put(f"/api/notifications/{seeded[0]['id']}/read", headers=FREELANCER)

    assert response.status_code == 200
    assert response.json()["read"] is True
    assert client.get("/api/notifications/unread/count", headers=FREELANCER).json()["count"] == 1


def test_foreign_notification_is_not_found(client: TestClient, seeded) -> None:
    client_notification = seeded[2]["id"]

    assert client.put(f"/api/notifications/{client_notification}/read", headers=FREELANCER).status_code == 404
    assert client.delete(f"/api/notifications/{client_notification}", headers=FREELANCER).status_code == 404
    assert client.delete("/api/notifications/missing", headers=FREELANCER).status_code == 404


def test_mark_all_read_then_delete_all_read(client: TestClient, seeded, repository) -> None:
    marked = client.put("/api/notifications/read/all", headers=FREELANCER)
    assert marked.json() == {"success": True, "count": 2}

    deleted = client.delete("/api/notifications/read/all", headers=FREELANCER)
    assert deleted.json() == {"success": True, "count": 2}

    remaining = [n["user_id"] for n in repository.tables["notifications"].values()]
    assert remaining == [CLIENT_ID]


def test_delete_single_notification(client: TestClient, seeded) -> None:
    response = client.delete(f"/api/notifications/{seeded[1]['id']}", headers=FREELANCER)

    assert response.json() == {"success": True, "message": "Notification deleted successfully"}
    assert [n["title"] for n in client.get("/api/notifications", headers=FREELANCER).json()] == ["First"]
