from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar
from uuid import uuid4

import asyncpg  # type: ignore[import-untyped]
import pytest

from marketplace.core.auth import Principal, Role
from marketplace.services.connects import ConnectService
from marketplace.services.errors import ConflictError, ValidationError
from marketplace.services.jobs import JobService
from marketplace.services.notifications import NotificationService
from marketplace.services.payments import PaymentService
from marketplace.services.repository import PostgresRepository, PostgresSession

MIGRATION_PATH = Path(__file__).resolve().parents[2] / "db" / "migrations" / "0001_initial.sql"
TABLES = (
    "certifications",
    "notifications",
    "connects",
    "connect_transactions",
    "payments",
    "contracts",
    "proposals",
    "jobs",
    "users",
)

CLIENT = Principal(user_id=str(uuid4()), role=Role.CLIENT)
FREELANCER = Principal(user_id=str(uuid4()), role=Role.FREELANCER)
OTHER_FREELANCER = Principal(user_id=str(uuid4()), role=Role.FREELANCER)

JOB_FIELDS = {
    "title": "Build site",
    "description": "Storefront",
    "category": "web",
    "budget": 500,
    "skills": ["js"],
}

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("MP_DATABASE_URL")
    if not url:
        pytest.skip("integration tests require MP_DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    asyncio.run(_prepare_database(database_url))


async def _prepare_database(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        if await conn.fetchval("select to_regclass('public.users')") is None:
            await conn.execute(MIGRATION_PATH.read_text())
        await conn.execute(f"truncate {', '.join(TABLES)} cascade")
        await conn.executemany(
            "insert into users (id, name, role) values ($1::uuid, $2, $3::user_role)",
            [
                (CLIENT.user_id, "Cleo Client", "CLIENT"),
                (FREELANCER.user_id, "Fatma Freelancer", "FREELANCER"),
                (OTHER_FREELANCER.user_id, "Hany Freelancer", "FREELANCER"),
            ],
        )
    finally:
        await conn.close()


def _run(database_url: str, scenario: Callable[[PostgresRepository], Awaitable[T]]) -> T:
    async def runner() -> T:
        repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=4, command_timeout=15)
        await repository.connect(attempts=1, delay_seconds=0)
        try:
            return await scenario(repository)
        finally:
            await repository.close()

    return asyncio.run(runner())


async def _job_with_proposals(service: JobService, *freelancers: Principal) -> tuple[dict[str, Any], list[dict]]:
    job = await service.create_job(CLIENT, dict(JOB_FIELDS))
    proposals = [
        await service.submit_proposal(job["id"], freelancer, {"cover_letter": "hello", "amount": 400})
        for freelancer in freelancers
    ]
    return job, proposals


def test_accept_flow_persists_all_effects(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        service = JobService(repository, NotificationService(repository))
        job, [proposal] = await _job_with_proposals(service, FREELANCER)

        accepted = await service.accept_proposal(job["id"], proposal["id"], CLIENT)

        assert accepted["status"] == "ACCEPTED"
        detail = await service.get_job(job["id"])
        assert detail["status"] == "IN_PROGRESS"
        assert detail["client"]["name"] == "Cleo Client"
        assert await service.has_active_contract(job["id"]) is True
        notifications = await NotificationService(repository).list_notifications(FREELANCER)
        assert [n["title"] for n in notifications] == ["Proposal Accepted"]
        with pytest.raises(ConflictError):
            await service.close_job(job["id"], CLIENT)

    _run(database_url, scenario)


def test_duplicate_proposal_is_conflict(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        service = JobService(repository, NotificationService(repository))
        job, _ = await _job_with_proposals(service, FREELANCER)
        with pytest.raises(ConflictError):
            await service.submit_proposal(job["id"], FREELANCER, {"cover_letter": "again", "amount": 1})

    _run(database_url, scenario)


def test_concurrent_accepts_keep_one_winner(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> list[Any]:
        service = JobService(repository, NotificationService(repository))
        job, proposals = await _job_with_proposals(service, FREELANCER, OTHER_FREELANCER)
        return await asyncio.gather(
            *(service.accept_proposal(job["id"], proposal["id"], CLIENT) for proposal in proposals),
            return_exceptions=True,
        )

    results = _run(database_url, scenario)
    assert sum(isinstance(result, ConflictError) for result in results) == 1
    assert sum(isinstance(result, dict) and result["status"] == "ACCEPTED" for result in results) == 1


def test_failed_notification_rolls_back_accept(database_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
    async def failing_insert_notification(self, **kwargs: Any) -> dict[str, Any]:
        raise RuntimeError("notification insert failed")

    async def scenario(repository: PostgresRepository) -> dict[str, Any]:
        service = JobService(repository, NotificationService(repository))
        job, [proposal] = await _job_with_proposals(service, FREELANCER)
        monkeypatch.setattr(PostgresSession, "insert_notification", failing_insert_notification)
        with pytest.raises(RuntimeError):
            await service.accept_proposal(job["id"], proposal["id"], CLIENT)
        monkeypatch.undo()
        return await service.get_job(job["id"])

    detail = _run(database_url, scenario)
    assert detail["status"] == "OPEN"
    assert [p["status"] for p in detail["proposals"]] == ["PENDING"]


def test_escrow_release_and_connect_purchase(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        jobs = JobService(repository, NotificationService(repository))
        job, [proposal] = await _job_with_proposals(jobs, FREELANCER)
        await jobs.accept_proposal(job["id"], proposal["id"], CLIENT)

        payments = PaymentService(repository)
        payment, created = await payments.create_escrow(CLIENT, proposal["id"], 500, idempotency_key="k-1")
        replay, replay_created = await payments.create_escrow(CLIENT, proposal["id"], 500, idempotency_key="k-1")
        assert created is True and replay_created is False
        assert replay["id"] == payment["id"]

        released = await payments.release_payment(CLIENT, payment["id"])
        assert (released["status"], released["type"]) == ("COMPLETED", "RELEASE")
        history = await payments.list_payments(CLIENT)
        assert history[0]["proposal"]["job"]["title"] == "Build site"

        connects = ConnectService(repository)
        purchase = await connects.purchase(FREELANCER, 2)
        assert purchase["balance"] == 40
        assert purchase["transaction"]["price"] == 350
        balance = await connects.balance(FREELANCER)
        assert balance["connects"] == 40
        assert len(balance["grants"]) == 1

    _run(database_url, scenario)


def test_malformed_ids_are_not_found(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        async with repository.transaction() as session:
            assert await session.get_job("not-a-uuid") is None
            assert await session.get_payment("not-a-uuid") is None
            assert await session.delete_notification("not-a-uuid", CLIENT.user_id) is False
            assert await session.has_active_contract("not-a-uuid") is False

    _run(database_url, scenario)


def test_out_of_range_amount_is_a_validation_error(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        with pytest.raises(ValidationError):
            async with repository.transaction() as session:
                await session.insert_job(
                    client_id=CLIENT.user_id,
                    fields={**JOB_FIELDS, "budget": 1e11, "status": "OPEN"},
                )
        async with repository.transaction() as session:
            assert await session.conn.fetchval("select count(*) from jobs") == 0

    _run(database_url, scenario)
