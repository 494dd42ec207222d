from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from marketplace.core.config import get_settings
from marketplace.services.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

JOB_PATCH_COLUMNS = (
    "title",
    "description",
    "category",
    "budget",
    "skills",
    "deadline",
    "job_type",
    "experience",
    "duration",
    "location",
)
CERTIFICATION_COLUMNS = ("name", "issuer", "issue_date", "expiry_date", "credential_id", "credential_url")

_JOB_SELECT = """
  j.id::text as id,
  j.client_id::text as client_id,
  j.title,
  j.description,
  j.category,
  j.budget,
  j.skills,
  j.deadline,
  j.job_type,
  j.experience,
  j.duration,
  j.location,
  j.status::text as status,
  j.posted_at,
  j.updated_at,
  u.name as client_name,
  u.image as client_image,
  u.created_at as client_created_at
"""

_PROPOSAL_SELECT = """
  p.id::text as id,
  p.job_id::text as job_id,
  p.freelancer_id::text as freelancer_id,
  p.cover_letter,
  p.amount,
  p.delivery_days,
  p.status::text as status,
  p.created_at,
  p.updated_at,
  f.name as freelancer_name,
  f.image as freelancer_image
"""

_CONTRACT_SELECT = """
  id::text as id,
  proposal_id::text as proposal_id,
  job_id::text as job_id,
  client_id::text as client_id,
  freelancer_id::text as freelancer_id,
  amount,
  status::text as status,
  started_at,
  ended_at
"""

_PAYMENT_SELECT = """
  id::text as id,
  user_id::text as user_id,
  proposal_id::text as proposal_id,
  amount,
  type::text as type,
  status::text as status,
  refund_reason,
  idempotency_key,
  created_at,
  updated_at
"""

_CONNECT_TRANSACTION_SELECT = """
  id::text as id,
  user_id::text as user_id,
  package_id,
  amount,
  price,
  status::text as status,
  transaction_id,
  idempotency_key,
  created_at,
  completed_at
"""

_CONNECT_GRANT_SELECT = """
  id::text as id,
  user_id::text as user_id,
  transaction_id::text as transaction_id,
  amount,
  expires_at,
  created_at
"""

_NOTIFICATION_SELECT = """
  id::text as id,
  user_id::text as user_id,
  title,
  message,
  read,
  created_at
"""

_CERTIFICATION_SELECT = """
  id::text as id,
  user_id::text as user_id,
  name,
  issuer,
  issue_date,
  expiry_date,
  credential_id,
  credential_url,
  created_at
"""


class PostgresRepository:
    """asyncpg-backed persistence gateway.

    Every operation runs through :meth:`transaction`, which yields a
    connection-bound :class:`PostgresSession`; writes issued on the session
    commit together or not at all.
    """

    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout: float,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def connect(self, *, attempts: int, delay_seconds: float) -> None:
        attempts = max(1, attempts)
        for attempt in range(1, attempts + 1):
            try:
                pool = await self._get_pool()
                await pool.fetchval("select 1")
                logger.info("connected to database on attempt %s/%s", attempt, attempts)
                return
            except StoreUnavailableError as exc:
                logger.error("failed to connect to database (attempt %s/%s): %s", attempt, attempts, exc)
                if attempt == attempts:
                    logger.error("max database connection attempts reached")
                    raise
                await asyncio.sleep(delay_seconds)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresSession]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    yield PostgresSession(conn)
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError(_unique_violation_message(exc)) from exc
        except pg_exc.CheckViolationError as exc:
            raise ValidationError("value violates a constraint") from exc
        except pg_exc.InvalidTextRepresentationError as exc:
            raise NotFoundError("resource not found") from exc
        except pg_exc.DataError as exc:
            raise ValidationError("value out of range for its column") from exc
        except (OSError, asyncpg.InterfaceError, pg_exc.ConnectionDoesNotExistError) as exc:
            raise StoreUnavailableError() from exc
        except asyncpg.PostgresError as exc:
            raise StoreError("database error") from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise StoreUnavailableError("MP_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise StoreUnavailableError() from exc


def _is_uuid(value: str) -> bool:
    # Path ids are free text; a malformed one cannot match any row.
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _unique_violation_message(exc: pg_exc.UniqueViolationError) -> str:
    constraint = getattr(exc, "constraint_name", None) or ""
    if constraint == "proposals_job_id_freelancer_id_key":
        return "You have already submitted a proposal for this job"
    if constraint == "proposals_one_accepted_per_job_idx":
        return "job already has an accepted proposal"
    return "duplicate record"


class PostgresSession:
    def __init__(self, conn: asyncpg.Connection) -> None:
        self.conn = conn

    # users

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        if not _is_uuid(user_id):
            return None
        row = await self.conn.fetchrow(
            """
            select id::text as id, email, name, image, role::text as role, connects, created_at
            from users
            where id = $1::uuid
            """,
            user_id,
        )
        return dict(row) if row else None

    async def add_user_connects(self, user_id: str, delta: int) -> int | None:
        return await self.conn.fetchval(
            """
            update users
            set connects = connects + $2
            where id = $1::uuid and connects + $2 >= 0
            returning connects
            """,
            user_id,
            delta,
        )

    # jobs

    async def list_jobs(
        self,
        *,
        category: str | None,
        status: str | None,
        search: str | None,
        budget_min: float | None,
        budget_max: float | None,
        skills: list[str],
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if category:
            conditions.append(f"j.category = {bind(category)}")
        if status:
            conditions.append(f"j.status = {bind(status)}::job_status")
        if search:
            token = bind(f"%{search}%")
            conditions.append(f"(j.title ilike {token} or j.description ilike {token})")
        if budget_min is not None:
            conditions.append(f"j.budget >= {bind(budget_min)}")
        if budget_max is not None:
            conditions.append(f"j.budget <= {bind(budget_max)}")
        if skills:
            conditions.append(f"j.skills && {bind(skills)}::text[]")

        where_sql = " and ".join(conditions) if conditions else "true"
        total = await self.conn.fetchval(f"select count(*) from jobs j where {where_sql}", *params)

        limit_token = bind(limit)
        offset_token = bind(offset)
        rows = await self.conn.fetch(
            f"""
            select {_JOB_SELECT}
            from jobs j
            join users u on u.id = j.client_id
            where {where_sql}
            order by j.posted_at desc, j.id asc
            limit {limit_token}
            offset {offset_token}
            """,
            *params,
        )
        return [_job_row_to_dict(row) for row in rows], int(total or 0)

    async def get_job(self, job_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        if not _is_uuid(job_id):
            return None
        lock_sql = "for update of j" if for_update else ""
        row = await self.conn.fetchrow(
            f"""
            select {_JOB_SELECT}
            from jobs j
            join users u on u.id = j.client_id
            where j.id = $1::uuid
            {lock_sql}
            """,
            job_id,
        )
        return _job_row_to_dict(row) if row else None

    async def get_job_detail(self, job_id: str) -> dict[str, Any] | None:
        job = await self.get_job(job_id)
        if job is None:
            return None
        job["proposals"] = await self.list_proposals_for_job(job_id)
        return job

    async def insert_job(self, *, client_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        job_id = await self.conn.fetchval(
            """
            insert into jobs (
              client_id,
              title,
              description,
              category,
              budget,
              skills,
              deadline,
              job_type,
              experience,
              duration,
              location,
              status
            )
            values ($1::uuid, $2, $3, $4, $5, $6::text[], $7, $8, $9, $10, $11, $12::job_status)
            returning id::text
            """,
            client_id,
            fields["title"],
            fields["description"],
            fields["category"],
            fields["budget"],
            fields["skills"],
            fields.get("deadline"),
            fields.get("job_type"),
            fields.get("experience"),
            fields.get("duration"),
            fields.get("location"),
            fields.get("status") or "OPEN",
        )
        return await self._require_job(job_id)

    async def update_job(self, job_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        unknown = set(fields) - set(JOB_PATCH_COLUMNS)
        if unknown:
            raise ValidationError(f"fields are not patchable: {sorted(unknown)}")
        if fields:
            params: list[Any] = [job_id]
            assignments: list[str] = []
            for column, value in fields.items():
                params.append(value)
                cast = "::text[]" if column == "skills" else ""
                assignments.append(f"{column} = ${len(params)}{cast}")
            await self.conn.execute(
                f"""
                update jobs
                set {", ".join(assignments)}, updated_at = now()
                where id = $1::uuid
                """,
                *params,
            )
        return await self._require_job(job_id)

    async def set_job_status(
        self,
        job_id: str,
        status: str,
        *,
        expected: set[str] | None = None,
    ) -> dict[str, Any] | None:
        if expected is None:
            updated = await self.conn.fetchval(
                """
                update jobs
                set status = $2::job_status, updated_at = now()
                where id = $1::uuid
                returning id::text
                """,
                job_id,
                status,
            )
        else:
            updated = await self.conn.fetchval(
                """
                update jobs
                set status = $2::job_status, updated_at = now()
                where id = $1::uuid and status::text = any($3::text[])
                returning id::text
                """,
                job_id,
                status,
                sorted(expected),
            )
        if not updated:
            return None
        return await self.get_job(updated)

    async def delete_job(self, job_id: str) -> bool:
        deleted = await self.conn.fetchval("delete from jobs where id = $1::uuid returning id::text", job_id)
        return deleted is not None

    async def list_jobs_for_freelancer(self, freelancer_id: str) -> list[dict[str, Any]]:
        if not _is_uuid(freelancer_id):
            return []
        rows = await self.conn.fetch(
            f"""
            select {_JOB_SELECT}
            from jobs j
            join users u on u.id = j.client_id
            where exists (
              select 1 from proposals p where p.job_id = j.id and p.freelancer_id = $1::uuid
            )
            order by j.posted_at desc, j.id asc
            """,
            freelancer_id,
        )
        jobs = [_job_row_to_dict(row) for row in rows]
        for job in jobs:
            proposal_rows = await self.conn.fetch(
                """
                select id::text as id, status::text as status, amount, created_at
                from proposals
                where job_id = $1::uuid and freelancer_id = $2::uuid
                order by created_at desc
                """,
                job["id"],
                freelancer_id,
            )
            job["proposals"] = [
                {
                    "id": row["id"],
                    "status": row["status"],
                    "amount": _to_float(row["amount"]),
                    "created_at": row["created_at"],
                }
                for row in proposal_rows
            ]
        return jobs

    async def _require_job(self, job_id: str) -> dict[str, Any]:
        job = await self.get_job(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        return job

    # proposals

    async def list_proposals_for_job(self, job_id: str) -> list[dict[str, Any]]:
        rows = await self.conn.fetch(
            f"""
            select {_PROPOSAL_SELECT}
            from proposals p
            join users f on f.id = p.freelancer_id
            where p.job_id = $1::uuid
            order by p.created_at asc, p.id asc
            """,
            job_id,
        )
        return [_proposal_row_to_dict(row) for row in rows]

    async def get_proposal(self, proposal_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        if not _is_uuid(proposal_id):
            return None
        lock_sql = "for update of p" if for_update else ""
        row = await self.conn.fetchrow(
            f"""
            select {_PROPOSAL_SELECT}
            from proposals p
            join users f on f.id = p.freelancer_id
            where p.id = $1::uuid
            {lock_sql}
            """,
            proposal_id,
        )
        return _proposal_row_to_dict(row) if row else None

    async def find_proposal(self, job_id: str, freelancer_id: str) -> dict[str, Any] | None:
        proposal_id = await self.conn.fetchval(
            """
            select id::text
            from proposals
            where job_id = $1::uuid and freelancer_id = $2::uuid
            """,
            job_id,
            freelancer_id,
        )
        if proposal_id is None:
            return None
        return await self.get_proposal(proposal_id)

    async def insert_proposal(
        self,
        *,
        job_id: str,
        freelancer_id: str,
        cover_letter: str,
        amount: float,
        delivery_days: int | None,
    ) -> dict[str, Any]:
        proposal_id = await self.conn.fetchval(
            """
            insert into proposals (job_id, freelancer_id, cover_letter, amount, delivery_days)
            values ($1::uuid, $2::uuid, $3, $4, $5)
            returning id::text
            """,
            job_id,
            freelancer_id,
            cover_letter,
            amount,
            delivery_days,
        )
        proposal = await self.get_proposal(proposal_id)
        assert proposal is not None
        return proposal

    async def set_proposal_status(self, proposal_id: str, status: str, *, expected: str) -> dict[str, Any] | None:
        updated = await self.conn.fetchval(
            """
            update proposals
            set status = $2::proposal_status, updated_at = now()
            where id = $1::uuid and status = $3::proposal_status
            returning id::text
            """,
            proposal_id,
            status,
            expected,
        )
        if not updated:
            return None
        return await self.get_proposal(updated)

    # contracts

    async def insert_contract(
        self,
        *,
        proposal_id: str,
        job_id: str,
        client_id: str,
        freelancer_id: str,
        amount: float,
    ) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            insert into contracts (proposal_id, job_id, client_id, freelancer_id, amount)
            values ($1::uuid, $2::uuid, $3::uuid, $4::uuid, $5)
            returning {_CONTRACT_SELECT}
            """,
            proposal_id,
            job_id,
            client_id,
            freelancer_id,
            amount,
        )
        return _contract_row_to_dict(row)

    async def has_active_contract(self, job_id: str) -> bool:
        if not _is_uuid(job_id):
            return False
        found = await self.conn.fetchval(
            """
            select 1
            from contracts c
            join proposals p on p.id = c.proposal_id
            where p.job_id = $1::uuid and c.status = 'ACTIVE'
            limit 1
            """,
            job_id,
        )
        return bool(found)

    async def get_contract(self, contract_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        if not _is_uuid(contract_id):
            return None
        lock_sql = "for update" if for_update else ""
        row = await self.conn.fetchrow(
            f"""
            select {_CONTRACT_SELECT}
            from contracts
            where id = $1::uuid
            {lock_sql}
            """,
            contract_id,
        )
        return _contract_row_to_dict(row) if row else None

    async def list_contracts_for_user(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self.conn.fetch(
            f"""
            select {_CONTRACT_SELECT}
            from contracts
            where client_id = $1::uuid or freelancer_id = $1::uuid
            order by started_at desc, id asc
            """,
            user_id,
        )
        return [_contract_row_to_dict(row) for row in rows]

    async def set_contract_status(self, contract_id: str, status: str, *, expected: str) -> dict[str, Any] | None:
        row = await self.conn.fetchrow(
            f"""
            update contracts
            set
              status = $2::contract_status,
              ended_at = case when $2::contract_status = 'ACTIVE' then null else now() end
            where id = $1::uuid and status = $3::contract_status
            returning {_CONTRACT_SELECT}
            """,
            contract_id,
            status,
            expected,
        )
        return _contract_row_to_dict(row) if row else None

    # payments

    async def list_payments(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self.conn.fetch(
            f"""
            select {_PAYMENT_SELECT}
            from payments
            where user_id = $1::uuid
            order by created_at desc, id asc
            """,
            user_id,
        )
        payments = [_payment_row_to_dict(row) for row in rows]
        for payment in payments:
            proposal = await self.get_proposal(payment["proposal_id"])
            if proposal is not None:
                proposal["job"] = await self.get_job(proposal["job_id"])
            payment["proposal"] = proposal
        return payments

    async def get_payment(self, payment_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        if not _is_uuid(payment_id):
            return None
        lock_sql = "for update of pay" if for_update else ""
        row = await self.conn.fetchrow(
            f"""
            select
              pay.id::text as id,
              pay.user_id::text as user_id,
              pay.proposal_id::text as proposal_id,
              pay.amount,
              pay.type::text as type,
              pay.status::text as status,
              pay.refund_reason,
              pay.idempotency_key,
              pay.created_at,
              pay.updated_at,
              j.client_id::text as job_client_id
            from payments pay
            join proposals p on p.id = pay.proposal_id
            join jobs j on j.id = p.job_id
            where pay.id = $1::uuid
            {lock_sql}
            """,
            payment_id,
        )
        if not row:
            return None
        payment = _payment_row_to_dict(row)
        payment["job_client_id"] = row["job_client_id"]
        return payment

    async def find_payment_by_key(self, user_id: str, idempotency_key: str) -> dict[str, Any] | None:
        row = await self.conn.fetchrow(
            f"""
            select {_PAYMENT_SELECT}
            from payments
            where user_id = $1::uuid and idempotency_key = $2
            """,
            user_id,
            idempotency_key,
        )
        return _payment_row_to_dict(row) if row else None

    async def insert_payment(
        self,
        *,
        user_id: str,
        proposal_id: str,
        amount: float,
        type: str,
        idempotency_key: str | None,
    ) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            insert into payments (user_id, proposal_id, amount, type, idempotency_key)
            values ($1::uuid, $2::uuid, $3, $4::payment_type, $5)
            returning {_PAYMENT_SELECT}
            """,
            user_id,
            proposal_id,
            amount,
            type,
            idempotency_key,
        )
        return _payment_row_to_dict(row)

    async def update_payment(
        self,
        payment_id: str,
        *,
        status: str,
        type: str,
        refund_reason: str | None = None,
    ) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            update payments
            set
              status = $2::payment_status,
              type = $3::payment_type,
              refund_reason = coalesce($4, refund_reason),
              updated_at = now()
            where id = $1::uuid
            returning {_PAYMENT_SELECT}
            """,
            payment_id,
            status,
            type,
            refund_reason,
        )
        if not row:
            raise NotFoundError("Payment not found")
        return _payment_row_to_dict(row)

    # connects

    async def find_connect_transaction_by_key(self, user_id: str, idempotency_key: str) -> dict[str, Any] | None:
        row = await self.conn.fetchrow(
            f"""
            select {_CONNECT_TRANSACTION_SELECT}
            from connect_transactions
            where user_id = $1::uuid and idempotency_key = $2
            """,
            user_id,
            idempotency_key,
        )
        return _connect_transaction_row_to_dict(row) if row else None

    async def insert_connect_transaction(
        self,
        *,
        user_id: str,
        package_id: int,
        amount: int,
        price: float,
        idempotency_key: str | None,
    ) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            insert into connect_transactions (user_id, package_id, amount, price, idempotency_key)
            values ($1::uuid, $2, $3, $4, $5)
            returning {_CONNECT_TRANSACTION_SELECT}
            """,
            user_id,
            package_id,
            amount,
            price,
            idempotency_key,
        )
        return _connect_transaction_row_to_dict(row)

    async def complete_connect_transaction(self, connect_transaction_id: str, transaction_id: str) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            update connect_transactions
            set status = 'COMPLETED', transaction_id = $2, completed_at = now()
            where id = $1::uuid
            returning {_CONNECT_TRANSACTION_SELECT}
            """,
            connect_transaction_id,
            transaction_id,
        )
        if not row:
            raise NotFoundError("connect transaction not found")
        return _connect_transaction_row_to_dict(row)

    async def insert_connect_grant(
        self,
        *,
        user_id: str,
        connect_transaction_id: str,
        amount: int,
        expires_at: datetime,
    ) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            insert into connects (user_id, transaction_id, amount, expires_at)
            values ($1::uuid, $2::uuid, $3, $4)
            returning {_CONNECT_GRANT_SELECT}
            """,
            user_id,
            connect_transaction_id,
            amount,
            expires_at,
        )
        return dict(row)

    async def get_connect_grant_for_transaction(self, connect_transaction_id: str) -> dict[str, Any] | None:
        row = await self.conn.fetchrow(
            f"""
            select {_CONNECT_GRANT_SELECT}
            from connects
            where transaction_id = $1::uuid
            """,
            connect_transaction_id,
        )
        return dict(row) if row else None

    async def list_active_connect_grants(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self.conn.fetch(
            f"""
            select {_CONNECT_GRANT_SELECT}
            from connects
            where user_id = $1::uuid and expires_at > now()
            order by expires_at asc
            """,
            user_id,
        )
        return [dict(row) for row in rows]

    # notifications

    async def insert_notification(self, *, user_id: str, title: str, message: str) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            insert into notifications (user_id, title, message)
            values ($1::uuid, $2, $3)
            returning {_NOTIFICATION_SELECT}
            """,
            user_id,
            title,
            message,
        )
        return dict(row)

    async def list_notifications(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self.conn.fetch(
            f"""
            select {_NOTIFICATION_SELECT}
            from notifications
            where user_id = $1::uuid
            order by created_at desc, id asc
            """,
            user_id,
        )
        return [dict(row) for row in rows]

    async def count_unread_notifications(self, user_id: str) -> int:
        count = await self.conn.fetchval(
            "select count(*) from notifications where user_id = $1::uuid and read = false",
            user_id,
        )
        return int(count or 0)

    async def mark_notification_read(self, notification_id: str, user_id: str) -> dict[str, Any] | None:
        if not _is_uuid(notification_id):
            return None
        row = await self.conn.fetchrow(
            f"""
            update notifications
            set read = true
            where id = $1::uuid and user_id = $2::uuid
            returning {_NOTIFICATION_SELECT}
            """,
            notification_id,
            user_id,
        )
        return dict(row) if row else None

    async def mark_all_notifications_read(self, user_id: str) -> int:
        result = await self.conn.execute(
            "update notifications set read = true where user_id = $1::uuid and read = false",
            user_id,
        )
        return _affected_rows(result)

    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        if not _is_uuid(notification_id):
            return False
        deleted = await self.conn.fetchval(
            "delete from notifications where id = $1::uuid and user_id = $2::uuid returning id::text",
            notification_id,
            user_id,
        )
        return deleted is not None

    async def delete_read_notifications(self, user_id: str) -> int:
        result = await self.conn.execute(
            "delete from notifications where user_id = $1::uuid and read = true",
            user_id,
        )
        return _affected_rows(result)

    # certifications

    async def list_certifications(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self.conn.fetch(
            f"""
            select {_CERTIFICATION_SELECT}
            from certifications
            where user_id = $1::uuid
            order by issue_date desc, id asc
            """,
            user_id,
        )
        return [dict(row) for row in rows]

    async def get_certification(self, certification_id: str, user_id: str) -> dict[str, Any] | None:
        if not _is_uuid(certification_id):
            return None
        row = await self.conn.fetchrow(
            f"""
            select {_CERTIFICATION_SELECT}
            from certifications
            where id = $1::uuid and user_id = $2::uuid
            """,
            certification_id,
            user_id,
        )
        return dict(row) if row else None

    async def insert_certification(self, *, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        row = await self.conn.fetchrow(
            f"""
            insert into certifications (
              user_id,
              name,
              issuer,
              issue_date,
              expiry_date,
              credential_id,
              credential_url
            )
            values ($1::uuid, $2, $3, $4, $5, $6, $7)
            returning {_CERTIFICATION_SELECT}
            """,
            user_id,
            *(fields.get(column) for column in CERTIFICATION_COLUMNS),
        )
        return dict(row)

    async def update_certification(
        self,
        certification_id: str,
        user_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any] | None:
        if not _is_uuid(certification_id):
            return None
        row = await self.conn.fetchrow(
            f"""
            update certifications
            set
              name = $3,
              issuer = $4,
              issue_date = $5,
              expiry_date = $6,
              credential_id = $7,
              credential_url = $8
            where id = $1::uuid and user_id = $2::uuid
            returning {_CERTIFICATION_SELECT}
            """,
            certification_id,
            user_id,
            *(fields.get(column) for column in CERTIFICATION_COLUMNS),
        )
        return dict(row) if row else None

    async def delete_certification(self, certification_id: str, user_id: str) -> bool:
        if not _is_uuid(certification_id):
            return False
        deleted = await self.conn.fetchval(
            "delete from certifications where id = $1::uuid and user_id = $2::uuid returning id::text",
            certification_id,
            user_id,
        )
        return deleted is not None


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


def _affected_rows(status: str) -> int:
    # asyncpg returns command tags such as "UPDATE 3" or "DELETE 0"
    try:
        return int(status.rsplit(" ", maxsplit=1)[-1])
    except (AttributeError, ValueError):
        return 0


def _job_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": row["id"],
        "client_id": row["client_id"],
        "title": row["title"],
        "description": row["description"],
        "category": row["category"],
        "budget": _to_float(row["budget"]),
        "skills": list(row["skills"] or []),
        "deadline": row["deadline"],
        "job_type": row["job_type"],
        "experience": row["experience"],
        "duration": row["duration"],
        "location": row["location"],
        "status": row["status"],
        "posted_at": row["posted_at"],
        "updated_at": row["updated_at"],
        "client": {
            "id": row["client_id"],
            "name": row["client_name"],
            "image": row["client_image"],
            "created_at": row["client_created_at"],
        },
    }


def _proposal_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": row["id"],
        "job_id": row["job_id"],
        "freelancer_id": row["freelancer_id"],
        "cover_letter": row["cover_letter"],
        "amount": _to_float(row["amount"]),
        "delivery_days": row["delivery_days"],
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "freelancer": {
            "id": row["freelancer_id"],
            "name": row["freelancer_name"],
            "image": row["freelancer_image"],
        },
    }


def _contract_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    contract = dict(row)
    contract["amount"] = _to_float(contract["amount"])
    return contract


def _payment_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "proposal_id": row["proposal_id"],
        "amount": _to_float(row["amount"]),
        "type": row["type"],
        "status": row["status"],
        "refund_reason": row["refund_reason"],
        "idempotency_key": row["idempotency_key"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _connect_transaction_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
    transaction = dict(row)
    transaction["price"] = _to_float(transaction["price"])
    return transaction


@lru_cache
def get_repository():
    settings = get_settings()
    if settings.storage_backend == "memory":
        from marketplace.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout=settings.database_command_timeout_seconds,
    )
