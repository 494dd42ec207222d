from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any
from uuid import uuid4

from marketplace.services.errors import ConflictError, NotFoundError, ValidationError
from marketplace.services.repository import CERTIFICATION_COLUMNS, JOB_PATCH_COLUMNS

TABLES = (
    "users",
    "jobs",
    "proposals",
    "contracts",
    "payments",
    "connect_transactions",
    "connects",
    "notifications",
    "certifications",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    """Process-local store with the same session surface as PostgresRepository.

    Transactions are serialized and restore a snapshot of every table when the
    body raises, so multi-step operations stay all-or-nothing.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in TABLES}
        self._lock = asyncio.Lock()

    def add_user(
        self,
        *,
        role: str,
        name: str,
        user_id: str | None = None,
        email: str | None = None,
        image: str | None = None,
        connects: int = 0,
    ) -> dict[str, Any]:
        user = {
            "id": user_id or str(uuid4()),
            "email": email,
            "name": name,
            "image": image,
            "role": role,
            "connects": connects,
            "created_at": _now(),
        }
        self.tables["users"][user["id"]] = user
        return copy.deepcopy(user)

    async def connect(self, *, attempts: int, delay_seconds: float) -> None:
        return None

    async def close(self) -> None:
        return None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemorySession]:
        async with self._lock:
            snapshot = copy.deepcopy(self.tables)
            try:
                yield InMemorySession(self.tables)
            except BaseException:
                self.tables.clear()
                self.tables.update(snapshot)
                raise


class InMemorySession:
    def __init__(self, tables: dict[str, dict[str, dict[str, Any]]]) -> None:
        self.tables = tables

    # users

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        user = self.tables["users"].get(user_id)
        return copy.deepcopy(user) if user else None

    async def add_user_connects(self, user_id: str, delta: int) -> int | None:
        user = self.tables["users"].get(user_id)
        if user is None or user["connects"] + delta < 0:
            return None
        user["connects"] += delta
        return user["connects"]

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
        needle = search.lower() if search else None
        wanted_skills = set(skills)
        matched: list[dict[str, Any]] = []
        for job in reversed(list(self.tables["jobs"].values())):
            if category and job["category"] != category:
                continue
            if status and job["status"] != status:
                continue
            if needle and needle not in job["title"].lower() and needle not in job["description"].lower():
                continue
            if budget_min is not None and job["budget"] < budget_min:
                continue
            if budget_max is not None and job["budget"] > budget_max:
                continue
            if wanted_skills and not wanted_skills.intersection(job["skills"]):
                continue
            matched.append(job)
        page = matched[offset : offset + limit]
        return [self._with_client(job) for job in page], len(matched)

    async def get_job(self, job_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        job = self.tables["jobs"].get(job_id)
        return self._with_client(job) if job else None

    async def get_job_detail(self, job_id: str) -> dict[str, Any] | None:
        job = await self.get_job(job_id)
        if job is None:
            return None
        job["proposals"] = await self.list_proposals_for_job(job_id)
        return job

    async def insert_job(self, *, client_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        now = _now()
        job = {
            "id": str(uuid4()),
            "client_id": client_id,
            "title": fields["title"],
            "description": fields["description"],
            "category": fields["category"],
            "budget": float(fields["budget"]),
            "skills": list(fields["skills"]),
            "deadline": fields.get("deadline"),
            "job_type": fields.get("job_type"),
            "experience": fields.get("experience"),
            "duration": fields.get("duration"),
            "location": fields.get("location"),
            "status": fields.get("status") or "OPEN",
            "posted_at": now,
            "updated_at": now,
        }
        self.tables["jobs"][job["id"]] = job
        return self._with_client(job)

    async def update_job(self, job_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        unknown = set(fields) - set(JOB_PATCH_COLUMNS)
        if unknown:
            raise ValidationError(f"fields are not patchable: {sorted(unknown)}")
        job = self.tables["jobs"].get(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        job.update(copy.deepcopy(fields))
        job["updated_at"] = _now()
        return self._with_client(job)

    async def set_job_status(
        self,
        job_id: str,
        status: str,
        *,
        expected: set[str] | None = None,
    ) -> dict[str, Any] | None:
        job = self.tables["jobs"].get(job_id)
        if job is None or (expected is not None and job["status"] not in expected):
            return None
        job["status"] = status
        job["updated_at"] = _now()
        return self._with_client(job)

    async def delete_job(self, job_id: str) -> bool:
        if self.tables["jobs"].pop(job_id, None) is None:
            return False
        proposal_ids = {p["id"] for p in self.tables["proposals"].values() if p["job_id"] == job_id}
        self._delete_where("proposals", lambda row: row["id"] in proposal_ids)
        self._delete_where("contracts", lambda row: row["job_id"] == job_id)
        self._delete_where("payments", lambda row: row["proposal_id"] in proposal_ids)
        return True

    async def list_jobs_for_freelancer(self, freelancer_id: str) -> list[dict[str, Any]]:
        jobs: list[dict[str, Any]] = []
        for job in reversed(list(self.tables["jobs"].values())):
            proposals = [
                {
                    "id": proposal["id"],
                    "status": proposal["status"],
                    "amount": proposal["amount"],
                    "created_at": proposal["created_at"],
                }
                for proposal in self.tables["proposals"].values()
                if proposal["job_id"] == job["id"] and proposal["freelancer_id"] == freelancer_id
            ]
            if not proposals:
                continue
            item = self._with_client(job)
            item["proposals"] = proposals
            jobs.append(item)
        return jobs

    # proposals

    async def list_proposals_for_job(self, job_id: str) -> list[dict[str, Any]]:
        return [
            self._with_freelancer(proposal)
            for proposal in self.tables["proposals"].values()
            if proposal["job_id"] == job_id
        ]

    async def get_proposal(self, proposal_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        proposal = self.tables["proposals"].get(proposal_id)
        return self._with_freelancer(proposal) if proposal else None

    async def find_proposal(self, job_id: str, freelancer_id: str) -> dict[str, Any] | None:
        for proposal in self.tables["proposals"].values():
            if proposal["job_id"] == job_id and proposal["freelancer_id"] == freelancer_id:
                return self._with_freelancer(proposal)
        return None

    async def insert_proposal(
        self,
        *,
        job_id: str,
        freelancer_id: str,
        cover_letter: str,
        amount: float,
        delivery_days: int | None,
    ) -> dict[str, Any]:
        if await self.find_proposal(job_id, freelancer_id) is not None:
            raise ConflictError("You have already submitted a proposal for this job")
        now = _now()
        proposal = {
            "id": str(uuid4()),
            "job_id": job_id,
            "freelancer_id": freelancer_id,
            "cover_letter": cover_letter,
            "amount": float(amount),
            "delivery_days": delivery_days,
            "status": "PENDING",
            "created_at": now,
            "updated_at": now,
        }
        self.tables["proposals"][proposal["id"]] = proposal
        return self._with_freelancer(proposal)

    async def set_proposal_status(self, proposal_id: str, status: str, *, expected: str) -> dict[str, Any] | None:
        proposal = self.tables["proposals"].get(proposal_id)
        if proposal is None or proposal["status"] != expected:
            return None
        if status == "ACCEPTED" and any(
            other["job_id"] == proposal["job_id"] and other["status"] == "ACCEPTED"
            for other in self.tables["proposals"].values()
        ):
            raise ConflictError("job already has an accepted proposal")
        proposal["status"] = status
        proposal["updated_at"] = _now()
        return self._with_freelancer(proposal)

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
        if any(row["proposal_id"] == proposal_id for row in self.tables["contracts"].values()):
            raise ConflictError("duplicate record")
        contract = {
            "id": str(uuid4()),
            "proposal_id": proposal_id,
            "job_id": job_id,
            "client_id": client_id,
            "freelancer_id": freelancer_id,
            "amount": float(amount),
            "status": "ACTIVE",
            "started_at": _now(),
            "ended_at": None,
        }
        self.tables["contracts"][contract["id"]] = contract
        return copy.deepcopy(contract)

    async def has_active_contract(self, job_id: str) -> bool:
        proposals = self.tables["proposals"]
        return any(
            contract["status"] == "ACTIVE"
            and contract["proposal_id"] in proposals
            and proposals[contract["proposal_id"]]["job_id"] == job_id
            for contract in self.tables["contracts"].values()
        )

    async def get_contract(self, contract_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        contract = self.tables["contracts"].get(contract_id)
        return copy.deepcopy(contract) if contract else None

    async def list_contracts_for_user(self, user_id: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(contract)
            for contract in reversed(list(self.tables["contracts"].values()))
            if user_id in (contract["client_id"], contract["freelancer_id"])
        ]

    async def set_contract_status(self, contract_id: str, status: str, *, expected: str) -> dict[str, Any] | None:
        contract = self.tables["contracts"].get(contract_id)
        if contract is None or contract["status"] != expected:
            return None
        contract["status"] = status
        contract["ended_at"] = None if status == "ACTIVE" else _now()
        return copy.deepcopy(contract)

    # payments

    async def list_payments(self, user_id: str) -> list[dict[str, Any]]:
        payments: list[dict[str, Any]] = []
        for payment in reversed(list(self.tables["payments"].values())):
            if payment["user_id"] != user_id:
                continue
            item = copy.deepcopy(payment)
            proposal = await self.get_proposal(payment["proposal_id"])
            if proposal is not None:
                proposal["job"] = await self.get_job(proposal["job_id"])
            item["proposal"] = proposal
            payments.append(item)
        return payments

    async def get_payment(self, payment_id: str, *, for_update: bool = False) -> dict[str, Any] | None:
        payment = self.tables["payments"].get(payment_id)
        if payment is None:
            return None
        proposal = self.tables["proposals"].get(payment["proposal_id"])
        job = self.tables["jobs"].get(proposal["job_id"]) if proposal else None
        if job is None:
            return None
        item = copy.deepcopy(payment)
        item["job_client_id"] = job["client_id"]
        return item

    async def find_payment_by_key(self, user_id: str, idempotency_key: str) -> dict[str, Any] | None:
        for payment in self.tables["payments"].values():
            if payment["user_id"] == user_id and payment["idempotency_key"] == idempotency_key:
                return copy.deepcopy(payment)
        return None

    async def insert_payment(
        self,
        *,
        user_id: str,
        proposal_id: str,
        amount: float,
        type: str,
        idempotency_key: str | None,
    ) -> dict[str, Any]:
        if idempotency_key and await self.find_payment_by_key(user_id, idempotency_key):
            raise ConflictError("duplicate record")
        now = _now()
        payment = {
            "id": str(uuid4()),
            "user_id": user_id,
            "proposal_id": proposal_id,
            "amount": float(amount),
            "type": type,
            "status": "PENDING",
            "refund_reason": None,
            "idempotency_key": idempotency_key,
            "created_at": now,
            "updated_at": now,
        }
        self.tables["payments"][payment["id"]] = payment
        return copy.deepcopy(payment)

    async def update_payment(
        self,
        payment_id: str,
        *,
        status: str,
        type: str,
        refund_reason: str | None = None,
    ) -> dict[str, Any]:
        payment = self.tables["payments"].get(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        payment["status"] = status
        payment["type"] = type
        if refund_reason is not None:
            payment["refund_reason"] = refund_reason
        payment["updated_at"] = _now()
        return copy.deepcopy(payment)

    # connects

    async def find_connect_transaction_by_key(self, user_id: str, idempotency_key: str) -> dict[str, Any] | None:
        for transaction in self.tables["connect_transactions"].values():
            if transaction["user_id"] == user_id and transaction["idempotency_key"] == idempotency_key:
                return copy.deepcopy(transaction)
        return None

    async def insert_connect_transaction(
        self,
        *,
        user_id: str,
        package_id: int,
        amount: int,
        price: float,
        idempotency_key: str | None,
    ) -> dict[str, Any]:
        if idempotency_key and await self.find_connect_transaction_by_key(user_id, idempotency_key):
            raise ConflictError("duplicate record")
        transaction = {
            "id": str(uuid4()),
            "user_id": user_id,
            "package_id": package_id,
            "amount": amount,
            "price": float(price),
            "status": "PENDING",
            "transaction_id": None,
            "idempotency_key": idempotency_key,
            "created_at": _now(),
            "completed_at": None,
        }
        self.tables["connect_transactions"][transaction["id"]] = transaction
        return copy.deepcopy(transaction)

    async def complete_connect_transaction(self, connect_transaction_id: str, transaction_id: str) -> dict[str, Any]:
        transaction = self.tables["connect_transactions"].get(connect_transaction_id)
        if transaction is None:
            raise NotFoundError("connect transaction not found")
        transaction["status"] = "COMPLETED"
        transaction["transaction_id"] = transaction_id
        transaction["completed_at"] = _now()
        return copy.deepcopy(transaction)

    async def insert_connect_grant(
        self,
        *,
        user_id: str,
        connect_transaction_id: str,
        amount: int,
        expires_at: datetime,
    ) -> dict[str, Any]:
        grant = {
            "id": str(uuid4()),
            "user_id": user_id,
            "transaction_id": connect_transaction_id,
            "amount": amount,
            "expires_at": expires_at,
            "created_at": _now(),
        }
        self.tables["connects"][grant["id"]] = grant
        return copy.deepcopy(grant)

    async def get_connect_grant_for_transaction(self, connect_transaction_id: str) -> dict[str, Any] | None:
        for grant in self.tables["connects"].values():
            if grant["transaction_id"] == connect_transaction_id:
                return copy.deepcopy(grant)
        return None

    async def list_active_connect_grants(self, user_id: str) -> list[dict[str, Any]]:
        now = _now()
        grants = [
            copy.deepcopy(grant)
            for grant in self.tables["connects"].values()
            if grant["user_id"] == user_id and grant["expires_at"] > now
        ]
        return sorted(grants, key=lambda grant: grant["expires_at"])

    # notifications

    async def insert_notification(self, *, user_id: str, title: str, message: str) -> dict[str, Any]:
        notification = {
            "id": str(uuid4()),
            "user_id": user_id,
            "title": title,
            "message": message,
            "read": False,
            "created_at": _now(),
        }
        self.tables["notifications"][notification["id"]] = notification
        return copy.deepcopy(notification)

    async def list_notifications(self, user_id: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(notification)
            for notification in reversed(list(self.tables["notifications"].values()))
            if notification["user_id"] == user_id
        ]

    async def count_unread_notifications(self, user_id: str) -> int:
        return sum(
            1
            for notification in self.tables["notifications"].values()
            if notification["user_id"] == user_id and not notification["read"]
        )

    async def mark_notification_read(self, notification_id: str, user_id: str) -> dict[str, Any] | None:
        notification = self.tables["notifications"].get(notification_id)
        if notification is None or notification["user_id"] != user_id:
            return None
        notification["read"] = True
        return copy.deepcopy(notification)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        updated = 0
        for notification in self.tables["notifications"].values():
            if notification["user_id"] == user_id and not notification["read"]:
                notification["read"] = True
                updated += 1
        return updated

    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        notification = self.tables["notifications"].get(notification_id)
        if notification is None or notification["user_id"] != user_id:
            return False
        del self.tables["notifications"][notification_id]
        return True

    async def delete_read_notifications(self, user_id: str) -> int:
        return self._delete_where("notifications", lambda row: row["user_id"] == user_id and row["read"])

    # certifications

    async def list_certifications(self, user_id: str) -> list[dict[str, Any]]:
        rows = [copy.deepcopy(row) for row in self.tables["certifications"].values() if row["user_id"] == user_id]
        return sorted(rows, key=lambda row: row["issue_date"] or date.min, reverse=True)

    async def get_certification(self, certification_id: str, user_id: str) -> dict[str, Any] | None:
        row = self.tables["certifications"].get(certification_id)
        if row is None or row["user_id"] != user_id:
            return None
        return copy.deepcopy(row)

    async def insert_certification(self, *, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        row = {"id": str(uuid4()), "user_id": user_id, "created_at": _now()}
        row.update({column: fields.get(column) for column in CERTIFICATION_COLUMNS})
        self.tables["certifications"][row["id"]] = row
        return copy.deepcopy(row)

    async def update_certification(
        self,
        certification_id: str,
        user_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any] | None:
        row = self.tables["certifications"].get(certification_id)
        if row is None or row["user_id"] != user_id:
            return None
        row.update({column: fields.get(column) for column in CERTIFICATION_COLUMNS})
        return copy.deepcopy(row)

    async def delete_certification(self, certification_id: str, user_id: str) -> bool:
        row = self.tables["certifications"].get(certification_id)
        if row is None or row["user_id"] != user_id:
            return False
        del self.tables["certifications"][certification_id]
        return True

    def _with_client(self, job: dict[str, Any]) -> dict[str, Any]:
        item = copy.deepcopy(job)
        client = self.tables["users"].get(job["client_id"], {})
        item["client"] = {
            "id": job["client_id"],
            "name": client.get("name"),
            "image": client.get("image"),
            "created_at": client.get("created_at"),
        }
        return item

    def _with_freelancer(self, proposal: dict[str, Any]) -> dict[str, Any]:
        item = copy.deepcopy(proposal)
        freelancer = self.tables["users"].get(proposal["freelancer_id"], {})
        item["freelancer"] = {
            "id": proposal["freelancer_id"],
            "name": freelancer.get("name"),
            "image": freelancer.get("image"),
        }
        return item

    def _delete_where(self, table: str, predicate) -> int:
        doomed = [key for key, row in self.tables[table].items() if predicate(row)]
        for key in doomed:
            del self.tables[table][key]
        return len(doomed)
