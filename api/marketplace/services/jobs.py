from __future__ import annotations

import json
import logging
import math
from typing import Any

from marketplace.core.auth import Principal, Role
from marketplace.services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from marketplace.services.notifications import NotificationService

logger = logging.getLogger(__name__)

JOB_STATUSES = ("OPEN", "IN_PROGRESS", "CANCELLED", "COMPLETED")
REQUIRED_JOB_FIELDS = ("title", "description", "category", "budget", "skills")
JOB_STATUS_TRANSITIONS = {
    "OPEN": {"IN_PROGRESS", "CANCELLED"},
    "IN_PROGRESS": {"OPEN", "COMPLETED", "CANCELLED"},
    "CANCELLED": {"OPEN"},
    "COMPLETED": set(),
}
# Statuses a job cannot enter while one of its contracts is ACTIVE.
CLOSED_JOB_STATUSES = {"CANCELLED", "COMPLETED"}
# numeric(12,2)
MAX_MONEY_AMOUNT = 9_999_999_999.99


class JobService:
    """Job postings, their status and the proposals submitted against them.

    Multi-step transitions (accept, reject, close) run inside one repository
    transaction and re-check their preconditions under row locks, so a
    concurrent accept of a second proposal fails with ConflictError instead
    of leaving two accepted proposals on one job.
    """

    def __init__(
        self,
        repository,
        notifications: NotificationService,
        *,
        proposal_connect_cost: int = 0,
    ) -> None:
        self.repository = repository
        self.notifications = notifications
        self.proposal_connect_cost = max(0, proposal_connect_cost)

    async def list_jobs(
        self,
        *,
        category: str | None = None,
        status: str | None = None,
        search: str | None = None,
        budget_min: float | None = None,
        budget_max: float | None = None,
        skills: list[str] | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        page = _coerce_positive_int(page, "page")
        limit = _coerce_positive_int(limit, "limit")
        if category == "all":
            category = None
        if status is not None and status not in JOB_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(JOB_STATUSES)}")
        if budget_min is not None or budget_max is not None:
            budget_min = budget_min if budget_min is not None else 0.0

        async with self.repository.transaction() as session:
            jobs, total = await session.list_jobs(
                category=category,
                status=status,
                search=search.strip() if search and search.strip() else None,
                budget_min=budget_min,
                budget_max=budget_max,
                skills=[skill for skill in (skills or []) if skill],
                limit=limit,
                offset=(page - 1) * limit,
            )
        return {
            "jobs": jobs,
            "pagination": {
                "total": total,
                "pages": math.ceil(total / limit),
                "current": page,
                "limit": limit,
            },
        }

    async def get_job(self, job_id: str) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            job = await session.get_job_detail(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        return job

    async def create_job(self, principal: Principal, fields: dict[str, Any]) -> dict[str, Any]:
        principal.require_role(Role.CLIENT, Role.ADMIN, detail="Only clients can post jobs")
        missing = [name for name in REQUIRED_JOB_FIELDS if _is_blank(fields.get(name))]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        status = fields.get("status") or "OPEN"
        if status not in JOB_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(JOB_STATUSES)}")

        values = dict(fields)
        values["budget"] = coerce_budget(fields["budget"])
        values["skills"] = coerce_skills(fields["skills"])
        values["status"] = status

        async with self.repository.transaction() as session:
            job = await session.insert_job(client_id=principal.user_id, fields=values)
        logger.info("job created id=%s client=%s", job["id"], principal.user_id)
        return job

    async def update_job(self, job_id: str, principal: Principal, patch: dict[str, Any]) -> dict[str, Any]:
        values = dict(patch)
        for name in ("title", "description", "category", "budget", "skills"):
            if name in values and _is_blank(values[name]):
                raise ValidationError(f"{name} cannot be empty")
        if "budget" in values:
            values["budget"] = coerce_budget(values["budget"])
        if "skills" in values:
            values["skills"] = coerce_skills(values["skills"])

        async with self.repository.transaction() as session:
            job = await session.get_job(job_id, for_update=True)
            self._require_owner(job, principal)
            return await session.update_job(job_id, values)

    async def delete_job(self, job_id: str, principal: Principal) -> None:
        async with self.repository.transaction() as session:
            job = await session.get_job(job_id, for_update=True)
            self._require_owner(job, principal)
            await session.delete_job(job_id)
        logger.info("job deleted id=%s", job_id)

    async def submit_proposal(self, job_id: str, principal: Principal, fields: dict[str, Any]) -> dict[str, Any]:
        cover_letter = fields.get("cover_letter")
        if _is_blank(cover_letter):
            raise ValidationError("cover_letter is required")
        amount = _coerce_positive_amount(fields.get("amount"))

        async with self.repository.transaction() as session:
            job = await session.get_job(job_id, for_update=True)
            if job is None:
                raise NotFoundError("Job not found")
            if job["status"] != "OPEN":
                raise ConflictError("Job is not open for proposals")
            principal.require_role(Role.FREELANCER, detail="Only freelancers can submit proposals")

            if await session.find_proposal(job_id, principal.user_id) is not None:
                raise ConflictError("You have already submitted a proposal for this job")

            if self.proposal_connect_cost:
                balance = await session.add_user_connects(principal.user_id, -self.proposal_connect_cost)
                if balance is None:
                    raise ConflictError(
                        f"Submitting a proposal requires {self.proposal_connect_cost} connects",
                    )

            proposal = await session.insert_proposal(
                job_id=job_id,
                freelancer_id=principal.user_id,
                cover_letter=cover_letter.strip(),
                amount=amount,
                delivery_days=fields.get("delivery_days"),
            )
        logger.info("proposal submitted id=%s job=%s freelancer=%s", proposal["id"], job_id, principal.user_id)
        return proposal

    async def accept_proposal(self, job_id: str, proposal_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            job, proposal = await self._load_owned_proposal(session, job_id, proposal_id, principal)
            if job["status"] != "OPEN":
                raise ConflictError("Job is no longer accepting proposals")

            accepted = await session.set_proposal_status(proposal_id, "ACCEPTED", expected="PENDING")
            if accepted is None:
                raise ConflictError(f"Proposal is already {proposal['status']}")
            if await session.set_job_status(job_id, "IN_PROGRESS", expected={"OPEN"}) is None:
                raise ConflictError("Job is no longer accepting proposals")

            await session.insert_contract(
                proposal_id=proposal_id,
                job_id=job_id,
                client_id=job["client_id"],
                freelancer_id=proposal["freelancer_id"],
                amount=proposal["amount"],
            )
            await self.notifications.notify(
                proposal["freelancer_id"],
                "Proposal Accepted",
                f'Your proposal for "{job["title"]}" has been accepted by {job["client"]["name"]}',
                session=session,
            )
        logger.info("proposal accepted id=%s job=%s", proposal_id, job_id)
        return accepted

    async def reject_proposal(self, job_id: str, proposal_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            job, proposal = await self._load_owned_proposal(session, job_id, proposal_id, principal)
            rejected = await session.set_proposal_status(proposal_id, "REJECTED", expected="PENDING")
            if rejected is None:
                raise ConflictError(f"Proposal is already {proposal['status']}")
            await self.notifications.notify(
                proposal["freelancer_id"],
                "Proposal Rejected",
                f'Your proposal for "{job["title"]}" has been rejected by {job["client"]["name"]}',
                session=session,
            )
        logger.info("proposal rejected id=%s job=%s", proposal_id, job_id)
        return rejected

    async def update_status(self, job_id: str, principal: Principal, status: str) -> dict[str, Any]:
        if status not in JOB_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(JOB_STATUSES)}")

        async with self.repository.transaction() as session:
            job = await session.get_job(job_id, for_update=True)
            self._require_owner(job, principal)
            from_status = job["status"]
            if status == from_status:
                return job
            if status not in JOB_STATUS_TRANSITIONS.get(from_status, set()):
                raise ConflictError(f"invalid job status transition: {from_status} -> {status}")
            if status in CLOSED_JOB_STATUSES and await session.has_active_contract(job_id):
                raise ConflictError("Cannot close job with active contract")
            updated = await session.set_job_status(job_id, status, expected={from_status})
            if updated is None:
                raise ConflictError("job status changed concurrently")
        logger.info("job status changed id=%s from=%s to=%s", job_id, from_status, status)
        return updated

    async def has_active_contract(self, job_id: str) -> bool:
        async with self.repository.transaction() as session:
            return await session.has_active_contract(job_id)

    async def close_job(self, job_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            job = await session.get_job(job_id, for_update=True)
            self._require_owner(job, principal)
            if job["status"] == "CANCELLED":
                return job
            if job["status"] == "COMPLETED":
                raise ConflictError("Cannot close a completed job")
            if await session.has_active_contract(job_id):
                raise ConflictError("Cannot close job with active contract")
            closed = await session.set_job_status(job_id, "CANCELLED", expected={"OPEN", "IN_PROGRESS"})
            if closed is None:
                raise ConflictError("job status changed concurrently")
        logger.info("job closed id=%s", job_id)
        return closed

    async def list_by_freelancer(self, freelancer_id: str, principal: Principal) -> list[dict[str, Any]]:
        if principal.user_id != freelancer_id and not principal.is_admin:
            raise AuthorizationError("Not authorized")
        async with self.repository.transaction() as session:
            return await session.list_jobs_for_freelancer(freelancer_id)

    async def _load_owned_proposal(
        self,
        session,
        job_id: str,
        proposal_id: str,
        principal: Principal,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        job = await session.get_job(job_id, for_update=True)
        self._require_owner(job, principal)
        proposal = await session.get_proposal(proposal_id, for_update=True)
        if proposal is None:
            raise NotFoundError("Proposal not found")
        if proposal["job_id"] != job_id:
            raise ValidationError("Proposal does not belong to this job")
        return job, proposal

    @staticmethod
    def _require_owner(job: dict[str, Any] | None, principal: Principal) -> None:
        if job is None:
            raise NotFoundError("Job not found")
        if job["client_id"] != principal.user_id:
            raise AuthorizationError("Not authorized")


def coerce_budget(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError("budget must be a number")
    try:
        budget = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("budget must be a number") from exc
    if not math.isfinite(budget) or budget < 0:
        raise ValidationError("budget must be a non-negative number")
    if budget > MAX_MONEY_AMOUNT:
        raise ValidationError(f"budget must not exceed {MAX_MONEY_AMOUNT:.2f}")
    return budget


def coerce_skills(value: Any) -> list[str]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValidationError("skills must be an array or a JSON-encoded array") from exc
    if not isinstance(value, list):
        raise ValidationError("skills must be an array or a JSON-encoded array")
    skills: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationError("skills must contain only strings")
        stripped = item.strip()
        if stripped and stripped not in skills:
            skills.append(stripped)
    return skills


def _coerce_positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a positive integer") from exc
    if number < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return number


def _coerce_positive_amount(value: Any) -> float:
    if value is None or isinstance(value, bool):
        raise ValidationError("amount must be a positive number")
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("amount must be a positive number") from exc
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("amount must be a positive number")
    if amount > MAX_MONEY_AMOUNT:
        raise ValidationError(f"amount must not exceed {MAX_MONEY_AMOUNT:.2f}")
    return amount


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False
