from __future__ import annotations

import logging
import math
from typing import Any

from marketplace.core.auth import Principal
from marketplace.services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from marketplace.services.jobs import MAX_MONEY_AMOUNT

logger = logging.getLogger(__name__)


class PaymentService:
    """Escrow deposits and their release or refund.

    Release and refund rewrite the escrow row in place (type and status);
    each runs in one transaction with the row locked.
    """

    def __init__(self, repository) -> None:
        self.repository = repository

    async def list_payments(self, principal: Principal) -> list[dict[str, Any]]:
        async with self.repository.transaction() as session:
            return await session.list_payments(principal.user_id)

    async def create_escrow(
        self,
        principal: Principal,
        proposal_id: str,
        amount: Any,
        *,
        idempotency_key: str | None = None,
    ) -> tuple[dict[str, Any], bool]:
        """Returns the escrow payment and whether it was newly created."""
        amount = _coerce_amount(amount)

        async with self.repository.transaction() as session:
            if idempotency_key:
                existing = await session.find_payment_by_key(principal.user_id, idempotency_key)
                if existing is not None:
                    if existing["proposal_id"] != proposal_id or existing["amount"] != amount:
                        raise ConflictError("Idempotency-Key was already used for a different payment")
                    return existing, False

            proposal = await session.get_proposal(proposal_id)
            if proposal is None:
                raise NotFoundError("Proposal not found")
            job = await session.get_job(proposal["job_id"])
            if job is None or job["client_id"] != principal.user_id:
                raise AuthorizationError("Not authorized")

            payment = await session.insert_payment(
                user_id=principal.user_id,
                proposal_id=proposal_id,
                amount=amount,
                type="ESCROW",
                idempotency_key=idempotency_key,
            )
        logger.info("escrow created id=%s proposal=%s amount=%.2f", payment["id"], proposal_id, amount)
        return payment, True

    async def release_payment(self, principal: Principal, payment_id: str) -> dict[str, Any]:
        return await self._settle(principal, payment_id, status="COMPLETED", type="RELEASE")

    async def refund_payment(self, principal: Principal, payment_id: str, reason: str | None = None) -> dict[str, Any]:
        reason = reason.strip() if reason and reason.strip() else None
        return await self._settle(principal, payment_id, status="REFUNDED", type="REFUND", refund_reason=reason)

    async def _settle(
        self,
        principal: Principal,
        payment_id: str,
        *,
        status: str,
        type: str,
        refund_reason: str | None = None,
    ) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            payment = await session.get_payment(payment_id, for_update=True)
            if payment is None:
                raise NotFoundError("Payment not found")
            if payment["job_client_id"] != principal.user_id:
                raise AuthorizationError("Not authorized")

            if payment["status"] == status and payment["type"] == type:
                return payment
            if payment["type"] != "ESCROW" or payment["status"] != "PENDING":
                raise ConflictError(f"Payment is already {payment['status']}")

            updated = await session.update_payment(
                payment_id,
                status=status,
                type=type,
                refund_reason=refund_reason,
            )
        logger.info("escrow settled id=%s type=%s status=%s", payment_id, type, status)
        return updated


def _coerce_amount(value: Any) -> float:
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
    return round(amount, 2)
