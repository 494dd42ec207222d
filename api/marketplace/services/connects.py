from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from marketplace.core.auth import Principal
from marketplace.services.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConnectPackage:
    id: int
    name: str
    connects: int
    price: float
    description: str
    currency: str = "EGP"
    features: tuple[str, ...] = field(default_factory=tuple)


CONNECT_PACKAGES: tuple[ConnectPackage, ...] = (
    ConnectPackage(
        id=1,
        name="Starter",
        connects=10,
        price=100,
        description="Perfect for getting started",
        features=("10 Connects", "Valid for 6 months", "Basic support", "Standard processing time"),
    ),
    ConnectPackage(
        id=2,
        name="Professional",
        connects=40,
        price=350,
        description="Best for regular job seekers",
        features=(
            "40 Connects",
            "Valid for 6 months",
            "Priority support",
            "Faster processing time",
            "20% savings",
        ),
    ),
    ConnectPackage(
        id=3,
        name="Enterprise",
        connects=80,
        price=600,
        description="For power users",
        features=(
            "80 Connects",
            "Valid for 6 months",
            "24/7 Premium support",
            "Instant processing",
            "30% savings",
        ),
    ),
)


def find_package(package_id: Any) -> ConnectPackage | None:
    return next((package for package in CONNECT_PACKAGES if package.id == package_id), None)


class ConnectService:
    """Connect package catalog and simulated purchases.

    No payment gateway is called: a purchase records a transaction, completes
    it immediately and grants the connects, all in one repository transaction.
    """

    def __init__(self, repository, *, validity_days: int = 180) -> None:
        self.repository = repository
        self.validity_days = max(1, validity_days)

    @staticmethod
    def list_packages() -> list[dict[str, Any]]:
        return [asdict(package) for package in CONNECT_PACKAGES]

    async def purchase(
        self,
        principal: Principal,
        package_id: Any,
        *,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        package = find_package(package_id)
        if package is None:
            raise ValidationError("Invalid package selected")

        async with self.repository.transaction() as session:
            if idempotency_key:
                existing = await session.find_connect_transaction_by_key(principal.user_id, idempotency_key)
                if existing is not None:
                    if existing["package_id"] != package.id:
                        raise ConflictError("Idempotency-Key was already used for a different purchase")
                    user = await session.get_user(principal.user_id)
                    return {
                        "transaction": existing,
                        "connect": await session.get_connect_grant_for_transaction(existing["id"]),
                        "balance": user["connects"] if user else 0,
                        "replayed": True,
                    }

            pending = await session.insert_connect_transaction(
                user_id=principal.user_id,
                package_id=package.id,
                amount=package.connects,
                price=package.price,
                idempotency_key=idempotency_key,
            )
            transaction = await session.complete_connect_transaction(pending["id"], f"txn_{uuid4().hex}")
            grant = await session.insert_connect_grant(
                user_id=principal.user_id,
                connect_transaction_id=transaction["id"],
                amount=package.connects,
                expires_at=datetime.now(timezone.utc) + timedelta(days=self.validity_days),
            )
            balance = await session.add_user_connects(principal.user_id, package.connects)
            if balance is None:
                raise NotFoundError("User not found")

        logger.info(
            "connects purchased user=%s package=%s connects=%s transaction=%s",
            principal.user_id,
            package.id,
            package.connects,
            transaction["transaction_id"],
        )
        return {"transaction": transaction, "connect": grant, "balance": balance, "replayed": False}

    async def balance(self, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            user = await session.get_user(principal.user_id)
            if user is None:
                raise NotFoundError("User not found")
            grants = await session.list_active_connect_grants(principal.user_id)
        return {"connects": user["connects"], "grants": grants}
