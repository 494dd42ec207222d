from __future__ import annotations

import logging
from typing import Any

from marketplace.core.auth import Principal
from marketplace.services.errors import AuthorizationError, ConflictError, NotFoundError
from marketplace.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class ContractService:
    def __init__(self, repository, notifications: NotificationService) -> None:
        self.repository = repository
        self.notifications = notifications

    async def list_contracts(self, principal: Principal) -> list[dict[str, Any]]:
        async with self.repository.transaction() as session:
            return await session.list_contracts_for_user(principal.user_id)

    async def get_contract(self, contract_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            contract = await session.get_contract(contract_id)
        if contract is None:
            raise NotFoundError("Contract not found")
        if principal.user_id not in (contract["client_id"], contract["freelancer_id"]) and not principal.is_admin:
            raise AuthorizationError("Not authorized")
        return contract

    async def complete_contract(self, contract_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            contract = await self._load_client_contract(session, contract_id, principal)
            completed = await session.set_contract_status(contract_id, "COMPLETED", expected="ACTIVE")
            if completed is None:
                raise ConflictError(f"Contract is already {contract['status']}")
            job = await session.set_job_status(contract["job_id"], "COMPLETED")
            await self.notifications.notify(
                contract["freelancer_id"],
                "Contract Completed",
                f'The contract for "{job["title"] if job else "your job"}" has been marked as completed',
                session=session,
            )
        logger.info("contract completed id=%s job=%s", contract_id, contract["job_id"])
        return completed

    async def cancel_contract(self, contract_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            contract = await self._load_client_contract(session, contract_id, principal)
            cancelled = await session.set_contract_status(contract_id, "CANCELLED", expected="ACTIVE")
            if cancelled is None:
                raise ConflictError(f"Contract is already {contract['status']}")
            await self.notifications.notify(
                contract["freelancer_id"],
                "Contract Cancelled",
                "A contract you were working on has been cancelled by the client",
                session=session,
            )
        logger.info("contract cancelled id=%s job=%s", contract_id, contract["job_id"])
        return cancelled

    @staticmethod
    async def _load_client_contract(session, contract_id: str, principal: Principal) -> dict[str, Any]:
        contract = await session.get_contract(contract_id, for_update=True)
        if contract is None:
            raise NotFoundError("Contract not found")
        if contract["client_id"] != principal.user_id:
            raise AuthorizationError("Not authorized")
        return contract
