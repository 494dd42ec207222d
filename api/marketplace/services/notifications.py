from __future__ import annotations

import logging
from typing import Any

from marketplace.core.auth import Principal
from marketplace.services.errors import NotFoundError

logger = logging.getLogger(__name__)


class NotificationService:
    """Polled notification records; no push delivery."""

    def __init__(self, repository) -> None:
        self.repository = repository

    async def notify(self, user_id: str, title: str, message: str, *, session=None) -> dict[str, Any]:
        # Callers inside a lifecycle transaction pass their session so the
        # notification commits or rolls back with the triggering writes.
        if session is not None:
            return await session.insert_notification(user_id=user_id, title=title, message=message)
        async with self.repository.transaction() as own_session:
            return await own_session.insert_notification(user_id=user_id, title=title, message=message)

    async def list_notifications(self, principal: Principal) -> list[dict[str, Any]]:
        async with self.repository.transaction() as session:
            return await session.list_notifications(principal.user_id)

    async def unread_count(self, principal: Principal) -> int:
        async with self.repository.transaction() as session:
            return await session.count_unread_notifications(principal.user_id)

    async def mark_read(self, notification_id: str, principal: Principal) -> dict[str, Any]:
        async with self.repository.transaction() as session:
            notification = await session.mark_notification_read(notification_id, principal.user_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    async def mark_all_read(self, principal: Principal) -> int:
        async with self.repository.transaction() as session:
            updated = await session.mark_all_notifications_read(principal.user_id)
        logger.info("marked notifications read user=%s count=%s", principal.user_id, updated)
        return updated

    async def delete(self, notification_id: str, principal: Principal) -> None:
        async with self.repository.transaction() as session:
            deleted = await session.delete_notification(notification_id, principal.user_id)
        if not deleted:
            raise NotFoundError("Notification not found")

    async def delete_all_read(self, principal: Principal) -> int:
        async with self.repository.transaction() as session:
            return await session.delete_read_notifications(principal.user_id)
