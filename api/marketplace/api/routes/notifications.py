from fastapi import APIRouter, Depends

from marketplace.api.deps import get_notification_service
from marketplace.core.security import get_current_principal
from marketplace.schemas.common import CountOut, MessageOut
from marketplace.schemas.notifications import NotificationOut
from marketplace.services.notifications import NotificationService

router = APIRouter()


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
    principal=Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
) -> list[NotificationOut]:
    return [NotificationOut(**row) for row in await service.list_notifications(principal)]


@router.get("/unread/count", response_model=CountOut)
async def unread_count(
    principal=Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
) -> CountOut:
    return CountOut(count=await service.unread_count(principal))


@router.put("/read/all", response_model=CountOut)
async def mark_all_read(
    principal=Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
) -> CountOut:
    return CountOut(count=await service.mark_all_read(principal))


@router.delete("/read/all", response_model=CountOut)
async def delete_all_read(
    principal=Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
) -> CountOut:
    return CountOut(count=await service.delete_all_read(principal))


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    principal=Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationOut:
    return NotificationOut(**await service.mark_read(notification_id, principal))


@router.delete("/{notification_id}", response_model=MessageOut)
async def delete_notification(
    notification_id: str,
    principal=Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
) -> MessageOut:
    await service.delete(notification_id, principal)
    return MessageOut(message="Notification deleted successfully")
