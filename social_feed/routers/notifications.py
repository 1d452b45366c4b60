"""
Notification endpoints (all scoped to the caller):
  GET    /notifications          — paginated, actor/thread resolved
  GET    /notifications/count    — unread badge count
  POST   /notifications/read     — mark one (notification_id) or all (all=true)
  DELETE /notifications/{id}     — delete one
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from social_feed.dependencies import Services, get_services, require_user_id
from social_feed.errors import ValidationError
from social_feed.schemas import MarkReadRequest, MarkReadResponse, NotificationPage, UnreadCount

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=NotificationPage)
async def list_notifications(
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    unread_only: bool = False,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    return await services.notifications.get_notifications(
        user_id, cursor=cursor, limit=limit, unread_only=unread_only
    )


@router.get("/count", response_model=UnreadCount)
async def unread_count(
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    return UnreadCount(count=await services.notifications.get_unread_count(user_id))


@router.post("/read", response_model=MarkReadResponse)
async def mark_read(
    body: MarkReadRequest,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    if body.all:
        result = await services.notifications.mark_all_as_read(user_id)
        return MarkReadResponse(marked=result.count)
    if not body.notification_id:
        raise ValidationError("Provide notification_id or all=true")
    await services.notifications.mark_as_read(body.notification_id, user_id)
    return MarkReadResponse(marked=1)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    await services.notifications.delete_notification(notification_id, user_id)
