"""
Notification API Routes

Per-user security notification preferences and delivery history.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from src.api.error import to_http_error
from src.api.utils.admin_auth import verify_admin_api_key
from src.app.errors import SecurityServiceError
from src.app.services.dtos import NotificationPreferencesUpdate
from src.app.services.security_notification_service import SecurityNotificationService
from src.depends import get_notification_service
from src.domain.entities import NotificationDelivery, NotificationPreferences

router = APIRouter(
    prefix="/security",
    tags=["Notifications"],
    dependencies=[Depends(verify_admin_api_key)],
)


@router.get(
    "/notification-preferences/{user_id}",
    status_code=status.HTTP_200_OK,
    response_model=NotificationPreferences,
)
async def get_notification_preferences(
    user_id: str,
    notification_service: SecurityNotificationService = Depends(get_notification_service),
):
    """Defaults are returned for users without stored preferences."""
    return await notification_service.get_user_notification_preferences(user_id)


@router.put(
    "/notification-preferences/{user_id}",
    status_code=status.HTTP_200_OK,
    response_model=NotificationPreferences,
)
async def update_notification_preferences(
    user_id: str,
    update: NotificationPreferencesUpdate,
    notification_service: SecurityNotificationService = Depends(get_notification_service),
):
    try:
        return await notification_service.update_notification_preferences(user_id, update)
    except SecurityServiceError as e:
        raise to_http_error(e)


@router.get(
    "/notifications/{user_id}",
    status_code=status.HTTP_200_OK,
    response_model=List[NotificationDelivery],
)
async def get_notification_deliveries(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    notification_service: SecurityNotificationService = Depends(get_notification_service),
):
    return await notification_service.get_notification_deliveries(user_id, limit, offset)


@router.post(
    "/notifications/{user_id}/{notification_id}/read",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def mark_notification_as_read(
    user_id: str,
    notification_id: str,
    notification_service: SecurityNotificationService = Depends(get_notification_service),
):
    await notification_service.mark_notification_as_read(user_id, notification_id)
