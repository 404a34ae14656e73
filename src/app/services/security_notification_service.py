"""
Security Notification Service

Resolves a template and the user's channels for a security notification,
fans it out over the channel transports and records one summary audit event.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, List

from src.app.errors import DatabaseError
from src.app.services.dtos import (
    NotificationMessage,
    NotificationPreferencesUpdate,
    SecurityEvent,
    SecurityNotificationRequest,
)
from src.app.services.notification_templates import (
    build_templates,
    default_template,
    interpolate,
)
from src.app.services.notification_transport import NotificationTransport
from src.app.services.security_audit_service import SecurityAuditService
from src.app.services.unit_of_work import UnitOfWorkFactory
from src.domain.base import generate_prefixed_id, utcnow
from src.domain.entities import (
    DeliveryStatus,
    NotificationChannel,
    NotificationChannelType,
    NotificationDelivery,
    NotificationPreferences,
    NotificationSeverity,
    NotificationTemplate,
    Severity,
)

logger = logging.getLogger(__name__)

# Notification type -> preference toggle consulted for non-explicit sends
CATEGORY_TOGGLES = {
    "login_success": "login_notifications",
    "login_failed": "login_notifications",
    "new_device_login": "login_notifications",
    "password_changed": "password_changes",
    "suspicious_activity": "suspicious_activity",
    "account_locked": "account_locks",
    "mfa_enabled": "security_alerts",
    "mfa_disabled": "security_alerts",
}


class SecurityNotificationService:
    """
    Multi-channel security notifications.

    Business Rules:
    - Explicit request channels are intersected with the user's enabled channels
    - Otherwise the category toggle decides, except that critical notifications
      (request or template severity) always go to every enabled channel
    - A failing channel yields a failed delivery and never aborts the others
    - Only a failure to audit the send is raised to the caller
    """

    def __init__(
        self,
        audit_service: SecurityAuditService,
        uow_factory: UnitOfWorkFactory,
        transports: Dict[str, NotificationTransport],
        brand_name: str = "C9d.ai",
        history_size: int = 500,
    ):
        self.audit_service = audit_service
        self.uow_factory = uow_factory
        self.transports = transports
        self.brand_name = brand_name
        self.templates: Dict[str, NotificationTemplate] = {
            t.type: t for t in build_templates(brand_name)
        }
        self._deliveries: Deque[NotificationDelivery] = deque(maxlen=history_size)

    async def send_security_notification(
        self, request: SecurityNotificationRequest
    ) -> List[NotificationDelivery]:
        preferences = await self.get_user_notification_preferences(request.user_id)
        template = self.get_template(request.type)
        channels = self.determine_channels(request, preferences, template)

        deliveries = list(
            await asyncio.gather(
                *(self._deliver(request, template, channel) for channel in channels)
            )
        )
        self._deliveries.extend(deliveries)

        try:
            await self.audit_service.record_security_event(
                SecurityEvent(
                    user_id=request.user_id,
                    organization_id=request.organization_id,
                    action="security.notification_sent",
                    resource_type="notification",
                    severity=Severity.low,
                    metadata={
                        "notificationType": request.type,
                        "title": request.title,
                        "channels": channels,
                        "notificationSeverity": request.severity.value,
                        "deliveryCount": len(deliveries),
                        "successCount": sum(
                            1 for d in deliveries if d.status == DeliveryStatus.sent
                        ),
                    },
                )
            )
        except Exception as e:
            logger.exception("Error sending security notification")
            raise DatabaseError(
                "Failed to send security notification", "SEND_NOTIFICATION_ERROR"
            ) from e

        return deliveries

    async def _deliver(
        self,
        request: SecurityNotificationRequest,
        template: NotificationTemplate,
        channel: str,
    ) -> NotificationDelivery:
        delivery = NotificationDelivery(
            id=generate_prefixed_id("delivery"),
            user_id=request.user_id,
            notification_type=request.type,
            channel=channel,
            metadata=request.metadata or {},
        )

        try:
            transport = self.transports.get(channel)
            if transport is None:
                raise ValueError(f"Unsupported notification channel: {channel}")

            await transport.send(self.render(request, template, channel))

            delivery.status = DeliveryStatus.sent
            delivery.sent_at = utcnow()
        except Exception as e:
            logger.error(f"Failed to send notification on {channel}: {e}")
            delivery.status = DeliveryStatus.failed
            delivery.failure_reason = str(e) or type(e).__name__

        return delivery

    def render(
        self,
        request: SecurityNotificationRequest,
        template: NotificationTemplate,
        channel: str,
    ) -> NotificationMessage:
        """Interpolate the channel-specific template string for one channel."""
        subject = None

        if channel == NotificationChannelType.email.value:
            subject = interpolate(template.email_subject or template.title, request.variables)
            body = interpolate(template.email_body or request.message, request.variables)
        elif channel == NotificationChannelType.in_app.value:
            body = interpolate(template.in_app_message or request.message, request.variables)
        elif channel == NotificationChannelType.sms.value:
            body = interpolate(template.sms_message or request.message, request.variables)
        else:
            body = request.message

        return NotificationMessage(
            recipient=request.user_id,
            channel=channel,
            title=request.title,
            body=body,
            severity=request.severity,
            subject=subject,
        )

    def get_template(self, notification_type: str) -> NotificationTemplate:
        template = self.templates.get(notification_type)
        if template is None:
            return default_template(notification_type, self.brand_name)
        return template

    def determine_channels(
        self,
        request: SecurityNotificationRequest,
        preferences: NotificationPreferences,
        template: NotificationTemplate,
    ) -> List[str]:
        enabled = preferences.enabled_channels()

        if request.channels:
            return [c for c in request.channels if c in enabled]

        is_critical = (
            request.severity == NotificationSeverity.critical
            or template.severity == NotificationSeverity.critical
        )
        if is_critical:
            return enabled

        if not self.user_wants_notification_type(request.type, preferences):
            return []

        return enabled

    @staticmethod
    def user_wants_notification_type(
        notification_type: str, preferences: NotificationPreferences
    ) -> bool:
        toggle = CATEGORY_TOGGLES.get(notification_type, "security_alerts")
        return bool(getattr(preferences, toggle))

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def get_user_notification_preferences(self, user_id: str) -> NotificationPreferences:
        """Stored preferences, defaults when none exist, safe defaults on error."""
        try:
            async with self.uow_factory() as uow:
                preferences = await uow.notification_preferences.get_by_user_id(user_id)
        except Exception:
            logger.exception(f"Error getting notification preferences for user {user_id}")
            return NotificationPreferences(
                user_id=user_id,
                channels=[
                    {"type": NotificationChannelType.email.value, "enabled": True},
                    {"type": NotificationChannelType.in_app.value, "enabled": True},
                ],
                login_notifications=False,
            )

        return preferences or NotificationPreferences(user_id=user_id)

    async def update_notification_preferences(
        self, user_id: str, update: NotificationPreferencesUpdate
    ) -> NotificationPreferences:
        changes = update.model_dump(exclude_unset=True, exclude_none=True)

        try:
            async with self.uow_factory() as uow:
                preferences = await uow.notification_preferences.get_by_user_id(user_id)
                if preferences is None:
                    preferences = NotificationPreferences(user_id=user_id)

                previous = preferences.model_dump(mode="json")

                if "channels" in changes:
                    changes["channels"] = [
                        NotificationChannel.model_validate(c).model_dump(
                            mode="json", exclude_none=True
                        )
                        for c in changes["channels"]
                    ]

                for field, value in changes.items():
                    setattr(preferences, field, value)
                preferences.updated_at = utcnow()

                preferences = await uow.notification_preferences.save(preferences)
                await uow.commit()

            await self.audit_service.record_security_event(
                SecurityEvent(
                    user_id=user_id,
                    action="security.notification_preferences_updated",
                    resource_type="user_preferences",
                    resource_id=user_id,
                    severity=Severity.low,
                    metadata={"changes": changes, "previousPreferences": previous},
                )
            )
        except Exception as e:
            logger.exception(f"Error updating notification preferences for user {user_id}")
            raise DatabaseError(
                "Failed to update notification preferences", "UPDATE_PREFERENCES_ERROR"
            ) from e

        logger.info(f"Notification preferences updated for user {user_id}")
        return preferences

    # ------------------------------------------------------------------
    # Delivery history
    # ------------------------------------------------------------------

    async def get_notification_deliveries(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> List[NotificationDelivery]:
        """Recent deliveries for a user, newest first (process-local history)."""
        user_deliveries = [d for d in reversed(self._deliveries) if d.user_id == user_id]
        return user_deliveries[offset : offset + limit]

    async def mark_notification_as_read(self, user_id: str, notification_id: str) -> None:
        logger.info(f"Notification {notification_id} marked as read by user {user_id}")
        await self.audit_service.log_security_event(
            SecurityEvent(
                user_id=user_id,
                action="security.notification_read",
                resource_type="notification",
                resource_id=notification_id,
                severity=Severity.low,
            )
        )

