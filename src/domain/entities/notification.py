"""
Notification Entities

Per-user notification preferences (persisted) and transient delivery receipts.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlmodel import Column, DateTime, Field, JSON, SQLModel

from src.domain.base import utcnow

from .enums import DeliveryStatus, NotificationChannelType, NotificationSeverity

DEFAULT_CHANNELS = [
    {"type": NotificationChannelType.email.value, "enabled": True},
    {"type": NotificationChannelType.in_app.value, "enabled": True},
    {"type": NotificationChannelType.sms.value, "enabled": False},
    {"type": NotificationChannelType.push.value, "enabled": False},
]


class NotificationChannel(BaseModel):
    type: NotificationChannelType
    enabled: bool
    configuration: Optional[Dict[str, Any]] = None


class NotificationPreferences(SQLModel, table=True):
    """
    NotificationPreferences entity - per-user security notification settings.

    Business Rules:
    - Missing row means defaults: email and in-app on, SMS and push off,
      every category enabled
    - Category opt-outs never suppress critical notifications
    """

    __tablename__ = "notification_preferences"

    user_id: str = Field(primary_key=True, max_length=255)
    channels: List[dict] = Field(
        default_factory=lambda: [dict(c) for c in DEFAULT_CHANNELS],
        sa_column=Column(JSON),
    )

    security_alerts: bool = Field(default=True)
    login_notifications: bool = Field(default=True)
    password_changes: bool = Field(default=True)
    device_changes: bool = Field(default=True)
    suspicious_activity: bool = Field(default=True)
    account_locks: bool = Field(default=True)

    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime))

    def enabled_channels(self) -> List[str]:
        return [c["type"] for c in self.channels if c.get("enabled")]


class NotificationTemplate(BaseModel):
    id: str
    type: str
    title: str
    email_subject: Optional[str] = None
    email_body: Optional[str] = None
    in_app_message: Optional[str] = None
    sms_message: Optional[str] = None
    severity: NotificationSeverity
    variables: List[str] = []


class NotificationDelivery(BaseModel):
    id: str
    user_id: str
    notification_type: str
    channel: str
    status: DeliveryStatus = DeliveryStatus.pending
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    metadata: Dict[str, Any] = {}
