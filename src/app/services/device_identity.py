"""
Device identity resolution for session events.

Decides whether a login comes from a device the user has not used before.
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from pydantic import ValidationError

from src.app.services.dtos import DeviceInfo, SecurityEventContext, SecurityEventFilter
from src.app.services.security_audit_service import SecurityAuditService
from src.domain.base import utcnow

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 30


class DeviceIdentityResolver(ABC):
    @abstractmethod
    async def is_new_device(self, user_id: str, context: SecurityEventContext) -> bool:
        pass


class HistoryDeviceIdentityResolver(DeviceIdentityResolver):
    """
    Treats a device as new when the user has no prior events at all.

    This is not fingerprinting: every login after the first one is reported
    as a known device.
    """

    def __init__(self, audit_service: SecurityAuditService):
        self.audit_service = audit_service

    async def is_new_device(self, user_id: str, context: SecurityEventContext) -> bool:
        try:
            history = await self.audit_service.get_security_events(
                SecurityEventFilter(
                    user_id=user_id,
                    start_date=utcnow() - timedelta(days=LOOKBACK_DAYS),
                    limit=1,
                )
            )
        except Exception:
            logger.exception(f"Error checking device history for user {user_id}")
            return False
        return len(history) == 0


def device_fingerprint(
    ip_address: Optional[str],
    user_agent: Optional[str],
    device_info: Optional[DeviceInfo],
) -> str:
    return "|".join(
        [
            ip_address or "",
            user_agent or "",
            device_info.type if device_info else "",
            (device_info.os or "") if device_info else "",
        ]
    )


class FingerprintDeviceIdentityResolver(DeviceIdentityResolver):
    """Compares ip|user agent|device type|os against the last 30 days of logins."""

    def __init__(self, audit_service: SecurityAuditService):
        self.audit_service = audit_service

    async def is_new_device(self, user_id: str, context: SecurityEventContext) -> bool:
        try:
            logins = await self.audit_service.get_security_events(
                SecurityEventFilter(
                    user_id=user_id,
                    start_date=utcnow() - timedelta(days=LOOKBACK_DAYS),
                    limit=100,
                )
            )
        except Exception:
            logger.exception(f"Error checking device fingerprint for user {user_id}")
            return False

        current = device_fingerprint(context.ip_address, context.user_agent, context.device_info)

        for event in logins:
            if event.action != "auth.login":
                continue
            previous = device_fingerprint(
                event.ip_address,
                event.user_agent,
                _stored_device_info(event.event_metadata.get("deviceInfo")),
            )
            if previous == current:
                return False

        return True


def _stored_device_info(raw) -> Optional[DeviceInfo]:
    if not isinstance(raw, dict):
        return None
    try:
        return DeviceInfo.model_validate(raw)
    except ValidationError:
        return None
