"""
Admin API Key Authentication

Validates admin API keys for the security read and lifecycle endpoints.
"""

import hmac

from fastapi import Header, status
from src.api.error import ClientError
from src.app.errors import SecurityServiceError
from config import ApplicationConfig


async def verify_admin_api_key(x_admin_api_key: str = Header(None)):
    """
    Verify admin API key from X-Admin-API-Key header.

    Raises:
        ClientError: 401 if key is missing or invalid
    """
    if not x_admin_api_key:
        raise ClientError(
            SecurityServiceError("Admin API key required", "UNAUTHORIZED"),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    if not hmac.compare_digest(x_admin_api_key, ApplicationConfig.ADMIN_API_KEY):
        raise ClientError(
            SecurityServiceError("Invalid admin API key", "INVALID_API_KEY"),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    return True


async def verify_webhook_secret(x_webhook_secret: str = Header(None)):
    """Checked only when WEBHOOK_SECRET is configured."""
    expected = ApplicationConfig.WEBHOOK_SECRET
    if not expected:
        return True

    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise ClientError(
            SecurityServiceError("Invalid webhook secret", "INVALID_WEBHOOK_SECRET"),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    return True
