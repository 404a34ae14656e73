"""
Built-in security notification templates.

Channel strings use ``{{variable}}`` placeholders filled from the request's
variables at send time.
"""

import re
from typing import Any, Dict, List, Optional

from src.domain.entities import NotificationSeverity, NotificationTemplate

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def build_templates(brand: str = "C9d.ai") -> List[NotificationTemplate]:
    return [
        NotificationTemplate(
            id="login_success",
            type="login_success",
            title="Successful Login",
            email_subject=f"Login to your {brand} account",
            email_body=f"You have successfully logged into your {brand} account from {{{{deviceInfo}}}} at {{{{timestamp}}}}.",
            in_app_message="Login successful from {{deviceInfo}}",
            sms_message=f"{brand}: Login from {{{{deviceInfo}}}} at {{{{timestamp}}}}",
            severity=NotificationSeverity.info,
            variables=["deviceInfo", "timestamp", "ipAddress", "location"],
        ),
        NotificationTemplate(
            id="login_failed",
            type="login_failed",
            title="Failed Login Attempt",
            email_subject=f"Failed login attempt on your {brand} account",
            email_body=(
                f"Someone attempted to log into your {brand} account from {{{{deviceInfo}}}} "
                "at {{timestamp}}. If this was not you, please secure your account immediately."
            ),
            in_app_message="Failed login attempt detected from {{deviceInfo}}",
            sms_message=(
                f"{brand}: Failed login attempt from {{{{deviceInfo}}}}. "
                "Secure your account if this was not you."
            ),
            severity=NotificationSeverity.warning,
            variables=["deviceInfo", "timestamp", "ipAddress", "location"],
        ),
        NotificationTemplate(
            id="password_changed",
            type="password_changed",
            title="Password Changed",
            email_subject=f"Your {brand} password has been changed",
            email_body=(
                f"Your {brand} account password was successfully changed at {{{{timestamp}}}}. "
                "If you did not make this change, please contact support immediately."
            ),
            in_app_message="Your password has been changed successfully",
            sms_message=f"{brand}: Your password was changed at {{{{timestamp}}}}",
            severity=NotificationSeverity.info,
            variables=["timestamp", "ipAddress"],
        ),
        NotificationTemplate(
            id="new_device_login",
            type="new_device_login",
            title="New Device Login",
            email_subject=f"New device login to your {brand} account",
            email_body=(
                f"Your {brand} account was accessed from a new device: {{{{deviceInfo}}}} "
                "at {{timestamp}} from {{location}}. If this was not you, please secure your account."
            ),
            in_app_message="Login from new device: {{deviceInfo}}",
            sms_message=f"{brand}: New device login - {{{{deviceInfo}}}} from {{{{location}}}}",
            severity=NotificationSeverity.warning,
            variables=["deviceInfo", "timestamp", "location", "ipAddress"],
        ),
        NotificationTemplate(
            id="suspicious_activity",
            type="suspicious_activity",
            title="Suspicious Activity Detected",
            email_subject=f"Suspicious activity detected on your {brand} account",
            email_body=(
                f"We detected suspicious activity on your {brand} account. "
                "Risk score: {{riskScore}}/100. Please review your account activity "
                "and secure your account if necessary."
            ),
            in_app_message="Suspicious activity detected. Risk score: {{riskScore}}/100",
            sms_message=f"{brand}: Suspicious activity detected. Check your account immediately.",
            severity=NotificationSeverity.error,
            variables=["riskScore", "patterns", "timestamp"],
        ),
        NotificationTemplate(
            id="account_locked",
            type="account_locked",
            title="Account Temporarily Locked",
            email_subject=f"Your {brand} account has been temporarily locked",
            email_body=(
                f"Your {brand} account has been temporarily locked due to suspicious activity: "
                "{{reason}}. The lock will be automatically removed in {{duration}}. "
                "Contact support if you need immediate assistance."
            ),
            in_app_message="Your account has been temporarily locked for security reasons",
            sms_message=f"{brand}: Account locked due to suspicious activity. Contact support if needed.",
            severity=NotificationSeverity.critical,
            variables=["reason", "duration", "timestamp"],
        ),
        NotificationTemplate(
            id="mfa_enabled",
            type="mfa_enabled",
            title="Multi-Factor Authentication Enabled",
            email_subject=f"Multi-factor authentication enabled on your {brand} account",
            email_body=(
                f"Multi-factor authentication has been successfully enabled on your {brand} "
                "account at {{timestamp}}. Your account is now more secure."
            ),
            in_app_message="Multi-factor authentication has been enabled",
            sms_message=f"{brand}: MFA enabled on your account",
            severity=NotificationSeverity.info,
            variables=["timestamp"],
        ),
        NotificationTemplate(
            id="mfa_disabled",
            type="mfa_disabled",
            title="Multi-Factor Authentication Disabled",
            email_subject=f"Multi-factor authentication disabled on your {brand} account",
            email_body=(
                f"Multi-factor authentication has been disabled on your {brand} account "
                "at {{timestamp}}. Consider re-enabling it for better security."
            ),
            in_app_message="Multi-factor authentication has been disabled",
            sms_message=f"{brand}: MFA disabled on your account. Consider re-enabling for security.",
            severity=NotificationSeverity.warning,
            variables=["timestamp"],
        ),
    ]


def default_template(notification_type: str, brand: str = "C9d.ai") -> NotificationTemplate:
    """Fallback for types without a built-in template."""
    return NotificationTemplate(
        id="default",
        type=notification_type,
        title="Security Notification",
        email_subject=f"Security notification from {brand}",
        email_body="A security event occurred on your account.",
        in_app_message="Security notification",
        sms_message=f"{brand}: Security notification",
        severity=NotificationSeverity.info,
        variables=[],
    )


def interpolate(template: str, variables: Optional[Dict[str, Any]] = None) -> str:
    """Replace ``{{name}}`` with ``str(variables[name])``; unknown or None names are left as-is."""
    if not variables:
        return template

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        value = variables.get(key)
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, template)


def format_device_info(device_info: Optional[Dict[str, Any]]) -> str:
    if not device_info:
        return "Unknown device"
    parts = [device_info.get("type") or "unknown"]
    for key in ("os", "browser"):
        if device_info.get(key):
            parts.append(device_info[key])
    return " - ".join(parts)


def format_location(location: Optional[Dict[str, Any]]) -> str:
    if not location:
        return "Unknown location"
    parts = [location[key] for key in ("city", "region", "country") if location.get(key)]
    return ", ".join(parts) or "Unknown location"
