"""
Security Monitoring Service

Behavioral correlation over the audit log: every authentication-class event
is logged, checked against the time-windowed pattern catalog, escalated into
alerts or a temporary account lock, and turned into user notifications.
"""

import logging
from collections import Counter
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from src.app.errors import AlertNotFoundError, DatabaseError
from src.app.services.dtos import (
    SecurityAlertCreate,
    SecurityEvent,
    SecurityEventFilter,
    SecurityMetrics,
    SecurityNotificationRequest,
    SuspiciousActivityPattern,
    SuspiciousActivityResult,
    ThreatCount,
)
from src.app.services.notification_templates import format_device_info, format_location
from src.app.services.security_audit_service import SecurityAuditService
from src.app.services.security_notification_service import SecurityNotificationService
from src.app.services.suspicious_activity_patterns import (
    DEFAULT_PATTERNS,
    MAX_PATTERN_WINDOW_MINUTES,
    recommendations_for,
)
from src.app.services.unit_of_work import UnitOfWorkFactory
from src.domain.base import generate_prefixed_id, utcnow
from src.domain.entities import (
    AuditEvent,
    NotificationSeverity,
    PatternType,
    SecurityAlert,
    Severity,
)

logger = logging.getLogger(__name__)

MONITORED_EVENT_TYPES = (
    "login",
    "login_failed",
    "logout",
    "password_change",
    "mfa_enabled",
    "mfa_disabled",
)

# MFA changes have no audit action of their own; they are recorded as
# token_refresh with the incoming event type kept under metadata.mfaEvent.
AUDIT_ACTION_FOR_EVENT = {
    "mfa_enabled": "token_refresh",
    "mfa_disabled": "token_refresh",
}

LOCKING_PATTERNS = {PatternType.brute_force, PatternType.account_takeover}
USER_CHANNELS = ["email", "in_app"]


def alert_severity_for(risk_score: int) -> Severity:
    if risk_score >= 80:
        return Severity.critical
    if risk_score >= 60:
        return Severity.high
    if risk_score >= 30:
        return Severity.medium
    return Severity.low


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class SecurityMonitoringService:
    def __init__(
        self,
        audit_service: SecurityAuditService,
        notification_service: SecurityNotificationService,
        uow_factory: UnitOfWorkFactory,
        patterns: tuple = DEFAULT_PATTERNS,
        metrics_scan_limit: int = 10000,
    ):
        self.audit_service = audit_service
        self.notification_service = notification_service
        self.uow_factory = uow_factory
        self.patterns = patterns
        self.metrics_scan_limit = metrics_scan_limit
        self.fetch_window_minutes = max(
            MAX_PATTERN_WINDOW_MINUTES, max((p.time_window for p in patterns), default=0)
        )

    async def monitor_authentication_event(
        self,
        user_id: str,
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """
        Log, analyze and react to one authentication event.

        Never raises: authentication must proceed even if monitoring fails.
        Steps run in order (audit write happens before pattern detection reads
        the log back) and each step fails independently.
        """
        metadata = dict(metadata or {})

        try:
            audit_action = AUDIT_ACTION_FOR_EVENT.get(event_type, event_type)
            audit_metadata = dict(metadata)
            if audit_action != event_type:
                audit_metadata["mfaEvent"] = event_type

            await self.audit_service.log_authentication_event(
                user_id, audit_action, audit_metadata, ip_address, user_agent
            )
        except Exception:
            logger.exception(f"Error logging authentication event {event_type} for user {user_id}")

        result = await self.detect_suspicious_activity(user_id, event_type, metadata)

        if result.detected:
            await self._handle_suspicious_activity(user_id, result)

        await self._generate_security_notifications(
            user_id, event_type, metadata, result, ip_address
        )

    async def detect_suspicious_activity(
        self,
        user_id: str,
        event_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SuspiciousActivityResult:
        """Evaluate every catalog pattern over its own window. Never raises."""
        try:
            recent_events = await self._get_recent_events(user_id, self.fetch_window_minutes)
            now = utcnow()

            detected: List[SuspiciousActivityPattern] = []
            recommendations: List[str] = []

            for pattern in self.patterns:
                window_start = now - timedelta(minutes=pattern.time_window)
                window_events = [e for e in recent_events if e.created_at >= window_start]

                if self._check_pattern(pattern, window_events):
                    detected.append(pattern)
                    for recommendation in recommendations_for(pattern):
                        if recommendation not in recommendations:
                            recommendations.append(recommendation)

            return SuspiciousActivityResult(
                detected=bool(detected),
                patterns=detected,
                risk_score=min(sum(p.risk_score for p in detected), 100),
                recommendations=recommendations,
            )
        except Exception:
            logger.exception(f"Error detecting suspicious activity for user {user_id}")
            return SuspiciousActivityResult()

    @staticmethod
    def _check_pattern(pattern: SuspiciousActivityPattern, events: List[AuditEvent]) -> bool:
        if pattern.type in (PatternType.multiple_failed_logins, PatternType.brute_force):
            failed = [e for e in events if e.action == "auth.login_failed"]
            return len(failed) >= pattern.threshold

        if pattern.type == PatternType.unusual_access_pattern:
            data_access = [e for e in events if e.action.startswith("data.")]
            return len(data_access) >= pattern.threshold

        if pattern.type == PatternType.permission_escalation:
            denied = [e for e in events if e.action == "authz.permission_denied"]
            return len(denied) >= pattern.threshold

        if pattern.type == PatternType.tenant_violation:
            violations = [e for e in events if e.action == "tenant.isolation_violation"]
            return len(violations) >= pattern.threshold

        if pattern.type == PatternType.account_takeover:
            failed_ips = {
                e.ip_address for e in events if e.action == "auth.login_failed" and e.ip_address
            }
            success_ips = {
                e.ip_address for e in events if e.action == "auth.login" and e.ip_address
            }
            return (
                len(failed_ips) >= 2
                and len(success_ips) >= 1
                and any(ip not in success_ips for ip in failed_ips)
            )

        return False

    async def _get_recent_events(self, user_id: str, minutes: int) -> List[AuditEvent]:
        try:
            return await self.audit_service.get_security_events(
                SecurityEventFilter(
                    user_id=user_id,
                    start_date=utcnow() - timedelta(minutes=minutes),
                    limit=500,
                )
            )
        except Exception:
            logger.exception(f"Error getting recent security events for user {user_id}")
            return []

    async def _handle_suspicious_activity(
        self, user_id: str, result: SuspiciousActivityResult
    ) -> None:
        try:
            alert = await self.create_security_alert(
                SecurityAlertCreate(
                    user_id=user_id,
                    alert_type="suspicious_activity",
                    severity=alert_severity_for(result.risk_score),
                    title="Suspicious Activity Detected",
                    description=(
                        f"Detected {len(result.patterns)} suspicious patterns "
                        f"with risk score {result.risk_score}"
                    ),
                    metadata={
                        "patterns": [p.type.value for p in result.patterns],
                        "riskScore": result.risk_score,
                        "recommendations": result.recommendations,
                    },
                )
            )

            if result.risk_score >= 50:
                await self.audit_service.log_security_event(
                    SecurityEvent(
                        user_id=user_id,
                        action="security.suspicious_activity_detected",
                        resource_type="user_account",
                        resource_id=user_id,
                        severity=Severity.critical if result.risk_score >= 80 else Severity.high,
                        metadata={
                            "alertId": alert.id,
                            "patterns": [p.model_dump(mode="json") for p in result.patterns],
                            "riskScore": result.risk_score,
                        },
                    )
                )

            if result.risk_score >= 80:
                await self.handle_critical_threat(user_id, result)
        except Exception:
            logger.exception(f"Error handling suspicious activity for user {user_id}")

    async def handle_critical_threat(self, user_id: str, result: SuspiciousActivityResult) -> None:
        try:
            pattern_types = [p.type.value for p in result.patterns]
            logger.critical(
                f"CRITICAL SECURITY THREAT DETECTED user={user_id} "
                f"risk_score={result.risk_score} patterns={pattern_types}"
            )

            if any(p.type in LOCKING_PATTERNS for p in result.patterns):
                await self.temporarily_lock_account(user_id, "Critical security threat detected")

            await self.notification_service.send_security_notification(
                SecurityNotificationRequest(
                    user_id=user_id,
                    type="security_alert",
                    title="Critical Security Alert",
                    message=(
                        "Critical security threat detected on your account. "
                        "Please review your account activity immediately."
                    ),
                    severity=NotificationSeverity.critical,
                    channels=USER_CHANNELS,
                    metadata={"riskScore": result.risk_score, "patterns": pattern_types},
                )
            )
        except Exception:
            logger.exception(f"Error handling critical threat for user {user_id}")

    async def temporarily_lock_account(self, user_id: str, reason: str) -> None:
        try:
            await self.audit_service.log_security_event(
                SecurityEvent(
                    user_id=user_id,
                    action="security.account_locked",
                    resource_type="user_account",
                    resource_id=user_id,
                    severity=Severity.critical,
                    metadata={"reason": reason, "lockType": "temporary", "duration": "1 hour"},
                )
            )

            await self.notification_service.send_security_notification(
                SecurityNotificationRequest(
                    user_id=user_id,
                    type="account_locked",
                    title="Account Temporarily Locked",
                    message=(
                        "Your account has been temporarily locked due to suspicious "
                        f"activity: {reason}"
                    ),
                    severity=NotificationSeverity.critical,
                    channels=USER_CHANNELS,
                    variables={
                        "reason": reason,
                        "duration": "1 hour",
                        "timestamp": utcnow().isoformat(),
                    },
                )
            )

            logger.warning(f"Account temporarily locked: {user_id} - {reason}")
            # TODO: disable the user at the identity provider once its admin API is wired in
        except Exception:
            logger.exception(f"Error locking account {user_id}")

    async def _generate_security_notifications(
        self,
        user_id: str,
        event_type: str,
        metadata: Dict[str, Any],
        result: SuspiciousActivityResult,
        ip_address: Optional[str],
    ) -> None:
        try:
            timestamp = utcnow().isoformat()
            notifications: List[SecurityNotificationRequest] = []

            if event_type == "password_change":
                notifications.append(
                    SecurityNotificationRequest(
                        user_id=user_id,
                        type="password_changed",
                        title="Password Changed",
                        message="Your password has been successfully changed.",
                        severity=NotificationSeverity.info,
                        channels=USER_CHANNELS,
                        variables={"timestamp": timestamp, "ipAddress": ip_address},
                    )
                )

            if event_type == "login" and metadata.get("newDevice"):
                device_info = metadata.get("deviceInfo")
                notifications.append(
                    SecurityNotificationRequest(
                        user_id=user_id,
                        type="new_device_login",
                        title="New Device Login",
                        message=(
                            "Login detected from a new device: "
                            f"{(device_info or {}).get('type') or 'Unknown'}"
                        ),
                        severity=NotificationSeverity.warning,
                        channels=USER_CHANNELS,
                        variables={
                            "timestamp": timestamp,
                            "deviceInfo": format_device_info(device_info),
                            "location": format_location(metadata.get("location")),
                            "ipAddress": ip_address,
                        },
                        metadata={
                            "deviceInfo": device_info,
                            "ipAddress": ip_address,
                            "location": metadata.get("location"),
                        },
                    )
                )

            if event_type == "mfa_enabled":
                notifications.append(
                    SecurityNotificationRequest(
                        user_id=user_id,
                        type="security_alert",
                        title="Multi-Factor Authentication Enabled",
                        message="Multi-factor authentication has been enabled on your account.",
                        severity=NotificationSeverity.info,
                        channels=USER_CHANNELS,
                    )
                )

            if event_type == "mfa_disabled":
                notifications.append(
                    SecurityNotificationRequest(
                        user_id=user_id,
                        type="security_alert",
                        title="Multi-Factor Authentication Disabled",
                        message=(
                            "Multi-factor authentication has been disabled on your account. "
                            "Consider re-enabling it for better security."
                        ),
                        severity=NotificationSeverity.warning,
                        channels=USER_CHANNELS,
                    )
                )

            if result.detected and result.risk_score >= 30:
                notifications.append(
                    SecurityNotificationRequest(
                        user_id=user_id,
                        type="suspicious_activity",
                        title="Suspicious Activity Detected",
                        message=(
                            "We detected unusual activity on your account. "
                            "Please review your recent activity."
                        ),
                        severity=(
                            NotificationSeverity.error
                            if result.risk_score >= 60
                            else NotificationSeverity.warning
                        ),
                        channels=USER_CHANNELS,
                        variables={
                            "riskScore": result.risk_score,
                            "patterns": ", ".join(p.type.value for p in result.patterns),
                            "timestamp": timestamp,
                        },
                        metadata={"riskScore": result.risk_score},
                    )
                )

            for notification in notifications:
                await self.notification_service.send_security_notification(notification)
        except Exception:
            logger.exception(f"Error generating security notifications for user {user_id}")

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def create_security_alert(self, data: SecurityAlertCreate) -> SecurityAlert:
        """Persist an alert and log security.alert_created. Raises DatabaseError."""
        alert = SecurityAlert(
            id=generate_prefixed_id("alert"),
            user_id=data.user_id,
            organization_id=data.organization_id,
            alert_type=data.alert_type,
            severity=data.severity,
            title=data.title,
            description=data.description,
            alert_metadata=data.metadata,
            is_resolved=False,
            created_at=utcnow(),
        )

        try:
            async with self.uow_factory() as uow:
                alert = await uow.security_alerts.create(alert)
                await uow.commit()

            await self.audit_service.record_security_event(
                SecurityEvent(
                    user_id=alert.user_id,
                    organization_id=alert.organization_id,
                    action="security.alert_created",
                    resource_type="security_alert",
                    resource_id=alert.id,
                    severity=data.severity,
                    metadata={
                        "alertType": alert.alert_type,
                        "title": alert.title,
                        "description": alert.description,
                        **data.metadata,
                    },
                )
            )
        except Exception as e:
            logger.exception("Error creating security alert")
            raise DatabaseError("Failed to create security alert", "CREATE_ALERT_ERROR") from e

        return alert

    async def resolve_security_alert(
        self, alert_id: str, resolved_by: str, notes: Optional[str] = None
    ) -> SecurityAlert:
        """Mark an alert resolved and log the transition. Already resolved alerts are returned as-is."""
        try:
            async with self.uow_factory() as uow:
                alert = await uow.security_alerts.get_by_id(alert_id)
                if alert is None:
                    raise AlertNotFoundError(alert_id)

                if alert.is_resolved:
                    return alert

                alert.is_resolved = True
                alert.resolved_by = resolved_by
                alert.resolved_at = utcnow()
                alert = await uow.security_alerts.update(alert)
                await uow.commit()
        except AlertNotFoundError:
            raise
        except Exception as e:
            logger.exception(f"Error resolving security alert {alert_id}")
            raise DatabaseError("Failed to resolve security alert", "RESOLVE_ALERT_ERROR") from e

        await self.audit_service.log_security_event(
            SecurityEvent(
                user_id=resolved_by,
                organization_id=alert.organization_id,
                action="security.incident_resolved",
                resource_type="security_alert",
                resource_id=alert.id,
                severity=Severity.low,
                metadata={"resolution": "resolved", "notes": notes, "alertUserId": alert.user_id},
            )
        )

        logger.info(f"Security alert {alert_id} resolved by {resolved_by}")
        return alert

    async def get_security_alerts(
        self,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        unresolved_only: bool = False,
        limit: int = 50,
    ) -> List[SecurityAlert]:
        try:
            async with self.uow_factory() as uow:
                return await uow.security_alerts.list(
                    organization_id=organization_id,
                    user_id=user_id,
                    unresolved_only=unresolved_only,
                    limit=limit,
                )
        except Exception as e:
            logger.exception("Error getting security alerts")
            raise DatabaseError(
                "Failed to retrieve security alerts", "GET_SECURITY_ALERTS_ERROR"
            ) from e

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def get_security_metrics(
        self, organization_id: Optional[str] = None, days: int = 30
    ) -> SecurityMetrics:
        """Dashboard counters over the trailing window. Zeroed on error."""
        try:
            events = await self.audit_service.get_security_events(
                SecurityEventFilter(
                    organization_id=organization_id,
                    start_date=utcnow() - timedelta(days=days),
                    limit=self.metrics_scan_limit,
                )
            )

            alerts_generated = sum(
                1
                for e in events
                if e.action in ("security.alert_created", "security.suspicious_activity_detected")
            )
            suspicious = sum(
                1 for e in events if e.action == "security.suspicious_activity_detected"
            )
            blocked = sum(
                1
                for e in events
                if e.action in ("security.account_locked", "tenant.isolation_violation")
            )

            risk_scores = [
                e.event_metadata["riskScore"]
                for e in events
                if isinstance(e.event_metadata.get("riskScore"), (int, float))
                and not isinstance(e.event_metadata.get("riskScore"), bool)
            ]
            average_risk = round_half_up(sum(risk_scores) / len(risk_scores)) if risk_scores else 0

            # Events are newest first, so the first severity seen is the latest
            threat_counts: Counter = Counter()
            threat_severity: Dict[str, str] = {}
            for event in events:
                if event.action.startswith(("security.", "auth.")):
                    threat_counts[event.action] += 1
                    threat_severity.setdefault(event.action, event.severity)

            top_threats = [
                ThreatCount(type=action, count=count, severity=threat_severity[action])
                for action, count in threat_counts.most_common(5)
            ]

            return SecurityMetrics(
                total_events=len(events),
                alerts_generated=alerts_generated,
                suspicious_activities=suspicious,
                blocked_attempts=blocked,
                average_risk_score=average_risk,
                top_threats=top_threats,
            )
        except Exception:
            logger.exception("Error getting security metrics")
            return SecurityMetrics()
