"""
Security Audit Service

Canonical sink for security events. Every other component records through
this service; it also answers filtered reads, rolling summaries and a coarse
single-user suspicious-activity heuristic.
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import List, Optional

from src.app.errors import DatabaseError
from src.app.repositories.audit_event_repository import AuditEventQuery
from src.app.services.dtos import (
    AuditSuspiciousActivity,
    SecurityEvent,
    SecurityEventFilter,
    SecuritySummary,
    TenantIsolationViolation,
)
from src.app.services.event_bus import SecurityEventBus
from src.app.services.unit_of_work import UnitOfWorkFactory
from src.domain.base import generate_prefixed_id, utcnow
from src.domain.entities import AuditEvent, Severity

logger = logging.getLogger(__name__)

EVENT_SOURCE = "security-audit-service"
HIGH_SEVERITIES = {Severity.high.value, Severity.critical.value}


class SecurityAuditService:
    """
    Records security events and serves audit reads.

    Business Rules:
    - Logging never raises; store failures are logged for the operator
    - Reads (get_security_events, get_security_summary) raise DatabaseError
    - Tenant isolation violations are always critical
    - Tenant access validation fails closed
    """

    def __init__(
        self,
        event_bus: SecurityEventBus,
        uow_factory: UnitOfWorkFactory,
        summary_scan_limit: int = 1000,
    ):
        self.event_bus = event_bus
        self.uow_factory = uow_factory
        self.summary_scan_limit = summary_scan_limit

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def record_security_event(self, event: SecurityEvent) -> AuditEvent:
        """
        Persist a security event and raise on failure.

        Used by operations whose failure must reach the caller (alert and
        incident creation, notification summaries).
        """
        severity = Severity(event.severity).value
        metadata = {
            **event.metadata,
            "severity": severity,
            "eventId": generate_prefixed_id("evt"),
            "source": EVENT_SOURCE,
        }
        timestamp = event.timestamp or utcnow()

        audit_event = AuditEvent(
            user_id=event.user_id,
            organization_id=event.organization_id,
            action=event.action,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            event_metadata=metadata,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            created_at=timestamp,
            updated_at=timestamp,
        )

        try:
            created = await self.event_bus.publish(audit_event, immediate=True)
        except Exception as e:
            raise DatabaseError(
                f"Failed to write audit event {event.action}: {e}", "AUDIT_WRITE_ERROR"
            ) from e

        if severity in HIGH_SEVERITIES:
            self._handle_high_severity_event(event, timestamp)

        logger.info(
            f"Security event logged: {event.action} ({severity}) "
            f"user={event.user_id} org={event.organization_id} resource={event.resource_type}"
        )
        return created

    async def log_security_event(self, event: SecurityEvent) -> None:
        """Log a security event; failures are reported, never raised."""
        try:
            await self.record_security_event(event)
        except Exception:
            logger.exception(f"Failed to log security event {event.action}")

    async def log_authentication_event(
        self,
        user_id: str,
        action: str,
        metadata: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """action: login | logout | login_failed | token_refresh | password_change"""
        severity = Severity.medium if action == "login_failed" else Severity.low

        await self.log_security_event(
            SecurityEvent(
                user_id=user_id,
                action=f"auth.{action}",
                resource_type="authentication",
                resource_id=user_id,
                severity=severity,
                metadata=metadata or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    async def log_authorization_event(
        self,
        user_id: str,
        organization_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """action: permission_granted | permission_denied | role_assigned | role_revoked"""
        severity = Severity.medium if action == "permission_denied" else Severity.low

        await self.log_security_event(
            SecurityEvent(
                user_id=user_id,
                organization_id=organization_id,
                action=f"authz.{action}",
                resource_type=resource_type,
                resource_id=resource_id,
                severity=severity,
                metadata=metadata or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    async def log_tenant_isolation_violation(self, violation: TenantIsolationViolation) -> None:
        """Log a cross-tenant access attempt. Always critical."""
        await self.log_security_event(
            SecurityEvent(
                user_id=violation.user_id,
                organization_id=violation.attempted_organization_id,
                action="tenant.isolation_violation",
                resource_type=violation.resource_type,
                resource_id=violation.resource_id,
                severity=Severity.critical,
                metadata={
                    "attemptedOrganizationId": violation.attempted_organization_id,
                    "actualOrganizationIds": violation.actual_organization_ids,
                    "violationType": "cross_tenant_access_attempt",
                    **violation.metadata,
                },
                timestamp=violation.timestamp,
            )
        )

        logger.critical(
            "CRITICAL: Tenant isolation violation detected "
            f"user={violation.user_id} attempted_org={violation.attempted_organization_id} "
            f"action={violation.action} resource={violation.resource_type}"
        )

    async def log_data_access_event(
        self,
        user_id: str,
        organization_id: str,
        action: str,
        resource_type: str,
        resource_id: str,
        metadata: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """action: read | create | update | delete"""
        severity = Severity.medium if action == "delete" else Severity.low

        await self.log_security_event(
            SecurityEvent(
                user_id=user_id,
                organization_id=organization_id,
                action=f"data.{action}",
                resource_type=resource_type,
                resource_id=resource_id,
                severity=severity,
                metadata=metadata or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    async def log_organization_event(
        self,
        user_id: str,
        organization_id: str,
        action: str,
        metadata: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """action: created | updated | deleted | member_added | member_removed | settings_changed"""
        severity = Severity.medium if action in ("deleted", "member_removed") else Severity.low

        await self.log_security_event(
            SecurityEvent(
                user_id=user_id,
                organization_id=organization_id,
                action=f"organization.{action}",
                resource_type="organization",
                resource_id=organization_id,
                severity=severity,
                metadata=metadata or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_security_events(
        self, filter: Optional[SecurityEventFilter] = None
    ) -> List[AuditEvent]:
        """
        Get security events, newest first.

        The store narrows by user/organization and paginates; action
        (substring), resource type, severity and date range are applied here.
        """
        filter = filter or SecurityEventFilter()

        try:
            async with self.uow_factory() as uow:
                events = await uow.audit_events.get_audit_logs(
                    AuditEventQuery(
                        user_id=filter.user_id,
                        organization_id=filter.organization_id,
                        limit=filter.limit or 100,
                        offset=filter.offset or 0,
                    )
                )
        except Exception as e:
            logger.exception("Error getting security events")
            raise DatabaseError(
                "Failed to retrieve security events", "GET_SECURITY_EVENTS_ERROR"
            ) from e

        if filter.action:
            events = [e for e in events if filter.action in e.action]

        if filter.resource_type:
            events = [e for e in events if e.resource_type == filter.resource_type]

        if filter.severity:
            events = [e for e in events if e.severity in filter.severity]

        if filter.start_date:
            events = [e for e in events if e.created_at >= filter.start_date]

        if filter.end_date:
            events = [e for e in events if e.created_at <= filter.end_date]

        return events

    async def get_security_summary(self, organization_id: str, days: int = 30) -> SecuritySummary:
        """Aggregate the trailing window of an organization's events."""
        try:
            events = await self.get_security_events(
                SecurityEventFilter(
                    organization_id=organization_id,
                    start_date=utcnow() - timedelta(days=days),
                    limit=self.summary_scan_limit,
                )
            )
        except Exception as e:
            logger.exception("Error getting security summary")
            raise DatabaseError(
                "Failed to generate security summary", "GET_SECURITY_SUMMARY_ERROR"
            ) from e

        events_by_type = Counter(e.resource_type for e in events)
        events_by_severity = Counter(e.severity for e in events)
        high_severity_events = [e for e in events if e.severity in HIGH_SEVERITIES]

        return SecuritySummary(
            total_events=len(events),
            events_by_type=dict(events_by_type),
            events_by_severity=dict(events_by_severity),
            recent_high_severity_events=high_severity_events[:10],
        )

    # ------------------------------------------------------------------
    # Heuristics
    # ------------------------------------------------------------------

    async def detect_suspicious_activity(
        self, user_id: str, organization_id: Optional[str] = None
    ) -> AuditSuspiciousActivity:
        """Coarse threshold checks over the user's last 24 hours."""
        try:
            recent_events = await self.get_security_events(
                SecurityEventFilter(
                    user_id=user_id,
                    organization_id=organization_id,
                    start_date=utcnow() - timedelta(hours=24),
                    limit=500,
                )
            )

            patterns: List[str] = []
            recommendations: List[str] = []
            risk_score = 0

            failed_logins = [e for e in recent_events if e.action == "auth.login_failed"]
            if len(failed_logins) >= 5:
                patterns.append("Multiple failed login attempts")
                risk_score += 30
                recommendations.append("Consider enabling multi-factor authentication")

            data_access = [e for e in recent_events if e.action.startswith("data.")]
            if len(data_access) > 100:
                patterns.append("Unusually high data access activity")
                risk_score += 20
                recommendations.append("Review recent data access patterns")

            permission_denied = [
                e for e in recent_events if e.action == "authz.permission_denied"
            ]
            if len(permission_denied) >= 10:
                patterns.append("Multiple permission denied events")
                risk_score += 25
                recommendations.append("Review user permissions and role assignments")

            if any(e.action == "tenant.isolation_violation" for e in recent_events):
                patterns.append("Tenant isolation violations detected")
                risk_score += 50
                recommendations.append("Immediate security review required")

            return AuditSuspiciousActivity(
                suspicious_patterns=patterns,
                risk_score=min(risk_score, 100),
                recommendations=recommendations,
            )
        except Exception:
            logger.exception("Error detecting suspicious activity")
            return AuditSuspiciousActivity(
                recommendations=["Error analyzing activity patterns"]
            )

    async def validate_and_log_tenant_access(
        self,
        user_id: str,
        organization_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        user_organizations: Optional[List[str]] = None,
    ) -> bool:
        """True iff the user belongs to organization_id. Fails closed."""
        try:
            user_org_ids = user_organizations
            if user_org_ids is None:
                async with self.uow_factory() as uow:
                    organizations = await uow.organizations.get_user_organizations(user_id)
                user_org_ids = [org.id for org in organizations or []]

            has_access = organization_id in user_org_ids

            if not has_access:
                await self.log_tenant_isolation_violation(
                    TenantIsolationViolation(
                        user_id=user_id,
                        attempted_organization_id=organization_id,
                        actual_organization_ids=list(user_org_ids),
                        action=action,
                        resource_type=resource_type,
                        resource_id=resource_id,
                        timestamp=utcnow(),
                        metadata={
                            "userOrganizationCount": len(user_org_ids),
                            "accessAttemptBlocked": True,
                        },
                    )
                )

            return has_access
        except Exception as e:
            logger.exception("Error validating tenant access")
            await self.log_security_event(
                SecurityEvent(
                    user_id=user_id,
                    organization_id=organization_id,
                    action="tenant.validation_error",
                    resource_type=resource_type,
                    resource_id=resource_id,
                    severity=Severity.high,
                    metadata={
                        "error": str(e),
                        "action": action,
                        "resourceType": resource_type,
                    },
                )
            )
            return False

    def _handle_high_severity_event(self, event: SecurityEvent, timestamp) -> None:
        logger.warning(
            f"HIGH SEVERITY SECURITY EVENT: {event.action} "
            f"user={event.user_id} org={event.organization_id} "
            f"resource={event.resource_type} severity={Severity(event.severity).value} "
            f"at={timestamp.isoformat()}"
        )

        if Severity(event.severity) == Severity.critical:
            logger.critical(
                f"CRITICAL SECURITY EVENT DETECTED: {event.action} "
                f"user={event.user_id} org={event.organization_id} metadata={event.metadata}"
            )
