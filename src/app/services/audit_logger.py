"""
Enriched Security Audit Logger

Builds risk-scored audit records (threat intelligence, compliance flags,
request context) and publishes them on the shared event bus. Each logged
event is handed to the incident detector.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.app.services.dtos import ComplianceFlag, DetectionContext, RequestContext, ThreatIntelligence
from src.app.services.event_bus import SecurityEventBus
from src.app.services.incident_detector import SecurityIncidentDetector
from src.app.services.threat_intelligence import ThreatIntelligenceProvider
from src.domain.base import generate_prefixed_id, utcnow
from src.domain.entities import (
    AuditEvent,
    AuditEventType,
    AuditOutcome,
    ComplianceRegulation,
    Severity,
)

logger = logging.getLogger(__name__)

EVENT_SOURCE = "audit-logger"
MAX_RISK_SCORE = 10

BASE_RISK: Dict[AuditEventType, int] = {
    AuditEventType.authentication_failure: 3,
    AuditEventType.account_locked: 6,
    AuditEventType.suspicious_activity: 8,
    AuditEventType.brute_force_attempt: 9,
    AuditEventType.account_takeover_attempt: 10,
    AuditEventType.privilege_escalation: 9,
    AuditEventType.unauthorized_access_attempt: 8,
}

CRITICAL_EVENT_TYPES = {
    AuditEventType.account_takeover_attempt,
    AuditEventType.privilege_escalation,
    AuditEventType.security_incident,
}

HIGH_EVENT_TYPES = {
    AuditEventType.brute_force_attempt,
    AuditEventType.suspicious_activity,
    AuditEventType.unauthorized_access_attempt,
}

# Detection rules read these back from the store as soon as they are logged
DETECTOR_INPUT_TYPES = {
    AuditEventType.authentication_success,
    AuditEventType.authentication_failure,
}

ACTION_FOR_EVENT_TYPE: Dict[AuditEventType, str] = {
    AuditEventType.authentication_success: "auth.login",
    AuditEventType.authentication_failure: "auth.login_failed",
    AuditEventType.authentication_attempt: "auth.login_attempt",
    AuditEventType.logout: "auth.logout",
    AuditEventType.password_changed: "auth.password_change",
    AuditEventType.data_export: "data.export",
    AuditEventType.data_deletion: "data.delete",
    AuditEventType.api_request: "api.request",
}


def audit_action_for(event_type: AuditEventType) -> str:
    """Map an event type onto the shared dot-namespaced action taxonomy"""
    if event_type in ACTION_FOR_EVENT_TYPE:
        return ACTION_FOR_EVENT_TYPE[event_type]

    value = event_type.value
    if value.startswith("account_"):
        return f"user.{value[len('account_'):]}"
    if value.startswith(("session_", "password_", "mfa_")):
        return f"auth.{value}"
    return f"security.{value}"


def resource_type_for(action: str) -> str:
    namespace = action.split(".", 1)[0]
    return {
        "auth": "authentication",
        "user": "user_account",
        "data": "data",
        "api": "api",
    }.get(namespace, "security")


def calculate_risk_score(
    event_type: AuditEventType,
    outcome: AuditOutcome,
    details: Dict[str, Any],
    threat_intelligence: Optional[ThreatIntelligence] = None,
) -> int:
    score = BASE_RISK.get(event_type, 1)

    if outcome == AuditOutcome.failure:
        score += 2
    elif outcome == AuditOutcome.blocked:
        score += 1

    if threat_intelligence is not None:
        if threat_intelligence.ip_reputation == "malicious":
            score += 4
        elif threat_intelligence.ip_reputation == "suspicious":
            score += 2
        if threat_intelligence.bot_detection == "bot":
            score += 3
        if threat_intelligence.tor_detection:
            score += 2
        if threat_intelligence.vpn_detection:
            score += 1

    if details.get("unusualLocation"):
        score += 2
    if details.get("newDevice"):
        score += 1
    if details.get("rapidActions"):
        score += 2

    return min(score, MAX_RISK_SCORE)


def determine_severity(event_type: AuditEventType, outcome: AuditOutcome, risk_score: int) -> Severity:
    if event_type in CRITICAL_EVENT_TYPES or risk_score >= 9:
        return Severity.critical
    if event_type in HIGH_EVENT_TYPES or risk_score >= 7:
        return Severity.high
    if risk_score >= 4 or outcome == AuditOutcome.failure:
        return Severity.medium
    return Severity.low


def compliance_flags_for(event_type: AuditEventType, details: Dict[str, Any]) -> List[ComplianceFlag]:
    flags = []

    if event_type in (AuditEventType.data_export, AuditEventType.data_deletion):
        flags.append(
            ComplianceFlag(
                regulation=ComplianceRegulation.gdpr,
                requirement="data_portability",
                status="compliant",
                details="User data request processed",
            )
        )

    if event_type == AuditEventType.privilege_escalation:
        flags.append(
            ComplianceFlag(
                regulation=ComplianceRegulation.sox,
                requirement="privileged_access_control",
                status="requires_review",
                details="Privilege escalation requires review",
            )
        )

    if details.get("paymentData") or details.get("cardData"):
        flags.append(
            ComplianceFlag(
                regulation=ComplianceRegulation.pci_dss,
                requirement="cardholder_data_access",
                status="requires_review",
                details="Payment data access logged",
            )
        )

    return flags


def suspicious_indicators(
    threat_intelligence: Optional[Dict[str, Any]],
    details: Dict[str, Any],
    timestamp: datetime,
    business_hours: Tuple[int, int] = (6, 22),
) -> List[str]:
    indicators = []

    if threat_intelligence:
        if threat_intelligence.get("ip_reputation") == "malicious":
            indicators.append("malicious_ip")
        if threat_intelligence.get("bot_detection") == "bot":
            indicators.append("bot_detected")
        if threat_intelligence.get("tor_detection"):
            indicators.append("tor_usage")

    opens, closes = business_hours
    if timestamp.hour < opens or timestamp.hour > closes:
        indicators.append("unusual_time")

    if details.get("rapidActions"):
        indicators.append("rapid_actions")

    return indicators


class SecurityAuditLogger:
    """
    Risk-scored audit logging on the shared event bus.

    Business Rules:
    - Critical events, events at or above the risk threshold and detector
      inputs are written immediately; everything else is batched
    - Logging never raises
    - Every event except security_incident is analyzed by the detector
    - Suspicious indicators on any other event raise a suspicious_activity
      incident (high with more than two indicators, medium otherwise)
    """

    def __init__(
        self,
        event_bus: SecurityEventBus,
        threat_intelligence: ThreatIntelligenceProvider,
        detector: Optional[SecurityIncidentDetector] = None,
        risk_threshold: int = 7,
        business_hours: Tuple[int, int] = (6, 22),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.event_bus = event_bus
        self.threat_intelligence = threat_intelligence
        self.detector = detector
        self.risk_threshold = risk_threshold
        self.business_hours = tuple(business_hours)
        self.clock = clock

    async def log_auth_event(
        self,
        event_type: AuditEventType,
        action: str,
        outcome: AuditOutcome,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
        organization_id: Optional[str] = None,
    ) -> Optional[AuditEvent]:
        """Returns the published record, or None when it could not be written"""
        details = details or {}
        context = context or RequestContext()

        try:
            audit_event = await self._build_audit_event(
                event_type, action, outcome, details, user_id, session_id, context, organization_id
            )
            severity = Severity(audit_event.event_metadata["severity"])
            risk_score = audit_event.event_metadata["threatScore"]
            immediate = (
                severity == Severity.critical
                or risk_score >= self.risk_threshold
                or event_type in DETECTOR_INPUT_TYPES
            )
            audit_event = await self.event_bus.publish(audit_event, immediate=immediate)
        except Exception:
            logger.exception(f"Failed to log audit event {event_type.value}:{action}")
            return None

        if severity == Severity.critical or risk_score >= self.risk_threshold:
            self._report_security_concern(audit_event, event_type, severity)

        if event_type != AuditEventType.security_incident:
            await self._check_suspicious_activity(audit_event, details, user_id, context)

        if self.detector is not None and event_type != AuditEventType.security_incident:
            try:
                await self.detector.analyze_auth_event(
                    DetectionContext(
                        event_type=event_type,
                        event_id=audit_event.event_metadata.get("eventId"),
                        user_id=user_id,
                        organization_id=organization_id,
                        ip_address=context.ip_address,
                        user_agent=context.user_agent,
                        device_fingerprint=context.device_fingerprint,
                        geolocation=context.geolocation,
                        metadata=details,
                    )
                )
            except Exception:
                logger.exception(f"Incident analysis failed for {event_type.value}:{action}")

        return audit_event

    async def log_account_event(
        self,
        event_type: AuditEventType,
        action: str,
        outcome: AuditOutcome,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
        organization_id: Optional[str] = None,
    ) -> Optional[AuditEvent]:
        return await self.log_auth_event(
            event_type,
            action,
            outcome,
            details,
            user_id=user_id,
            context=context,
            organization_id=organization_id,
        )

    async def log_security_incident(
        self,
        incident_type: str,
        severity: Severity,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> Optional[AuditEvent]:
        # security_incident is always critical; the caller's severity is kept for reference
        return await self.log_auth_event(
            AuditEventType.security_incident,
            incident_type,
            AuditOutcome.blocked,
            {
                **(details or {}),
                "incidentType": incident_type,
                "reportedSeverity": Severity(severity).value,
                "automated": True,
            },
            user_id=user_id,
            context=context,
        )

    async def _build_audit_event(
        self,
        event_type: AuditEventType,
        operation: str,
        outcome: AuditOutcome,
        details: Dict[str, Any],
        user_id: Optional[str],
        session_id: Optional[str],
        context: RequestContext,
        organization_id: Optional[str],
    ) -> AuditEvent:
        threat_intelligence = await self.threat_intelligence.lookup(context.ip_address)
        risk_score = calculate_risk_score(event_type, outcome, details, threat_intelligence)
        severity = determine_severity(event_type, outcome, risk_score)
        flags = compliance_flags_for(event_type, details)
        action = audit_action_for(event_type)
        now = self.clock()

        metadata = {
            "eventType": event_type.value,
            "outcome": outcome.value,
            "operation": operation,
            "details": details,
            "threatScore": risk_score,
            "complianceFlags": [f.model_dump(mode="json") for f in flags],
            "threatIntelligence": (
                threat_intelligence.model_dump(mode="json") if threat_intelligence else None
            ),
            "requestId": context.request_id,
            "correlationId": context.correlation_id,
            "geolocation": (
                context.geolocation.model_dump(mode="json") if context.geolocation else None
            ),
            "deviceFingerprint": context.device_fingerprint,
            "sessionId": session_id,
            "resource": context.resource,
            "source": EVENT_SOURCE,
            "severity": severity.value,
            "eventId": generate_prefixed_id("audit"),
        }

        return AuditEvent(
            user_id=user_id,
            organization_id=organization_id,
            action=action,
            resource_type=resource_type_for(action),
            resource_id=user_id,
            event_metadata=metadata,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            created_at=now,
            updated_at=now,
        )

    async def _check_suspicious_activity(
        self,
        audit_event: AuditEvent,
        details: Dict[str, Any],
        user_id: Optional[str],
        context: RequestContext,
    ) -> None:
        indicators = suspicious_indicators(
            audit_event.event_metadata.get("threatIntelligence"),
            details,
            audit_event.created_at,
            self.business_hours,
        )
        if not indicators:
            return

        await self.log_security_incident(
            "suspicious_activity",
            Severity.high if len(indicators) > 2 else Severity.medium,
            {"indicators": indicators, "riskScore": audit_event.event_metadata["threatScore"]},
            user_id=user_id,
            context=context,
        )

    @staticmethod
    def _report_security_concern(
        audit_event: AuditEvent, event_type: AuditEventType, severity: Severity
    ) -> None:
        logger.warning(
            f"Security alert: {event_type.value} ({severity.value}) "
            f"risk={audit_event.event_metadata['threatScore']} "
            f"event={audit_event.event_metadata['eventId']} user={audit_event.user_id}"
        )
        if severity == Severity.critical:
            logger.critical(
                f"CRITICAL SECURITY EVENT: {event_type.value} "
                f"event={audit_event.event_metadata['eventId']} user={audit_event.user_id}"
            )
        if severity in (Severity.high, Severity.critical):
            logger.warning(f"Incident review required for audit event {audit_event.event_metadata['eventId']}")
