"""
Security Incident Detector

Rule engine evaluated against each event logged by the enriched audit
logger. Matching rules produce persisted incidents; high and critical ones
move to investigating with automated response actions attached.
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from src.app.repositories.audit_event_repository import AuditEventQuery
from src.app.services.dtos import DetectionContext, NotificationMessage, SecurityEvent
from src.app.services.notification_transport import NotificationTransport
from src.app.services.security_audit_service import SecurityAuditService
from src.app.services.threat_intelligence import ThreatIntelligenceProvider
from src.app.services.unit_of_work import UnitOfWorkFactory
from src.domain.base import generate_prefixed_id, utcnow
from src.domain.entities import (
    AuditEvent,
    AuditEventType,
    Evidence,
    EvidenceType,
    IncidentResponse,
    IncidentStatus,
    IncidentType,
    IndicatorType,
    NotificationRecord,
    NotificationSeverity,
    OperatorChannelType,
    ResponseAction,
    ResponseActionType,
    SecurityIncident,
    SecurityIndicator,
    Severity,
)

logger = logging.getLogger(__name__)

EVENT_SOURCE = "incident-detector"
ROLE_HIERARCHY = ["user", "moderator", "admin", "super_admin"]


class AuditEventLookup:
    """Store queries the detection rules need"""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self.uow_factory = uow_factory

    async def _query(self, query: AuditEventQuery) -> List[AuditEvent]:
        async with self.uow_factory() as uow:
            return await uow.audit_events.get_audit_logs(query)

    async def events_from_ip(self, ip_address: str, minutes: int, limit: int) -> List[AuditEvent]:
        return await self._query(
            AuditEventQuery(
                ip_address=ip_address,
                start_date=utcnow() - timedelta(minutes=minutes),
                limit=limit,
            )
        )

    async def failed_logins_from_ip(self, ip_address: str, minutes: int) -> List[AuditEvent]:
        events = await self.events_from_ip(ip_address, minutes, limit=1000)
        return [e for e in events if e.action == "auth.login_failed"]

    async def login_history(self, user_id: str, days: int) -> List[AuditEvent]:
        events = await self._query(
            AuditEventQuery(
                user_id=user_id,
                start_date=utcnow() - timedelta(days=days),
                limit=500,
            )
        )
        return [e for e in events if e.action == "auth.login"]


class DetectionRule(ABC):
    name: str
    incident_type: IncidentType
    severity: Severity
    attack_vector: str

    @abstractmethod
    async def matches(self, context: DetectionContext, lookup: AuditEventLookup) -> bool:
        pass


class BruteForceRule(DetectionRule):
    name = "brute_force_detection"
    incident_type = IncidentType.brute_force
    severity = Severity.high
    attack_vector = "authentication"

    def __init__(self, threshold: int = 5, window_minutes: int = 15):
        self.threshold = threshold
        self.window_minutes = window_minutes

    async def matches(self, context: DetectionContext, lookup: AuditEventLookup) -> bool:
        if context.event_type != AuditEventType.authentication_failure or not context.ip_address:
            return False
        failures = await lookup.failed_logins_from_ip(context.ip_address, self.window_minutes)
        return len(failures) >= self.threshold


class AccountTakeoverRule(DetectionRule):
    """Successful login from both a new device and a new location."""

    name = "account_takeover_detection"
    incident_type = IncidentType.account_takeover
    severity = Severity.critical
    attack_vector = "authentication"

    def __init__(self, history_days: int = 7):
        self.history_days = history_days

    async def matches(self, context: DetectionContext, lookup: AuditEventLookup) -> bool:
        if context.event_type != AuditEventType.authentication_success or not context.user_id:
            return False
        if context.geolocation is None:
            return False

        history = [
            e
            for e in await lookup.login_history(context.user_id, self.history_days)
            if e.event_metadata.get("eventId") != context.event_id
        ]
        # A first login is not a takeover
        if not history:
            return False

        def device_of(event: AuditEvent) -> Optional[str]:
            return event.event_metadata.get("deviceFingerprint") or event.user_agent

        current_device = context.device_fingerprint or context.user_agent
        new_device = all(device_of(e) != current_device for e in history)

        def location_of(event: AuditEvent) -> tuple:
            geo = event.event_metadata.get("geolocation") or {}
            return geo.get("country"), geo.get("region")

        current_location = (context.geolocation.country, context.geolocation.region)
        new_location = all(location_of(e) != current_location for e in history)

        return new_device and new_location


class CredentialStuffingRule(DetectionRule):
    name = "credential_stuffing_detection"
    incident_type = IncidentType.credential_stuffing
    severity = Severity.high
    attack_vector = "authentication"

    def __init__(self, distinct_users: int = 10, window_minutes: int = 30):
        self.distinct_users = distinct_users
        self.window_minutes = window_minutes

    async def matches(self, context: DetectionContext, lookup: AuditEventLookup) -> bool:
        if context.event_type != AuditEventType.authentication_failure or not context.ip_address:
            return False
        failures = await lookup.failed_logins_from_ip(context.ip_address, self.window_minutes)
        return len({e.user_id for e in failures if e.user_id}) >= self.distinct_users


def is_privilege_elevation(previous_role: str, new_role: str) -> bool:
    if previous_role not in ROLE_HIERARCHY or new_role not in ROLE_HIERARCHY:
        return False
    return ROLE_HIERARCHY.index(new_role) > ROLE_HIERARCHY.index(previous_role)


class PrivilegeEscalationRule(DetectionRule):
    name = "privilege_escalation_detection"
    incident_type = IncidentType.privilege_escalation
    severity = Severity.critical
    attack_vector = "authorization"

    async def matches(self, context: DetectionContext, lookup: AuditEventLookup) -> bool:
        details = context.metadata
        if not details.get("roleChange"):
            return False
        previous_role = details.get("previousRole")
        new_role = details.get("newRole")
        return bool(previous_role and new_role) and is_privilege_elevation(previous_role, new_role)


class ApiAbuseRule(DetectionRule):
    name = "api_abuse_detection"
    incident_type = IncidentType.api_abuse
    severity = Severity.medium
    attack_vector = "api"

    def __init__(self, threshold: int = 1000, window_minutes: int = 5):
        self.threshold = threshold
        self.window_minutes = window_minutes

    async def matches(self, context: DetectionContext, lookup: AuditEventLookup) -> bool:
        if not context.ip_address:
            return False
        events = await lookup.events_from_ip(
            context.ip_address, self.window_minutes, limit=self.threshold
        )
        return len(events) >= self.threshold


def default_detection_rules() -> List[DetectionRule]:
    return [
        BruteForceRule(),
        AccountTakeoverRule(),
        CredentialStuffingRule(),
        PrivilegeEscalationRule(),
        ApiAbuseRule(),
    ]


RESPONSE_PLAYBOOK: Dict[IncidentType, List[ResponseActionType]] = {
    IncidentType.brute_force: [ResponseActionType.block_ip, ResponseActionType.alert_admin],
    IncidentType.account_takeover: [
        ResponseActionType.suspend_account,
        ResponseActionType.force_password_reset,
        ResponseActionType.enable_mfa,
        ResponseActionType.alert_admin,
        ResponseActionType.create_ticket,
    ],
    IncidentType.privilege_escalation: [
        ResponseActionType.suspend_account,
        ResponseActionType.alert_admin,
        ResponseActionType.create_ticket,
    ],
}

OPERATOR_CHANNELS_BY_SEVERITY: Dict[Severity, List[OperatorChannelType]] = {
    Severity.critical: [
        OperatorChannelType.pagerduty,
        OperatorChannelType.email,
        OperatorChannelType.slack,
    ],
    Severity.high: [OperatorChannelType.email, OperatorChannelType.slack],
}

DEFAULT_SECURITY_TEAM_RECIPIENTS = {
    OperatorChannelType.pagerduty.value: "security-team",
    OperatorChannelType.email.value: "security@company.com",
    OperatorChannelType.slack.value: "#security-alerts",
}


class SecurityIncidentDetector:
    """
    Matches logged events against the detection rule catalog.

    Business Rules:
    - Analysis is a no-op until start() is called
    - A failing rule is logged and skipped, it never blocks the others
    - high/critical incidents: investigating + automated response
    - critical incidents are escalated
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        audit_service: SecurityAuditService,
        threat_intelligence: ThreatIntelligenceProvider,
        operator_transports: Dict[str, NotificationTransport],
        recipients: Optional[Dict[str, str]] = None,
        rules: Optional[Sequence[DetectionRule]] = None,
    ):
        self.uow_factory = uow_factory
        self.audit_service = audit_service
        self.threat_intelligence = threat_intelligence
        self.operator_transports = operator_transports
        self.recipients = recipients or dict(DEFAULT_SECURITY_TEAM_RECIPIENTS)
        self.rules = list(rules) if rules is not None else default_detection_rules()
        self.lookup = AuditEventLookup(uow_factory)
        self.is_monitoring = False

    def start(self) -> None:
        self.is_monitoring = True
        logger.info("Security incident detection started")

    def stop(self) -> None:
        self.is_monitoring = False
        logger.info("Security incident detection stopped")

    async def analyze_auth_event(self, context: DetectionContext) -> List[SecurityIncident]:
        if not self.is_monitoring:
            return []

        incidents = []
        for rule in self.rules:
            try:
                matched = await rule.matches(context, self.lookup)
            except Exception:
                logger.exception(f"Detection rule {rule.name} failed")
                continue

            if matched:
                incident = await self._create_incident(rule, context)
                incidents.append(await self._process_incident(incident))

        return incidents

    async def _create_incident(
        self, rule: DetectionRule, context: DetectionContext
    ) -> SecurityIncident:
        now = utcnow()

        indicators = []
        if context.ip_address:
            indicators.append(
                SecurityIndicator(
                    type=IndicatorType.ip_address,
                    value=context.ip_address,
                    confidence=0.8,
                    source=EVENT_SOURCE,
                    first_seen=now,
                    last_seen=now,
                )
            )
        if context.user_agent:
            indicators.append(
                SecurityIndicator(
                    type=IndicatorType.user_agent,
                    value=context.user_agent,
                    confidence=0.5,
                    source=EVENT_SOURCE,
                    first_seen=now,
                    last_seen=now,
                )
            )

        evidence = Evidence.capture(
            EvidenceType.log_entry, context.model_dump(mode="json"), EVENT_SOURCE
        )

        incident = SecurityIncident(
            id=generate_prefixed_id("incident"),
            type=rule.incident_type,
            severity=rule.severity,
            status=IncidentStatus.open,
            user_id=context.user_id,
            organization_id=context.organization_id,
            description=f"Detected by {rule.name}",
            affected_users=[context.user_id] if context.user_id else [],
            indicators=[i.model_dump(mode="json") for i in indicators],
            evidence=[evidence.model_dump(mode="json")],
            incident_metadata={
                "rule": rule.name,
                "attackVector": rule.attack_vector,
                "geolocation": (
                    context.geolocation.model_dump(mode="json") if context.geolocation else None
                ),
                "impactAssessment": self._assess_impact(rule.incident_type, rule.severity),
            },
            detected_at=now,
        )

        async with self.uow_factory() as uow:
            incident = await uow.security_incidents.create(incident)
            await uow.commit()

        await self.audit_service.log_security_event(
            SecurityEvent(
                user_id=context.user_id,
                organization_id=context.organization_id,
                action="security.incident_created",
                resource_type="security_incident",
                resource_id=incident.id,
                severity=rule.severity,
                metadata={
                    "incidentType": rule.incident_type.value,
                    "rule": rule.name,
                    "indicators": len(indicators),
                    "evidence": 1,
                    "automated": True,
                },
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
        )

        logger.warning(
            f"Security incident detected: {incident.id} type={rule.incident_type.value} "
            f"severity={rule.severity.value}"
        )
        return incident

    @staticmethod
    def _assess_impact(incident_type: IncidentType, severity: Severity) -> dict:
        reputational = {Severity.critical: "high", Severity.high: "medium"}.get(severity, "low")
        return {
            "dataExposure": incident_type in (IncidentType.account_takeover, IncidentType.data_breach),
            "serviceDisruption": incident_type == IncidentType.api_abuse,
            "financialImpact": 0,
            "reputationalImpact": reputational,
        }

    async def _process_incident(self, incident: SecurityIncident) -> SecurityIncident:
        severity = Severity(incident.severity)
        response = IncidentResponse()

        if severity in (Severity.high, Severity.critical):
            incident.status = IncidentStatus.investigating
            response.actions = await self._execute_automated_response(incident)
            response.automated = True

        response.notifications = await self._send_incident_notifications(incident)

        if severity == Severity.critical:
            response.escalated = True
            logger.critical(f"Security incident {incident.id} escalated ({incident.type})")

        incident.response = response.model_dump(mode="json")

        async with self.uow_factory() as uow:
            incident = await uow.security_incidents.update(incident)
            await uow.commit()

        if incident.status == IncidentStatus.investigating:
            await self.audit_service.log_security_event(
                SecurityEvent(
                    user_id=incident.user_id,
                    organization_id=incident.organization_id,
                    action="security.incident_status_changed",
                    resource_type="security_incident",
                    resource_id=incident.id,
                    severity=Severity.low,
                    metadata={
                        "status": IncidentStatus.investigating.value,
                        "previousStatus": IncidentStatus.open.value,
                        "automated": True,
                        "actions": [a.type.value for a in response.actions],
                    },
                )
            )

        return incident

    async def _execute_automated_response(self, incident: SecurityIncident) -> List[ResponseAction]:
        actions = []
        for action_type in RESPONSE_PLAYBOOK.get(
            IncidentType(incident.type), [ResponseActionType.alert_admin]
        ):
            try:
                actions.append(await self._execute_response_action(action_type, incident))
            except Exception as e:
                logger.error(f"Failed to execute response action {action_type.value}: {e}")
                actions.append(
                    ResponseAction(
                        type=action_type,
                        description=f"Failed to execute {action_type.value}",
                        executed_at=utcnow(),
                        success=False,
                        details={"error": str(e)},
                    )
                )
        return actions

    async def _execute_response_action(
        self, action_type: ResponseActionType, incident: SecurityIncident
    ) -> ResponseAction:
        now = utcnow()
        user_id = incident.affected_users[0] if incident.affected_users else None

        if action_type == ResponseActionType.block_ip:
            ip_address = next(
                (
                    i["value"]
                    for i in incident.indicators
                    if i.get("type") == IndicatorType.ip_address.value
                ),
                None,
            )
            if ip_address is None:
                raise ValueError("No IP address indicator to block")
            self.threat_intelligence.block_ip(ip_address)
            return ResponseAction(
                type=action_type,
                description="IP address blocked due to suspicious activity",
                executed_at=now,
                success=True,
                details={"ipAddress": ip_address},
            )

        if action_type in (
            ResponseActionType.suspend_account,
            ResponseActionType.force_password_reset,
            ResponseActionType.enable_mfa,
        ):
            if user_id is None:
                raise ValueError(f"No affected user for {action_type.value}")
            # Recorded for the identity provider to act on; it is not called from here
            await self.audit_service.log_security_event(
                SecurityEvent(
                    user_id=user_id,
                    organization_id=incident.organization_id,
                    action=f"security.{action_type.value}_requested",
                    resource_type="user_account",
                    resource_id=user_id,
                    severity=Severity.high,
                    metadata={"incidentId": incident.id, "automated": True},
                )
            )
            descriptions = {
                ResponseActionType.suspend_account: "User account suspended due to security incident",
                ResponseActionType.force_password_reset: "Password reset forced for affected user",
                ResponseActionType.enable_mfa: "Multi-factor authentication enabled for user",
            }
            return ResponseAction(
                type=action_type,
                description=descriptions[action_type],
                executed_at=now,
                success=True,
                details={"userId": user_id},
            )

        if action_type == ResponseActionType.alert_admin:
            return ResponseAction(
                type=action_type,
                description="Security administrators alerted",
                executed_at=now,
                success=True,
                details={"incidentId": incident.id},
            )

        if action_type == ResponseActionType.create_ticket:
            ticket_id = f"TICKET-{int(now.timestamp() * 1000)}"
            logger.info(f"Incident ticket {ticket_id} created for {incident.id}")
            return ResponseAction(
                type=action_type,
                description="Security incident ticket created",
                executed_at=now,
                success=True,
                details={"ticketId": ticket_id},
            )

        raise ValueError(f"Unsupported response action: {action_type.value}")

    async def _send_incident_notifications(
        self, incident: SecurityIncident
    ) -> List[NotificationRecord]:
        severity = Severity(incident.severity)
        channels = OPERATOR_CHANNELS_BY_SEVERITY.get(severity, [OperatorChannelType.email])

        records = []
        for channel in channels:
            recipient = self.recipients.get(channel.value)
            transport = self.operator_transports.get(channel.value)
            if recipient is None or transport is None:
                logger.warning(f"No operator {channel.value} channel configured")
                continue

            try:
                await transport.send(
                    NotificationMessage(
                        recipient=recipient,
                        channel=channel.value,
                        title=f"Security incident {incident.id}",
                        body=(
                            f"{IncidentType(incident.type).value} incident "
                            f"({severity.value}): {incident.description}"
                        ),
                        severity=(
                            NotificationSeverity.critical
                            if severity == Severity.critical
                            else NotificationSeverity.error
                        ),
                    )
                )
            except Exception as e:
                logger.error(f"Failed to notify {recipient} via {channel.value}: {e}")
                continue

            records.append(NotificationRecord(channel=channel, recipient=recipient, sent_at=utcnow()))

        return records
