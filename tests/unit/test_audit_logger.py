import logging
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.services.audit_logger import (
    SecurityAuditLogger,
    audit_action_for,
    calculate_risk_score,
    compliance_flags_for,
    determine_severity,
    suspicious_indicators,
)
from src.app.services.dtos import RequestContext, ThreatIntelligence
from src.app.services.incident_detector import SecurityIncidentDetector
from src.app.services.threat_intelligence import StaticThreatIntelligence
from src.domain.entities import AuditEventType, AuditOutcome, ComplianceRegulation, Severity

KNOWN_BAD_IP = "185.220.101.4"
NOON = datetime(2024, 6, 3, 12, 0, 0)
NIGHT = datetime(2024, 6, 3, 3, 0, 0)


@pytest.fixture
def detector():
    detector = MagicMock(spec=SecurityIncidentDetector)
    detector.analyze_auth_event = AsyncMock(return_value=[])
    return detector


@pytest.fixture
def audit_logger(event_bus, detector):
    threat_intelligence = StaticThreatIntelligence(denylist=["185.220.101.0/24"])
    return SecurityAuditLogger(event_bus, threat_intelligence, detector, clock=lambda: NOON)


def test_risk_score_accumulates_and_caps():
    malicious = ThreatIntelligence(ip_reputation="malicious", known_attacker=True)

    assert calculate_risk_score(AuditEventType.api_request, AuditOutcome.success, {}) == 1
    assert (
        calculate_risk_score(AuditEventType.authentication_failure, AuditOutcome.failure, {}, malicious)
        == 9
    )
    assert (
        calculate_risk_score(
            AuditEventType.authentication_success,
            AuditOutcome.success,
            {"newDevice": True, "unusualLocation": True},
        )
        == 4
    )
    assert calculate_risk_score(AuditEventType.brute_force_attempt, AuditOutcome.failure, {}) == 10

    bot_on_tor = ThreatIntelligence(bot_detection="bot", tor_detection=True, vpn_detection=True)
    assert calculate_risk_score(AuditEventType.logout, AuditOutcome.blocked, {}, bot_on_tor) == 8


def test_severity_from_type_outcome_and_risk():
    assert determine_severity(AuditEventType.privilege_escalation, AuditOutcome.success, 1) == Severity.critical
    assert determine_severity(AuditEventType.api_request, AuditOutcome.success, 9) == Severity.critical
    assert determine_severity(AuditEventType.suspicious_activity, AuditOutcome.success, 1) == Severity.high
    assert determine_severity(AuditEventType.api_request, AuditOutcome.success, 7) == Severity.high
    assert determine_severity(AuditEventType.api_request, AuditOutcome.failure, 1) == Severity.medium
    assert determine_severity(AuditEventType.api_request, AuditOutcome.success, 3) == Severity.low


def test_compliance_flags():
    (gdpr,) = compliance_flags_for(AuditEventType.data_export, {})
    assert gdpr.regulation == ComplianceRegulation.gdpr
    assert gdpr.status == "compliant"

    (sox,) = compliance_flags_for(AuditEventType.privilege_escalation, {})
    assert sox.regulation == ComplianceRegulation.sox

    (pci,) = compliance_flags_for(AuditEventType.api_request, {"cardData": True})
    assert pci.regulation == ComplianceRegulation.pci_dss

    assert compliance_flags_for(AuditEventType.logout, {}) == []


def test_action_taxonomy():
    assert audit_action_for(AuditEventType.authentication_failure) == "auth.login_failed"
    assert audit_action_for(AuditEventType.account_locked) == "user.locked"
    assert audit_action_for(AuditEventType.session_created) == "auth.session_created"
    assert audit_action_for(AuditEventType.mfa_enabled) == "auth.mfa_enabled"
    assert audit_action_for(AuditEventType.brute_force_attempt) == "security.brute_force_attempt"


@pytest.mark.asyncio
async def test_low_risk_event_is_deferred(audit_logger, event_bus, mock_uow):
    event = await audit_logger.log_auth_event(
        AuditEventType.api_request, "GET /projects", AuditOutcome.success, user_id="user_1"
    )

    assert event.action == "api.request"
    assert event.resource_type == "api"
    assert event.severity == "low"
    assert event_bus.pending == 1
    mock_uow.audit_events.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_authentication_failure_is_written_immediately(audit_logger, event_bus, written_events):
    context = RequestContext(
        ip_address="10.0.0.5", user_agent="curl/8", request_id="req_1", correlation_id="corr_1"
    )

    event = await audit_logger.log_auth_event(
        AuditEventType.authentication_failure,
        "password_login",
        AuditOutcome.failure,
        {"reason": "bad password"},
        user_id="user_1",
        session_id="sess_1",
        context=context,
    )

    assert written_events() == [event]
    assert event_bus.pending == 0

    metadata = event.event_metadata
    assert metadata["eventId"].startswith("audit_")
    assert metadata["source"] == "audit-logger"
    assert metadata["eventType"] == "authentication_failure"
    assert metadata["operation"] == "password_login"
    assert metadata["threatScore"] == 5
    assert metadata["severity"] == "medium"
    assert metadata["requestId"] == "req_1"
    assert metadata["correlationId"] == "corr_1"
    assert metadata["sessionId"] == "sess_1"
    assert metadata["details"] == {"reason": "bad password"}
    # Private addresses are always clean
    assert metadata["threatIntelligence"]["ip_reputation"] == "clean"
    assert event.ip_address == "10.0.0.5"


@pytest.mark.asyncio
async def test_known_bad_ip_raises_risk_and_warns(audit_logger, written_events, caplog):
    with caplog.at_level(logging.WARNING):
        event = await audit_logger.log_auth_event(
            AuditEventType.api_request,
            "GET /admin",
            AuditOutcome.success,
            context=RequestContext(ip_address=KNOWN_BAD_IP),
        )

    assert event.event_metadata["threatScore"] == 5
    assert event.event_metadata["threatIntelligence"]["known_attacker"] is True
    # The request itself is batched; only the suspicious_activity incident is written
    (incident_event,) = written_events()
    assert incident_event.event_metadata["operation"] == "suspicious_activity"

    with caplog.at_level(logging.WARNING):
        event = await audit_logger.log_auth_event(
            AuditEventType.authentication_failure,
            "password_login",
            AuditOutcome.failure,
            context=RequestContext(ip_address=KNOWN_BAD_IP),
        )

    assert event.event_metadata["threatScore"] == 9
    assert event.severity == "critical"
    assert "Security alert: authentication_failure (critical)" in caplog.text
    assert "Incident review required" in caplog.text


@pytest.mark.asyncio
async def test_logged_event_is_handed_to_detector(audit_logger, detector):
    event = await audit_logger.log_auth_event(
        AuditEventType.authentication_success,
        "password_login",
        AuditOutcome.success,
        {"deviceFingerprint": "fp_1"},
        user_id="user_1",
        context=RequestContext(ip_address="10.0.0.5", user_agent="Firefox"),
        organization_id="org_1",
    )

    context = detector.analyze_auth_event.await_args.args[0]
    assert context.event_type == AuditEventType.authentication_success
    assert context.event_id == event.event_metadata["eventId"]
    assert context.user_id == "user_1"
    assert context.organization_id == "org_1"
    assert context.ip_address == "10.0.0.5"
    assert context.metadata == {"deviceFingerprint": "fp_1"}


@pytest.mark.asyncio
async def test_security_incident_is_critical_and_not_reanalyzed(audit_logger, detector, written_events):
    event = await audit_logger.log_security_incident(
        "brute_force", Severity.high, {"attempts": 12}, user_id="user_1"
    )

    detector.analyze_auth_event.assert_not_awaited()
    assert written_events() == [event]
    assert event.action == "security.security_incident"
    assert event.severity == "critical"

    metadata = event.event_metadata
    assert metadata["outcome"] == "blocked"
    assert metadata["operation"] == "brute_force"
    assert metadata["details"] == {
        "attempts": 12,
        "incidentType": "brute_force",
        "reportedSeverity": "high",
        "automated": True,
    }


@pytest.mark.asyncio
async def test_account_event_uses_user_namespace(audit_logger):
    event = await audit_logger.log_account_event(
        AuditEventType.account_locked, "lock", AuditOutcome.success, user_id="user_1"
    )

    assert event.action == "user.locked"
    assert event.resource_type == "user_account"
    assert event.resource_id == "user_1"
    assert event.event_metadata["threatScore"] == 6


@pytest.mark.asyncio
async def test_store_failure_returns_none(audit_logger, mock_uow, detector, caplog):
    mock_uow.audit_events.create.side_effect = RuntimeError("db down")

    with caplog.at_level(logging.ERROR):
        event = await audit_logger.log_auth_event(
            AuditEventType.authentication_failure, "password_login", AuditOutcome.failure
        )

    assert event is None
    detector.analyze_auth_event.assert_not_awaited()
    assert "Failed to log audit event authentication_failure:password_login" in caplog.text


@pytest.mark.asyncio
async def test_detector_failure_does_not_lose_event(audit_logger, detector, written_events, caplog):
    detector.analyze_auth_event.side_effect = RuntimeError("rule crashed")

    with caplog.at_level(logging.ERROR):
        event = await audit_logger.log_auth_event(
            AuditEventType.authentication_failure, "password_login", AuditOutcome.failure
        )

    assert written_events() == [event]
    assert "Incident analysis failed" in caplog.text


@pytest.mark.asyncio
async def test_critical_event_logs_at_critical_level(audit_logger, caplog):
    with caplog.at_level(logging.DEBUG):
        await audit_logger.log_auth_event(
            AuditEventType.privilege_escalation, "role_change", AuditOutcome.success, user_id="user_1"
        )

    critical = [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert len(critical) == 1
    assert "privilege_escalation" in critical[0].getMessage()


@pytest.mark.asyncio
async def test_high_event_is_not_logged_as_critical(audit_logger, caplog):
    with caplog.at_level(logging.DEBUG):
        await audit_logger.log_auth_event(
            AuditEventType.unauthorized_access_attempt, "GET /admin", AuditOutcome.success
        )

    assert not [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert "Incident review required" in caplog.text


def test_suspicious_indicators():
    flagged = {"ip_reputation": "malicious", "bot_detection": "bot", "tor_detection": True}

    assert suspicious_indicators(None, {}, NOON) == []
    assert suspicious_indicators(flagged, {"rapidActions": True}, NIGHT) == [
        "malicious_ip",
        "bot_detected",
        "tor_usage",
        "unusual_time",
        "rapid_actions",
    ]
    assert suspicious_indicators(None, {}, datetime(2024, 6, 3, 22, 59)) == []
    assert suspicious_indicators(None, {}, datetime(2024, 6, 3, 23, 0)) == ["unusual_time"]


@pytest.mark.asyncio
async def test_no_indicators_raise_no_suspicious_activity(audit_logger, written_events):
    await audit_logger.log_auth_event(
        AuditEventType.authentication_success,
        "password_login",
        AuditOutcome.success,
        user_id="user_1",
        context=RequestContext(ip_address="10.0.0.5"),
    )

    assert [e.event_metadata["eventType"] for e in written_events()] == ["authentication_success"]


@pytest.mark.asyncio
async def test_single_indicator_raises_medium_suspicious_activity(audit_logger, written_events):
    await audit_logger.log_auth_event(
        AuditEventType.authentication_success,
        "password_login",
        AuditOutcome.success,
        {"rapidActions": True},
        user_id="user_1",
    )

    login, incident_event = written_events()
    assert login.event_metadata["eventType"] == "authentication_success"
    assert incident_event.action == "security.security_incident"
    assert incident_event.user_id == "user_1"
    details = incident_event.event_metadata["details"]
    assert details["indicators"] == ["rapid_actions"]
    assert details["riskScore"] == login.event_metadata["threatScore"]
    assert details["reportedSeverity"] == "medium"


@pytest.mark.asyncio
async def test_three_indicators_raise_high_suspicious_activity(event_bus, detector, written_events):
    threat_intelligence = StaticThreatIntelligence(
        denylist=["185.220.101.0/24"], tor_exit_nodes=["185.220.101.0/24"]
    )
    night_logger = SecurityAuditLogger(event_bus, threat_intelligence, detector, clock=lambda: NIGHT)

    await night_logger.log_auth_event(
        AuditEventType.authentication_success,
        "password_login",
        AuditOutcome.success,
        user_id="user_1",
        context=RequestContext(ip_address=KNOWN_BAD_IP),
    )

    _, incident_event = written_events()
    details = incident_event.event_metadata["details"]
    assert details["indicators"] == ["malicious_ip", "tor_usage", "unusual_time"]
    assert details["reportedSeverity"] == "high"
    # The incident record itself is not checked again
    assert detector.analyze_auth_event.await_count == 1
