from datetime import timedelta

import pytest

from src.app.errors import AlertNotFoundError, DatabaseError
from src.app.services.dtos import SecurityAlertCreate
from src.app.services.security_monitoring_service import (
    SecurityMonitoringService,
    alert_severity_for,
    round_half_up,
)
from src.app.services.security_notification_service import SecurityNotificationService
from src.domain.base import utcnow
from src.domain.entities import AuditEvent, PatternType, SecurityAlert, Severity


@pytest.fixture
def notification_service(audit_service, uow_factory, transports):
    return SecurityNotificationService(audit_service, uow_factory, transports)


@pytest.fixture
def monitoring_service(audit_service, notification_service, uow_factory):
    return SecurityMonitoringService(audit_service, notification_service, uow_factory)


def audit_event(action, minutes_ago=0, ip_address=None, **metadata):
    created_at = utcnow() - timedelta(minutes=minutes_ago)
    return AuditEvent(
        user_id="user_1",
        action=action,
        resource_type="authentication",
        ip_address=ip_address,
        event_metadata={"severity": "low", **metadata},
        created_at=created_at,
        updated_at=created_at,
    )


def failed_logins(count, minutes_ago=1, ip_address="203.0.113.7"):
    return [audit_event("auth.login_failed", minutes_ago, ip_address) for _ in range(count)]


@pytest.mark.asyncio
async def test_detects_multiple_failed_logins(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(5)

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert result.detected is True
    assert [p.type for p in result.patterns] == [PatternType.multiple_failed_logins]
    assert result.risk_score == 30
    assert "Enable multi-factor authentication" in result.recommendations


@pytest.mark.asyncio
async def test_each_pattern_uses_its_own_window(monitoring_service, mock_uow):
    # Ten failures 8 minutes ago: inside the 15 minute window, outside the 5 minute one
    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(10, minutes_ago=8)

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert [p.type for p in result.patterns] == [PatternType.multiple_failed_logins]


@pytest.mark.asyncio
async def test_brute_force_and_failed_logins_sum_risk(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(10)

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert {p.type for p in result.patterns} == {
        PatternType.multiple_failed_logins,
        PatternType.brute_force,
    }
    assert result.risk_score == 90
    # Shared recommendations are not repeated
    assert len(result.recommendations) == len(set(result.recommendations))


@pytest.mark.asyncio
async def test_risk_score_is_capped_at_100(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(10) + [
        audit_event("tenant.isolation_violation")
    ]

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert result.risk_score == 100


@pytest.mark.asyncio
async def test_account_takeover_requires_foreign_failed_ip(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.return_value = [
        audit_event("auth.login_failed", 2, "198.51.100.1"),
        audit_event("auth.login_failed", 2, "198.51.100.2"),
        audit_event("auth.login", 1, "198.51.100.9"),
    ]

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert PatternType.account_takeover in [p.type for p in result.patterns]


@pytest.mark.asyncio
async def test_account_takeover_not_detected_from_same_ips(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.return_value = [
        audit_event("auth.login_failed", 2, "198.51.100.1"),
        audit_event("auth.login_failed", 2, "198.51.100.2"),
        audit_event("auth.login", 1, "198.51.100.1"),
        audit_event("auth.login", 1, "198.51.100.2"),
    ]

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert result.detected is False


@pytest.mark.asyncio
async def test_detection_fails_open(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.side_effect = RuntimeError("db down")

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert result.detected is False
    assert result.risk_score == 0


@pytest.mark.asyncio
async def test_monitor_failed_logins_creates_alert(monitoring_service, mock_uow, written_actions):
    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(5)

    await monitoring_service.monitor_authentication_event(
        "user_1", "login_failed", {"reason": "bad password"}, "203.0.113.7", "curl/8"
    )

    actions = written_actions()
    assert actions[0] == "auth.login_failed"
    assert "security.alert_created" in actions
    # risk 30 notifies the user but does not log suspicious_activity_detected
    assert "security.suspicious_activity_detected" not in actions
    assert "security.notification_sent" in actions

    alert = mock_uow.security_alerts.create.await_args.args[0]
    assert alert.severity == Severity.medium
    assert alert.id.startswith("alert_")
    assert alert.alert_metadata["patterns"] == ["multiple_failed_logins"]


@pytest.mark.asyncio
async def test_critical_risk_locks_account(monitoring_service, mock_uow, written_actions, transports):
    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(10)

    await monitoring_service.monitor_authentication_event("user_1", "login_failed")

    actions = written_actions()
    assert "security.suspicious_activity_detected" in actions
    assert "security.account_locked" in actions
    subjects = [m.subject for m in transports["email"].sent]
    assert "Your C9d.ai account has been temporarily locked" in subjects


@pytest.mark.asyncio
async def test_mfa_event_is_logged_as_token_refresh(monitoring_service, written_events):
    await monitoring_service.monitor_authentication_event("user_1", "mfa_enabled")

    first = written_events()[0]
    assert first.action == "auth.token_refresh"
    assert first.event_metadata["mfaEvent"] == "mfa_enabled"


@pytest.mark.asyncio
async def test_password_change_notifies_user(monitoring_service, transports):
    await monitoring_service.monitor_authentication_event(
        "user_1", "password_change", ip_address="198.51.100.4"
    )

    (email,) = transports["email"].sent
    assert email.subject == "Your C9d.ai password has been changed"


@pytest.mark.asyncio
async def test_new_device_login_notification_uses_formatted_variables(monitoring_service, transports):
    await monitoring_service.monitor_authentication_event(
        "user_1",
        "login",
        {
            "newDevice": True,
            "deviceInfo": {"type": "mobile", "os": "iOS", "browser": "Safari"},
            "location": {"city": "Lyon", "country": "FR"},
        },
        "198.51.100.4",
    )

    (in_app,) = transports["in_app"].sent
    assert in_app.body == "Login from new device: mobile - iOS - Safari"
    (email,) = transports["email"].sent
    assert "from Lyon, FR" in email.body


@pytest.mark.asyncio
async def test_monitoring_never_raises(monitoring_service, mock_uow):
    mock_uow.audit_events.create.side_effect = RuntimeError("db down")
    mock_uow.audit_events.get_audit_logs.side_effect = RuntimeError("db down")

    await monitoring_service.monitor_authentication_event("user_1", "password_change")


@pytest.mark.asyncio
async def test_create_security_alert_propagates_failure(monitoring_service, mock_uow):
    mock_uow.security_alerts.create.side_effect = RuntimeError("db down")

    with pytest.raises(DatabaseError) as exc_info:
        await monitoring_service.create_security_alert(
            SecurityAlertCreate(
                user_id="user_1",
                alert_type="manual",
                severity=Severity.high,
                title="Manual alert",
                description="Raised by an operator",
            )
        )

    assert exc_info.value.code == "CREATE_ALERT_ERROR"


@pytest.mark.asyncio
async def test_resolve_security_alert(monitoring_service, mock_uow, written_events):
    mock_uow.security_alerts.get_by_id.return_value = SecurityAlert(
        id="alert_1",
        user_id="user_1",
        alert_type="suspicious_activity",
        severity=Severity.high,
        title="Suspicious",
    )

    alert = await monitoring_service.resolve_security_alert("alert_1", "admin_1", "checked")

    assert alert.is_resolved is True
    assert alert.resolved_by == "admin_1"
    assert alert.resolved_at is not None
    (event,) = written_events()
    assert event.action == "security.incident_resolved"
    assert event.resource_type == "security_alert"
    assert event.event_metadata["notes"] == "checked"


@pytest.mark.asyncio
async def test_resolve_already_resolved_alert_is_noop(monitoring_service, mock_uow, written_events):
    mock_uow.security_alerts.get_by_id.return_value = SecurityAlert(
        id="alert_1",
        user_id="user_1",
        alert_type="suspicious_activity",
        severity=Severity.high,
        title="Suspicious",
        is_resolved=True,
        resolved_by="admin_0",
    )

    alert = await monitoring_service.resolve_security_alert("alert_1", "admin_1")

    assert alert.resolved_by == "admin_0"
    mock_uow.security_alerts.update.assert_not_awaited()
    assert written_events() == []


@pytest.mark.asyncio
async def test_resolve_unknown_alert_raises_not_found(monitoring_service):
    with pytest.raises(AlertNotFoundError):
        await monitoring_service.resolve_security_alert("alert_missing", "admin_1")


@pytest.mark.asyncio
async def test_get_security_alerts_propagates_failure(monitoring_service, mock_uow):
    mock_uow.security_alerts.list.side_effect = RuntimeError("db down")

    with pytest.raises(DatabaseError) as exc_info:
        await monitoring_service.get_security_alerts()

    assert exc_info.value.code == "GET_SECURITY_ALERTS_ERROR"


@pytest.mark.asyncio
async def test_security_metrics(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.return_value = [
        audit_event("security.suspicious_activity_detected", riskScore=90, severity="critical"),
        audit_event("security.alert_created", riskScore=30),
        audit_event("security.alert_created", riskScore=60),
        audit_event("security.account_locked"),
        audit_event("tenant.isolation_violation"),
        audit_event("auth.login_failed"),
        audit_event("data.read"),
    ]

    metrics = await monitoring_service.get_security_metrics("org_1", days=7)

    assert metrics.total_events == 7
    assert metrics.alerts_generated == 3
    assert metrics.suspicious_activities == 1
    assert metrics.blocked_attempts == 2
    assert metrics.average_risk_score == 60
    assert metrics.top_threats[0].type == "security.alert_created"
    assert metrics.top_threats[0].count == 2
    assert len(metrics.top_threats) == 4


@pytest.mark.asyncio
async def test_security_metrics_zeroed_on_error(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.side_effect = RuntimeError("db down")

    metrics = await monitoring_service.get_security_metrics()

    assert metrics.total_events == 0
    assert metrics.top_threats == []


@pytest.mark.asyncio
async def test_metrics_use_configured_scan_limit(audit_service, notification_service, uow_factory, mock_uow):
    service = SecurityMonitoringService(
        audit_service, notification_service, uow_factory, metrics_scan_limit=250
    )

    await service.get_security_metrics()

    assert mock_uow.audit_events.get_audit_logs.await_args.args[0].limit == 250


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4) == 2


def test_alert_severity_thresholds():
    assert alert_severity_for(80) == Severity.critical
    assert alert_severity_for(60) == Severity.high
    assert alert_severity_for(30) == Severity.medium
    assert alert_severity_for(29) == Severity.low


@pytest.mark.asyncio
async def test_four_failed_logins_stay_below_threshold(monitoring_service, mock_uow):
    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(4)

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert result.detected is False
    assert result.patterns == []
    assert result.risk_score == 0

    mock_uow.audit_events.get_audit_logs.return_value = failed_logins(5)

    result = await monitoring_service.detect_suspicious_activity("user_1")

    assert result.detected is True
