"""
Security Pipeline Domain Enums

All enumeration types used across domain entities.
"""

from enum import Enum


class Severity(str, Enum):
    """Audit severity vocabulary shared with dashboards"""

    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class NotificationSeverity(str, Enum):
    """Severity of a user-facing notification"""

    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class NotificationChannelType(str, Enum):
    """User notification channels"""

    email = "email"
    in_app = "in_app"
    sms = "sms"
    push = "push"


class OperatorChannelType(str, Enum):
    """Channels used to reach the security team"""

    email = "email"
    sms = "sms"
    slack = "slack"
    pagerduty = "pagerduty"
    webhook = "webhook"


class DeliveryStatus(str, Enum):
    """Per-channel notification delivery status"""

    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    failed = "failed"
    bounced = "bounced"


class PatternType(str, Enum):
    """Suspicious activity patterns evaluated by the monitoring service"""

    multiple_failed_logins = "multiple_failed_logins"
    brute_force = "brute_force"
    unusual_access_pattern = "unusual_access_pattern"
    permission_escalation = "permission_escalation"
    tenant_violation = "tenant_violation"
    account_takeover = "account_takeover"


class IncidentType(str, Enum):
    """Security incident categories"""

    brute_force = "brute_force"
    account_takeover = "account_takeover"
    credential_stuffing = "credential_stuffing"
    suspicious_login = "suspicious_login"
    privilege_escalation = "privilege_escalation"
    data_breach = "data_breach"
    api_abuse = "api_abuse"


class IncidentStatus(str, Enum):
    """Security incident lifecycle state; ``open`` is the detected state"""

    open = "open"
    investigating = "investigating"
    contained = "contained"
    resolved = "resolved"
    false_positive = "false_positive"


class ResponseActionType(str, Enum):
    """Automated incident response actions"""

    block_ip = "block_ip"
    suspend_account = "suspend_account"
    force_password_reset = "force_password_reset"
    enable_mfa = "enable_mfa"
    alert_admin = "alert_admin"
    create_ticket = "create_ticket"


class IndicatorType(str, Enum):
    """Indicator of compromise kinds"""

    ip_address = "ip_address"
    user_agent = "user_agent"
    email_address = "email_address"
    behavior_pattern = "behavior_pattern"


class EvidenceType(str, Enum):
    """Evidence kinds attached to incidents"""

    log_entry = "log_entry"
    api_request = "api_request"


class AuditEventType(str, Enum):
    """Event types understood by the enriched audit logger"""

    authentication_attempt = "authentication_attempt"
    authentication_success = "authentication_success"
    authentication_failure = "authentication_failure"
    logout = "logout"
    session_created = "session_created"
    session_expired = "session_expired"
    session_terminated = "session_terminated"
    account_created = "account_created"
    account_updated = "account_updated"
    account_deleted = "account_deleted"
    account_locked = "account_locked"
    account_unlocked = "account_unlocked"
    account_suspended = "account_suspended"
    password_changed = "password_changed"
    password_reset_requested = "password_reset_requested"
    password_reset_completed = "password_reset_completed"
    mfa_enabled = "mfa_enabled"
    mfa_disabled = "mfa_disabled"
    mfa_challenge_failure = "mfa_challenge_failure"
    suspicious_activity = "suspicious_activity"
    brute_force_attempt = "brute_force_attempt"
    account_takeover_attempt = "account_takeover_attempt"
    privilege_escalation = "privilege_escalation"
    unauthorized_access_attempt = "unauthorized_access_attempt"
    sensitive_data_access = "sensitive_data_access"
    data_export = "data_export"
    data_deletion = "data_deletion"
    api_request = "api_request"
    security_incident = "security_incident"


class AuditOutcome(str, Enum):
    """Outcome of an audited action"""

    success = "success"
    failure = "failure"
    blocked = "blocked"
    pending = "pending"


class ComplianceRegulation(str, Enum):
    """Regulations referenced by compliance flags"""

    gdpr = "gdpr"
    sox = "sox"
    pci_dss = "pci_dss"


class MembershipStatus(str, Enum):
    """Organization membership status"""

    active = "active"
    invited = "invited"
    revoked = "revoked"
