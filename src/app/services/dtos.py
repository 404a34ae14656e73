"""
Security Pipeline DTOs (Data Transfer Objects)

Command, query and result classes shared by the security services.
Provides type safety and clear contracts between layers.

Metadata dictionaries keep the camelCase keys dashboards already read
(severity, eventId, riskScore, sessionId, ...).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.domain.entities import (
    AuditEvent,
    AuditEventType,
    ComplianceRegulation,
    IncidentType,
    NotificationSeverity,
    PatternType,
    Severity,
)


# ============================================================================
# Audit DTOs
# ============================================================================


class SecurityEvent(BaseModel):
    """One security-relevant action to record"""

    action: str
    resource_type: str
    severity: Severity
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: Optional[datetime] = None


class SecurityEventFilter(BaseModel):
    """Filter for get_security_events"""

    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    action: Optional[str] = None  # substring match
    resource_type: Optional[str] = None
    severity: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = 100
    offset: int = 0

    @field_validator("start_date", "end_date")
    @classmethod
    def as_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Stored timestamps are naive UTC
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class TenantIsolationViolation(BaseModel):
    """Cross-tenant access attempt"""

    user_id: str
    attempted_organization_id: str
    actual_organization_ids: List[str]
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SecuritySummary(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    total_events: int
    events_by_type: Dict[str, int]
    events_by_severity: Dict[str, int]
    recent_high_severity_events: List[AuditEvent]


class AuditSuspiciousActivity(BaseModel):
    """Coarse 24h heuristic result of the audit service"""

    suspicious_patterns: List[str] = Field(default_factory=list)
    risk_score: int = 0
    recommendations: List[str] = Field(default_factory=list)


# ============================================================================
# Monitoring DTOs
# ============================================================================


class SuspiciousActivityPattern(BaseModel):
    """Static catalog entry; immutable"""

    model_config = ConfigDict(frozen=True)

    type: PatternType
    severity: Severity
    description: str
    threshold: int
    time_window: int  # minutes
    risk_score: int


class SuspiciousActivityResult(BaseModel):
    detected: bool = False
    patterns: List[SuspiciousActivityPattern] = Field(default_factory=list)
    risk_score: int = 0
    recommendations: List[str] = Field(default_factory=list)


class SecurityAlertCreate(BaseModel):
    user_id: str
    alert_type: str
    severity: Severity
    title: str
    description: str
    organization_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ThreatCount(BaseModel):
    type: str
    count: int
    severity: str


class SecurityMetrics(BaseModel):
    total_events: int = 0
    alerts_generated: int = 0
    suspicious_activities: int = 0
    blocked_attempts: int = 0
    average_risk_score: int = 0
    top_threats: List[ThreatCount] = Field(default_factory=list)


# ============================================================================
# Notification DTOs
# ============================================================================


class SecurityNotificationRequest(BaseModel):
    user_id: str
    type: str
    title: str
    message: str
    severity: NotificationSeverity
    channels: Optional[List[str]] = None
    variables: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    organization_id: Optional[str] = None


class NotificationPreferencesUpdate(BaseModel):
    """Partial update; omitted fields keep their current value"""

    channels: Optional[List[Dict[str, Any]]] = None
    security_alerts: Optional[bool] = None
    login_notifications: Optional[bool] = None
    password_changes: Optional[bool] = None
    device_changes: Optional[bool] = None
    suspicious_activity: Optional[bool] = None
    account_locks: Optional[bool] = None


class NotificationMessage(BaseModel):
    """Rendered message handed to a transport; recipient is a user id or an operator address"""

    recipient: str
    channel: str
    title: str
    body: str
    severity: NotificationSeverity
    subject: Optional[str] = None


# ============================================================================
# Event tracking DTOs
# ============================================================================


class DeviceInfo(BaseModel):
    type: Literal["desktop", "mobile", "tablet"]
    os: Optional[str] = None
    browser: Optional[str] = None
    version: Optional[str] = None


class Location(BaseModel):
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    timezone: Optional[str] = None


class SecurityEventContext(BaseModel):
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_info: Optional[DeviceInfo] = None
    location: Optional[Location] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IdentityWebhookEvent(BaseModel):
    """Identity provider webhook envelope"""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class AuthenticationEventData(BaseModel):
    event_type: Literal[
        "sign_in",
        "sign_out",
        "sign_up",
        "session_created",
        "session_ended",
        "password_reset",
        "email_verification",
    ]
    user_id: str
    success: bool
    method: Optional[str] = None
    failure_reason: Optional[str] = None
    context: SecurityEventContext = Field(default_factory=SecurityEventContext)


class SecurityIncidentCreate(BaseModel):
    type: IncidentType
    severity: Severity
    description: str
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    evidence: Dict[str, Any] = Field(default_factory=dict)
    actions: List[str] = Field(default_factory=list)


# ============================================================================
# Enriched audit logger DTOs
# ============================================================================


class ThreatIntelligence(BaseModel):
    ip_reputation: Literal["clean", "suspicious", "malicious"] = "clean"
    known_attacker: bool = False
    bot_detection: Literal["human", "bot", "suspicious"] = "human"
    vpn_detection: bool = False
    tor_detection: bool = False


class ComplianceFlag(BaseModel):
    regulation: ComplianceRegulation
    requirement: str
    status: Literal["compliant", "non_compliant", "requires_review"]
    details: Optional[str] = None


class RequestContext(BaseModel):
    """Per-request facts supplied by the HTTP layer"""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    resource: Optional[str] = None
    request_id: Optional[str] = None
    correlation_id: Optional[str] = None
    geolocation: Optional[Location] = None
    device_fingerprint: Optional[str] = None


class DetectionContext(BaseModel):
    """One logged event as seen by the incident detection rules"""

    event_type: AuditEventType
    event_id: Optional[str] = None
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    geolocation: Optional[Location] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
