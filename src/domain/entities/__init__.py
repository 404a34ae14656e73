"""
Security Pipeline Domain Entities

All domain entities organized by model.
Each entity in its own file for better maintainability.
"""

# Export all enums
from .enums import (
    AuditEventType,
    AuditOutcome,
    ComplianceRegulation,
    DeliveryStatus,
    EvidenceType,
    IncidentStatus,
    IncidentType,
    IndicatorType,
    MembershipStatus,
    NotificationChannelType,
    NotificationSeverity,
    OperatorChannelType,
    PatternType,
    ResponseActionType,
    Severity,
)

# Export all entities
from .audit_event import AuditEvent
from .organization import Organization
from .organization_membership import OrganizationMembership
from .security_alert import SecurityAlert
from .security_incident import (
    INCIDENT_TRANSITIONS,
    TERMINAL_INCIDENT_STATUSES,
    Evidence,
    IncidentResponse,
    NotificationRecord,
    ResponseAction,
    SecurityIncident,
    SecurityIndicator,
)
from .notification import (
    NotificationChannel,
    NotificationDelivery,
    NotificationPreferences,
    NotificationTemplate,
)

__all__ = [
    # Enums
    "AuditEventType",
    "AuditOutcome",
    "ComplianceRegulation",
    "DeliveryStatus",
    "EvidenceType",
    "IncidentStatus",
    "IncidentType",
    "IndicatorType",
    "MembershipStatus",
    "NotificationChannelType",
    "NotificationSeverity",
    "OperatorChannelType",
    "PatternType",
    "ResponseActionType",
    "Severity",
    # Entities
    "AuditEvent",
    "Organization",
    "OrganizationMembership",
    "SecurityAlert",
    "SecurityIncident",
    "NotificationPreferences",
    "INCIDENT_TRANSITIONS",
    "TERMINAL_INCIDENT_STATUSES",
    # Value objects
    "Evidence",
    "IncidentResponse",
    "NotificationChannel",
    "NotificationDelivery",
    "NotificationRecord",
    "NotificationTemplate",
    "ResponseAction",
    "SecurityIndicator",
]
