"""
SecurityIncident Entity

Tracked security incident with its investigation lifecycle.
"""

import hashlib
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlmodel import Column, DateTime, Field, Index, JSON, SQLModel

from src.domain.base import utcnow

from .enums import (
    EvidenceType,
    IncidentStatus,
    IncidentType,
    IndicatorType,
    OperatorChannelType,
    ResponseActionType,
    Severity,
)

INCIDENT_TRANSITIONS: Dict[IncidentStatus, set] = {
    IncidentStatus.open: {
        IncidentStatus.investigating,
        IncidentStatus.contained,
        IncidentStatus.resolved,
        IncidentStatus.false_positive,
    },
    IncidentStatus.investigating: {
        IncidentStatus.contained,
        IncidentStatus.resolved,
        IncidentStatus.false_positive,
    },
    IncidentStatus.contained: {
        IncidentStatus.resolved,
        IncidentStatus.false_positive,
    },
    IncidentStatus.resolved: set(),
    IncidentStatus.false_positive: set(),
}

TERMINAL_INCIDENT_STATUSES = {IncidentStatus.resolved, IncidentStatus.false_positive}


class SecurityIndicator(BaseModel):
    type: IndicatorType
    value: str
    confidence: float
    source: str
    first_seen: datetime
    last_seen: datetime
    count: int = 1


class Evidence(BaseModel):
    type: EvidenceType
    data: Dict[str, Any]
    timestamp: datetime
    source: str
    hash: str

    @classmethod
    def capture(cls, type: EvidenceType, data: Dict[str, Any], source: str) -> "Evidence":
        """Snapshot data with a sha256 of its canonical JSON form"""
        canonical = json.dumps(data, sort_keys=True, default=str)
        return cls(
            type=type,
            data=data,
            timestamp=utcnow(),
            source=source,
            hash=hashlib.sha256(canonical.encode()).hexdigest(),
        )


class ResponseAction(BaseModel):
    type: ResponseActionType
    description: str
    executed_at: datetime
    success: bool
    details: Dict[str, Any] = {}


class NotificationRecord(BaseModel):
    channel: OperatorChannelType
    recipient: str
    sent_at: datetime
    acknowledged: bool = False


class IncidentResponse(BaseModel):
    actions: List[ResponseAction] = []
    automated: bool = False
    escalated: bool = False
    notifications: List[NotificationRecord] = []


class SecurityIncident(SQLModel, table=True):
    """
    SecurityIncident entity - incident under investigation.

    Business Rules:
    - Lifecycle: open (detected) -> investigating -> (contained) -> resolved | false_positive
    - resolved and false_positive are terminal
    - affected_users holds unique user ids
    - indicators/evidence/response are stored as JSON documents
    - Every lifecycle transition is also written to the audit log
    """

    __tablename__ = "security_incidents"

    id: str = Field(primary_key=True, max_length=64)

    type: IncidentType = Field(nullable=False)
    severity: Severity = Field(nullable=False)
    status: IncidentStatus = Field(default=IncidentStatus.open)

    user_id: Optional[str] = Field(default=None, index=True, max_length=255)
    organization_id: Optional[str] = Field(default=None, index=True, max_length=255)
    description: str = Field(default="")

    affected_users: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    indicators: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    evidence: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    response: dict = Field(
        default_factory=lambda: IncidentResponse().model_dump(mode="json"),
        sa_column=Column(JSON),
    )
    actions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    incident_metadata: dict = Field(default_factory=dict, sa_column=Column(JSON))

    resolved_by: Optional[str] = Field(default=None, max_length=255)
    resolution_notes: Optional[str] = None

    # Timestamps
    detected_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime))
    resolved_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))

    __table_args__ = (
        Index("idx_incident_status", "status"),
        Index("idx_incident_detected_at", "detected_at"),
    )

    def can_transition_to(self, status: IncidentStatus) -> bool:
        return status in INCIDENT_TRANSITIONS[IncidentStatus(self.status)]

    @property
    def is_terminal(self) -> bool:
        return IncidentStatus(self.status) in TERMINAL_INCIDENT_STATUSES
