"""
SecurityAlert Entity

Alert raised when suspicious activity crosses a risk threshold.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Column, DateTime, Field, Index, JSON, SQLModel

from src.domain.base import utcnow

from .enums import Severity


class SecurityAlert(SQLModel, table=True):
    """
    SecurityAlert entity - alert derived from behavioral correlation.

    Business Rules:
    - Lifecycle: created -> resolved (no other transitions)
    - Every transition is also written to the audit log
      (security.alert_created, security.incident_resolved)
    - id format: alert_<epoch ms>_<random>
    """

    __tablename__ = "security_alerts"

    id: str = Field(primary_key=True, max_length=64)

    user_id: str = Field(index=True, max_length=255)
    organization_id: Optional[str] = Field(default=None, index=True, max_length=255)

    alert_type: str = Field(max_length=100)
    severity: Severity = Field(nullable=False)
    title: str = Field(max_length=255)
    description: str = Field(default="")
    alert_metadata: dict = Field(default_factory=dict, sa_column=Column(JSON))

    is_resolved: bool = Field(default=False)
    resolved_by: Optional[str] = Field(default=None, max_length=255)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime))
    resolved_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))

    __table_args__ = (
        Index("idx_alert_resolved", "is_resolved"),
        Index("idx_alert_created_at", "created_at"),
    )
