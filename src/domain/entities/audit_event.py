"""
AuditEvent Entity

Immutable log of every security-relevant action.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Column, DateTime, Field, Index, JSON, SQLModel

from src.domain.base import generate_uuid, utcnow

from .enums import Severity


class AuditEvent(SQLModel, table=True):
    """
    AuditEvent entity - immutable log of all security-relevant actions.

    Business Rules:
    - Append-only (never updated or deleted by the pipeline)
    - action is a dot-namespaced taxonomy key, e.g. "auth.login_failed"
    - event_metadata always carries the severity assigned by the call site
    - user_id/organization_id nullable for system-wide events (webhook errors)
    """

    __tablename__ = "audit_events"

    id: str = Field(default_factory=generate_uuid, primary_key=True, max_length=36)

    user_id: Optional[str] = Field(default=None, index=True, max_length=255)
    organization_id: Optional[str] = Field(default=None, index=True, max_length=255)

    action: str = Field(max_length=100)  # e.g., "auth.login", "tenant.isolation_violation"
    resource_type: str = Field(max_length=100)
    resource_id: Optional[str] = Field(default=None, max_length=255)
    event_metadata: dict = Field(default_factory=dict, sa_column=Column(JSON))

    ip_address: Optional[str] = Field(default=None, index=True, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=512)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime))

    __table_args__ = (
        Index("idx_audit_created_at", "created_at"),
        Index("idx_audit_org_action", "organization_id", "action"),
        Index("idx_audit_user_created", "user_id", "created_at"),
    )

    @property
    def severity(self) -> str:
        return (self.event_metadata or {}).get("severity") or Severity.low.value
