from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from src.domain.entities import AuditEvent


class AuditEventQuery(BaseModel):
    """Store-level filter; anything finer is applied by the caller"""

    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    ip_address: Optional[str] = None
    start_date: Optional[datetime] = None
    limit: int = 100
    offset: int = 0


class IAuditEventRepository(ABC):
    """
    AuditEvent repository interface - application layer

    Preconditions callers rely on:
    - Append-only: records are never updated or deleted
    - Read-after-write: a committed record is visible to the next query,
      pattern detection counts the event that triggered it
    """

    @abstractmethod
    async def create(self, audit_event: AuditEvent) -> AuditEvent:
        """Create a new audit event (immutable)"""
        pass

    @abstractmethod
    async def create_many(self, audit_events: List[AuditEvent]) -> List[AuditEvent]:
        """Insert a batch of audit events"""
        pass

    @abstractmethod
    async def get_audit_logs(self, query: AuditEventQuery) -> List[AuditEvent]:
        """Get audit events matching the query, ordered by created_at DESC"""
        pass
