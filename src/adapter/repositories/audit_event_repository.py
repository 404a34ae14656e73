from typing import List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.audit_event_repository import AuditEventQuery, IAuditEventRepository
from src.domain.entities import AuditEvent


class AuditEventRepository(IAuditEventRepository):
    """AuditEvent repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, audit_event: AuditEvent) -> AuditEvent:
        """Create a new audit event (immutable)"""
        self.session.add(audit_event)
        await self.session.flush()
        await self.session.refresh(audit_event)
        return audit_event

    async def create_many(self, audit_events: List[AuditEvent]) -> List[AuditEvent]:
        """Insert a batch of audit events"""
        self.session.add_all(audit_events)
        await self.session.flush()
        return audit_events

    async def get_audit_logs(self, query: AuditEventQuery) -> List[AuditEvent]:
        """Get audit events matching the query, newest first"""
        stmt = select(AuditEvent)

        if query.user_id is not None:
            stmt = stmt.where(AuditEvent.user_id == query.user_id)
        if query.organization_id is not None:
            stmt = stmt.where(AuditEvent.organization_id == query.organization_id)
        if query.ip_address is not None:
            stmt = stmt.where(AuditEvent.ip_address == query.ip_address)
        if query.start_date is not None:
            stmt = stmt.where(AuditEvent.created_at >= query.start_date)

        stmt = (
            stmt.order_by(AuditEvent.created_at.desc())
            .offset(query.offset)
            .limit(query.limit)
        )

        result = await self.session.exec(stmt)
        return list(result.all())
