from typing import List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.security_incident_repository import ISecurityIncidentRepository
from src.domain.entities import IncidentStatus, SecurityIncident


class SecurityIncidentRepository(ISecurityIncidentRepository):
    """SecurityIncident repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, incident_id: str) -> Optional[SecurityIncident]:
        """Get incident by ID"""
        stmt = select(SecurityIncident).where(SecurityIncident.id == incident_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, incident: SecurityIncident) -> SecurityIncident:
        """Create a new incident"""
        self.session.add(incident)
        await self.session.flush()
        await self.session.refresh(incident)
        return incident

    async def update(self, incident: SecurityIncident) -> SecurityIncident:
        """Update existing incident"""
        self.session.add(incident)
        await self.session.flush()
        await self.session.refresh(incident)
        return incident

    async def list(
        self,
        organization_id: Optional[str] = None,
        status: Optional[IncidentStatus] = None,
        limit: int = 50,
    ) -> List[SecurityIncident]:
        """List incidents ordered by detected_at DESC"""
        stmt = select(SecurityIncident)
        if organization_id is not None:
            stmt = stmt.where(SecurityIncident.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(SecurityIncident.status == status)
        stmt = stmt.order_by(SecurityIncident.detected_at.desc()).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())
