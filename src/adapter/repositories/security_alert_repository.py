from typing import List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.security_alert_repository import ISecurityAlertRepository
from src.domain.entities import SecurityAlert


class SecurityAlertRepository(ISecurityAlertRepository):
    """SecurityAlert repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, alert_id: str) -> Optional[SecurityAlert]:
        """Get alert by ID"""
        stmt = select(SecurityAlert).where(SecurityAlert.id == alert_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, alert: SecurityAlert) -> SecurityAlert:
        """Create a new alert"""
        self.session.add(alert)
        await self.session.flush()
        await self.session.refresh(alert)
        return alert

    async def update(self, alert: SecurityAlert) -> SecurityAlert:
        """Update existing alert"""
        self.session.add(alert)
        await self.session.flush()
        await self.session.refresh(alert)
        return alert

    async def list(
        self,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        unresolved_only: bool = False,
        limit: int = 50,
    ) -> List[SecurityAlert]:
        """List alerts ordered by created_at DESC"""
        stmt = select(SecurityAlert)
        if organization_id is not None:
            stmt = stmt.where(SecurityAlert.organization_id == organization_id)
        if user_id is not None:
            stmt = stmt.where(SecurityAlert.user_id == user_id)
        if unresolved_only:
            stmt = stmt.where(SecurityAlert.is_resolved == False)  # noqa: E712
        stmt = stmt.order_by(SecurityAlert.created_at.desc()).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())
