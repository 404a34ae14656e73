from abc import ABC, abstractmethod
from typing import List, Optional

from src.domain.entities import SecurityAlert


class ISecurityAlertRepository(ABC):
    """SecurityAlert repository interface - application layer"""

    @abstractmethod
    async def get_by_id(self, alert_id: str) -> Optional[SecurityAlert]:
        """Get alert by ID"""
        pass

    @abstractmethod
    async def create(self, alert: SecurityAlert) -> SecurityAlert:
        """Create a new alert"""
        pass

    @abstractmethod
    async def update(self, alert: SecurityAlert) -> SecurityAlert:
        """Update existing alert"""
        pass

    @abstractmethod
    async def list(
        self,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        unresolved_only: bool = False,
        limit: int = 50,
    ) -> List[SecurityAlert]:
        """List alerts ordered by created_at DESC"""
        pass
