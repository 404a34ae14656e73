from abc import ABC, abstractmethod
from typing import List, Optional

from src.domain.entities import IncidentStatus, SecurityIncident


class ISecurityIncidentRepository(ABC):
    """SecurityIncident repository interface - application layer"""

    @abstractmethod
    async def get_by_id(self, incident_id: str) -> Optional[SecurityIncident]:
        """Get incident by ID"""
        pass

    @abstractmethod
    async def create(self, incident: SecurityIncident) -> SecurityIncident:
        """Create a new incident"""
        pass

    @abstractmethod
    async def update(self, incident: SecurityIncident) -> SecurityIncident:
        """Update existing incident"""
        pass

    @abstractmethod
    async def list(
        self,
        organization_id: Optional[str] = None,
        status: Optional[IncidentStatus] = None,
        limit: int = 50,
    ) -> List[SecurityIncident]:
        """List incidents ordered by detected_at DESC"""
        pass
