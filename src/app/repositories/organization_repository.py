from abc import ABC, abstractmethod
from typing import List, Optional

from src.domain.entities import Organization, OrganizationMembership


class IOrganizationRepository(ABC):
    """Organization repository interface - application layer"""

    @abstractmethod
    async def get_by_id(self, organization_id: str) -> Optional[Organization]:
        """Get organization by ID"""
        pass

    @abstractmethod
    async def get_user_organizations(self, user_id: str) -> List[Organization]:
        """Get organizations the user is an active member of"""
        pass

    @abstractmethod
    async def create(self, organization: Organization) -> Organization:
        """Create a new organization"""
        pass

    @abstractmethod
    async def add_member(self, membership: OrganizationMembership) -> OrganizationMembership:
        """Create a new membership"""
        pass
