from abc import ABC, abstractmethod
from typing import Callable

from src.app.repositories.audit_event_repository import IAuditEventRepository
from src.app.repositories.notification_preferences_repository import (
    INotificationPreferencesRepository,
)
from src.app.repositories.organization_repository import IOrganizationRepository
from src.app.repositories.security_alert_repository import ISecurityAlertRepository
from src.app.repositories.security_incident_repository import ISecurityIncidentRepository


class UnitOfWork(ABC):
    """Abstract UnitOfWork - defines repository access and transaction management"""

    # Repository properties (initialized in __aenter__)
    audit_events: IAuditEventRepository
    organizations: IOrganizationRepository
    security_alerts: ISecurityAlertRepository
    security_incidents: ISecurityIncidentRepository
    notification_preferences: INotificationPreferencesRepository

    @abstractmethod
    async def __aenter__(self):
        pass

    @abstractmethod
    async def __aexit__(self, *args):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


# Services are long-lived; each operation opens its own unit of work.
UnitOfWorkFactory = Callable[[], UnitOfWork]
