from sqlalchemy.orm import sessionmaker

from src.adapter.repositories.audit_event_repository import AuditEventRepository
from src.adapter.repositories.notification_preferences_repository import (
    NotificationPreferencesRepository,
)
from src.adapter.repositories.organization_repository import OrganizationRepository
from src.adapter.repositories.security_alert_repository import SecurityAlertRepository
from src.adapter.repositories.security_incident_repository import SecurityIncidentRepository
from src.app.services.unit_of_work import UnitOfWork


class SqlAlchemyUnitOfWork(UnitOfWork):
    """SQLAlchemy implementation of UnitOfWork pattern, one session per block"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.session = None

    async def __aenter__(self):
        self.session = self.session_factory()

        # Initialize all repositories with the session
        self.audit_events = AuditEventRepository(self.session)
        self.organizations = OrganizationRepository(self.session)
        self.security_alerts = SecurityAlertRepository(self.session)
        self.security_incidents = SecurityIncidentRepository(self.session)
        self.notification_preferences = NotificationPreferencesRepository(self.session)
        return self

    async def __aexit__(self, *args):
        await self.rollback()
        await self.session.close()

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()
