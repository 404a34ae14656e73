import pytest
from unittest.mock import AsyncMock, MagicMock

from src.app.services.dtos import NotificationMessage
from src.app.services.event_bus import SecurityEventBus
from src.app.services.notification_transport import NotificationTransport
from src.app.services.security_audit_service import SecurityAuditService
from src.domain.entities import NotificationChannelType, OperatorChannelType


class RecordingTransport(NotificationTransport):
    """Collects messages instead of delivering them"""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, message: NotificationMessage) -> None:
        if self.fail:
            raise ConnectionError("provider unavailable")
        self.sent.append(message)


@pytest.fixture
def mock_uow():
    """Mock UnitOfWork with all repositories"""
    uow = MagicMock()
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=False)  # Must return False to not suppress exceptions
    uow.commit = AsyncMock()
    uow.rollback = AsyncMock()

    # Repositories echo what they persist
    uow.audit_events = MagicMock()
    uow.audit_events.create = AsyncMock(side_effect=lambda event: event)
    uow.audit_events.create_many = AsyncMock(side_effect=lambda events: events)
    uow.audit_events.get_audit_logs = AsyncMock(return_value=[])

    uow.organizations = MagicMock()
    uow.organizations.get_user_organizations = AsyncMock(return_value=[])

    uow.security_alerts = MagicMock()
    uow.security_alerts.get_by_id = AsyncMock(return_value=None)
    uow.security_alerts.create = AsyncMock(side_effect=lambda alert: alert)
    uow.security_alerts.update = AsyncMock(side_effect=lambda alert: alert)
    uow.security_alerts.list = AsyncMock(return_value=[])

    uow.security_incidents = MagicMock()
    uow.security_incidents.get_by_id = AsyncMock(return_value=None)
    uow.security_incidents.create = AsyncMock(side_effect=lambda incident: incident)
    uow.security_incidents.update = AsyncMock(side_effect=lambda incident: incident)
    uow.security_incidents.list = AsyncMock(return_value=[])

    uow.notification_preferences = MagicMock()
    uow.notification_preferences.get_by_user_id = AsyncMock(return_value=None)
    uow.notification_preferences.save = AsyncMock(side_effect=lambda prefs: prefs)

    return uow


@pytest.fixture
def uow_factory(mock_uow):
    return lambda: mock_uow


@pytest.fixture
def event_bus(uow_factory):
    return SecurityEventBus(uow_factory, batch_size=3, flush_interval=0.05)


@pytest.fixture
def audit_service(event_bus, uow_factory):
    return SecurityAuditService(event_bus, uow_factory)


@pytest.fixture
def transports():
    return {channel.value: RecordingTransport() for channel in NotificationChannelType}


@pytest.fixture
def written_events(mock_uow):
    """Audit events written through the immediate path, oldest first"""
    return lambda: [call.args[0] for call in mock_uow.audit_events.create.await_args_list]


@pytest.fixture
def written_actions(written_events):
    return lambda: [event.action for event in written_events()]


@pytest.fixture
def failing_transport():
    return RecordingTransport(fail=True)


@pytest.fixture
def operator_transports():
    return {channel.value: RecordingTransport() for channel in OperatorChannelType}
