from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from config import ApplicationConfig
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.audit_logger import SecurityAuditLogger
from src.app.services.security_audit_service import SecurityAuditService
from src.app.services.security_event_tracker import SecurityEventTracker
from src.app.services.security_monitoring_service import SecurityMonitoringService
from src.app.services.security_notification_service import SecurityNotificationService
from src.app.services.unit_of_work import UnitOfWorkFactory
from src.container import SecurityContainer

engine = create_async_engine(ApplicationConfig.DB_URI, echo=False, future=True)

AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


def build_uow_factory(session_factory: sessionmaker) -> UnitOfWorkFactory:
    def uow_factory():
        return SqlAlchemyUnitOfWork(session_factory)

    return uow_factory


def get_container(request: Request) -> SecurityContainer:
    return request.app.state.container


def get_audit_service(
    container: SecurityContainer = Depends(get_container),
) -> SecurityAuditService:
    return container.audit_service


def get_monitoring_service(
    container: SecurityContainer = Depends(get_container),
) -> SecurityMonitoringService:
    return container.monitoring_service


def get_notification_service(
    container: SecurityContainer = Depends(get_container),
) -> SecurityNotificationService:
    return container.notification_service


def get_event_tracker(
    container: SecurityContainer = Depends(get_container),
) -> SecurityEventTracker:
    return container.event_tracker


def get_audit_logger(
    container: SecurityContainer = Depends(get_container),
) -> SecurityAuditLogger:
    return container.audit_logger
