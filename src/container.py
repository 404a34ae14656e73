"""
Service wiring

Builds the long-lived security services once from ApplicationConfig.
"""

from src.app.services.audit_logger import SecurityAuditLogger
from src.app.services.device_identity import (
    FingerprintDeviceIdentityResolver,
    HistoryDeviceIdentityResolver,
)
from src.app.services.event_bus import SecurityEventBus
from src.app.services.incident_detector import SecurityIncidentDetector
from src.app.services.notification_transport import (
    default_operator_transports,
    default_transports,
)
from src.app.services.security_audit_service import SecurityAuditService
from src.app.services.security_event_tracker import SecurityEventTracker
from src.app.services.security_monitoring_service import SecurityMonitoringService
from src.app.services.security_notification_service import SecurityNotificationService
from src.app.services.threat_intelligence import StaticThreatIntelligence
from src.app.services.unit_of_work import UnitOfWorkFactory


class SecurityContainer:
    def __init__(self, config, uow_factory: UnitOfWorkFactory):
        self.uow_factory = uow_factory

        self.event_bus = SecurityEventBus(
            uow_factory,
            batch_size=config.AUDIT_BATCH_SIZE,
            flush_interval=config.AUDIT_FLUSH_INTERVAL_SECONDS,
            max_pending=config.AUDIT_MAX_PENDING,
        )
        self.audit_service = SecurityAuditService(
            self.event_bus,
            uow_factory,
            summary_scan_limit=config.SECURITY_SUMMARY_SCAN_LIMIT,
        )
        self.notification_service = SecurityNotificationService(
            self.audit_service,
            uow_factory,
            default_transports(),
            brand_name=config.NOTIFICATION_BRAND_NAME,
            history_size=config.NOTIFICATION_HISTORY_SIZE,
        )
        self.monitoring_service = SecurityMonitoringService(
            self.audit_service,
            self.notification_service,
            uow_factory,
            metrics_scan_limit=config.SECURITY_METRICS_SCAN_LIMIT,
        )

        if config.DEVICE_FINGERPRINTING:
            device_resolver = FingerprintDeviceIdentityResolver(self.audit_service)
        else:
            device_resolver = HistoryDeviceIdentityResolver(self.audit_service)

        self.event_tracker = SecurityEventTracker(
            self.audit_service,
            self.monitoring_service,
            self.notification_service,
            device_resolver,
            uow_factory,
            brand_name=config.NOTIFICATION_BRAND_NAME,
        )

        self.threat_intelligence = StaticThreatIntelligence(
            denylist=config.THREAT_INTEL_DENYLIST,
            tor_exit_nodes=config.THREAT_INTEL_TOR_EXIT_NODES,
            vpn_ranges=config.THREAT_INTEL_VPN_RANGES,
        )
        self.incident_detector = SecurityIncidentDetector(
            uow_factory,
            self.audit_service,
            self.threat_intelligence,
            default_operator_transports(),
            recipients=config.SECURITY_TEAM_RECIPIENTS,
        )
        self.audit_logger = SecurityAuditLogger(
            self.event_bus,
            self.threat_intelligence,
            detector=self.incident_detector,
            risk_threshold=config.AUDIT_RISK_THRESHOLD,
            business_hours=config.AUDIT_BUSINESS_HOURS,
        )

    def start(self) -> None:
        self.event_bus.start()
        self.incident_detector.start()

    async def stop(self) -> None:
        self.incident_detector.stop()
        await self.event_bus.stop()
