"""
Security Event Tracker

Normalizes identity-provider webhooks and direct authentication events into
audit and monitoring calls, and fronts the security incident lifecycle.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from src.app.errors import (
    DatabaseError,
    IncidentNotFoundError,
    InvalidIncidentTransitionError,
    SecurityServiceError,
)
from src.app.services.device_identity import DeviceIdentityResolver
from src.app.services.dtos import (
    AuthenticationEventData,
    IdentityWebhookEvent,
    SecurityEvent,
    SecurityEventContext,
    SecurityIncidentCreate,
    SecurityNotificationRequest,
)
from src.app.services.notification_templates import format_device_info, format_location
from src.app.services.security_audit_service import SecurityAuditService
from src.app.services.security_monitoring_service import SecurityMonitoringService
from src.app.services.security_notification_service import SecurityNotificationService
from src.app.services.unit_of_work import UnitOfWorkFactory
from src.domain.base import generate_prefixed_id, utcnow
from src.domain.entities import (
    Evidence,
    EvidenceType,
    IncidentStatus,
    NotificationSeverity,
    SecurityIncident,
    Severity,
    TERMINAL_INCIDENT_STATUSES,
)

logger = logging.getLogger(__name__)

EVENT_SOURCE = "security-event-tracker"

# Direct authentication event type -> audit action
AUDIT_ACTION_FOR_AUTH_EVENT = {
    "sign_in": "login",
    "sign_out": "logout",
    "password_reset": "password_change",
}


def _parse_timestamp(value: Any) -> datetime:
    """Identity provider timestamps: epoch milliseconds or ISO 8601 strings."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def calculate_session_duration(session_data: Dict[str, Any]) -> int:
    """Whole seconds between created_at and updated_at, 0 if either is missing."""
    created_at = session_data.get("created_at")
    updated_at = session_data.get("updated_at")
    if not created_at or not updated_at:
        return 0
    delta = _parse_timestamp(updated_at) - _parse_timestamp(created_at)
    return round(delta.total_seconds())


def extract_registration_method(user_data: Dict[str, Any]) -> str:
    external_accounts = user_data.get("external_accounts") or []
    if external_accounts:
        return f"oauth_{external_accounts[0].get('provider')}"
    if user_data.get("email_addresses"):
        return "password"
    return "unknown"


USER_CHANGE_FIELDS = (
    ("email", ("email_addresses",)),
    ("phone", ("phone_numbers",)),
    ("password", ("password_digest",)),
    ("name", ("first_name", "last_name")),
    ("avatar", ("profile_image_url",)),
)


def _is_set(value: Any) -> bool:
    # An emptied list still counts as a change; null, blank and false do not
    return value not in (None, "", False)


def extract_user_changes(user_data: Dict[str, Any]) -> List[str]:
    return [
        change
        for change, keys in USER_CHANGE_FIELDS
        if any(_is_set(user_data.get(key)) for key in keys)
    ]


def _is_email_verified(user_data: Dict[str, Any]) -> bool:
    email_addresses = user_data.get("email_addresses") or []
    if not email_addresses:
        return False
    verification = email_addresses[0].get("verification") or {}
    return verification.get("status") == "verified"


class SecurityEventTracker:
    def __init__(
        self,
        audit_service: SecurityAuditService,
        monitoring_service: SecurityMonitoringService,
        notification_service: SecurityNotificationService,
        device_resolver: DeviceIdentityResolver,
        uow_factory: UnitOfWorkFactory,
        brand_name: str = "C9d.ai",
    ):
        self.audit_service = audit_service
        self.monitoring_service = monitoring_service
        self.notification_service = notification_service
        self.device_resolver = device_resolver
        self.uow_factory = uow_factory
        self.brand_name = brand_name

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def track_clerk_webhook_event(self, event: IdentityWebhookEvent) -> None:
        """Dispatch an identity-provider webhook. Never raises."""
        try:
            context = SecurityEventContext(
                metadata={
                    "webhookId": event.data.get("id"),
                    "eventType": event.type,
                    "timestamp": utcnow().isoformat(),
                }
            )

            if event.type == "user.created":
                await self._track_user_registration(event.data, context)
            elif event.type == "session.created":
                await self._track_session_created(event.data, context)
            elif event.type == "session.ended":
                await self._track_session_ended(event.data, context)
            elif event.type == "user.updated":
                await self._track_user_updated(event.data, context)
            elif event.type == "user.deleted":
                await self._track_user_deleted(event.data, context)
            else:
                logger.info(f"Unknown identity webhook event type: {event.type}")
        except Exception as e:
            logger.exception(f"Error tracking identity webhook event {event.type}")
            await self.audit_service.log_security_event(
                SecurityEvent(
                    action="security.webhook_processing_error",
                    resource_type="webhook",
                    severity=Severity.medium,
                    metadata={"eventType": event.type, "error": str(e)},
                )
            )

    async def _track_user_registration(
        self, user_data: Dict[str, Any], context: SecurityEventContext
    ) -> None:
        user_id = user_data["id"]
        registration_method = extract_registration_method(user_data)
        email_verified = _is_email_verified(user_data)

        await self.audit_service.log_authentication_event(
            user_id,
            "login",
            {
                "registrationMethod": registration_method,
                "emailVerified": email_verified,
                **context.metadata,
            },
            context.ip_address,
            context.user_agent,
        )

        await self.monitoring_service.monitor_authentication_event(
            user_id,
            "login",
            {"isNewUser": True, "registrationMethod": registration_method, **context.metadata},
            context.ip_address,
            context.user_agent,
        )

        if email_verified:
            await self.notification_service.send_security_notification(
                SecurityNotificationRequest(
                    user_id=user_id,
                    type="login_success",
                    title=f"Welcome to {self.brand_name}",
                    message="Your account has been successfully created and verified.",
                    severity=NotificationSeverity.info,
                    variables={
                        "timestamp": utcnow().isoformat(),
                        "deviceInfo": format_device_info(None),
                        "ipAddress": context.ip_address,
                        "location": format_location(None),
                    },
                    metadata=context.metadata,
                )
            )

    async def _track_session_created(
        self, session_data: Dict[str, Any], context: SecurityEventContext
    ) -> None:
        user_id = session_data["user_id"]
        session_id = session_data.get("id")

        new_device = await self.device_resolver.is_new_device(user_id, context)

        await self.audit_service.log_authentication_event(
            user_id,
            "login",
            {"sessionId": session_id, "newDevice": new_device, **context.metadata},
            context.ip_address,
            context.user_agent,
        )

        await self.monitoring_service.monitor_authentication_event(
            user_id,
            "login",
            {
                "sessionId": session_id,
                "newDevice": new_device,
                "deviceInfo": context.device_info.model_dump() if context.device_info else None,
                "location": context.location.model_dump() if context.location else None,
                **context.metadata,
            },
            context.ip_address,
            context.user_agent,
        )

    async def _track_session_ended(
        self, session_data: Dict[str, Any], context: SecurityEventContext
    ) -> None:
        await self.audit_service.log_authentication_event(
            session_data["user_id"],
            "logout",
            {
                "sessionId": session_data.get("id"),
                "sessionDuration": calculate_session_duration(session_data),
                **context.metadata,
            },
            context.ip_address,
            context.user_agent,
        )

    async def _track_user_updated(
        self, user_data: Dict[str, Any], context: SecurityEventContext
    ) -> None:
        user_id = user_data["id"]
        changes = extract_user_changes(user_data)

        await self.audit_service.log_security_event(
            SecurityEvent(
                user_id=user_id,
                action="user.profile_updated",
                resource_type="user_profile",
                resource_id=user_id,
                severity=Severity.low,
                metadata={"changes": changes, **context.metadata},
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
        )

        if {"password", "email", "phone"} & set(changes):
            await self._handle_security_relevant_user_change(user_id, changes, context)

    async def _track_user_deleted(
        self, user_data: Dict[str, Any], context: SecurityEventContext
    ) -> None:
        user_id = user_data["id"]

        await self.audit_service.log_security_event(
            SecurityEvent(
                user_id=user_id,
                action="user.account_deleted",
                resource_type="user_account",
                resource_id=user_id,
                severity=Severity.medium,
                metadata={
                    "deletionReason": user_data.get("deletion_reason") or "user_requested",
                    **context.metadata,
                },
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
        )

    async def _handle_security_relevant_user_change(
        self, user_id: str, changes: List[str], context: SecurityEventContext
    ) -> None:
        try:
            if "password" in changes:
                await self.monitoring_service.monitor_authentication_event(
                    user_id,
                    "password_change",
                    context.metadata,
                    context.ip_address,
                    context.user_agent,
                )

            if "email" in changes:
                await self.notification_service.send_security_notification(
                    SecurityNotificationRequest(
                        user_id=user_id,
                        type="security_alert",
                        title="Email Address Changed",
                        message="Your email address has been updated.",
                        severity=NotificationSeverity.info,
                        variables={"timestamp": utcnow().isoformat()},
                    )
                )
        except Exception:
            logger.exception(f"Error handling security-relevant change for user {user_id}")

    # ------------------------------------------------------------------
    # Direct authentication events
    # ------------------------------------------------------------------

    async def track_authentication_event(self, event_data: AuthenticationEventData) -> None:
        """
        Audit and monitor a non-webhook authentication event. Never raises.

        The audit side records the mapped action with success in metadata;
        the monitoring side sees login_failed for every unsuccessful attempt.
        """
        try:
            context = event_data.context
            device_info = context.device_info.model_dump() if context.device_info else None

            await self.audit_service.log_authentication_event(
                event_data.user_id,
                AUDIT_ACTION_FOR_AUTH_EVENT.get(event_data.event_type, "login"),
                {
                    "success": event_data.success,
                    "method": event_data.method,
                    "failureReason": event_data.failure_reason,
                    **context.metadata,
                },
                context.ip_address,
                context.user_agent,
            )

            if event_data.success:
                await self.monitoring_service.monitor_authentication_event(
                    event_data.user_id,
                    "login",
                    {
                        "method": event_data.method,
                        "deviceInfo": device_info,
                        "location": context.location.model_dump() if context.location else None,
                        **context.metadata,
                    },
                    context.ip_address,
                    context.user_agent,
                )
            else:
                await self.monitoring_service.monitor_authentication_event(
                    event_data.user_id,
                    "login_failed",
                    {
                        "method": event_data.method,
                        "failureReason": event_data.failure_reason,
                        "deviceInfo": device_info,
                        **context.metadata,
                    },
                    context.ip_address,
                    context.user_agent,
                )
        except Exception:
            logger.exception("Error tracking authentication event")

    # ------------------------------------------------------------------
    # Incidents
    # ------------------------------------------------------------------

    async def create_security_incident(self, data: SecurityIncidentCreate) -> SecurityIncident:
        """Persist an open incident and log it. Failures propagate."""
        incident = SecurityIncident(
            id=generate_prefixed_id("incident"),
            type=data.type,
            severity=data.severity,
            status=IncidentStatus.open,
            user_id=data.user_id,
            organization_id=data.organization_id,
            description=data.description,
            affected_users=[data.user_id] if data.user_id else [],
            evidence=(
                [
                    Evidence.capture(EvidenceType.log_entry, data.evidence, EVENT_SOURCE).model_dump(
                        mode="json"
                    )
                ]
                if data.evidence
                else []
            ),
            actions=data.actions,
            detected_at=utcnow(),
        )

        try:
            async with self.uow_factory() as uow:
                incident = await uow.security_incidents.create(incident)
                await uow.commit()

            await self.audit_service.record_security_event(
                SecurityEvent(
                    user_id=data.user_id,
                    organization_id=data.organization_id,
                    action="security.incident_created",
                    resource_type="security_incident",
                    resource_id=incident.id,
                    severity=data.severity,
                    metadata={
                        "incidentType": data.type.value,
                        "description": data.description,
                        "evidence": data.evidence,
                        "actions": data.actions,
                    },
                )
            )

            if Severity(data.severity) == Severity.critical and data.user_id:
                await self.notification_service.send_security_notification(
                    SecurityNotificationRequest(
                        user_id=data.user_id,
                        type="security_alert",
                        title="Critical Security Incident",
                        message=(
                            f"A critical security incident has been detected: {data.description}"
                        ),
                        severity=NotificationSeverity.critical,
                        channels=["email", "in_app"],
                        metadata={"incidentId": incident.id, "incidentType": data.type.value},
                    )
                )
        except SecurityServiceError:
            logger.exception("Error creating security incident")
            raise
        except Exception as e:
            logger.exception("Error creating security incident")
            raise DatabaseError(
                "Failed to create security incident", "CREATE_INCIDENT_ERROR"
            ) from e

        return incident

    async def transition_security_incident(
        self,
        incident_id: str,
        status: IncidentStatus,
        actor: str,
        notes: Optional[str] = None,
    ) -> SecurityIncident:
        """Move an incident along its lifecycle. Raises on unknown id or illegal transition."""
        async with self.uow_factory() as uow:
            incident = await uow.security_incidents.get_by_id(incident_id)
            if incident is None:
                raise IncidentNotFoundError(incident_id)

            if not incident.can_transition_to(status):
                raise InvalidIncidentTransitionError(
                    incident_id, IncidentStatus(incident.status).value, status.value
                )

            previous = IncidentStatus(incident.status)
            incident.status = status
            if status in TERMINAL_INCIDENT_STATUSES:
                incident.resolved_at = utcnow()
                incident.resolved_by = actor
                incident.resolution_notes = notes

            incident = await uow.security_incidents.update(incident)
            await uow.commit()

        terminal = status in TERMINAL_INCIDENT_STATUSES
        await self.audit_service.log_security_event(
            SecurityEvent(
                user_id=actor,
                organization_id=incident.organization_id,
                action="security.incident_resolved" if terminal else "security.incident_status_changed",
                resource_type="security_incident",
                resource_id=incident_id,
                severity=Severity.low,
                metadata={
                    "resolution" if terminal else "status": status.value,
                    "previousStatus": previous.value,
                    "notes": notes,
                },
            )
        )

        return incident

    async def resolve_security_incident(
        self,
        incident_id: str,
        resolution: IncidentStatus,
        resolved_by: str,
        notes: Optional[str] = None,
    ) -> Optional[SecurityIncident]:
        """
        Close an incident as resolved or false_positive. Never raises.

        Incidents unknown to the store still get their resolution recorded.
        """
        logger.info(
            f"Security incident resolved: {incident_id} resolution={resolution.value} "
            f"resolved_by={resolved_by}"
        )

        try:
            if resolution not in TERMINAL_INCIDENT_STATUSES:
                raise ValueError(f"{resolution.value} is not a resolution")
            return await self.transition_security_incident(
                incident_id, resolution, resolved_by, notes
            )
        except IncidentNotFoundError:
            logger.warning(f"Resolving security incident {incident_id} not found in store")
            await self.audit_service.log_security_event(
                SecurityEvent(
                    user_id=resolved_by,
                    action="security.incident_resolved",
                    resource_type="security_incident",
                    resource_id=incident_id,
                    severity=Severity.low,
                    metadata={"resolution": resolution.value, "notes": notes},
                )
            )
        except InvalidIncidentTransitionError as e:
            logger.warning(e.message)
        except Exception:
            logger.exception(f"Error resolving security incident {incident_id}")

        return None

    async def get_security_incidents(
        self,
        organization_id: Optional[str] = None,
        status: Optional[IncidentStatus] = None,
        limit: int = 50,
    ) -> List[SecurityIncident]:
        try:
            async with self.uow_factory() as uow:
                return await uow.security_incidents.list(
                    organization_id=organization_id, status=status, limit=limit
                )
        except Exception as e:
            logger.exception("Error getting security incidents")
            raise DatabaseError(
                "Failed to retrieve security incidents", "GET_SECURITY_INCIDENTS_ERROR"
            ) from e
