"""
Security API Routes

Audit reads, dashboards, alert lifecycle and enriched audit ingestion.
All routes require the admin API key.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from config import ApplicationConfig
from src.api.error import to_http_error
from src.api.utils.admin_auth import verify_admin_api_key
from src.app.errors import SecurityServiceError
from src.app.services.audit_logger import SecurityAuditLogger
from src.app.services.dtos import (
    AuditSuspiciousActivity,
    Location,
    RequestContext,
    SecurityAlertCreate,
    SecurityEventFilter,
    SecurityMetrics,
    SuspiciousActivityResult,
)
from src.app.services.security_audit_service import SecurityAuditService
from src.app.services.security_monitoring_service import SecurityMonitoringService
from src.depends import get_audit_logger, get_audit_service, get_monitoring_service
from src.domain.entities import AuditEvent, AuditEventType, AuditOutcome, SecurityAlert

router = APIRouter(
    prefix="/security",
    tags=["Security"],
    dependencies=[Depends(verify_admin_api_key)],
)


class AuditEventResponse(BaseModel):
    """Single audit event in response"""

    id: str
    action: str
    resource_type: str
    resource_id: Optional[str]
    user_id: Optional[str]
    organization_id: Optional[str]
    severity: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    timestamp: str
    metadata: Dict[str, Any]

    @classmethod
    def from_entity(cls, event: AuditEvent) -> "AuditEventResponse":
        return cls(
            id=event.id,
            action=event.action,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            user_id=event.user_id,
            organization_id=event.organization_id,
            severity=event.severity,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            timestamp=event.created_at.isoformat(),
            metadata=event.event_metadata or {},
        )


class AuditEventsResponse(BaseModel):
    events: List[AuditEventResponse]


class SecuritySummaryResponse(BaseModel):
    total_events: int
    events_by_type: Dict[str, int]
    events_by_severity: Dict[str, int]
    recent_high_severity_events: List[AuditEventResponse]


class SuspiciousActivityResponse(BaseModel):
    """Pattern detection plus the coarse 24h heuristic"""

    patterns: SuspiciousActivityResult
    heuristic: AuditSuspiciousActivity


class ResolveAlertRequest(BaseModel):
    resolved_by: str
    notes: Optional[str] = None


class AuditEventRequest(BaseModel):
    event_type: AuditEventType
    action: str
    outcome: AuditOutcome
    details: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    organization_id: Optional[str] = None
    geolocation: Optional[Location] = None
    device_fingerprint: Optional[str] = None


class AuditEventLoggedResponse(BaseModel):
    logged: bool
    event_id: Optional[str] = None
    severity: Optional[str] = None
    risk_score: Optional[int] = None


def request_context(
    request: Request,
    geolocation: Optional[Location] = None,
    device_fingerprint: Optional[str] = None,
) -> RequestContext:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return RequestContext(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
        resource=request.url.path,
        request_id=request.headers.get("x-request-id"),
        correlation_id=request.headers.get("x-correlation-id"),
        geolocation=geolocation,
        device_fingerprint=device_fingerprint,
    )


@router.get("/events", status_code=status.HTTP_200_OK, response_model=AuditEventsResponse)
async def get_security_events(
    audit_service: SecurityAuditService = Depends(get_audit_service),
    user_id: Optional[str] = Query(None),
    organization_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None, description="Substring of the action"),
    resource_type: Optional[str] = Query(None),
    severity: Optional[List[str]] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(ApplicationConfig.SECURITY_EVENTS_DEFAULT_LIMIT, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    try:
        events = await audit_service.get_security_events(
            SecurityEventFilter(
                user_id=user_id,
                organization_id=organization_id,
                action=action,
                resource_type=resource_type,
                severity=severity,
                start_date=start_date,
                end_date=end_date,
                limit=limit,
                offset=offset,
            )
        )
    except SecurityServiceError as e:
        raise to_http_error(e)

    return AuditEventsResponse(events=[AuditEventResponse.from_entity(e) for e in events])


@router.get("/summary", status_code=status.HTTP_200_OK, response_model=SecuritySummaryResponse)
async def get_security_summary(
    organization_id: str = Query(...),
    days: int = Query(30, ge=1, le=365),
    audit_service: SecurityAuditService = Depends(get_audit_service),
):
    try:
        summary = await audit_service.get_security_summary(organization_id, days)
    except SecurityServiceError as e:
        raise to_http_error(e)

    return SecuritySummaryResponse(
        total_events=summary.total_events,
        events_by_type=summary.events_by_type,
        events_by_severity=summary.events_by_severity,
        recent_high_severity_events=[
            AuditEventResponse.from_entity(e) for e in summary.recent_high_severity_events
        ],
    )


@router.get(
    "/suspicious-activity/{user_id}",
    status_code=status.HTTP_200_OK,
    response_model=SuspiciousActivityResponse,
)
async def get_suspicious_activity(
    user_id: str,
    organization_id: Optional[str] = Query(None),
    audit_service: SecurityAuditService = Depends(get_audit_service),
    monitoring_service: SecurityMonitoringService = Depends(get_monitoring_service),
):
    """Both detectors fail open: on error they report nothing detected."""
    return SuspiciousActivityResponse(
        patterns=await monitoring_service.detect_suspicious_activity(user_id),
        heuristic=await audit_service.detect_suspicious_activity(user_id, organization_id),
    )


@router.get("/metrics", status_code=status.HTTP_200_OK, response_model=SecurityMetrics)
async def get_security_metrics(
    organization_id: Optional[str] = Query(None),
    days: int = Query(30, ge=1, le=365),
    monitoring_service: SecurityMonitoringService = Depends(get_monitoring_service),
):
    return await monitoring_service.get_security_metrics(organization_id, days)


@router.get("/alerts", status_code=status.HTTP_200_OK, response_model=List[SecurityAlert])
async def get_security_alerts(
    organization_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    unresolved_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    monitoring_service: SecurityMonitoringService = Depends(get_monitoring_service),
):
    try:
        return await monitoring_service.get_security_alerts(
            organization_id=organization_id,
            user_id=user_id,
            unresolved_only=unresolved_only,
            limit=limit,
        )
    except SecurityServiceError as e:
        raise to_http_error(e)


@router.post("/alerts", status_code=status.HTTP_201_CREATED, response_model=SecurityAlert)
async def create_security_alert(
    data: SecurityAlertCreate,
    monitoring_service: SecurityMonitoringService = Depends(get_monitoring_service),
):
    try:
        return await monitoring_service.create_security_alert(data)
    except SecurityServiceError as e:
        raise to_http_error(e)


@router.post(
    "/alerts/{alert_id}/resolve",
    status_code=status.HTTP_200_OK,
    response_model=SecurityAlert,
)
async def resolve_security_alert(
    alert_id: str,
    body: ResolveAlertRequest,
    monitoring_service: SecurityMonitoringService = Depends(get_monitoring_service),
):
    try:
        return await monitoring_service.resolve_security_alert(
            alert_id, body.resolved_by, body.notes
        )
    except SecurityServiceError as e:
        raise to_http_error(e)


@router.post(
    "/audit-events",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=AuditEventLoggedResponse,
)
async def log_audit_event(
    body: AuditEventRequest,
    request: Request,
    audit_logger: SecurityAuditLogger = Depends(get_audit_logger),
):
    """Risk-scored audit logging; the event is also run through incident detection."""
    context = request_context(request, body.geolocation, body.device_fingerprint)
    audit_event = await audit_logger.log_auth_event(
        body.event_type,
        body.action,
        body.outcome,
        body.details,
        user_id=body.user_id,
        session_id=body.session_id,
        context=context,
        organization_id=body.organization_id,
    )

    if audit_event is None:
        return AuditEventLoggedResponse(logged=False)

    return AuditEventLoggedResponse(
        logged=True,
        event_id=audit_event.event_metadata.get("eventId"),
        severity=audit_event.event_metadata.get("severity"),
        risk_score=audit_event.event_metadata.get("threatScore"),
    )
