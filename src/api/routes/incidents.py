"""
Incident API Routes

Security incident listing, manual reporting and lifecycle transitions.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from src.api.error import ClientError, to_http_error
from src.api.utils.admin_auth import verify_admin_api_key
from src.app.errors import SecurityServiceError
from src.app.services.dtos import SecurityIncidentCreate
from src.app.services.security_event_tracker import SecurityEventTracker
from src.depends import get_event_tracker
from src.domain.entities import IncidentStatus, SecurityIncident, TERMINAL_INCIDENT_STATUSES

router = APIRouter(
    prefix="/security/incidents",
    tags=["Incidents"],
    dependencies=[Depends(verify_admin_api_key)],
)


class ResolveIncidentRequest(BaseModel):
    resolution: IncidentStatus = IncidentStatus.resolved
    resolved_by: str
    notes: Optional[str] = None


class TransitionIncidentRequest(BaseModel):
    status: IncidentStatus
    actor: str
    notes: Optional[str] = None


@router.get("", status_code=status.HTTP_200_OK, response_model=List[SecurityIncident])
async def get_security_incidents(
    organization_id: Optional[str] = Query(None),
    incident_status: Optional[IncidentStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    tracker: SecurityEventTracker = Depends(get_event_tracker),
):
    try:
        return await tracker.get_security_incidents(organization_id, incident_status, limit)
    except SecurityServiceError as e:
        raise to_http_error(e)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SecurityIncident)
async def create_security_incident(
    data: SecurityIncidentCreate,
    tracker: SecurityEventTracker = Depends(get_event_tracker),
):
    try:
        return await tracker.create_security_incident(data)
    except SecurityServiceError as e:
        raise to_http_error(e)


@router.post(
    "/{incident_id}/resolve",
    status_code=status.HTTP_200_OK,
    response_model=SecurityIncident,
)
async def resolve_security_incident(
    incident_id: str,
    body: ResolveIncidentRequest,
    tracker: SecurityEventTracker = Depends(get_event_tracker),
):
    """
    Close an incident as resolved or false_positive.

    Raises:
        - 400 Bad Request: resolution is not a closing status
        - 404 Not Found: unknown incident
        - 409 Conflict: incident already closed
    """
    if body.resolution not in TERMINAL_INCIDENT_STATUSES:
        raise ClientError(
            SecurityServiceError(
                f"{body.resolution.value} is not a resolution", "INVALID_RESOLUTION"
            )
        )

    try:
        return await tracker.transition_security_incident(
            incident_id, body.resolution, body.resolved_by, body.notes
        )
    except SecurityServiceError as e:
        raise to_http_error(e)


@router.post(
    "/{incident_id}/transition",
    status_code=status.HTTP_200_OK,
    response_model=SecurityIncident,
)
async def transition_security_incident(
    incident_id: str,
    body: TransitionIncidentRequest,
    tracker: SecurityEventTracker = Depends(get_event_tracker),
):
    try:
        return await tracker.transition_security_incident(
            incident_id, body.status, body.actor, body.notes
        )
    except SecurityServiceError as e:
        raise to_http_error(e)
