from fastapi import APIRouter, Depends, status

from src.container import SecurityContainer
from src.depends import get_container

router = APIRouter(tags=["Health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(container: SecurityContainer = Depends(get_container)):
    return {
        "status": "healthy",
        "audit_bus_running": container.event_bus.running,
        "pending_audit_events": container.event_bus.pending,
        "incident_detection": container.incident_detector.is_monitoring,
    }
