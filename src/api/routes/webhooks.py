"""
Webhook API Routes

Ingests identity-provider webhooks and authentication events.
"""

from fastapi import APIRouter, Depends, status

from src.api.utils.admin_auth import verify_webhook_secret
from src.app.services.dtos import AuthenticationEventData, IdentityWebhookEvent
from src.app.services.security_event_tracker import SecurityEventTracker
from src.depends import get_event_tracker

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post(
    "/identity",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_webhook_secret)],
)
async def receive_identity_webhook(
    event: IdentityWebhookEvent,
    tracker: SecurityEventTracker = Depends(get_event_tracker),
):
    """
    Identity provider webhook (user.created, session.created, session.ended,
    user.updated, user.deleted). Processing failures are recorded in the
    audit log and never surface to the provider.
    """
    await tracker.track_clerk_webhook_event(event)
    return {"received": True, "type": event.type}


@router.post(
    "/auth-events",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_webhook_secret)],
)
async def receive_authentication_event(
    event: AuthenticationEventData,
    tracker: SecurityEventTracker = Depends(get_event_tracker),
):
    await tracker.track_authentication_event(event)
    return {"received": True, "event_type": event.event_type}
