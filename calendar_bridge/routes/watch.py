"""Google Calendar push notification webhook."""
from fastapi import APIRouter, Depends, Header, Query, Response

from calendar_bridge.calendar.notifications import PushNotification
from calendar_bridge.core.services import Services, get_services

router = APIRouter(tags=["watch"])


@router.post("/watch")
def watch_notification(
    user_id: str = Query("", alias="userId"),
    channel_id: str = Header("", alias="X-Goog-Channel-ID"),
    resource_id: str = Header("", alias="X-Goog-Resource-ID"),
    resource_state: str = Header("", alias="X-Goog-Resource-State"),
    services: Services = Depends(get_services),
):
    """
    Receive a change notification from Google.

    Always answers 200 with no body; the outcome is only logged.
    """
    services.notifications.handle(
        PushNotification(
            user_id=user_id,
            channel_id=channel_id,
            resource_id=resource_id,
            resource_state=resource_state,
        )
    )
    return Response(status_code=200)
