"""Event action routes opened from links in bot messages.

These always answer with a page that closes the popup. Success or failure is
reported to the user by a bot message, never by the HTTP status.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from calendar_bridge.core.services import Services, get_acting_user_id, get_services
from calendar_bridge.routes.pages import CLOSE_WINDOW_PAGE

router = APIRouter(tags=["events"])


@router.get("/delete", response_class=HTMLResponse)
def delete_event(
    evtid: str = Query(""),
    user_id: str = Depends(get_acting_user_id),
    services: Services = Depends(get_services),
):
    """Delete an event from the acting user's primary calendar."""
    if user_id:
        services.actions.delete_event(user_id, evtid)
    return HTMLResponse(CLOSE_WINDOW_PAGE)


@router.get("/handleresponse", response_class=HTMLResponse)
def handle_response(
    evtid: str = Query(""),
    response: str = Query(""),
    user_id: str = Depends(get_acting_user_id),
    services: Services = Depends(get_services),
):
    """Accept, decline or tentatively accept an invitation."""
    if user_id:
        services.actions.handle_event_response(user_id, evtid, response)
    return HTMLResponse(CLOSE_WINDOW_PAGE)
