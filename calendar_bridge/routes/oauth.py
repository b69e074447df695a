"""Calendar connection routes (OAuth connect / complete / disconnect)."""
import logging

from fastapi import APIRouter, Depends, Form, HTTPException, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from calendar_bridge.core.errors import CalendarBridgeError
from calendar_bridge.core.services import Services, get_acting_user_id, get_services
from calendar_bridge.routes.pages import CONNECTED_PAGE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


def _http_error(e: CalendarBridgeError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/connect")
def connect(
    user_id: str = Depends(get_acting_user_id),
    services: Services = Depends(get_services),
):
    """Redirect the acting user to Google's consent screen."""
    try:
        url = services.oauth.connect(user_id)
    except CalendarBridgeError as e:
        raise _http_error(e)
    return RedirectResponse(url, status_code=307)


def _complete(user_id: str, state: str, code: str, services: Services) -> HTMLResponse:
    try:
        services.oauth.complete(user_id, state, code)
    except CalendarBridgeError as e:
        logger.warning(f"OAuth completion failed: {e.detail}")
        raise _http_error(e)
    return HTMLResponse(CONNECTED_PAGE)


@router.get("/complete", response_class=HTMLResponse)
def complete(
    state: str = Query(""),
    code: str = Query(""),
    user_id: str = Depends(get_acting_user_id),
    services: Services = Depends(get_services),
):
    """
    Google redirect target.

    Validates and consumes the state, stores the credential, runs the first
    sync and sets up notifications. Returns a page that closes its own window.
    """
    return _complete(user_id, state, code, services)


@router.post("/complete", response_class=HTMLResponse)
def complete_form(
    state: str = Form(""),
    code: str = Form(""),
    user_id: str = Depends(get_acting_user_id),
    services: Services = Depends(get_services),
):
    """Form-posted variant of the redirect target."""
    return _complete(user_id, state, code, services)


@router.post("/disconnect")
def disconnect(
    user_id: str = Depends(get_acting_user_id),
    services: Services = Depends(get_services),
):
    """Stop notifications and delete the stored credential."""
    try:
        services.oauth.disconnect(user_id)
    except CalendarBridgeError as e:
        raise _http_error(e)
    return {"connected": False}


@router.get("/status")
def status(
    user_id: str = Depends(get_acting_user_id),
    services: Services = Depends(get_services),
):
    """Whether the acting user is connected and watched. Never returns tokens."""
    try:
        return services.oauth.status(user_id)
    except CalendarBridgeError as e:
        raise _http_error(e)
