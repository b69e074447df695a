"""Error taxonomy shared by the OAuth flow, watch channels and event actions.

Every error carries the HTTP status and a short, user-safe ``detail`` so the
browser-facing routes can translate it into an ``HTTPException`` without
leaking provider internals. Action links and the webhook never raise these to
the client; they report through the notifier or the log instead.
"""


class CalendarBridgeError(Exception):
    """Base class for all calendar bridge failures."""

    status_code: int = 500
    detail: str = "Calendar error"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class Unauthorized(CalendarBridgeError):
    """Acting user missing or not the user the flow was started for."""

    status_code = 401
    detail = "Not authorized"


class InvalidState(CalendarBridgeError):
    """OAuth state never issued, already consumed, expired or malformed."""

    status_code = 400
    detail = "Invalid state"


class ExchangeFailure(CalendarBridgeError):
    """Provider rejected the authorization code."""

    status_code = 400
    detail = "Failed to exchange authorization code"


class MarshalFailure(CalendarBridgeError):
    """Credential could not be serialized for storage."""

    status_code = 500
    detail = "Failed to store calendar credential"


class NotConnected(CalendarBridgeError):
    """No stored credential for the user."""

    status_code = 404
    detail = "Calendar is not connected"


class SyncFailure(CalendarBridgeError):
    status_code = 500
    detail = "Failed to sync calendar"


class WatchSetupFailure(CalendarBridgeError):
    status_code = 502
    detail = "Failed to set up calendar notifications"


class ProviderAPIError(CalendarBridgeError):
    """Any failed call to the Calendar API (fetch, update, delete, watch, stop)."""

    status_code = 502
    detail = "Calendar provider request failed"

    def __init__(self, detail: str | None = None, provider_status: int | None = None):
        super().__init__(detail)
        self.provider_status = provider_status
