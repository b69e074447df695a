"""Push-notification channel descriptor."""

from datetime import datetime

from sqlmodel import SQLModel


class WatchChannel(SQLModel):
    """A Google Calendar ``events.watch`` subscription owned by one user.

    The channel id registered with Google is the randomly generated watch
    secret: Google echoes it back in ``X-Goog-Channel-ID`` on every
    notification, and it is the only thing that authenticates the call.

    Attributes:
        user_id: Owner of the subscription.
        channel_id: Channel id registered with Google (equals the secret).
        resource_id: Opaque id Google assigns to the watched resource.
        calendar_id: Calendar the channel watches.
        expiration: When Google will stop delivering, if reported.
    """
    user_id: str
    channel_id: str
    resource_id: str
    calendar_id: str
    expiration: datetime | None = None
