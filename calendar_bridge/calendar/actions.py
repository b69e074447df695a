"""Single-event actions triggered from links in bot messages.

The caller is a popup opened by a link click, so outcomes are never returned
as HTTP errors; the user is told what happened through the notifier.
"""
import logging

from calendar_bridge.calendar.client import ClientFactory
from calendar_bridge.core.config import Settings, settings
from calendar_bridge.core.errors import CalendarBridgeError
from calendar_bridge.core.notifier import Notifier

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = frozenset({"accepted", "declined", "tentative", "needsAction"})


class EventActionHandler:
    def __init__(
        self,
        client_factory: ClientFactory,
        notifier: Notifier,
        config: Settings = settings,
    ):
        self.client_factory = client_factory
        self.notifier = notifier
        self.config = config

    def delete_event(self, user_id: str, event_id: str) -> bool:
        """Delete an event from the user's calendar. Returns True on success."""
        calendar_id = self.config.google_calendar_id
        try:
            client = self.client_factory.get_client(user_id)
            event = client.get_event(calendar_id, event_id)
            client.delete_event(calendar_id, event_id)
        except CalendarBridgeError as e:
            logger.warning(f"Delete of event {event_id} failed for {user_id}: {e.detail}")
            self.notifier.post(user_id, f"Unable to delete event. Error: {e.detail}")
            return False

        self.notifier.post(
            user_id, f"Success! Event _{event.get('summary', 'Untitled')}_ has been deleted."
        )
        return True

    def handle_event_response(self, user_id: str, event_id: str, response_status: str) -> bool:
        """
        Set the acting user's RSVP on an event.

        Only the attendee flagged ``self`` by Google is changed. If the user is
        not on the attendee list nothing is written and the user is told so.
        The update carries the fetched etag, so a concurrent edit makes it fail
        instead of overwriting.
        """
        if response_status not in RESPONSE_STATUSES:
            self.notifier.post(user_id, f"Error! _{response_status}_ is not a valid response.")
            return False

        calendar_id = self.config.google_calendar_id
        try:
            client = self.client_factory.get_client(user_id)
            event = client.get_event(calendar_id, event_id)
        except CalendarBridgeError as e:
            logger.warning(f"Fetch of event {event_id} failed for {user_id}: {e.detail}")
            self.notifier.post(user_id, f"Error! Failed to update the response. Error: {e.detail}")
            return False

        summary = event.get("summary", "Untitled")
        attendees = event.get("attendees", [])
        self_attendees = [a for a in attendees if a.get("self")]
        if not self_attendees:
            self.notifier.post(
                user_id, f"Error! You are not listed as an attendee of _{summary}_."
            )
            return False
        for attendee in self_attendees:
            attendee["responseStatus"] = response_status

        try:
            updated = client.update_event(calendar_id, event_id, event, etag=event.get("etag"))
        except CalendarBridgeError as e:
            if getattr(e, "provider_status", None) == 412:
                detail = "the event was changed by someone else, please try again"
            else:
                detail = e.detail
            logger.warning(f"Update of event {event_id} failed for {user_id}: {e.detail}")
            self.notifier.post(
                user_id, f"Error! Failed to update the response of _{summary}_ event: {detail}"
            )
            return False

        self.notifier.post(
            user_id,
            f"Success! Event _{updated.get('summary', summary)}_ response has been updated.",
        )
        return True
