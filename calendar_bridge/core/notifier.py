"""Out-of-band messages to a user (chat bot direct message)."""
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def post(self, user_id: str, message: str) -> None: ...


class LogNotifier:
    """Notifier that only logs. Delivery to the chat bot lives outside this service."""

    def post(self, user_id: str, message: str) -> None:
        logger.info(f"Notification for {user_id}: {message}")
