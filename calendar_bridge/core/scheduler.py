"""Background job scheduler for watch channel renewal."""
import logging
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from calendar_bridge.core.config import Settings, settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def renewal_job_id(user_id: str) -> str:
    return f"watch_renewal:{user_id}"


class RenewalScheduler:
    """Per-user recurring watch renewal.

    Scheduling is best-effort: a failure here is logged and never blocks the
    OAuth flow that requested it.
    """

    def __init__(
        self,
        renew: Callable[[str], None],
        aps: AsyncIOScheduler = scheduler,
        config: Settings = settings,
    ):
        self.renew = renew
        self.aps = aps
        self.config = config

    def schedule(self, user_id: str) -> None:
        try:
            self.aps.add_job(
                self.renew,
                trigger=IntervalTrigger(hours=self.config.watch_renewal_hours),
                args=[user_id],
                id=renewal_job_id(user_id),
                replace_existing=True,
            )
            logger.info(
                f"Scheduled watch renewal for {user_id} every "
                f"{self.config.watch_renewal_hours} hours"
            )
        except Exception as e:
            logger.error(f"Failed to schedule watch renewal for {user_id}: {e}")

    def cancel(self, user_id: str) -> None:
        try:
            self.aps.remove_job(renewal_job_id(user_id))
        except JobLookupError:
            pass


def start_scheduler(housekeeping: Callable[[], None] | None = None):
    """Start the background scheduler."""
    if housekeeping is not None:
        scheduler.add_job(
            housekeeping,
            trigger=IntervalTrigger(hours=1),
            id="kv_housekeeping",
            replace_existing=True,
        )
    scheduler.start()
    logger.info("Scheduler started")


def shutdown_scheduler():
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
