"""Periodic reclaim of expired promotion offers."""
from datetime import datetime
from typing import Callable
from sqlalchemy.orm import Session
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.clock import utcnow
from app.core.config import settings
from app.core.database import SessionLocal
from app.repositories.waitlist_repository import WaitlistRepository
from app.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)

JOB_ID = "waitlist-expired-promotions"


class WaitlistSweep:
    """
    Deletes every expired offer across all events and re-offers each freed
    slot to the next person in that event's queue.

    Entries are handled one at a time; a failure on one is logged and the
    sweep moves on to the next.
    """

    def __init__(
        self,
        notifier,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_minutes: int = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.notifier = notifier
        self.session_factory = session_factory
        self.interval_minutes = interval_minutes or settings.WAITLIST_SWEEP_INTERVAL_MINUTES
        self.clock = clock
        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._started = False

    def run_once(self) -> int:
        db = self.session_factory()
        try:
            try:
                expired = WaitlistRepository(db).list_expired_offers(self.clock())
            except Exception:
                logger.exception("Waitlist sweep could not fetch expired promotions")
                return 0

            if not expired:
                logger.debug("Waitlist sweep: no expired promotions")
                return 0

            logger.info(f"Waitlist sweep found {len(expired)} expired promotion(s)")
            targets = [(entry.id, entry.event_id) for entry in expired]

            service = WaitlistService(db, self.notifier, clock=self.clock)
            reclaimed = 0
            for waitlist_id, event_id in targets:
                try:
                    service.clear_expired_and_promote(waitlist_id, event_id)
                    reclaimed += 1
                    logger.info(f"Removed expired waitlist entry {waitlist_id} for event {event_id}")
                except Exception:
                    db.rollback()
                    logger.exception(f"Waitlist sweep failed on entry {waitlist_id} (event {event_id})")
            return reclaimed
        finally:
            db.close()

    def start(self) -> None:
        if self._started:
            return
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self._scheduler.start()
        self._started = True
        logger.info(f"Waitlist sweep scheduled every {self.interval_minutes} minute(s)")

    def shutdown(self) -> None:
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
