from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, List
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from app.core.clock import utcnow
from app.core.exceptions import PersistenceError
from app.models.waitlist import WaitlistEntry, WaitlistStatus
import logging
import uuid

logger = logging.getLogger(__name__)


class WaitlistRepository:
    """
    Data access for waitlist entries. No business rules live here.

    Every method commits its own change. Storage failures roll the session
    back and surface as ``PersistenceError``.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _storage(self, failure_message: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"{failure_message}: {exc}")
            raise PersistenceError(failure_message) from exc

    def _fifo_query(self, event_id: str):
        return self.db.query(WaitlistEntry).filter(
            WaitlistEntry.event_id == event_id
        ).order_by(WaitlistEntry.joined_at, WaitlistEntry.id)

    def get_by_id(self, waitlist_id: str) -> Optional[WaitlistEntry]:
        with self._storage("Failed to fetch waitlist entry by ID"):
            return self.db.query(WaitlistEntry).filter(
                WaitlistEntry.id == waitlist_id
            ).first()

    def get_entry(self, event_id: str, user_id: str) -> Optional[WaitlistEntry]:
        with self._storage("Failed to fetch waitlist entry"):
            return self.db.query(WaitlistEntry).filter(
                WaitlistEntry.event_id == event_id,
                WaitlistEntry.user_id == user_id
            ).first()

    def add_entry(
        self,
        event_id: str,
        user_id: str,
        joined_at: Optional[datetime] = None
    ) -> WaitlistEntry:
        existing = self.get_entry(event_id, user_id)
        if existing:
            return existing

        entry = WaitlistEntry(
            id=str(uuid.uuid4()),
            event_id=event_id,
            user_id=user_id,
            joined_at=joined_at or utcnow(),
            status=WaitlistStatus.WAITING
        )

        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            return entry
        except IntegrityError:
            # Lost a race with a concurrent join for the same pair
            self.db.rollback()
            existing = self.get_entry(event_id, user_id)
            if existing:
                return existing
            raise PersistenceError("Failed to add user to waitlist")
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Failed to add user to waitlist: {exc}")
            raise PersistenceError("Failed to add user to waitlist") from exc

    def list_for_event(self, event_id: str) -> List[WaitlistEntry]:
        with self._storage("Failed to fetch waitlist"):
            return self._fifo_query(event_id).all()

    def list_for_event_with_users(self, event_id: str) -> List[WaitlistEntry]:
        with self._storage("Failed to fetch waitlist"):
            return self._fifo_query(event_id).options(
                joinedload(WaitlistEntry.user)
            ).all()

    def remove_entry(self, event_id: str, user_id: str) -> bool:
        with self._storage("Failed to remove waitlist entry"):
            deleted = self.db.query(WaitlistEntry).filter(
                WaitlistEntry.event_id == event_id,
                WaitlistEntry.user_id == user_id
            ).delete(synchronize_session=False)
            self.db.commit()
            return deleted > 0

    def remove_by_id(self, waitlist_id: str) -> bool:
        with self._storage("Failed to remove waitlist entry"):
            deleted = self.db.query(WaitlistEntry).filter(
                WaitlistEntry.id == waitlist_id
            ).delete(synchronize_session=False)
            self.db.commit()
            return deleted > 0

    def next_unoffered_candidate(self, event_id: str) -> Optional[WaitlistEntry]:
        with self._storage("Failed to fetch next candidate"):
            return self._fifo_query(event_id).filter(
                WaitlistEntry.status == WaitlistStatus.WAITING
            ).first()

    def mark_offered(
        self,
        waitlist_id: str,
        expires_at: datetime,
        only_if_waiting: bool = False
    ) -> Optional[WaitlistEntry]:
        """
        Put the entry in OFFERED state until ``expires_at``.

        With ``only_if_waiting`` the update only applies to an entry that is
        still WAITING; ``None`` is returned when a concurrent writer already
        moved it on.
        """
        with self._storage("Failed to mark promotion offered"):
            query = self.db.query(WaitlistEntry).filter(WaitlistEntry.id == waitlist_id)
            if only_if_waiting:
                query = query.filter(WaitlistEntry.status == WaitlistStatus.WAITING)

            updated = query.update(
                {
                    WaitlistEntry.status: WaitlistStatus.OFFERED,
                    WaitlistEntry.promotion_expires_at: expires_at,
                    WaitlistEntry.promoted_at: None,
                },
                synchronize_session=False
            )
            self.db.commit()

        if not updated:
            return None
        return self.get_by_id(waitlist_id)

    def mark_accepted(self, waitlist_id: str, accepted_at: datetime) -> Optional[WaitlistEntry]:
        """
        Move a live offer to ACCEPTED.

        Only an entry that is still OFFERED with an expiry after
        ``accepted_at`` is updated; otherwise ``None`` is returned.
        """
        with self._storage("Failed to mark promotion accepted"):
            updated = self.db.query(WaitlistEntry).filter(
                WaitlistEntry.id == waitlist_id,
                WaitlistEntry.status == WaitlistStatus.OFFERED,
                WaitlistEntry.promotion_expires_at > accepted_at
            ).update(
                {
                    WaitlistEntry.status: WaitlistStatus.ACCEPTED,
                    WaitlistEntry.promoted_at: accepted_at,
                    WaitlistEntry.promotion_expires_at: None,
                },
                synchronize_session=False
            )
            self.db.commit()

        if not updated:
            return None
        return self.get_by_id(waitlist_id)

    def reopen_offer(self, waitlist_id: str, expires_at: datetime) -> Optional[WaitlistEntry]:
        return self.mark_offered(waitlist_id, expires_at)

    def clear_offer(self, waitlist_id: str) -> Optional[WaitlistEntry]:
        with self._storage("Failed to clear promotion"):
            updated = self.db.query(WaitlistEntry).filter(
                WaitlistEntry.id == waitlist_id
            ).update(
                {
                    WaitlistEntry.status: WaitlistStatus.WAITING,
                    WaitlistEntry.promotion_expires_at: None,
                    WaitlistEntry.promoted_at: None,
                },
                synchronize_session=False
            )
            self.db.commit()

        if not updated:
            return None
        return self.get_by_id(waitlist_id)

    def _expired_query(self, now: datetime):
        return self.db.query(WaitlistEntry).filter(
            WaitlistEntry.status == WaitlistStatus.OFFERED,
            WaitlistEntry.promotion_expires_at < now
        )

    def list_expired_offers(self, now: datetime) -> List[WaitlistEntry]:
        with self._storage("Failed to fetch expired promotions"):
            return self._expired_query(now).order_by(
                WaitlistEntry.promotion_expires_at, WaitlistEntry.id
            ).all()

    def remove_expired_offer(self, waitlist_id: str, now: datetime) -> bool:
        """Delete the entry only while it is an offer that expired before ``now``."""
        with self._storage("Failed to remove expired promotion"):
            deleted = self._expired_query(now).filter(
                WaitlistEntry.id == waitlist_id
            ).delete(synchronize_session=False)
            self.db.commit()
            return deleted > 0

    def clear_expired_for_event(self, event_id: str, now: datetime) -> List[dict]:
        """Delete the event's expired offers. Returns snapshots of the deleted rows."""
        with self._storage("Failed to clear expired promotions"):
            expired = self._expired_query(now).filter(
                WaitlistEntry.event_id == event_id
            ).all()
            snapshots = [entry.to_dict() for entry in expired]
            for entry in expired:
                self.db.delete(entry)
            self.db.commit()
            return snapshots

    def _active_query(self, event_id: str, now: datetime):
        return self.db.query(WaitlistEntry).filter(
            WaitlistEntry.event_id == event_id,
            WaitlistEntry.status == WaitlistStatus.OFFERED,
            WaitlistEntry.promotion_expires_at > now
        )

    def active_offer_for(self, event_id: str, user_id: str, now: datetime) -> Optional[WaitlistEntry]:
        with self._storage("Failed to fetch active promotion"):
            return self._active_query(event_id, now).filter(
                WaitlistEntry.user_id == user_id
            ).first()

    def count_active_offers(self, event_id: str, now: datetime) -> int:
        with self._storage("Failed to count active promotions"):
            return self._active_query(event_id, now).count()
