from datetime import datetime, timedelta
from typing import Callable, Optional
from sqlalchemy.orm import Session
import logging

from app.core.clock import utcnow
from app.core.config import settings
from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    PolicyError,
    PromotionExpiredError,
)
from app.models.audit_log import AuditAction, TargetType
from app.models.event import Event
from app.models.waitlist import WaitlistEntry, WaitlistStatus
from app.repositories.audit_log_repository import AuditLogRepository
from app.repositories.event_repository import EventRepository
from app.repositories.membership_repository import MembershipRepository
from app.repositories.waitlist_repository import WaitlistRepository
from app.services.capacity_service import CapacityService

logger = logging.getLogger(__name__)


class WaitlistService:
    """
    Promotion engine for event waitlists.

    Entries move WAITING -> OFFERED -> ACCEPTED. An OFFERED entry that is not
    accepted before ``promotion_expires_at`` is deleted and the offer passes
    to the next WAITING entry in FIFO order. Every step is a separate commit;
    nothing here holds a lock.
    """

    def __init__(
        self,
        db: Session,
        notifier,
        clock: Callable[[], datetime] = utcnow,
        promotion_window: Optional[timedelta] = None
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.promotion_window = promotion_window or timedelta(hours=settings.PROMOTION_WINDOW_HOURS)
        self.waitlist_repo = WaitlistRepository(db)
        self.event_repo = EventRepository(db)
        self.membership_repo = MembershipRepository(db)
        self.audit_repo = AuditLogRepository(db)
        self.capacity = CapacityService(db)

    # ------------------------------------------------------------------
    # Policy helpers
    # ------------------------------------------------------------------

    def _get_event(self, event_id: str) -> Event:
        event = self.event_repo.get_by_id(event_id)
        if not event:
            raise NotFoundError("Event not found")
        return event

    def _membership_for(self, event: Event, user_id: str):
        if not event.cca_id:
            return None
        return self.membership_repo.get_membership(user_id, event.cca_id)

    def is_staff(self, event: Event, user_id: str) -> bool:
        membership = self._membership_for(event, user_id)
        return bool(membership and membership.is_staff)

    def ensure_staff(self, event_id: str, user_id: str) -> Event:
        event = self._get_event(event_id)
        if not self.is_staff(event, user_id):
            raise PolicyError("Only EXCO or teachers of this CCA can manage its waitlist")
        return event

    def _audit(self, action: AuditAction, entry_id: str, actor_id: Optional[str], details: str, **metadata) -> None:
        self.audit_repo.create(
            action=action,
            actor_id=actor_id,
            target_type=TargetType.WAITLIST_ENTRY,
            target_id=entry_id,
            details=details,
            metadata=metadata or None
        )

    def _notify_promotion(self, user_id: str, event_id: str, expires_at: datetime) -> None:
        event = self.event_repo.get_by_id(event_id)
        title = event.title if event else "an event"
        hours = int(self.promotion_window.total_seconds() // 3600)
        message = f'A spot is available for "{title}". You have {hours} hours to accept the promotion.'
        try:
            self.notifier.notify(
                user_id,
                message,
                {"eventId": event_id, "expiresAt": expires_at.isoformat(), "type": "waitlist_promotion"}
            )
        except Exception as e:
            logger.warning(f"Failed to dispatch promotion notification to user {user_id}: {str(e)}")

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def join(self, event_id: str, user_id: str) -> WaitlistEntry:
        event = self._get_event(event_id)

        if event.created_by == user_id:
            raise PolicyError("Organisers cannot join the waitlist for their own event")

        membership = self._membership_for(event, user_id)
        if membership and membership.is_exco:
            raise PolicyError("EXCO members cannot join the waitlist for their own CCA's event")

        if event.sign_up_deadline and self.clock() > event.sign_up_deadline:
            raise PolicyError("Sign-up deadline has passed for this event")

        capacity = self.capacity.is_full(event_id)
        if not capacity.full:
            raise ConflictError("Event still has available slots. You can sign up directly.")

        if self.event_repo.get_signup(event_id, user_id):
            raise ConflictError("You are already signed up for this event")

        if self.waitlist_repo.get_entry(event_id, user_id):
            raise ConflictError("You are already on the waitlist for this event")

        entry = self.waitlist_repo.add_entry(event_id, user_id, joined_at=self.clock())
        self._audit(
            AuditAction.WAITLIST_JOINED,
            entry.id,
            user_id,
            f"User {user_id} joined the waitlist for event {event_id}"
        )
        logger.info(f"User {user_id} joined waitlist for event {event_id}")
        return entry

    def accept(self, event_id: str, user_id: str) -> None:
        now = self.clock()
        offer = self.waitlist_repo.active_offer_for(event_id, user_id, now)
        if not offer:
            raise PromotionExpiredError("Promotion expired or invalid")

        waitlist_id = offer.id
        expires_at = offer.promotion_expires_at

        if not self.waitlist_repo.mark_accepted(waitlist_id, now):
            # Removed, revoked or expired since the lookup above
            raise PromotionExpiredError("Promotion expired or invalid")

        try:
            self.event_repo.insert_signup(event_id, user_id)
        except PersistenceError:
            # Put the offer back with its original deadline so the user can retry
            self.waitlist_repo.reopen_offer(waitlist_id, expires_at)
            logger.error(f"Sign-up insert failed while accepting promotion {waitlist_id}; offer restored")
            raise

        self.waitlist_repo.remove_by_id(waitlist_id)
        self._audit(
            AuditAction.PROMOTION_ACCEPTED,
            waitlist_id,
            user_id,
            f"User {user_id} accepted promotion for event {event_id}"
        )
        logger.info(f"User {user_id} accepted promotion for event {event_id}")

    def cancel(self, event_id: str, acting_user_id: str, target_user_id: Optional[str] = None) -> bool:
        """
        Remove a waitlist entry and advance the queue.

        Staff of the event's CCA may name another user; anyone else always
        cancels their own entry. Returns True when the staff override applied.
        """
        event = self.event_repo.get_by_id(event_id)
        staff_override = bool(
            target_user_id
            and target_user_id != acting_user_id
            and event is not None
            and self.is_staff(event, acting_user_id)
        )
        user_id = target_user_id if staff_override else acting_user_id

        entry = self.waitlist_repo.get_entry(event_id, user_id)
        if entry:
            entry_id = entry.id
            self.waitlist_repo.remove_by_id(entry_id)
            self._audit(
                AuditAction.WAITLIST_LEFT,
                entry_id,
                acting_user_id,
                f"User {user_id} removed from waitlist for event {event_id}",
                staffOverride=staff_override
            )

        self.offer_next_promotion(event_id)
        return staff_override

    def unsign(self, event_id: str, user_id: str) -> bool:
        removed = self.event_repo.delete_signup(event_id, user_id)
        if removed:
            self.audit_repo.create(
                action=AuditAction.SIGNUP_CANCELLED,
                actor_id=user_id,
                target_type=TargetType.EVENT,
                target_id=event_id,
                details=f"User {user_id} un-signed from event {event_id}"
            )
            logger.info(f"User {user_id} un-signed from event {event_id}")

        self.offer_next_promotion(event_id)
        return removed

    # ------------------------------------------------------------------
    # Queue advancement
    # ------------------------------------------------------------------

    def offer_next_promotion(self, event_id: str) -> Optional[WaitlistEntry]:
        now = self.clock()

        for expired in self.waitlist_repo.clear_expired_for_event(event_id, now):
            self._audit(
                AuditAction.PROMOTION_EXPIRED,
                expired["id"],
                None,
                f"Promotion for user {expired['userId']} expired on event {event_id}"
            )

        try:
            capacity = self.capacity.is_full(event_id)
        except NotFoundError:
            logger.debug(f"Event {event_id} no longer exists; nothing to promote")
            return None

        if capacity.unlimited:
            logger.debug(f"Event {event_id} has no capacity limit; nothing to promote")
            return None

        if capacity.full:
            logger.debug(f"Event {event_id} has no free slots; nothing to promote")
            return None

        outstanding = self.waitlist_repo.count_active_offers(event_id, now)
        if outstanding >= capacity.free_slots:
            logger.debug(f"Event {event_id}: {outstanding} live offer(s) already cover {capacity.free_slots} free slot(s)")
            return None

        candidate = self.waitlist_repo.next_unoffered_candidate(event_id)
        if not candidate:
            logger.debug(f"Waitlist for event {event_id} is empty; nothing to promote")
            return None

        expires_at = now + self.promotion_window
        offered = self.waitlist_repo.mark_offered(candidate.id, expires_at, only_if_waiting=True)
        if not offered:
            logger.info(f"Waitlist entry {candidate.id} was claimed by a concurrent promotion; skipping")
            return None

        self._audit(
            AuditAction.PROMOTION_OFFERED,
            offered.id,
            None,
            f"Promotion offered to user {offered.user_id} for event {event_id}",
            expiresAt=expires_at.isoformat()
        )
        self._notify_promotion(offered.user_id, event_id, expires_at)
        logger.info(f"Promotion sent: user={offered.user_id}, waitlist_id={offered.id}, expires_at={expires_at.isoformat()}")
        return offered

    def clear_expired_and_promote(
        self,
        waitlist_id: str,
        event_id: str,
        actor_id: Optional[str] = None
    ) -> Optional[WaitlistEntry]:
        """
        Delete ``waitlist_id`` if it is an expired offer on ``event_id``, then
        advance that event's queue. Live offers and waiting entries are left
        alone; an entry belonging to another event is reported as missing.
        """
        entry = self.waitlist_repo.get_by_id(waitlist_id)
        if entry and entry.event_id != event_id:
            raise NotFoundError("Waitlist entry not found")

        if entry:
            user_id = entry.user_id
            if self.waitlist_repo.remove_expired_offer(waitlist_id, self.clock()):
                self._audit(
                    AuditAction.PROMOTION_EXPIRED,
                    waitlist_id,
                    actor_id,
                    f"Expired promotion for user {user_id} cleared on event {event_id}"
                )
            else:
                logger.info(f"Waitlist entry {waitlist_id} holds no expired promotion; not removed")

        return self.offer_next_promotion(event_id)

    # ------------------------------------------------------------------
    # Staff overrides
    # ------------------------------------------------------------------

    def get_entry(self, waitlist_id: str) -> WaitlistEntry:
        entry = self.waitlist_repo.get_by_id(waitlist_id)
        if not entry:
            raise NotFoundError("Waitlist entry not found")
        return entry

    def manual_promote(self, waitlist_id: str, actor_id: Optional[str] = None) -> WaitlistEntry:
        entry = self.get_entry(waitlist_id)

        expires_at = self.clock() + self.promotion_window
        offered = self.waitlist_repo.mark_offered(entry.id, expires_at)
        if not offered:
            raise NotFoundError("Waitlist entry not found")

        self._audit(
            AuditAction.PROMOTION_OFFERED,
            offered.id,
            actor_id,
            f"Manual promotion offered to user {offered.user_id} for event {offered.event_id}",
            manual=True,
            expiresAt=expires_at.isoformat()
        )
        self._notify_promotion(offered.user_id, offered.event_id, expires_at)
        logger.info(f"Manual promotion sent: user={offered.user_id}, waitlist_id={offered.id}")
        return offered

    def revoke(self, waitlist_id: str, actor_id: Optional[str] = None) -> WaitlistEntry:
        entry = self.get_entry(waitlist_id)

        cleared = self.waitlist_repo.clear_offer(entry.id)
        if not cleared:
            raise NotFoundError("Waitlist entry not found")

        self._audit(
            AuditAction.PROMOTION_REVOKED,
            cleared.id,
            actor_id,
            f"Promotion revoked for user {cleared.user_id} on event {cleared.event_id}"
        )
        logger.info(f"Promotion revoked: waitlist_id={cleared.id}")
        return cleared

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_waitlist(self, event_id: str) -> list[dict]:
        entries = self.waitlist_repo.list_for_event_with_users(event_id)
        waitlist = []
        for position, entry in enumerate(entries, start=1):
            item = entry.to_dict(include_user=True)
            item["position"] = position
            waitlist.append(item)
        return waitlist

    def get_status(self, event_id: str, user_id: str) -> dict:
        now = self.clock()
        entries = self.waitlist_repo.list_for_event(event_id)

        waiting_position = 0
        for entry in entries:
            if entry.status == WaitlistStatus.WAITING:
                waiting_position += 1
            if entry.user_id != user_id:
                continue

            offer_active = entry.is_offer_active(now)
            seconds_left = None
            if offer_active:
                seconds_left = int((entry.promotion_expires_at - now).total_seconds())

            return {
                "onWaitlist": True,
                "entry": entry.to_dict(),
                "position": waiting_position if entry.status == WaitlistStatus.WAITING else None,
                "offerActive": offer_active,
                "offerExpired": entry.is_offer_expired(now),
                "secondsRemaining": seconds_left,
            }

        return {
            "onWaitlist": False,
            "entry": None,
            "position": None,
            "offerActive": False,
            "offerExpired": False,
            "secondsRemaining": None,
        }
