from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from app.core.exceptions import PersistenceError
from app.models.event import Event, EventSignup
import logging
import uuid

logger = logging.getLogger(__name__)


class EventRepository:
    """Read access to events plus the sign-up rows that count against capacity."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: str) -> Optional[Event]:
        try:
            return self.db.query(Event).filter(Event.id == event_id).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to fetch event") from exc

    def count_registered(self, event_id: str) -> int:
        try:
            return self.db.query(EventSignup).filter(
                EventSignup.event_id == event_id
            ).count()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to count event sign-ups") from exc

    def get_signup(self, event_id: str, user_id: str) -> Optional[EventSignup]:
        try:
            return self.db.query(EventSignup).filter(
                EventSignup.event_id == event_id,
                EventSignup.user_id == user_id
            ).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to fetch sign-up") from exc

    def insert_signup(self, event_id: str, user_id: str) -> EventSignup:
        signup = EventSignup(
            id=str(uuid.uuid4()),
            event_id=event_id,
            user_id=user_id,
            attendance_status="absent"
        )

        try:
            self.db.add(signup)
            self.db.commit()
            self.db.refresh(signup)
            return signup
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"Duplicate sign-up for user {user_id} on event {event_id}")
            raise PersistenceError("Failed to confirm sign-up") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Sign-up insert failed for user {user_id} on event {event_id}: {exc}")
            raise PersistenceError("Failed to confirm sign-up") from exc

    def delete_signup(self, event_id: str, user_id: str) -> bool:
        try:
            deleted = self.db.query(EventSignup).filter(
                EventSignup.event_id == event_id,
                EventSignup.user_id == user_id
            ).delete(synchronize_session=False)
            self.db.commit()
            return deleted > 0
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to unsign") from exc
