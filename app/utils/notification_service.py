from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.orm import Session
import logging

from app.core.database import SessionLocal
from app.repositories.event_repository import EventRepository
from app.repositories.notification_repository import NotificationRepository
from app.repositories.user_repository import UserRepository
from app.utils.email_service import EmailService

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Fire-and-forget notification sink.

    ``notify`` only enqueues; delivery runs on a single background worker with
    its own database session, so a slow mail server or a failed insert never
    reaches the caller.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        email_service: Optional[EmailService] = None,
        max_workers: int = 1
    ):
        self.session_factory = session_factory
        self.email_service = email_service or EmailService()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notifications")

    def notify(self, user_id: str, message: str, metadata: Optional[dict] = None) -> None:
        try:
            self._executor.submit(self._deliver, user_id, message, metadata or {})
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Dropped notification for user {user_id}: {str(e)}")

    def _deliver(self, user_id: str, message: str, metadata: dict) -> None:
        db = self.session_factory()
        try:
            NotificationRepository(db).create(user_id=user_id, message=message, metadata=metadata)

            if metadata.get("type") == "waitlist_promotion":
                self._send_promotion_email(db, user_id, metadata)
        except Exception:
            db.rollback()
            logger.exception(f"Notification delivery failed for user {user_id}")
        finally:
            db.close()

    def _send_promotion_email(self, db: Session, user_id: str, metadata: dict) -> None:
        user = UserRepository(db).get_by_id(user_id)
        event = EventRepository(db).get_by_id(metadata.get("eventId"))
        if not user or not event:
            return

        expires_at = datetime.fromisoformat(metadata["expiresAt"])
        self.email_service.send_waitlist_promotion(user=user, event=event, expires_at=expires_at)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
