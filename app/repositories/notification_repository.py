from typing import Optional, List
from sqlalchemy.orm import Session
from app.models.notification import Notification
import uuid


class NotificationRepository:

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        message: str,
        metadata: Optional[dict] = None
    ) -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            message=message,
            is_read=False,
            extra_metadata=metadata
        )

        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def get_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return query.order_by(Notification.created_at.desc()).all()
