from datetime import datetime
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship
import enum
from app.core.database import Base


class WaitlistStatus(str, enum.Enum):
    WAITING = "waiting"
    OFFERED = "offered"
    ACCEPTED = "accepted"


class WaitlistEntry(Base):
    """
    One user waiting for a full event.

    State is carried by ``status``; ``promotion_expires_at`` is only set while
    OFFERED and ``promoted_at`` only once ACCEPTED. An OFFERED entry whose
    expiry has passed is treated as expired and is reclaimed by the sweep.
    """
    __tablename__ = "waitlist"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_waitlist_event_user"),
        Index("ix_waitlist_event_joined", "event_id", "joined_at"),
        Index("ix_waitlist_status_expiry", "status", "promotion_expires_at"),
    )

    id = Column(String(36), primary_key=True, index=True)

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)

    joined_at = Column(
        DateTime,
        nullable=False,
        comment="FIFO key; ties are broken by id"
    )

    status = Column(
        SQLEnum(WaitlistStatus),
        nullable=False,
        default=WaitlistStatus.WAITING
    )
    promotion_expires_at = Column(DateTime, nullable=True)
    promoted_at = Column(DateTime, nullable=True)

    user = relationship("User", backref="waitlist_entries")
    event = relationship("Event", back_populates="waitlist")

    @hybrid_property
    def promotion_offered(self) -> bool:
        return self.status == WaitlistStatus.OFFERED

    def is_offer_active(self, now: datetime) -> bool:
        return (
            self.status == WaitlistStatus.OFFERED
            and self.promotion_expires_at is not None
            and now < self.promotion_expires_at
        )

    def is_offer_expired(self, now: datetime) -> bool:
        return (
            self.status == WaitlistStatus.OFFERED
            and self.promotion_expires_at is not None
            and self.promotion_expires_at < now
        )

    def __repr__(self) -> str:
        return f"<WaitlistEntry(id={self.id}, user_id={self.user_id}, event_id={self.event_id}, status={self.status})>"

    def to_dict(self, include_user: bool = False) -> dict:
        waitlist_dict = {
            "id": self.id,
            "userId": self.user_id,
            "eventId": self.event_id,
            "joinedAt": self.joined_at.isoformat() if self.joined_at else None,
            "status": self.status.value,
            "promotionOffered": self.promotion_offered,
            "promotionExpiresAt": self.promotion_expires_at.isoformat() if self.promotion_expires_at else None,
            "promotedAt": self.promoted_at.isoformat() if self.promoted_at else None,
        }

        if include_user and self.user:
            waitlist_dict["user"] = {
                "id": self.user.id,
                "name": self.user.name,
                "email": self.user.email
            }

        return waitlist_dict
