from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, index=True)
    title = Column(String(255), nullable=False)

    cca_id = Column(String(36), ForeignKey("ccas.id"), nullable=True, index=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    capacity = Column(
        Integer,
        nullable=True,
        comment="Maximum confirmed sign-ups; NULL means unlimited"
    )
    sign_up_deadline = Column(DateTime, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    cca = relationship("Cca")
    organiser = relationship("User", foreign_keys=[created_by])
    signups = relationship("EventSignup", back_populates="event", lazy="dynamic")
    waitlist = relationship("WaitlistEntry", back_populates="event", lazy="dynamic")

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, capacity={self.capacity})>"


class EventSignup(Base):
    """A confirmed sign-up. Every row counts against the event's capacity."""
    __tablename__ = "event_signups"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_signup_event_user"),
    )

    id = Column(String(36), primary_key=True, index=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    attendance_status = Column(String(20), nullable=False, default="absent")

    signed_up_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    event = relationship("Event", back_populates="signups")
    user = relationship("User", backref="signups")

    def __repr__(self) -> str:
        return f"<EventSignup(event_id={self.event_id}, user_id={self.user_id})>"
