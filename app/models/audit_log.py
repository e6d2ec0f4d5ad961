from sqlalchemy import Column, String, DateTime, Text, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
import enum
from app.core.database import Base


class AuditAction(str, enum.Enum):
    WAITLIST_JOINED = "waitlist_joined"
    WAITLIST_LEFT = "waitlist_left"
    PROMOTION_OFFERED = "promotion_offered"
    PROMOTION_ACCEPTED = "promotion_accepted"
    PROMOTION_EXPIRED = "promotion_expired"
    PROMOTION_REVOKED = "promotion_revoked"
    SIGNUP_CANCELLED = "signup_cancelled"


class TargetType(str, enum.Enum):
    EVENT = "event"
    WAITLIST_ENTRY = "waitlist_entry"
    SIGNUP = "signup"


class AuditLog(Base):
    """Append-only history of waitlist state transitions."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, index=True)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)

    actor_id = Column(String(36), nullable=True, index=True, comment="NULL for system actions (sweep)")
    target_type = Column(SQLEnum(TargetType), nullable=True)
    target_id = Column(String(36), nullable=True, index=True)
    details = Column(Text, nullable=True)
    extra_metadata = Column(JSON, nullable=True)

    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, target_id={self.target_id})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action.value,
            "actorId": self.actor_id,
            "targetType": self.target_type.value if self.target_type else None,
            "targetId": self.target_id,
            "details": self.details,
            "metadata": self.extra_metadata,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
