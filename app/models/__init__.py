from app.models.user import User
from app.models.cca import Cca, CcaMembership
from app.models.event import Event, EventSignup
from app.models.waitlist import WaitlistEntry, WaitlistStatus
from app.models.notification import Notification
from app.models.audit_log import AuditLog, AuditAction, TargetType

__all__ = [
    "User",
    "Cca",
    "CcaMembership",
    "Event",
    "EventSignup",
    "WaitlistEntry",
    "WaitlistStatus",
    "Notification",
    "AuditLog",
    "AuditAction",
    "TargetType",
]
