from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from app.core.exceptions import PersistenceError
from app.models.audit_log import AuditLog, AuditAction, TargetType
import uuid


class AuditLogRepository:

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        action: AuditAction,
        actor_id: Optional[str] = None,
        target_type: Optional[TargetType] = None,
        target_id: Optional[str] = None,
        details: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> AuditLog:
        log = AuditLog(
            id=str(uuid.uuid4()),
            action=action,
            actor_id=actor_id,
            target_type=target_type,
            target_id=target_id,
            details=details,
            extra_metadata=metadata
        )

        try:
            self.db.add(log)
            self.db.commit()
            self.db.refresh(log)
            return log
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to write audit log") from exc

    def get_by_target(
        self,
        target_type: TargetType,
        target_id: str,
        limit: int = 100
    ) -> List[AuditLog]:
        return self.db.query(AuditLog).filter(
            AuditLog.target_type == target_type,
            AuditLog.target_id == target_id
        ).order_by(AuditLog.timestamp.desc()).limit(limit).all()

