from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from app.core.exceptions import PersistenceError
from app.models.cca import CcaMembership


class MembershipRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_membership(self, user_id: str, cca_id: str) -> Optional[CcaMembership]:
        try:
            return self.db.query(CcaMembership).filter(
                CcaMembership.user_id == user_id,
                CcaMembership.cca_id == cca_id
            ).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError("Failed to fetch CCA membership") from exc
