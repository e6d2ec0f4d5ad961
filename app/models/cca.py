from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


STAFF_ROLE_MARKERS = ("exco", "teacher")


class Cca(Base):
    """A co-curricular activity (club) that owns events."""
    __tablename__ = "ccas"

    id = Column(String(36), primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now()
    )

    memberships = relationship("CcaMembership", back_populates="cca", lazy="dynamic")

    def __repr__(self) -> str:
        return f"<Cca(id={self.id}, name={self.name})>"


class CcaMembership(Base):
    """
    A user's role inside a CCA.

    Roles are free text as entered by the club ("member", "EXCO - Treasurer",
    "teacher-in-charge"); policy checks match on substrings.
    """
    __tablename__ = "cca_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "cca_id", name="uq_cca_membership_user_cca"),
    )

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    cca_id = Column(String(36), ForeignKey("ccas.id"), nullable=False, index=True)
    role = Column(String(100), nullable=False, default="member")

    cca = relationship("Cca", back_populates="memberships")
    user = relationship("User", backref="cca_memberships")

    @property
    def is_exco(self) -> bool:
        return "exco" in (self.role or "").lower()

    @property
    def is_staff(self) -> bool:
        role = (self.role or "").lower()
        return any(marker in role for marker in STAFF_ROLE_MARKERS)

    def __repr__(self) -> str:
        return f"<CcaMembership(user_id={self.user_id}, cca_id={self.cca_id}, role={self.role})>"
