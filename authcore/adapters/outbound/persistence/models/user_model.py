# authcore/adapters/outbound/persistence/models/user_model.py

"""
User model.

Only the columns the session core reads or writes are mapped here; the rest of
the user profile belongs to the application that owns the table.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship

from authcore.adapters.outbound.persistence.database import Base
from authcore.domain.models.user_domain_model import UserRole


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    """
    Attributes:
        id: User identifier (UUID string)
        email: Login email, unique
        password: bcrypt hash
        role: STUDENT, LANDLORD or ADMIN
        is_email_verified: Email ownership confirmed
        login_attempts: Consecutive failed logins
        is_locked: Lock flag set after too many failures
        lock_until: End of the current lock
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, unique=True, nullable=True)
    name = Column(String, nullable=True)
    password = Column(String, nullable=False)
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.STUDENT)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    login_attempts = Column(Integer, default=0, nullable=False)
    is_locked = Column(Boolean, default=False, nullable=False)
    lock_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    sessions = relationship(
        "SessionModel",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<User(email={self.email}, role={self.role})>"
