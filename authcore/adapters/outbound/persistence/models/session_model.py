# authcore/adapters/outbound/persistence/models/session_model.py

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from authcore.adapters.outbound.persistence.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionModel(Base):
    """
    One row per logged-in device, keyed by its current token pair.

    Attributes:
        session_token: Current access token
        refresh_token: Current refresh token
        expires: Mirrors the access token expiry
        last_activity: Touched on every validated request
    """
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_token = Column(Text, unique=True, nullable=False)
    refresh_token = Column(Text, unique=True, nullable=False)
    expires = Column(DateTime(timezone=True), nullable=False)
    last_activity = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("UserModel", back_populates="sessions", lazy="joined")


Index("ix_sessions_user_id_created_at", SessionModel.user_id, SessionModel.created_at)
Index("ix_sessions_expires", SessionModel.expires)
