from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Text, JSON,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; every non-server-default column stores these."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =====================
# USERS TABLE
# =====================
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    spotify_id = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String)
    email = Column(String, nullable=True)
    avatar_url = Column(String)
    spotify_data = Column(JSON)
    # bumped on logout; API tokens minted with an older version are rejected
    token_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    created_sessions = relationship("BarkadaSession", back_populates="creator")
    session_memberships = relationship("SessionUser", back_populates="user")


# =====================
# BARKADA SESSIONS TABLE
# =====================
class BarkadaSession(Base):
    __tablename__ = "barkada_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_code = Column(String(10), unique=True, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    max_participants = Column(Integer, nullable=True)
    current_track = Column(JSON)
    playback_state = Column(JSON)
    sync_data = Column(JSON)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_barkada_sessions_code_active", "session_code", "is_active"),
        Index("ix_barkada_sessions_creator_active", "creator_id", "is_active"),
    )

    # Relationships
    creator = relationship("User", back_populates="created_sessions")
    participants = relationship("SessionUser", back_populates="session")

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def is_open(self, now: datetime | None = None) -> bool:
        return bool(self.is_active) and not self.is_expired(now)


# =====================
# SESSION USERS TABLE
# =====================
class SessionUser(Base):
    __tablename__ = "session_users"

    id = Column(Integer, primary_key=True, index=True)
    barkada_session_id = Column(
        Integer, ForeignKey("barkada_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime, nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("barkada_session_id", "user_id", name="uq_session_user"),
        Index("ix_session_users_active", "barkada_session_id", "is_active"),
    )

    session = relationship("BarkadaSession", back_populates="participants")
    user = relationship("User", back_populates="session_memberships")
