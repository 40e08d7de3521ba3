from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from simulive.core.time import utcnow
from simulive.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from simulive.models.class_session import ClassSession


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    # admin | student (guests are student rows with a guest_registrations entry)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student")
    avatar_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Relationships
    created_sessions: Mapped[List["ClassSession"]] = relationship("ClassSession", back_populates="creator")
    guest_registrations: Mapped[List["GuestRegistration"]] = relationship("GuestRegistration", back_populates="user")


class GuestRegistration(Base):
    """Ties an ephemeral guest account to the session it was minted for."""

    __tablename__ = "guest_registrations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_guest_session_user"),
        Index("idx_guest_session", "session_id"),
    )

    user: Mapped["User"] = relationship("User", back_populates="guest_registrations")
