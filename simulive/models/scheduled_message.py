from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from simulive.models.base import Base

if TYPE_CHECKING:
    from simulive.models.class_session import ClassSession


class ScheduledMessage(Base):
    """Ledger entry: chat text injected once the playback offset is reached."""

    __tablename__ = "scheduled_messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False)
    offset_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    sender_name: Mapped[str] = mapped_column(String(128), nullable=False, default="Admin")
    sender_avatar: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("session_id", "offset_seconds", name="uq_scheduled_session_offset"),
        Index("idx_scheduled_due", "session_id", "sent", "offset_seconds"),
    )

    session: Mapped["ClassSession"] = relationship("ClassSession", back_populates="scheduled_messages")
