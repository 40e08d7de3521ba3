from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from simulive.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from simulive.models.scheduled_message import ScheduledMessage
    from simulive.models.user import User
    from simulive.models.video import Video


class ClassSession(Base, TimestampMixin):
    __tablename__ = "class_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # public/shareable identifier used in join links and channel names
    public_slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    scheduled_start: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    video_id: Mapped[str] = mapped_column(ForeignKey("videos.id"), nullable=False)
    # scheduled | live | ended  (cache of the last reconciliation)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="scheduled")
    created_by: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        Index("idx_sessions_status_start", "status", "scheduled_start"),
    )

    # Relationships
    video: Mapped["Video"] = relationship("Video", lazy="joined")
    creator: Mapped["User"] = relationship("User", back_populates="created_sessions")
    scheduled_messages: Mapped[List["ScheduledMessage"]] = relationship(
        "ScheduledMessage",
        back_populates="session",
        lazy="selectin",
        order_by="ScheduledMessage.offset_seconds",
    )

    @property
    def video_duration(self) -> int:
        return (self.video.duration or 0) if self.video else 0
