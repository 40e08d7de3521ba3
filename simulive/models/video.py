from typing import Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from simulive.models.base import Base, TimestampMixin


class Video(Base, TimestampMixin):
    """Uploaded recording. Managed elsewhere; read-only for the session engine."""

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # seconds; NULL/0 means the length is unknown
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    video_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    uploader_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
