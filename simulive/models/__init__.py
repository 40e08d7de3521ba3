from simulive.models.base import Base
from simulive.models.class_session import ClassSession
from simulive.models.message import ChatMessage
from simulive.models.scheduled_message import ScheduledMessage
from simulive.models.user import GuestRegistration, User
from simulive.models.video import Video

__all__ = [
    "Base",
    "User",
    "GuestRegistration",
    "Video",
    "ClassSession",
    "ScheduledMessage",
    "ChatMessage",
]
