"""
Viewer chat feed with de-duplication.

The same message can reach a viewer twice: two viewers may trigger the same
scheduled message, and history loads overlap live events. Messages are
dropped when their id was already seen, or when the same sender posted the
same text within the dedupe window.
"""

from typing import Any, Dict, List, Optional

DEDUPE_WINDOW_MS = 2000


class ChatFeed:
    def __init__(self, window_ms: int = DEDUPE_WINDOW_MS, max_messages: Optional[int] = 500):
        self.window_ms = window_ms
        self.max_messages = max_messages
        self.messages: List[Dict[str, Any]] = []
        self._ids = set()

    def _is_duplicate(self, message: Dict[str, Any]) -> bool:
        message_id = message.get("id")
        if message_id and message_id in self._ids:
            return True
        timestamp = message.get("timestamp") or 0
        for existing in reversed(self.messages):
            if abs((existing.get("timestamp") or 0) - timestamp) > self.window_ms:
                continue
            if existing.get("message") == message.get("message") and existing.get("sender") == message.get("sender"):
                return True
        return False

    def add(self, message: Dict[str, Any]) -> bool:
        """Append a message; returns False when it was a duplicate"""
        if self._is_duplicate(message):
            return False
        self.messages.append(message)
        if message.get("id"):
            self._ids.add(message["id"])
        if self.max_messages and len(self.messages) > self.max_messages:
            dropped = self.messages[: len(self.messages) - self.max_messages]
            self.messages = self.messages[-self.max_messages:]
            for old in dropped:
                self._ids.discard(old.get("id"))
        return True

    def extend(self, messages: List[Dict[str, Any]]) -> int:
        return sum(1 for m in messages if self.add(m))

    def remove(self, message_id: str) -> bool:
        before = len(self.messages)
        self.messages = [m for m in self.messages if m.get("id") != message_id]
        return len(self.messages) != before
