"""
Viewer-side presence roster.

Built from the presence channel's ``subscription_succeeded`` snapshot and
``member_added`` / ``member_removed`` events, with hand-raise state merged in
from ``client-hand-update`` on the session channel. Hand updates that arrive
before the member is known are held and applied when the member shows up.

Roles here only decide who is listed; they never grant anything.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from simulive.core.config import settings
from simulive.realtime.channels import (
    EVENT_HAND_UPDATE,
    EVENT_MEMBER_ADDED,
    EVENT_MEMBER_REMOVED,
    EVENT_SUBSCRIPTION_SUCCEEDED,
)

OPERATOR_ROLES = frozenset({"admin"})
PENDING_HANDS_LIMIT = 256


@dataclass
class Participant:
    user_id: str
    name: str
    role: str = "student"
    hand_raised: bool = False


class PresenceAggregator:
    def __init__(self, base_count: int = settings.participant_count_base):
        self.base_count = base_count
        self.members: Dict[str, Participant] = {}
        self._pending_hands: Dict[str, bool] = {}

    def _participant(self, user_id: str, info: Optional[Dict[str, Any]]) -> Participant:
        info = info or {}
        participant = Participant(
            user_id=user_id,
            name=info.get("name") or "Guest",
            role=info.get("role") or "student",
        )
        if user_id in self._pending_hands:
            participant.hand_raised = self._pending_hands.pop(user_id)
        return participant

    def handle(self, event: str, data: Any) -> bool:
        """Apply one channel event; returns True when the roster changed"""
        data = data or {}
        if event == EVENT_SUBSCRIPTION_SUCCEEDED:
            presence = data.get("presence")
            if presence is None:
                return False
            self.load_snapshot(presence)
        elif event == EVENT_MEMBER_ADDED:
            user_id = str(data.get("user_id", ""))
            if not user_id:
                return False
            self.members[user_id] = self._participant(user_id, data.get("user_info"))
        elif event == EVENT_MEMBER_REMOVED:
            user_id = str(data.get("user_id", ""))
            self._pending_hands.pop(user_id, None)
            if self.members.pop(user_id, None) is None:
                return False
        elif event == EVENT_HAND_UPDATE:
            return self.set_hand(str(data.get("userId", "")), bool(data.get("isRaised")))
        else:
            return False
        return True

    def load_snapshot(self, presence: Dict[str, Any]) -> None:
        roster = presence.get("hash") or {}
        self.members = {str(uid): self._participant(str(uid), info) for uid, info in roster.items()}

    def set_hand(self, user_id: str, raised: bool) -> bool:
        if not user_id:
            return False
        member = self.members.get(user_id)
        if member is None:
            self._pending_hands.pop(user_id, None)
            if raised:
                self._pending_hands[user_id] = True
                # Evict in arrival order
                while len(self._pending_hands) > PENDING_HANDS_LIMIT:
                    del self._pending_hands[next(iter(self._pending_hands))]
            return False
        member.hand_raised = raised
        return True

    @property
    def participant_count(self) -> int:
        return self.base_count + len(self.members)

    def visible_participants(self) -> List[Participant]:
        """Roster without operators, raised hands first"""
        visible = [m for m in self.members.values() if m.role not in OPERATOR_ROLES]
        return sorted(visible, key=lambda m: (not m.hand_raised, m.name.lower()))

    def raised_hands(self) -> List[Participant]:
        return [m for m in self.visible_participants() if m.hand_raised]
