"""
In-process channel hub.

Keeps the sockets connected to this process, which channels each one is
subscribed to, and the presence roster of every presence channel. A member
who has several sockets open on the same presence channel (multiple tabs) is
announced once and removed only when the last socket leaves.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set

from simulive.realtime.channels import (
    EVENT_MEMBER_ADDED,
    EVENT_MEMBER_REMOVED,
    EVENT_SUBSCRIPTION_SUCCEEDED,
    ChannelKind,
    channel_kind,
)

logger = logging.getLogger("simulive.ws")


class JSONSocket(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


@dataclass
class PresenceMember:
    user_id: str
    user_info: Dict[str, Any]
    sockets: Set[str] = field(default_factory=set)


def envelope(event: str, data: Any, channel: Optional[str] = None) -> Dict[str, Any]:
    message = {"event": event, "data": data}
    if channel is not None:
        message["channel"] = channel
    return message


class ChannelHub:
    def __init__(self):
        # socket_id -> socket
        self.sockets: Dict[str, JSONSocket] = {}
        # channel -> socket_ids
        self.channels: Dict[str, Set[str]] = {}
        # presence channel -> user_id -> member
        self.presence: Dict[str, Dict[str, PresenceMember]] = {}
        # (socket_id, presence channel) -> user_id
        self._socket_members: Dict[tuple, str] = {}

    def register(self, socket_id: str, socket: JSONSocket) -> None:
        self.sockets[socket_id] = socket
        logger.info(f"WS Registered | Socket: {socket_id} | Total: {len(self.sockets)}")

    async def unregister(self, socket_id: str) -> None:
        for channel in [c for c, members in self.channels.items() if socket_id in members]:
            await self.unsubscribe(socket_id, channel)
        self.sockets.pop(socket_id, None)
        logger.info(f"WS Disconnected | Socket: {socket_id} | Total: {len(self.sockets)}")

    def is_subscribed(self, socket_id: str, channel: str) -> bool:
        return socket_id in self.channels.get(channel, set())

    async def subscribe(
        self,
        socket_id: str,
        channel: str,
        member: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Add a socket to a channel and acknowledge with ``subscription_succeeded``.

        For presence channels ``member`` must hold ``user_id`` and
        ``user_info``; the acknowledgement carries the full roster.
        """
        socket = self.sockets.get(socket_id)
        if socket is None:
            return

        is_presence = channel_kind(channel) is ChannelKind.PRESENCE
        if is_presence and (not member or not member.get("user_id")):
            raise ValueError("presence subscription requires member data")

        self.channels.setdefault(channel, set()).add(socket_id)

        if not is_presence:
            await self._send(socket_id, socket, envelope(EVENT_SUBSCRIPTION_SUCCEEDED, {}, channel))
            return

        user_id = str(member["user_id"])
        roster = self.presence.setdefault(channel, {})
        key = (socket_id, channel)
        previous = self._socket_members.get(key)
        if previous is not None and previous != user_id:
            await self._drop_member_socket(channel, previous, socket_id)

        is_new = user_id not in roster
        entry = roster.setdefault(user_id, PresenceMember(user_id, member.get("user_info") or {}))
        entry.sockets.add(socket_id)
        self._socket_members[key] = user_id

        await self._send(
            socket_id,
            socket,
            envelope(EVENT_SUBSCRIPTION_SUCCEEDED, {"presence": self.roster(channel)}, channel),
        )
        if is_new:
            await self.publish(
                channel,
                EVENT_MEMBER_ADDED,
                {"user_id": user_id, "user_info": entry.user_info},
                exclude_socket=socket_id,
            )

    async def unsubscribe(self, socket_id: str, channel: str) -> None:
        members = self.channels.get(channel)
        if not members or socket_id not in members:
            return
        members.discard(socket_id)
        if not members:
            del self.channels[channel]

        user_id = self._socket_members.pop((socket_id, channel), None)
        if user_id is not None:
            await self._drop_member_socket(channel, user_id, socket_id)

    async def _drop_member_socket(self, channel: str, user_id: str, socket_id: str) -> None:
        roster = self.presence.get(channel)
        if not roster or user_id not in roster:
            return
        entry = roster[user_id]
        entry.sockets.discard(socket_id)
        if entry.sockets:
            return
        del roster[user_id]
        if not roster:
            del self.presence[channel]
        await self.publish(channel, EVENT_MEMBER_REMOVED, {"user_id": user_id})

    def roster(self, channel: str) -> Dict[str, Any]:
        members = self.presence.get(channel, {})
        return {
            "ids": list(members.keys()),
            "hash": {uid: m.user_info for uid, m in members.items()},
            "count": len(members),
        }

    def member_count(self, channel: str) -> int:
        return len(self.presence.get(channel, {}))

    async def publish(
        self,
        channel: str,
        event: str,
        data: Any,
        exclude_socket: Optional[str] = None,
    ) -> int:
        """Send an event to every socket on the channel; returns the delivery count"""
        targets = [s for s in self.channels.get(channel, set()) if s != exclude_socket]
        if not targets:
            return 0

        logger.debug(f"WS Broadcast | Channel: {channel} | Targets: {len(targets)} | Event: {event}")
        message = envelope(event, data, channel)
        delivered = 0
        dead: List[str] = []
        for socket_id in targets:
            socket = self.sockets.get(socket_id)
            if socket is None:
                dead.append(socket_id)
                continue
            if await self._send(socket_id, socket, message):
                delivered += 1
            else:
                dead.append(socket_id)

        for socket_id in dead:
            await self.unregister(socket_id)
        return delivered

    async def send_to(self, socket_id: str, event: str, data: Any, channel: Optional[str] = None) -> bool:
        socket = self.sockets.get(socket_id)
        if socket is None:
            return False
        return await self._send(socket_id, socket, envelope(event, data, channel))

    async def _send(self, socket_id: str, socket: JSONSocket, message: Dict[str, Any]) -> bool:
        try:
            await socket.send_json(message)
            return True
        except Exception as e:
            # Connection might be dead
            logger.warning(f"WS Send failed | Socket: {socket_id} | Error: {e!r}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        """
        Return a snapshot of all active channels
        """
        return {
            "sockets": len(self.sockets),
            "channels": {
                channel: {
                    "subscriptions": len(members),
                    "members": self.member_count(channel),
                }
                for channel, members in self.channels.items()
            },
        }


hub = ChannelHub()
