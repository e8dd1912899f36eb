from typing import Dict, Iterable, Optional, Protocol, Set

from constants import PRIVATE_ROOM_SEPARATOR
from logging_config import get_logger

logger = get_logger(__name__)


class Peer(Protocol):
    def deliver(self, frame: dict) -> None:
        """Queue a frame for the connection. Must not block."""


def make_frame(event: str, data) -> dict:
    return {"event": event, "data": data}


def private_room_id(a: str, b: str) -> str:
    return PRIVATE_ROOM_SEPARATOR.join(sorted([a, b]))


class ChannelHub:
    """Many-to-many channel membership and best-effort fan-out.

    Every attached connection is subscribed to its own channel, named after
    its connection id. Private rooms and groups are additional channels.
    Detaching a connection drops all of its subscriptions.
    """

    def __init__(self):
        self._peers: Dict[str, Peer] = {}
        self._channels: Dict[str, Set[str]] = {}
        self._subscriptions: Dict[str, Set[str]] = {}

    def attach(self, connection_id: str, peer: Peer):
        self._peers[connection_id] = peer
        self._subscriptions.setdefault(connection_id, set())
        self.subscribe(connection_id, connection_id)

    def detach(self, connection_id: str):
        self._peers.pop(connection_id, None)
        for channel in self._subscriptions.pop(connection_id, set()):
            members = self._channels.get(channel)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._channels[channel]
        logger.debug(f"Detached connection {connection_id} from all channels")

    def is_attached(self, connection_id: str) -> bool:
        return connection_id in self._peers

    def subscribe(self, channel: str, connection_id: str):
        if connection_id not in self._peers:
            return
        self._channels.setdefault(channel, set()).add(connection_id)
        self._subscriptions[connection_id].add(channel)

    def unsubscribe(self, channel: str, connection_id: str):
        members = self._channels.get(channel)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._channels[channel]
        subscriptions = self._subscriptions.get(connection_id)
        if subscriptions is not None:
            subscriptions.discard(channel)

    def members(self, channel: str) -> Set[str]:
        return set(self._channels.get(channel, ()))

    def channels_of(self, connection_id: str) -> Set[str]:
        return set(self._subscriptions.get(connection_id, ()))

    def _deliver(self, targets: Iterable[str], frame: dict) -> int:
        delivered = 0
        for connection_id in targets:
            peer = self._peers.get(connection_id)
            if peer is None:
                continue
            try:
                peer.deliver(frame)
                delivered += 1
            except Exception as e:
                logger.warning(f"Error delivering {frame['event']} to connection {connection_id}: {e}")
        return delivered

    def publish(self, channel: str, event: str, data, exclude: Optional[Set[str]] = None) -> int:
        targets = self.members(channel)
        if exclude:
            targets -= exclude
        delivered = self._deliver(targets, make_frame(event, data))
        logger.debug(f"Published {event} to channel {channel}, {delivered} connections")
        return delivered

    def send(self, connection_id: str, event: str, data) -> int:
        return self._deliver([connection_id], make_frame(event, data))

    def send_frame(self, connection_id: str, frame: dict) -> int:
        return self._deliver([connection_id], frame)

    def broadcast(self, event: str, data, exclude: Optional[Set[str]] = None) -> int:
        targets = set(self._peers)
        if exclude:
            targets -= exclude
        delivered = self._deliver(targets, make_frame(event, data))
        logger.debug(f"Broadcast {event} to {delivered} connections")
        return delivered
