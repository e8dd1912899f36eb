import asyncio
from typing import List

from constants import MAX_STORED_MESSAGES
from core.channels import ChannelHub, Peer
from core.connections import ConnectionRegistry, Identity
from core.groups import Group, GroupRegistry
from core.messages import MessageStore
from logging_config import get_logger
from schemas.events import ClientInfo, GroupSnapshot, SenderInfo

logger = get_logger(__name__)


class ChatBackend:
    """In-memory chat state: clients, groups, channels and messages.

    All mutations, and the fan-out they produce, happen while holding
    ``self.lock``. Callers of the non-async methods must hold it already.
    """

    def __init__(self, max_messages: int = MAX_STORED_MESSAGES):
        self.lock = asyncio.Lock()
        self.clients = ConnectionRegistry()
        self.groups = GroupRegistry()
        self.channels = ChannelHub()
        self.messages = MessageStore(self.groups, max_messages=max_messages)
        logger.info(f"Initializing ChatBackend (message store limit: {max_messages or 'unbounded'})")

    # Snapshots

    def client_info(self, connection_id: str) -> dict:
        identity = self.clients.get(connection_id)
        if identity is None:
            return ClientInfo(name="Unknown", socket_id=connection_id).to_wire()
        return ClientInfo(name=identity.name, socket_id=connection_id, age=identity.age).to_wire()

    @staticmethod
    def sender_info(identity: Identity) -> dict:
        return SenderInfo(name=identity.name, socket_id=identity.connection_id).to_wire()

    def client_list(self) -> List[dict]:
        return [self.client_info(identity.connection_id) for identity in self.clients.list()]

    def group_snapshot(self, group: Group) -> dict:
        creator = group.creator
        return GroupSnapshot(
            group_id=group.group_id,
            name=group.name,
            creator=ClientInfo(name=creator.name, socket_id=creator.connection_id, age=creator.age),
            minimum_age=group.minimum_age,
            members=[self.client_info(member_id) for member_id in group.member_ids()],
        ).to_wire()

    def group_list(self) -> List[dict]:
        return [self.group_snapshot(group) for group in self.groups.list()]

    def stats(self) -> dict:
        return {
            "clients": len(self.clients),
            "groups": len(self.groups),
            "messages": len(self.messages),
        }

    # Group fan-out

    def publish_group_update(self, group: Group):
        """Send groupUpdated once to every connection: members through the group channel, others directly."""
        snapshot = self.group_snapshot(group)
        members = self.channels.members(group.group_id)
        self.channels.publish(group.group_id, "groupUpdated", snapshot)
        self.channels.broadcast("groupUpdated", snapshot, exclude=members)

    def leave_group(self, group_id: str, connection_id: str):
        self.channels.unsubscribe(group_id, connection_id)
        group, deleted = self.groups.leave(group_id, connection_id)
        if group is None:
            return
        if deleted:
            self.channels.broadcast("groupDeleted", {"groupId": group_id})
        else:
            self.publish_group_update(group)

    # Connection lifecycle

    async def connect(self, connection_id: str, peer: Peer):
        async with self.lock:
            self.channels.attach(connection_id, peer)
        logger.info(f"Client connected: {connection_id}")

    async def disconnect(self, connection_id: str):
        async with self.lock:
            self.disconnect_locked(connection_id)

    def disconnect_locked(self, connection_id: str):
        """Remove a connection and cascade through its groups. Idempotent."""
        client = self.client_info(connection_id)
        identity = self.clients.remove(connection_id)
        self.channels.detach(connection_id)

        if identity is None:
            logger.info(f"Client disconnected: {connection_id}")
            return

        logger.info(f"Client disconnected: {identity.name} ({connection_id})")
        for group in self.groups.groups_of(connection_id):
            self.leave_group(group.group_id, connection_id)
        self.channels.broadcast("clientLeft", client)


chat_backend = ChatBackend()
