import json
from datetime import datetime, timezone
from typing import Callable, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PayloadError

from core import errors
from core.channels import private_room_id
from core.messages import GROUP, PRIVATE
from logging_config import get_logger
from schemas.events import (
    CreateGroupRequest,
    GroupMessageRequest,
    GroupTypingRequest,
    InboundFrame,
    JoinGroupRequest,
    PrivateMessageRequest,
    PrivateTypingRequest,
    ReactionRequest,
    RegisterRequest,
)

logger = get_logger(__name__)

Payload = TypeVar("Payload", bound=BaseModel)
Ack = Callable[[dict], None]

ACK_EVENTS = {"register", "createGroup", "joinGroup"}
TYPING_EVENTS = {"privateTypingStart", "privateTypingStop", "groupTypingStart", "groupTypingStop"}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_payload(model: Type[Payload], data) -> Payload:
    try:
        return model.model_validate(data if data is not None else {})
    except PayloadError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise errors.ValidationError(f"Invalid {location}: {first.get('msg')}") from e


def require_text(message: str) -> str:
    if not message.strip():
        raise errors.ValidationError("Message cannot be empty.")
    return message


class EventRouter:
    """Validates inbound events, mutates the backend and fans out the results.

    Failures never leave the originating connection: request/response events
    answer through their ack, the rest get an ``error`` event. Typing
    indicators aimed at an invalid target are dropped.
    """

    def __init__(self, backend):
        self.backend = backend
        self.handlers = {
            "register": self._handle_register,
            "privateMessage": self._handle_private_message,
            "createGroup": self._handle_create_group,
            "joinGroup": self._handle_join_group,
            "groupMessage": self._handle_group_message,
            "addReaction": self._handle_add_reaction,
            "removeReaction": self._handle_remove_reaction,
            "privateTypingStart": self._handle_private_typing,
            "privateTypingStop": self._handle_private_typing,
            "groupTypingStart": self._handle_group_typing,
            "groupTypingStop": self._handle_group_typing,
        }

    @property
    def channels(self):
        return self.backend.channels

    def _send_error(self, connection_id: str, message: str):
        self.channels.send(connection_id, "error", {"message": message})

    async def reject_frame(self, connection_id: str, message: str):
        logger.debug(f"Rejected frame from connection {connection_id}: {message}")
        async with self.backend.lock:
            self._send_error(connection_id, message)

    async def handle_text(self, connection_id: str, text: str):
        try:
            payload = json.loads(text)
        except (ValueError, RecursionError):
            await self.reject_frame(connection_id, "Malformed frame: expected a JSON object.")
            return
        await self.dispatch(connection_id, payload)

    async def dispatch(self, connection_id: str, payload):
        async with self.backend.lock:
            if not self.channels.is_attached(connection_id):
                logger.debug(f"Dropping frame from detached connection {connection_id}")
                return

            try:
                frame = InboundFrame.model_validate(payload)
            except PayloadError:
                self._send_error(connection_id, "Malformed frame: expected an object with an 'event' field.")
                return

            handler = self.handlers.get(frame.event)
            if handler is None:
                logger.info(f"Unknown event {frame.event!r} from connection {connection_id}")
                self._send_error(connection_id, f"Unknown event: {frame.event}")
                return

            self._run(connection_id, frame, handler)

    def _run(self, connection_id: str, frame: InboundFrame, handler):
        event = frame.event
        acked = False

        def ack(data: dict):
            nonlocal acked
            acked = True
            self.channels.send_frame(connection_id, {"event": "ack", "ack": frame.ack, "data": data})

        logger.debug(f"Handling {event} from connection {connection_id}")
        try:
            handler(connection_id, frame.event, frame.data, ack)
        except errors.ChatError as e:
            if event in TYPING_EVENTS:
                logger.debug(f"Dropped {event} from {connection_id}: {e.message}")
            elif event in ACK_EVENTS and not acked:
                logger.info(f"Rejected {event} from {connection_id}: {e.message}")
                ack({"success": False, "error": e.message})
            else:
                logger.info(f"Rejected {event} from {connection_id}: {e.message}")
                self._send_error(connection_id, e.message)

    # Handlers. Each runs with the backend lock held.

    def _handle_register(self, connection_id: str, event: str, data, ack: Ack):
        request = parse_payload(RegisterRequest, data)
        identity = self.backend.clients.register(connection_id, request.name, request.age)

        ack({"success": True})
        client = self.backend.client_info(connection_id)
        self.channels.send(connection_id, "clientList", self.backend.client_list())
        self.channels.broadcast("clientJoined", client, exclude={connection_id})
        self.channels.send(connection_id, "groupList", self.backend.group_list())
        logger.debug(f"Sent client and group lists to {identity.name}")

    def _handle_private_message(self, connection_id: str, event: str, data, ack: Ack):
        sender = self.backend.clients.require(connection_id)
        request = parse_payload(PrivateMessageRequest, data)
        recipient = self.backend.clients.get(request.recipient_id)
        if recipient is None:
            raise errors.NotFoundError("Recipient not found.")
        require_text(request.message)

        room_id = private_room_id(connection_id, recipient.connection_id)
        self.channels.subscribe(room_id, connection_id)
        self.channels.subscribe(room_id, recipient.connection_id)

        message_id = self.backend.messages.record_message(
            PRIVATE, room_id, participants=(connection_id, recipient.connection_id)
        )
        self.channels.publish(room_id, "privateMessage", {
            "roomId": room_id,
            "messageId": message_id,
            "sender": self.backend.sender_info(sender),
            "recipient": self.backend.sender_info(recipient),
            "message": request.message,
            "timestamp": utc_timestamp(),
            "reactions": {},
        })
        logger.debug(f"Private message {message_id} from {sender.name} to {recipient.name} in room {room_id}")

    def _handle_create_group(self, connection_id: str, event: str, data, ack: Ack):
        creator = self.backend.clients.require(connection_id)
        request = parse_payload(CreateGroupRequest, data)
        group = self.backend.groups.create(creator, request.group_name, request.minimum_age)
        self.channels.subscribe(group.group_id, connection_id)

        snapshot = self.backend.group_snapshot(group)
        ack({"success": True, "groupId": group.group_id, "group": snapshot})
        self.channels.broadcast("groupCreated", snapshot)

    def _handle_join_group(self, connection_id: str, event: str, data, ack: Ack):
        identity = self.backend.clients.require(connection_id)
        request = parse_payload(JoinGroupRequest, data)
        group = self.backend.groups.join(request.group_id, identity)
        self.channels.subscribe(group.group_id, connection_id)

        ack({"success": True, "group": self.backend.group_snapshot(group)})
        self.backend.publish_group_update(group)

    def _handle_group_message(self, connection_id: str, event: str, data, ack: Ack):
        sender = self.backend.clients.require(connection_id)
        request = parse_payload(GroupMessageRequest, data)
        group = self.backend.groups.require_member(request.group_id, connection_id)
        require_text(request.message)

        message_id = self.backend.messages.record_message(GROUP, group.group_id)
        self.channels.publish(group.group_id, "groupMessage", {
            "groupId": group.group_id,
            "messageId": message_id,
            "sender": self.backend.sender_info(sender),
            "message": request.message,
            "timestamp": utc_timestamp(),
            "reactions": {},
        })

    def _handle_add_reaction(self, connection_id: str, event: str, data, ack: Ack):
        self.backend.clients.require(connection_id)
        request = parse_payload(ReactionRequest, data)
        reactions = self.backend.messages.add_reaction(
            request.message_id, request.emoji, connection_id, room_id=request.room_id
        )
        self._publish_reactions(request.message_id, reactions)

    def _handle_remove_reaction(self, connection_id: str, event: str, data, ack: Ack):
        self.backend.clients.require(connection_id)
        request = parse_payload(ReactionRequest, data)
        reactions = self.backend.messages.remove_reaction(
            request.message_id, request.emoji, connection_id, room_id=request.room_id
        )
        self._publish_reactions(request.message_id, reactions)

    def _publish_reactions(self, message_id: str, reactions: dict):
        record = self.backend.messages.get(message_id)
        self.channels.publish(record.channel_id, "reactionUpdate", {
            "messageId": message_id,
            "reactions": reactions,
        })

    def _handle_private_typing(self, connection_id: str, event: str, data, ack: Ack):
        sender = self.backend.clients.require(connection_id)
        request = parse_payload(PrivateTypingRequest, data)
        if request.recipient_id == connection_id:
            raise errors.ValidationError("Typing indicators go to another client.")
        if request.recipient_id not in self.backend.clients:
            raise errors.NotFoundError("Recipient not found.")
        self.channels.send(request.recipient_id, event, {"sender": self.backend.sender_info(sender)})

    def _handle_group_typing(self, connection_id: str, event: str, data, ack: Ack):
        sender = self.backend.clients.require(connection_id)
        request = parse_payload(GroupTypingRequest, data)
        group = self.backend.groups.require_member(request.group_id, connection_id)
        self.channels.publish(group.group_id, event, {
            "groupId": group.group_id,
            "sender": self.backend.sender_info(sender),
        }, exclude={connection_id})
