from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from constants import MESSAGE_ID_PREFIX
from core import errors
from core.groups import GroupRegistry
from logging_config import get_logger

logger = get_logger(__name__)

PRIVATE = "private"
GROUP = "group"


@dataclass
class MessageRecord:
    """Routing context and reaction state of a delivered message.

    The body, sender and timestamp are not kept; reactions only need to know
    which channel the message went to.
    """

    message_id: str
    kind: str
    channel_id: str
    participants: Tuple[str, ...] = ()
    # emoji -> reacting connection ids, in reaction order
    reactions: Dict[str, List[str]] = field(default_factory=dict)

    def snapshot(self) -> Dict[str, List[str]]:
        return {emoji: list(reactors) for emoji, reactors in self.reactions.items()}


class MessageStore:
    def __init__(self, groups: GroupRegistry, max_messages: int = 0):
        self.groups = groups
        self.max_messages = max_messages
        self._messages: "OrderedDict[str, MessageRecord]" = OrderedDict()
        self._counter = 1

    def __len__(self) -> int:
        return len(self._messages)

    def get(self, message_id: str) -> Optional[MessageRecord]:
        return self._messages.get(message_id)

    def record_message(self, kind: str, channel_id: str, participants: Tuple[str, ...] = ()) -> str:
        if kind not in (PRIVATE, GROUP):
            raise ValueError(f"unknown channel kind {kind!r}")

        message_id = f"{MESSAGE_ID_PREFIX}{self._counter}"
        self._counter += 1
        self._messages[message_id] = MessageRecord(
            message_id=message_id,
            kind=kind,
            channel_id=channel_id,
            participants=tuple(participants),
        )

        if self.max_messages and len(self._messages) > self.max_messages:
            evicted, _ = self._messages.popitem(last=False)
            logger.debug(f"Evicted message {evicted} from store (limit {self.max_messages})")
        return message_id

    def _authorize(self, message_id: str, connection_id: str, room_id: Optional[str]) -> MessageRecord:
        record = self._messages.get(message_id)
        if record is None:
            raise errors.NotFoundError("Message not found.")

        if record.kind == PRIVATE:
            if record.channel_id != room_id or connection_id not in record.participants:
                raise errors.AuthorizationError("Invalid room.")
        else:
            group = self.groups.get(record.channel_id)
            if group is None or not group.has_member(connection_id):
                raise errors.AuthorizationError("You are not a member of this group.")
        return record

    @staticmethod
    def _check_emoji(emoji) -> str:
        if not isinstance(emoji, str) or not emoji.strip():
            raise errors.ValidationError("Emoji cannot be empty.")
        return emoji

    def add_reaction(self, message_id: str, emoji: str, connection_id: str,
                     room_id: Optional[str] = None) -> Dict[str, List[str]]:
        emoji = self._check_emoji(emoji)
        record = self._authorize(message_id, connection_id, room_id)

        reactors = record.reactions.setdefault(emoji, [])
        if connection_id not in reactors:
            reactors.append(connection_id)
        return record.snapshot()

    def remove_reaction(self, message_id: str, emoji: str, connection_id: str,
                        room_id: Optional[str] = None) -> Dict[str, List[str]]:
        emoji = self._check_emoji(emoji)
        record = self._authorize(message_id, connection_id, room_id)

        reactors = record.reactions.get(emoji)
        if reactors is not None:
            if connection_id in reactors:
                reactors.remove(connection_id)
            if not reactors:
                del record.reactions[emoji]
        return record.snapshot()
