from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictInt
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class InboundFrame(BaseModel):
    event: str
    data: Any = None
    ack: Optional[Union[int, str]] = None


# Inbound payloads

class RegisterRequest(WireModel):
    name: Optional[str] = None
    age: Optional[StrictInt] = None


class PrivateMessageRequest(WireModel):
    recipient_id: str
    message: str


class CreateGroupRequest(WireModel):
    group_name: Optional[str] = None
    minimum_age: Optional[StrictInt] = None


class JoinGroupRequest(WireModel):
    group_id: str


class GroupMessageRequest(WireModel):
    group_id: str
    message: str


class ReactionRequest(WireModel):
    message_id: str
    emoji: str
    room_id: Optional[str] = None
    group_id: Optional[str] = None


class PrivateTypingRequest(WireModel):
    recipient_id: str


class GroupTypingRequest(WireModel):
    group_id: str


# Outbound snapshots

class ClientInfo(WireModel):
    name: str
    socket_id: str
    age: Optional[int] = None


class SenderInfo(WireModel):
    name: str
    socket_id: str


class GroupSnapshot(WireModel):
    group_id: str
    name: str
    creator: ClientInfo
    minimum_age: Optional[int] = None
    members: List[ClientInfo]
