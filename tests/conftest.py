import copy

import pytest

from backend import ChatBackend
from core.router import EventRouter


class FakePeer:
    """Records delivered frames instead of writing to a socket."""

    def __init__(self):
        self.frames = []

    def deliver(self, frame: dict) -> None:
        self.frames.append(copy.deepcopy(frame))

    def events(self, name: str) -> list:
        return [frame["data"] for frame in self.frames if frame["event"] == name]

    def last(self, name: str):
        found = self.events(name)
        return found[-1] if found else None

    def acks(self) -> list:
        return [frame for frame in self.frames if frame["event"] == "ack"]

    def clear(self):
        self.frames.clear()


class Harness:
    def __init__(self):
        self.backend = ChatBackend(max_messages=0)
        self.router = EventRouter(self.backend)
        self.peers = {}

    async def connect(self, connection_id: str) -> FakePeer:
        peer = FakePeer()
        self.peers[connection_id] = peer
        await self.backend.connect(connection_id, peer)
        return peer

    async def send(self, connection_id: str, event: str, data=None, ack=None):
        frame = {"event": event, "data": data}
        if ack is not None:
            frame["ack"] = ack
        await self.router.dispatch(connection_id, frame)

    async def register(self, connection_id: str, name: str, age: int) -> FakePeer:
        peer = await self.connect(connection_id)
        await self.send(connection_id, "register", {"name": name, "age": age}, ack=1)
        assert peer.acks()[-1]["data"] == {"success": True}
        return peer

    async def disconnect(self, connection_id: str):
        await self.backend.disconnect(connection_id)

    def clear(self):
        for peer in self.peers.values():
            peer.clear()


@pytest.fixture
def harness():
    return Harness()
