import asyncio

import pytest

from core.transport import WebSocketPeer


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self.closed = False

    async def send_text(self, text: str):
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(text)

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_writer_sends_queued_frames_in_order() -> None:
    websocket = FakeWebSocket()
    peer = WebSocketPeer("c1", websocket)
    peer.deliver({"event": "one", "data": 1})
    peer.deliver({"event": "two", "data": 2})
    peer.start()

    for _ in range(10):
        await asyncio.sleep(0)
    assert websocket.sent == ['{"event": "one", "data": 1}', '{"event": "two", "data": 2}']

    await peer.close()
    assert peer.writer.done()
    assert not websocket.closed


@pytest.mark.asyncio
async def test_send_failure_closes_socket_and_ends_writer() -> None:
    websocket = FakeWebSocket(fail=True)
    peer = WebSocketPeer("c1", websocket)
    peer.deliver({"event": "hello", "data": None})

    await asyncio.wait_for(peer.start(), timeout=1)
    assert websocket.closed
    assert peer.sent == 0
    await peer.close()


@pytest.mark.asyncio
async def test_close_without_start_is_noop() -> None:
    peer = WebSocketPeer("c1", FakeWebSocket())
    await peer.close()
    assert peer.writer is None
