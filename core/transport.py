import asyncio
import json
from typing import Optional

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


class WebSocketPeer:
    """Outbound side of one WebSocket connection.

    ``deliver`` only enqueues, so fan-out never waits on the network. ``run``
    drains the queue; if a send fails the socket is closed, which ends the
    receive loop and triggers the disconnect cascade.
    """

    def __init__(self, connection_id: str, websocket: WebSocket):
        self.connection_id = connection_id
        self.websocket = websocket
        self.queue: "asyncio.Queue[str]" = asyncio.Queue()
        self.sent = 0
        self.writer: Optional[asyncio.Task] = None

    def deliver(self, frame: dict) -> None:
        # frames are serialized at enqueue time
        self.queue.put_nowait(json.dumps(frame))

    def start(self) -> asyncio.Task:
        if self.writer is None:
            self.writer = asyncio.create_task(self.run())
        return self.writer

    async def run(self):
        try:
            while True:
                text = await self.queue.get()
                await self.websocket.send_text(text)
                self.sent += 1
        except asyncio.CancelledError:
            logger.debug(f"Writer for connection {self.connection_id} stopped after {self.sent} frames")
            raise
        except Exception as e:
            logger.warning(f"Error sending to connection {self.connection_id}: {e}", exc_info=True)
            try:
                await self.websocket.close()
            except Exception as close_error:
                logger.debug(f"Error closing WebSocket {self.connection_id}: {close_error}")

    async def close(self):
        """Stop the writer. Queued frames that were not sent yet are dropped."""
        if self.writer is None:
            return
        self.writer.cancel()
        try:
            await self.writer
        except asyncio.CancelledError:
            pass
