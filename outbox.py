import asyncio
import json

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)

_CLOSE = object()


class WebSocketOutbox:
    """Per-connection outbound queue drained by a background writer task.

    ``send`` never awaits, so the router can fan out to every room member
    without a slow or stalled peer holding up the others.
    """

    def __init__(self, websocket: WebSocket, max_size: int = 0, label: str = ""):
        self.websocket = websocket
        self.max_size = max_size
        self.label = label
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, message: dict) -> bool:
        if self._closed:
            logger.debug(f"Outbox {self.label} closed, dropping {message.get('type')}")
            return False
        if self.max_size and self._queue.qsize() >= self.max_size:
            logger.warning(f"Outbox {self.label} full ({self.max_size} pending), dropping {message.get('type')}")
            return False
        self._queue.put_nowait(message)
        return True

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSE)

    async def run(self):
        """Write queued messages to the socket until closed or a send fails."""
        sent = 0
        try:
            while True:
                message = await self._queue.get()
                if message is _CLOSE:
                    break
                try:
                    await self.websocket.send_text(json.dumps(message))
                    sent += 1
                except Exception as e:
                    logger.warning(f"Error sending to connection {self.label}: {e}")
                    self._closed = True
                    break
        except asyncio.CancelledError:
            logger.debug(f"Outbox writer for {self.label} cancelled")
            raise
        finally:
            logger.debug(f"Outbox writer for {self.label} stopped after {sent} messages")
