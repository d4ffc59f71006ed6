import itertools

import pytest

from backend import ConnectionRegistry, RoomDirectory
from message_router import MessageRouter


class RecordingOutbox:
    """Stands in for the WebSocket outbox: records every message it is given."""

    def __init__(self):
        self.messages = []
        self.closed = False

    def send(self, message: dict) -> bool:
        if self.closed:
            return False
        self.messages.append(message)
        return True

    def of_type(self, message_type: str) -> list:
        return [m for m in self.messages if m["type"] == message_type]

    def types(self) -> list:
        return [m["type"] for m in self.messages]

    def clear(self):
        self.messages.clear()


def sequential_ids(prefix: str = "user_"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@pytest.fixture
def registry():
    return ConnectionRegistry(id_factory=sequential_ids())


@pytest.fixture
def directory():
    return RoomDirectory()


@pytest.fixture
def router(registry, directory):
    return MessageRouter(registry, directory)


@pytest.fixture
def client(router):
    """Factory: connect a recording client and return (connection_id, outbox)."""
    def connect():
        outbox = RecordingOutbox()
        connection_id = router.connect(outbox)
        return connection_id, outbox
    return connect
