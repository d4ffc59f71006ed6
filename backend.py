import random
import string
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from constants import CLIENT_ID_PREFIX, CLIENT_ID_LENGTH
from logging_config import get_logger

logger = get_logger(__name__)


def generate_client_id(length: int = CLIENT_ID_LENGTH) -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))
    return f"{CLIENT_ID_PREFIX}{suffix}"


@dataclass(eq=False)
class Connection:
    """One live transport session.

    ``outbox`` is whatever the transport handed us for outbound delivery; it
    only needs a non-blocking ``send(message: dict)``.
    """
    connection_id: str
    outbox: object
    display_name: str = ""
    room_code: str = ""
    connected_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def as_user(self) -> dict:
        return {
            "clientId": self.connection_id,
            "username": self.display_name,
            "online": True,
        }


class ConnectionRegistry:
    def __init__(self, id_factory: Callable[[], str] = generate_client_id, max_id_attempts: int = 16):
        self._connections: Dict[str, Connection] = {}
        self._id_factory = id_factory
        self._max_id_attempts = max_id_attempts
        self._lock = threading.RLock()
        logger.info("Initializing in-memory ConnectionRegistry")

    def register(self, outbox) -> str:
        """Create a record with empty name and room, return its connection id."""
        with self._lock:
            for _ in range(self._max_id_attempts):
                connection_id = self._id_factory()
                if connection_id not in self._connections:
                    break
                logger.debug(f"Generated connection id {connection_id} already in use, retrying")
            else:
                raise RuntimeError(f"Could not generate a unique connection id after {self._max_id_attempts} attempts")

            self._connections[connection_id] = Connection(connection_id=connection_id, outbox=outbox)
            logger.debug(f"Registered connection {connection_id} ({len(self._connections)} live)")
            return connection_id

    def set_identity(self, connection_id: str, display_name: str, room_code: str) -> bool:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                logger.debug(f"set_identity on unknown connection {connection_id}")
                return False
            connection.display_name = display_name
            connection.room_code = room_code
            return True

    def lookup(self, connection_id: Optional[str]) -> Optional[Connection]:
        if not connection_id:
            return None
        with self._lock:
            return self._connections.get(connection_id)

    def unregister(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is not None:
                logger.debug(f"Unregistered connection {connection_id} ({len(self._connections)} live)")
            return connection

    def __contains__(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)


class RoomDirectory:
    """Room code -> member connections. A room exists only while it has members."""

    def __init__(self):
        # dicts keep join order for the room-users snapshot
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        self._lock = threading.RLock()
        logger.info("Initializing in-memory RoomDirectory")

    def join(self, room_code: str, connection: Connection) -> bool:
        """Add a member, creating the room if needed. Returns True if the room was created."""
        with self._lock:
            created = room_code not in self._rooms
            members = self._rooms.setdefault(room_code, {})
            members[connection.connection_id] = connection
            if created:
                logger.info(f"Room {room_code} created")
            logger.debug(f"Connection {connection.connection_id} added to room {room_code} ({len(members)} members)")
            return created

    def leave(self, room_code: str, connection: Connection) -> bool:
        """Remove a member; delete the room if it is now empty. Returns True if the room was deleted.

        Leaving a room you are not in (or a room that does not exist) is a no-op.
        """
        with self._lock:
            members = self._rooms.get(room_code)
            if not members or connection.connection_id not in members:
                logger.debug(f"Connection {connection.connection_id} not a member of room {room_code}, nothing to leave")
                return False
            del members[connection.connection_id]
            if members:
                logger.debug(f"Connection {connection.connection_id} removed from room {room_code} ({len(members)} members)")
                return False
            del self._rooms[room_code]
            logger.info(f"Room {room_code} closed (empty)")
            return True

    def members(self, room_code: str) -> List[Connection]:
        with self._lock:
            return list(self._rooms.get(room_code, {}).values())

    def exists(self, room_code: str) -> bool:
        with self._lock:
            return room_code in self._rooms

    def room_codes(self) -> List[str]:
        with self._lock:
            return list(self._rooms)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)


connection_registry = ConnectionRegistry()
room_directory = RoomDirectory()
