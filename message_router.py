"""Protocol state machine for the relay hub.

Each live connection is Unjoined after ``connect``, Joined after a valid
join, back to Unjoined after leave, and Closed once ``disconnect`` has
unregistered it. Every handler runs under one lock so join, leave and
broadcast sequences never interleave; outbound delivery is a non-blocking
``outbox.send`` so holding the lock never waits on a peer.
"""
import threading
from typing import Callable, Dict, Optional, Union

from backend import Connection, ConnectionRegistry, RoomDirectory, connection_registry, room_directory
from logging_config import get_logger
from schemas.envelopes import (
    FileChunk,
    FileChunkComplete,
    InboundEnvelope,
    JoinRoom,
    LeaveRoom,
    Negotiation,
    SendFile,
    SendMessage,
    parse_envelope,
    peer_joined,
    peer_left,
    relayed,
    room_users,
    welcome,
)

logger = get_logger(__name__)


class MessageRouter:
    def __init__(self, registry: ConnectionRegistry, directory: RoomDirectory):
        self.registry = registry
        self.directory = directory
        self._lock = threading.RLock()
        self._handlers: Dict[type, Callable[[Connection, InboundEnvelope], None]] = {
            JoinRoom: self._handle_join,
            SendMessage: self._handle_message,
            SendFile: self._handle_file,
            FileChunk: self._handle_file_chunk,
            FileChunkComplete: self._handle_file_chunk,
            Negotiation: self._handle_negotiation,
            LeaveRoom: self._handle_leave,
        }

    # Transport events

    def connect(self, outbox) -> str:
        """Register a new connection and greet it with its id."""
        with self._lock:
            connection_id = self.registry.register(outbox)
        outbox.send(welcome(connection_id))
        logger.info(f"Client connected: {connection_id}")
        return connection_id

    def disconnect(self, connection_id: str):
        """Same cleanup as an explicit leave, then unregister. Safe to call twice."""
        with self._lock:
            connection = self.registry.lookup(connection_id)
            if connection is None:
                logger.debug(f"Disconnect for unknown connection {connection_id}, ignoring")
                return
            self._leave_current_room(connection)
            self.registry.unregister(connection_id)
        logger.info(f"Client disconnected: {connection_id}")

    def handle_raw(self, connection_id: str, raw: Union[str, bytes]):
        envelope = parse_envelope(raw)
        if envelope is None:
            return
        self.handle(connection_id, envelope)

    def handle(self, connection_id: str, envelope: InboundEnvelope):
        with self._lock:
            connection = self.registry.lookup(connection_id)
            if connection is None:
                logger.debug(f"Dropping {envelope.type} from closed connection {connection_id}")
                return
            handler = self._handlers.get(type(envelope))
            if handler is None:
                logger.debug(f"No handler for {type(envelope).__name__}, dropping")
                return
            logger.debug(f"Handling {envelope.type} from {connection_id}")
            handler(connection, envelope)

    # Handlers

    def _handle_join(self, connection: Connection, envelope: JoinRoom):
        if connection.room_code:
            logger.debug(f"{connection.connection_id} re-joining, leaving {connection.room_code} first")
            self._leave_current_room(connection)

        room_code = envelope.room_code
        self.registry.set_identity(connection.connection_id, envelope.username, room_code)

        # Sender is not a member yet, so this reaches existing members only
        self.broadcast(room_code, connection, peer_joined(connection.as_user()))
        self.directory.join(room_code, connection)

        users = [member.as_user() for member in self.directory.members(room_code)]
        connection.outbox.send(room_users(users))
        logger.info(f"{envelope.username} joined {room_code} ({len(users)} peers online)")

    def _handle_message(self, connection: Connection, envelope: SendMessage):
        if not self._require_room(connection, envelope):
            return
        self.broadcast(connection.room_code, connection, self._relay("receive-message", connection, envelope))

    def _handle_file(self, connection: Connection, envelope: SendFile):
        if not self._require_room(connection, envelope):
            return
        self.broadcast(connection.room_code, connection, self._relay("receive-file", connection, envelope))

    def _handle_file_chunk(self, connection: Connection, envelope: Union[FileChunk, FileChunkComplete]):
        if not self._require_room(connection, envelope):
            return
        self.broadcast(connection.room_code, connection, self._relay(envelope.type, connection, envelope))

    def _handle_negotiation(self, connection: Connection, envelope: Negotiation):
        if not self._require_room(connection, envelope):
            return
        message = self._relay(envelope.type, connection, envelope)
        if envelope.target_peer is not None:
            self.send_to_peer(envelope.target_peer, message)
        else:
            self.broadcast(connection.room_code, connection, message)

    def _handle_leave(self, connection: Connection, envelope: LeaveRoom):
        if not self._leave_current_room(connection):
            logger.debug(f"Leave from {connection.connection_id} while not in a room, ignoring")

    # Delivery

    def broadcast(self, room_code: str, sender: Optional[Connection], message: dict) -> int:
        """Send ``message`` to every member of ``room_code`` except ``sender``."""
        delivered = 0
        for member in self.directory.members(room_code):
            if member is sender:
                continue
            if member.outbox.send(message):
                delivered += 1
        logger.debug(f"Broadcast {message.get('type')} to {delivered} peer(s) in room {room_code}")
        return delivered

    def send_to_peer(self, target_id: str, message: dict) -> bool:
        target = self.registry.lookup(target_id)
        if target is None:
            logger.debug(f"Target peer {target_id} not connected, dropping {message.get('type')}")
            return False
        return target.outbox.send(message)

    # Helpers

    def _leave_current_room(self, connection: Connection) -> bool:
        room_code = connection.room_code
        if not room_code:
            return False
        self.directory.leave(room_code, connection)
        self.broadcast(room_code, connection, peer_left(connection.connection_id, connection.display_name))
        self.registry.set_identity(connection.connection_id, connection.display_name, "")
        logger.info(f"{connection.display_name or connection.connection_id} left {room_code}")
        return True

    def _require_room(self, connection: Connection, envelope: InboundEnvelope) -> bool:
        if connection.room_code:
            return True
        logger.debug(f"Dropping {envelope.type} from {connection.connection_id}: not in a room")
        return False

    @staticmethod
    def _relay(message_type: str, sender: Connection, envelope: InboundEnvelope) -> dict:
        return relayed(message_type, envelope.payload(), sender.connection_id, sender.display_name)


message_router = MessageRouter(connection_registry, room_directory)
