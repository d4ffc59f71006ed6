"""Wire envelopes exchanged over the WebSocket.

Inbound frames are decoded once, by :func:`parse_envelope`, into one of the
models below. Anything that does not decode (bad JSON, unknown ``type``,
missing required fields) comes back as ``None`` and is dropped by the caller.
Outbound frames are plain dicts built by the helpers at the bottom.
"""
import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from logging_config import get_logger

logger = get_logger(__name__)


class InboundEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def payload(self) -> dict:
        """Type-specific fields as the client sent them (camelCase), without ``type``."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude={"type"})


class JoinRoom(InboundEnvelope):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    type: Literal["join-room", "join"]
    room_code: str = Field(alias="roomCode", min_length=1)
    username: str = Field(min_length=1)


class SendMessage(InboundEnvelope):
    type: Literal["send-message", "message"]
    message: Any


class SendFile(InboundEnvelope):
    type: Literal["send-file", "file-whole"]
    file: Any


class FileEnvelope(InboundEnvelope):
    """Shared file metadata. Numbers are strict so peers get exactly what was sent."""
    file_id: Any = Field(alias="fileId")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    file_size: Optional[StrictInt] = Field(default=None, alias="fileSize", ge=0)
    file_type: Optional[str] = Field(default=None, alias="fileType")

    @field_validator("file_id")
    @classmethod
    def check_file_id(cls, value):
        # any JSON value the client picks is a valid id, except null
        if value is None:
            raise ValueError("fileId must not be null")
        return value


class FileChunk(FileEnvelope):
    type: Literal["file-chunk"]
    chunk: Any
    chunk_index: StrictInt = Field(alias="chunkIndex", ge=0)
    total_chunks: StrictInt = Field(alias="totalChunks", ge=1)

    @model_validator(mode="after")
    def check_index_in_range(self):
        if self.chunk_index >= self.total_chunks:
            raise ValueError(f"chunkIndex {self.chunk_index} out of range for totalChunks {self.total_chunks}")
        return self


class FileChunkComplete(FileEnvelope):
    type: Literal["file-chunk-complete"]
    total_chunks: Optional[StrictInt] = Field(default=None, alias="totalChunks", ge=1)


class Negotiation(InboundEnvelope):
    """Call setup metadata. Sent to ``target_peer`` when given, otherwise to the room."""
    type: Literal["call-start", "call-end", "call-offer", "call-answer", "ice-candidate"]
    target_peer: Optional[str] = Field(default=None, validation_alias=AliasChoices("targetPeer", "target"))
    offer: Any = None
    answer: Any = None
    candidate: Any = None
    call_type: Optional[str] = Field(default=None, alias="callType")

    def payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True, exclude={"type", "target_peer"})


class LeaveRoom(InboundEnvelope):
    type: Literal["leave-room", "leave"]
    room_code: Optional[str] = Field(default=None, alias="roomCode")


Envelope = Annotated[
    Union[JoinRoom, SendMessage, SendFile, FileChunk, FileChunkComplete, Negotiation, LeaveRoom],
    Field(discriminator="type"),
]

envelope_adapter = TypeAdapter(Envelope)


def parse_envelope(raw: Union[str, bytes]) -> Optional[InboundEnvelope]:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        logger.warning(f"Dropping unparseable frame: {e}")
        return None

    if not isinstance(data, dict):
        logger.debug(f"Dropping non-object frame of type {type(data).__name__}")
        return None

    try:
        return envelope_adapter.validate_python(data)
    except ValidationError as e:
        logger.debug(f"Dropping invalid envelope type={data.get('type')!r}: {e.error_count()} error(s)")
        return None


# Outbound

def welcome(client_id: str) -> dict:
    return {"type": "welcome", "clientId": client_id}


def room_users(users: list) -> dict:
    return {"type": "room-users", "users": users}


def peer_joined(user: dict) -> dict:
    return {"type": "peer-joined", "user": user}


def peer_left(client_id: str, username: str) -> dict:
    return {"type": "peer-left", "clientId": client_id, "username": username}


def relayed(message_type: str, payload: dict, sender_id: str, sender_name: str) -> dict:
    message = {"type": message_type}
    message.update(payload)
    message["from"] = sender_id
    message["username"] = sender_name
    return message
