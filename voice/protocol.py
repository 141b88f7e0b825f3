"""
STOCKCOUNT Session Protocol Message Types

Newline-delimited JSON messages exchanged with a voice client over TCP.
Every message is ``{"type": ..., "data": {...}}``.

Client -> server:
    transcript        {"text", "is_final", "confidence"}
    confirm-command   {"confirmationId"?}
    reject-command    {"confirmationId"?}
    correct-command   {"original"?, "corrected": {...}, "mistakeType"?}
    undo              {}

Server -> client:
    session-started, transcription, nlp-response, command-processed,
    feedback, clarification-needed, error
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from stockcount.session_channel import ClientCommandType, SessionEventType


class MessageType(Enum):
    """Session protocol message types."""
    # Speech recognizer input
    TRANSCRIPT = "transcript"

    # Client commands
    CONFIRM_COMMAND = ClientCommandType.CONFIRM.value
    REJECT_COMMAND = ClientCommandType.REJECT.value
    CORRECT_COMMAND = ClientCommandType.CORRECT.value
    UNDO = ClientCommandType.UNDO.value

    # Session events
    SESSION_STARTED = SessionEventType.SESSION_STARTED.value
    TRANSCRIPTION = SessionEventType.TRANSCRIPTION.value
    NLP_RESPONSE = SessionEventType.NLP_RESPONSE.value
    COMMAND_PROCESSED = SessionEventType.COMMAND_PROCESSED.value
    FEEDBACK = SessionEventType.FEEDBACK.value
    CLARIFICATION_NEEDED = SessionEventType.CLARIFICATION_NEEDED.value
    ERROR = SessionEventType.ERROR.value

    @property
    def is_client_command(self) -> bool:
        return self.value in {c.value for c in ClientCommandType}


@dataclass
class Transcript:
    """Speech-to-text result forwarded by the client."""
    text: str
    confidence: float = 1.0
    is_final: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "confidence": self.confidence, "is_final": self.is_final}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transcript":
        return cls(
            text=str(data.get("text", "")),
            confidence=float(data.get("confidence", 1.0)),
            is_final=bool(data.get("is_final", data.get("isFinal", True))),
        )


@dataclass
class ProtocolMessage:
    """
    Session protocol message container.

    Messages are JSON-encoded and newline-delimited for streaming over TCP.
    """
    type: MessageType
    data: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({"type": self.type.value, "data": self.data})

    def to_bytes(self) -> bytes:
        """Serialize message to bytes with newline terminator."""
        return (self.to_json() + "\n").encode("utf-8")

    @classmethod
    def from_json(cls, json_str: str) -> "ProtocolMessage":
        """
        Deserialize a message.

        Raises:
            ValueError: Not JSON, not an object, or an unknown type
        """
        parsed = json.loads(json_str)
        if not isinstance(parsed, dict):
            raise ValueError("Message must be a JSON object")
        msg_type = MessageType(parsed.get("type"))
        data = parsed.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("Message data must be a JSON object")
        return cls(type=msg_type, data=data)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProtocolMessage":
        return cls.from_json(data.decode("utf-8").strip())

    def transcript(self) -> Transcript:
        return Transcript.from_dict(self.data)

    @classmethod
    def event(cls, event_type: str, data: Optional[Dict[str, Any]] = None) -> "ProtocolMessage":
        """Create a server event message."""
        return cls(type=MessageType(event_type), data=data or {})

    @classmethod
    def error(cls, text: str, code: Optional[str] = None) -> "ProtocolMessage":
        return cls(type=MessageType.ERROR, data={"message": text, "code": code or "error"})


async def read_message(reader) -> Optional[ProtocolMessage]:
    """
    Read one message from an async stream reader.

    Args:
        reader: asyncio.StreamReader

    Returns:
        ProtocolMessage, or None if the connection closed

    Raises:
        ValueError: The line is not a valid message
    """
    line = await reader.readline()
    if not line:
        return None
    return ProtocolMessage.from_bytes(line)


async def write_message(writer, message: ProtocolMessage):
    """
    Write a message to an async stream writer.

    Args:
        writer: asyncio.StreamWriter
        message: ProtocolMessage to send
    """
    writer.write(message.to_bytes())
    await writer.drain()
