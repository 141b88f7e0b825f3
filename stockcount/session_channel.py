"""
STOCKCOUNT Session Channel

The single inbox of one session pipeline. Flushed utterances, confirmation
timeouts and client commands are all published here and consumed by one
task, which keeps per-session processing strictly sequential.

At most one flushed utterance waits at a time: a newer flush replaces a
queued one that has not started yet. Other messages queue in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Optional, Union

logger = logging.getLogger("stockcount.channel")


__all__ = [
    "SessionEventType",
    "ClientCommandType",
    "UtteranceReady",
    "ConfirmationTimedOut",
    "ClientCommand",
    "SessionMessage",
    "SessionChannel",
]


class SessionEventType(str, Enum):
    """Events sent to the connected client."""
    SESSION_STARTED = "session-started"
    TRANSCRIPTION = "transcription"
    NLP_RESPONSE = "nlp-response"
    COMMAND_PROCESSED = "command-processed"
    FEEDBACK = "feedback"
    CLARIFICATION_NEEDED = "clarification-needed"
    ERROR = "error"


class ClientCommandType(str, Enum):
    """Commands the connected client may send."""
    CONFIRM = "confirm-command"
    REJECT = "reject-command"
    CORRECT = "correct-command"
    UNDO = "undo"


@dataclass(frozen=True)
class UtteranceReady:
    """An aggregated utterance ready for extraction."""
    text: str
    reason: str = "idle"  # "punctuation", "boundary", "idle", "manual"


@dataclass(frozen=True)
class ConfirmationTimedOut:
    """A visual confirmation reached its timeout."""
    confirmation_id: str


@dataclass(frozen=True)
class ClientCommand:
    """A command sent by the connected client (confirm, reject, correct, undo)."""
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)


SessionMessage = Union[UtteranceReady, ConfirmationTimedOut, ClientCommand]


class SessionChannel:
    """Bounded per-session message queue with a single consumer."""

    def __init__(self, name: str = ""):
        self.name = name
        self._items: Deque[SessionMessage] = deque()
        self._event = asyncio.Event()
        self._closed = False
        self.replaced_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def publish(self, message: SessionMessage) -> bool:
        """Enqueue a message. Returns False once the channel is closed."""
        if self._closed:
            return False

        if isinstance(message, UtteranceReady):
            for queued in list(self._items):
                if isinstance(queued, UtteranceReady):
                    self._items.remove(queued)
                    self.replaced_count += 1
                    logger.warning(
                        f"[{self.name}] Dropped queued utterance {queued.text!r}, "
                        f"replaced by a newer flush"
                    )

        self._items.append(message)
        self._event.set()
        return True

    async def receive(self) -> Optional[SessionMessage]:
        """Wait for the next message; None once closed."""
        while not self._items:
            if self._closed:
                return None
            self._event.clear()
            await self._event.wait()
        if self._closed:
            return None
        return self._items.popleft()

    def close(self) -> None:
        self._closed = True
        self._items.clear()
        self._event.set()
