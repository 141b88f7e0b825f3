"""
STOCKCOUNT Transcript Aggregator

Joins final transcript fragments from the speech recognizer into one
utterance and decides when the utterance is probably complete:

1. The fragment ends with sentence punctuation.
2. The fragment completes a "set <item>" command already in the buffer
   ("set whole milk" + "to 10 gallons").
3. No new fragment arrived for the idle interval.

Flushed utterances are published to the session channel; the buffer is
cleared at flush time, before any downstream processing.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Callable, Optional

from stockcount.session_channel import SessionChannel, UtteranceReady

logger = logging.getLogger("stockcount.aggregator")


__all__ = ["TranscriptAggregator"]


TERMINAL_PUNCTUATION = re.compile(r"[.!?]\s*$")
SET_COMMAND_START = re.compile(r"^(?:set|update)\s+\S", re.I)
SET_CONTINUATIONS = [
    re.compile(r"^\d+(?:\.\d+)?\s+\w+\.?$", re.I),
    re.compile(r"^to\s+\d+(?:\.\d+)?\s+\w+\.?$", re.I),
]


class TranscriptAggregator:
    """Per-session utterance buffer with an idle flush timer."""

    IDLE_TIMEOUT_SECONDS = 3.0

    def __init__(
        self,
        channel: SessionChannel,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.idle_timeout = idle_timeout
        self._clock = clock

        self._buffer = ""
        self._last_addition: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def time_since_last_addition(self) -> Optional[float]:
        if self._last_addition is None:
            return None
        return self._clock() - self._last_addition

    def add_transcript(self, text: str) -> Optional[str]:
        """Append a final fragment; flush if it completes the utterance.

        Returns:
            The flushed utterance when this fragment triggered a flush,
            otherwise None (an idle flush may still follow)
        """
        if self._closed:
            return None

        fragment = " ".join(text.split())
        if not fragment:
            return None

        boundary = self._is_set_continuation(self._buffer, fragment)

        self._buffer = f"{self._buffer} {fragment}" if self._buffer else fragment
        self._last_addition = self._clock()

        if TERMINAL_PUNCTUATION.search(fragment):
            return self.flush("punctuation")
        if boundary:
            return self.flush("boundary")

        self._arm_timer()
        return None

    def flush(self, reason: str = "manual") -> Optional[str]:
        """Hand the whole buffer downstream and clear it."""
        self._cancel_timer()

        utterance = self._buffer.strip()
        self._buffer = ""
        if self._closed or not utterance:
            return None

        logger.info(f"Flushing utterance ({reason}): {utterance!r}")
        self.channel.publish(UtteranceReady(text=utterance, reason=reason))
        return utterance

    def close(self) -> None:
        """Stop flushing; pending text is discarded."""
        self._closed = True
        self._cancel_timer()
        self._buffer = ""

    @staticmethod
    def _is_set_continuation(buffer: str, fragment: str) -> bool:
        if not buffer or not SET_COMMAND_START.search(buffer):
            return False
        if re.search(r"\bto\s+\d", buffer, re.I):
            return False
        if fragment.lower().startswith("to "):
            return True
        return any(p.match(fragment) for p in SET_CONTINUATIONS)

    def _arm_timer(self) -> None:
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; idle flush disabled for this fragment")
            return
        self._timer = loop.call_later(self.idle_timeout, self._on_idle)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_idle(self) -> None:
        self._timer = None
        if self._closed or not self._buffer:
            return
        self.flush("idle")
