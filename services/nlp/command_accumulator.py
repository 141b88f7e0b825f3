"""
STOCKCOUNT Command Accumulator

Merges incomplete candidate commands spoken across several utterances
("add coffee" ... "five pounds") into one partial command, bounded by a
short context window.

Rules:
- A complete candidate is emitted as-is and never touches the partial.
- An incomplete candidate inside the window merges field-wise into the
  partial (present fields win) and resets the window.
- Otherwise the candidate starts a fresh partial.
- After each batch, a live partial is also emitted as an incomplete
  snapshot so the client can show that the command is still being heard.

Usage:
    accumulator = CommandAccumulator(context_window=5.0)
    outputs = accumulator.process_batch(candidates)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from stockcount.types import CandidateCommand, CommandAction, PartialCommand

from .command_extractor import is_command_complete

logger = logging.getLogger("stockcount.accumulator")


__all__ = ["CommandAccumulator", "MergeResult", "snapshot_confidence"]


COMPLETED_CONFIDENCE = 0.95


def snapshot_confidence(partial: PartialCommand) -> float:
    """Confidence ladder for an incomplete partial; grows with its fields."""
    has_action = partial.action is not CommandAction.UNKNOWN
    if partial.action is CommandAction.UNDO:
        return 0.95
    if has_action and partial.item and partial.quantity is not None:
        return 0.8
    if has_action and partial.item:
        return 0.6
    if has_action:
        return 0.45
    return 0.3


@dataclass
class MergeResult:
    """Outcome of merging one candidate."""
    updated_partial: Optional[PartialCommand]
    emit_now: Optional[CandidateCommand] = None


class CommandAccumulator:
    """Holds at most one partial command for a session."""

    CONTEXT_WINDOW_SECONDS = 5.0

    def __init__(
        self,
        context_window: float = CONTEXT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            context_window: Seconds a partial stays mergeable after its last update
            clock: Monotonic time source, injectable for tests
        """
        self.context_window = context_window
        self._clock = clock
        self._partial: Optional[PartialCommand] = None

    @property
    def partial(self) -> Optional[PartialCommand]:
        return self._partial

    def is_fresh(self, partial: Optional[PartialCommand]) -> bool:
        if partial is None:
            return False
        return (self._clock() - partial.last_updated) < self.context_window

    def merge(
        self,
        existing: Optional[PartialCommand],
        candidate: CandidateCommand,
    ) -> MergeResult:
        """Merge one candidate into ``existing``; does not touch internal state."""
        if candidate.is_complete:
            return MergeResult(updated_partial=existing, emit_now=candidate)

        now = self._clock()

        if existing is not None and self.is_fresh(existing):
            merged = PartialCommand(
                action=(
                    candidate.action
                    if candidate.action is not CommandAction.UNKNOWN
                    else existing.action
                ),
                item=candidate.item or existing.item,
                quantity=candidate.quantity if candidate.quantity is not None else existing.quantity,
                unit=candidate.unit or existing.unit,
                last_updated=now,
            )

            if is_command_complete(merged.action, merged.item, merged.quantity, merged.unit):
                completed = CandidateCommand(
                    action=merged.action,
                    item=merged.item,
                    quantity=merged.quantity,
                    unit=merged.unit,
                    confidence=COMPLETED_CONFIDENCE,
                    is_complete=True,
                )
                logger.debug(f"Accumulated complete command: {completed.describe()}")
                return MergeResult(updated_partial=None, emit_now=completed)

            logger.debug(f"Partial updated: {merged}")
            return MergeResult(updated_partial=merged)

        return MergeResult(updated_partial=PartialCommand.from_candidate(candidate, now))

    def process_batch(self, candidates: Sequence[CandidateCommand]) -> List[CandidateCommand]:
        """Merge a batch in order; return everything to hand downstream.

        Completed commands come first in arrival order, followed by one
        snapshot of the surviving partial, if any.
        """
        outputs: List[CandidateCommand] = []

        for candidate in candidates:
            result = self.merge(self._partial, candidate)
            self._partial = result.updated_partial
            if result.emit_now is not None:
                outputs.append(result.emit_now)

        if self._partial is not None:
            if self.is_fresh(self._partial):
                outputs.append(self.snapshot(self._partial))
            else:
                logger.debug("Discarding expired partial command")
                self._partial = None

        return outputs

    @staticmethod
    def snapshot(partial: PartialCommand) -> CandidateCommand:
        """Incomplete view of a partial for "still listening" feedback."""
        return CandidateCommand(
            action=partial.action,
            item=partial.item,
            quantity=partial.quantity,
            unit=partial.unit,
            confidence=snapshot_confidence(partial),
            is_complete=False,
        )

    def reset(self) -> None:
        self._partial = None
