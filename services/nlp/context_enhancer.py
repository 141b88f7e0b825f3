"""
Context enhancement for incomplete candidate commands.

A candidate that names a quantity but not the item or unit ("another 5") is
back-filled from the most recent resolved command with the same action, then
from the last command-shaped turn in the conversation.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from stockcount.types import (
    CandidateCommand,
    CommandAction,
    ConversationTurn,
    RecentCommand,
)

from .command_extractor import is_command_complete

logger = logging.getLogger("stockcount.context")

HISTORY_COMMAND_PATTERN = re.compile(
    r"(?:add|remove|set)\s+\d+\s+(\w+)\s+of\s+([^,.]+)", re.I
)
ENHANCED_MIN_CONFIDENCE = 0.9


def enhance_with_context(
    candidate: CandidateCommand,
    conversation_history: Sequence[ConversationTurn],
    recent_commands: Sequence[RecentCommand],
) -> CandidateCommand:
    """Return ``candidate`` with missing item/unit filled from context.

    Complete candidates, candidates without a quantity, and candidates with
    nothing to borrow from come back unchanged.
    """
    if candidate.is_complete or candidate.quantity is None:
        return candidate
    if candidate.item and candidate.unit:
        return candidate
    if not conversation_history and not recent_commands:
        return candidate

    action = candidate.action
    item = candidate.item
    unit = candidate.unit

    if recent_commands:
        latest = recent_commands[-1]
        if action is CommandAction.UNKNOWN or action is latest.action:
            item = item or latest.item
            unit = unit or latest.unit
            if action is CommandAction.UNKNOWN:
                action = latest.action

    if not item or not unit:
        for turn in reversed(conversation_history):
            match = HISTORY_COMMAND_PATTERN.search(turn.content)
            if match:
                unit = unit or match.group(1).lower()
                item = item or match.group(2).strip()
                break

    enhanced = candidate.with_updates(action=action, item=item, unit=unit)

    if is_command_complete(action, item, candidate.quantity, unit):
        enhanced = enhanced.with_updates(
            is_complete=True,
            confidence=max(candidate.confidence, ENHANCED_MIN_CONFIDENCE),
        )
        logger.debug(f"Context completed command: {enhanced.describe()}")

    return enhanced
