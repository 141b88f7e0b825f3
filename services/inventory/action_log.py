"""
Per-session log of applied mutations, for single-step undo.

Undo reverses the change that was actually applied, so a removal that was
clamped at zero is undone by adding back only what was taken.
"""

from collections import deque
from typing import Deque, List, Optional, Tuple

from stockcount.types import ActionLogEntry, CommandAction


class ActionLog:
    """Bounded stack of applied mutations."""

    def __init__(self, max_entries: int = 50):
        self._entries: Deque[ActionLogEntry] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: ActionLogEntry):
        self._entries.append(entry)

    def pop_last(self) -> Optional[ActionLogEntry]:
        """Remove and return the newest entry; None when empty."""
        if not self._entries:
            return None
        return self._entries.pop()

    def peek_last(self) -> Optional[ActionLogEntry]:
        return self._entries[-1] if self._entries else None

    @property
    def entries(self) -> List[ActionLogEntry]:
        return list(self._entries)

    def clear(self):
        self._entries.clear()

    @staticmethod
    def inverse_of(entry: ActionLogEntry) -> Tuple[CommandAction, float]:
        """Action and amount (in the entry's unit) that reverse ``entry``."""
        if entry.action is CommandAction.SET:
            return CommandAction.SET, entry.previous_quantity
        if entry.delta >= 0:
            return CommandAction.REMOVE, entry.delta
        return CommandAction.ADD, -entry.delta
