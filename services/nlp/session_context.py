"""
STOCKCOUNT Session Context Store

Rolling per-session state read and written by every pipeline stage:
conversation turns, the last few resolved commands, the pending confirmation
(and the commands queued behind it), the busy flag, and the trailing
confirmation accuracy used by the policy engine.

One instance per connection; nothing here is shared between sessions.

Usage:
    from services.nlp.session_context import SessionContext

    context = SessionContext("session-1")
    context.add_user_message("add 5 pounds of coffee")
    with context.processing():
        ...
"""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

from stockcount.types import (
    CandidateCommand,
    ConfirmationHistory,
    ConversationTurn,
    PendingConfirmation,
    RecentCommand,
    SessionStateType,
)

logger = logging.getLogger("stockcount.session_context")


__all__ = ["SessionContext"]


class SessionContext:
    """Short-lived memory of one voice session."""

    MAX_CONVERSATION_TURNS = 8
    MAX_RECENT_COMMANDS = 2
    MAX_SESSION_ITEMS = 10

    def __init__(
        self,
        session_id: str,
        user_role: str = "staff",
        max_conversation_turns: int = MAX_CONVERSATION_TURNS,
        max_recent_commands: int = MAX_RECENT_COMMANDS,
        max_session_items: int = MAX_SESSION_ITEMS,
    ):
        self.session_id = session_id
        self.user_role = user_role

        self.current_state = SessionStateType.NORMAL
        self.pending_confirmation: Optional[PendingConfirmation] = None
        self.is_processing_command = False

        self._conversation: Deque[ConversationTurn] = deque(maxlen=max_conversation_turns)
        self._recent_commands: Deque[RecentCommand] = deque(maxlen=max_recent_commands)
        self._queued: Deque[PendingConfirmation] = deque()
        self._session_items: Deque[str] = deque(maxlen=max_session_items)

        self.confirmation_history = ConfirmationHistory()

    # -------------------------------------------------------------------------
    # Conversation
    # -------------------------------------------------------------------------

    def add_user_message(self, content: str) -> None:
        self._conversation.append(ConversationTurn("user", content))

    def add_assistant_message(self, content: str) -> None:
        self._conversation.append(ConversationTurn("assistant", content))

    def get_conversation_history(self) -> List[ConversationTurn]:
        """Oldest first."""
        return list(self._conversation)

    # -------------------------------------------------------------------------
    # Recent commands and items
    # -------------------------------------------------------------------------

    def add_recent_command(self, command: CandidateCommand) -> None:
        self._recent_commands.append(
            RecentCommand(
                action=command.action,
                item=command.item,
                quantity=command.quantity,
                unit=command.unit,
            )
        )

    def get_recent_commands(self) -> List[RecentCommand]:
        """Oldest first; the last element is the most recent."""
        return list(self._recent_commands)

    def track_item(self, item_name: str) -> None:
        """Remember an item touched in this session, most recent last."""
        key = item_name.strip().lower()
        if not key:
            return
        if key in self._session_items:
            self._session_items.remove(key)
        self._session_items.append(key)

    @property
    def session_items(self) -> List[str]:
        return list(self._session_items)

    # -------------------------------------------------------------------------
    # Busy flag
    # -------------------------------------------------------------------------

    @contextmanager
    def processing(self) -> Iterator["SessionContext"]:
        """Hold the busy flag for the duration of one command; always released."""
        self.is_processing_command = True
        try:
            yield self
        finally:
            self.is_processing_command = False

    # -------------------------------------------------------------------------
    # Confirmation state
    # -------------------------------------------------------------------------

    @property
    def is_awaiting_confirmation(self) -> bool:
        return self.current_state is SessionStateType.AWAITING_CONFIRMATION

    @property
    def queued_confirmations(self) -> List[PendingConfirmation]:
        return list(self._queued)

    def begin_confirmation(self, pending: PendingConfirmation) -> bool:
        """Make ``pending`` current, or queue it behind the current one.

        Returns:
            True if it became the pending confirmation, False if queued
        """
        if self.pending_confirmation is None:
            self.pending_confirmation = pending
            self.current_state = SessionStateType.AWAITING_CONFIRMATION
            return True

        self._queued.append(pending)
        logger.debug(
            f"[{self.session_id}] Queued confirmation {pending.id} "
            f"behind {self.pending_confirmation.id} ({len(self._queued)} waiting)"
        )
        return False

    def resolve_confirmation(self) -> Tuple[Optional[PendingConfirmation], Optional[PendingConfirmation]]:
        """Clear the current confirmation and promote the next queued one.

        Returns:
            (resolved, promoted) - either may be None
        """
        resolved = self.pending_confirmation
        promoted = self._queued.popleft() if self._queued else None

        self.pending_confirmation = promoted
        self.current_state = (
            SessionStateType.AWAITING_CONFIRMATION if promoted else SessionStateType.NORMAL
        )
        return resolved, promoted

    def clear(self) -> None:
        """Drop everything; used when the session closes."""
        self.pending_confirmation = None
        self._queued.clear()
        self.current_state = SessionStateType.NORMAL
        self.is_processing_command = False
        self._conversation.clear()
        self._recent_commands.clear()
        self._session_items.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "currentState": self.current_state.value,
            "pendingConfirmation": (
                self.pending_confirmation.to_dict() if self.pending_confirmation else None
            ),
            "queuedConfirmations": len(self._queued),
            "isProcessingCommand": self.is_processing_command,
            "conversationHistory": [t.to_dict() for t in self._conversation],
            "recentCommands": [c.to_dict() for c in self._recent_commands],
            "confirmationHistory": self.confirmation_history.to_dict(),
        }
