"""
STOCKCOUNT Session Context Tests

Tests for rolling per-session state.
"""

import pytest

from services.nlp.session_context import SessionContext
from stockcount.types import (
    CandidateCommand,
    CatalogItem,
    CommandAction,
    ConfirmationDecision,
    ConfirmationType,
    FeedbackMode,
    PendingConfirmation,
    RiskLevel,
    SessionStateType,
)


def make_pending(item_name="milk"):
    return PendingConfirmation(
        command=CandidateCommand(CommandAction.REMOVE, item_name, 2, "gallons", 0.95, True),
        item=CatalogItem(id=1, name=item_name, quantity=8, unit="gallons"),
        decision=ConfirmationDecision(ConfirmationType.VOICE, FeedbackMode.BRIEF, RiskLevel.MEDIUM),
    )


@pytest.fixture
def context():
    return SessionContext("s1", max_conversation_turns=3, max_recent_commands=2, max_session_items=2)


class TestConversation:
    """Tests for conversation history."""

    def test_bounded_and_ordered(self, context):
        for i in range(4):
            context.add_user_message(f"turn {i}")
        history = context.get_conversation_history()
        assert [t.content for t in history] == ["turn 1", "turn 2", "turn 3"]

    def test_roles(self, context):
        context.add_user_message("add milk")
        context.add_assistant_message("How much milk?")
        assert [t.role for t in context.get_conversation_history()] == ["user", "assistant"]


class TestRecentCommands:
    """Tests for recent commands and tracked items."""

    def test_keeps_last_two(self, context):
        for item in ("milk", "sugar", "coffee"):
            context.add_recent_command(CandidateCommand(CommandAction.ADD, item, 1, "units", 0.9, True))
        assert [c.item for c in context.get_recent_commands()] == ["sugar", "coffee"]

    def test_track_item_moves_to_end(self, context):
        context.track_item("Milk")
        context.track_item("sugar")
        context.track_item("milk")
        assert context.session_items == ["sugar", "milk"]

    def test_track_item_bounded(self, context):
        for name in ("milk", "sugar", "coffee"):
            context.track_item(name)
        assert context.session_items == ["sugar", "coffee"]


class TestProcessingFlag:
    """Tests for the busy flag."""

    def test_released_on_error(self, context):
        with pytest.raises(RuntimeError):
            with context.processing():
                assert context.is_processing_command
                raise RuntimeError("extractor exploded")
        assert not context.is_processing_command


class TestConfirmationState:
    """Tests for pending and queued confirmations."""

    def test_begin_sets_state(self, context):
        pending = make_pending()
        assert context.begin_confirmation(pending)
        assert context.pending_confirmation is pending
        assert context.current_state is SessionStateType.AWAITING_CONFIRMATION

    def test_second_is_queued(self, context):
        first, second = make_pending("milk"), make_pending("sugar")
        context.begin_confirmation(first)
        assert not context.begin_confirmation(second)
        assert context.pending_confirmation is first
        assert context.queued_confirmations == [second]

    def test_resolve_promotes_next(self, context):
        first, second = make_pending("milk"), make_pending("sugar")
        context.begin_confirmation(first)
        context.begin_confirmation(second)

        resolved, promoted = context.resolve_confirmation()

        assert resolved is first
        assert promoted is second
        assert context.pending_confirmation is second
        assert context.is_awaiting_confirmation

    def test_resolve_last_returns_to_normal(self, context):
        context.begin_confirmation(make_pending())
        context.resolve_confirmation()
        assert context.pending_confirmation is None
        assert context.current_state is SessionStateType.NORMAL

    def test_clear(self, context):
        context.add_user_message("add milk")
        context.begin_confirmation(make_pending())
        context.clear()
        assert context.get_conversation_history() == []
        assert context.pending_confirmation is None
        assert not context.is_awaiting_confirmation

    def test_to_dict(self, context):
        context.begin_confirmation(make_pending())
        data = context.to_dict()
        assert data["sessionId"] == "s1"
        assert data["currentState"] == "awaiting_confirmation"
        assert data["pendingConfirmation"]["item"] == "milk"
        assert data["confirmationHistory"]["total"] == 0
