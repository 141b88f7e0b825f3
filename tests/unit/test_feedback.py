"""
Speech feedback formatting tests.
"""

from services.confirmation.feedback import (
    clarification_prompt,
    confirmation_prompt,
    describe_command,
    error_message,
    listening_message,
    success_message,
    undo_message,
)
from stockcount.types import (
    ActionLogEntry,
    CandidateCommand,
    CommandAction,
    ConfirmationDecision,
    ConfirmationType,
    FeedbackMode,
    RiskLevel,
)


def entry(action, quantity, previous, new, item="coffee", unit="pounds"):
    return ActionLogEntry(action, 1, item, quantity, unit, previous, new)


def decision(mode, suggestion=None):
    return ConfirmationDecision(
        ConfirmationType.VOICE, mode, RiskLevel.MEDIUM, suggested_correction=suggestion
    )


ADD_COFFEE = CandidateCommand(CommandAction.ADD, "coffee", 5, "pounds", 0.95, True)


class TestDescribeCommand:

    def test_add(self):
        assert describe_command(CommandAction.ADD, "coffee", 5, "pounds") == "add 5 pounds of coffee"

    def test_set(self):
        assert describe_command(CommandAction.SET, "milk", 10, "gallons") == "set milk to 10 gallons"

    def test_fractional_quantity(self):
        assert describe_command(CommandAction.REMOVE, "cream", 2.5, "gallons") == "remove 2.5 gallons of cream"

    def test_no_amount(self):
        assert describe_command(CommandAction.ADD, "coffee", None, "") == "add coffee"


class TestConfirmationPrompt:

    def test_detailed(self):
        text = confirmation_prompt(ADD_COFFEE, decision(FeedbackMode.DETAILED))
        assert text == "I'll add 5 pounds of coffee. Is that correct?"

    def test_brief(self):
        assert confirmation_prompt(ADD_COFFEE, decision(FeedbackMode.BRIEF)) == "Add 5 pounds of coffee?"

    def test_silent(self):
        assert confirmation_prompt(ADD_COFFEE, decision(FeedbackMode.SILENT)) == ""

    def test_suggestion_appended(self):
        text = confirmation_prompt(ADD_COFFEE, decision(FeedbackMode.BRIEF, "Did you mean decaf coffee?"))
        assert text.endswith("Did you mean decaf coffee?")


class TestOutcomeMessages:

    def test_success_add(self):
        text = success_message(entry(CommandAction.ADD, 5, 7, 12))
        assert text == "Added 5 pounds of coffee. Coffee is now at 12 pounds."

    def test_success_set(self):
        text = success_message(entry(CommandAction.SET, 10, 8, 10, "milk", "gallons"))
        assert text == "Set milk to 10 gallons. Milk is now at 10 gallons."

    def test_undo(self):
        text = undo_message(entry(CommandAction.ADD, 5, 7, 12))
        assert text == "Undid add 5 pounds of coffee. Coffee is back to 7 pounds."

    def test_nothing_to_undo(self):
        assert undo_message(None) == "Nothing to undo."

    def test_error(self):
        assert error_message("the item search is down.") == "Sorry, the item search is down."


class TestPrompts:

    def test_clarification_lists_options(self):
        text = clarification_prompt("milk", ["milk", "oat milk", "heavy cream"])
        assert text == "I'm not sure which item you meant by 'milk'. Did you mean milk, oat milk or heavy cream?"

    def test_clarification_single(self):
        assert clarification_prompt("cups", ["paper cups"]).endswith("Did you mean paper cups?")

    def test_clarification_none(self):
        assert "Which item" in clarification_prompt("kale", [])

    def test_listening(self):
        assert listening_message(CandidateCommand()) == "What would you like to do?"
        assert listening_message(CandidateCommand(CommandAction.ADD)) == "What would you like to add?"
        assert listening_message(CandidateCommand(CommandAction.ADD, "coffee")) == "How much coffee?"
        assert listening_message(CandidateCommand(CommandAction.SET, "milk", 4)) == "What unit for milk?"
