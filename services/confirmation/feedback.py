"""
STOCKCOUNT Speech Feedback
Formats commands and outcomes into short text for the client to display or
speak.

Usage:
    from services.confirmation.feedback import confirmation_prompt

    text = confirmation_prompt(command, decision)
    # "I'll add 5 pounds of coffee. Is that correct?"
"""

from __future__ import annotations

from typing import Optional, Sequence

from stockcount.types import (
    ActionLogEntry,
    CandidateCommand,
    CommandAction,
    ConfirmationDecision,
    FeedbackMode,
    format_quantity,
)


__all__ = [
    "describe_command",
    "confirmation_prompt",
    "success_message",
    "undo_message",
    "clarification_prompt",
    "listening_message",
    "error_message",
]


_PAST_TENSE = {
    CommandAction.ADD: "Added",
    CommandAction.REMOVE: "Removed",
    CommandAction.SET: "Set",
}


def describe_command(action: CommandAction, item: str, quantity: Optional[float], unit: str) -> str:
    """ "add 5 pounds of coffee" / "set milk to 10 gallons" """
    qty = format_quantity(quantity) if quantity is not None else ""
    amount = " ".join(part for part in (qty, unit) if part)

    if action is CommandAction.SET:
        return f"set {item} to {amount}".strip() if amount else f"set {item}"
    if amount:
        return f"{action.value} {amount} of {item}"
    return f"{action.value} {item}".strip()


def confirmation_prompt(command: CandidateCommand, decision: ConfirmationDecision) -> str:
    """Text shown or spoken while a command waits for confirmation."""
    text = describe_command(command.action, command.item, command.quantity, command.unit)

    if decision.feedback_mode is FeedbackMode.SILENT:
        return ""
    if decision.feedback_mode is FeedbackMode.DETAILED:
        prompt = f"I'll {text}. Is that correct?"
    else:
        prompt = f"{text[0].upper()}{text[1:]}?"

    if decision.suggested_correction:
        prompt = f"{prompt} {decision.suggested_correction}"
    return prompt


def success_message(entry: ActionLogEntry) -> str:
    """ "Added 5 pounds of coffee. Coffee is now at 12 pounds." """
    verb = _PAST_TENSE.get(entry.action, entry.action.value.capitalize())
    qty = format_quantity(entry.quantity)
    if entry.action is CommandAction.SET:
        head = f"{verb} {entry.item_name} to {qty} {entry.unit}"
    else:
        head = f"{verb} {qty} {entry.unit} of {entry.item_name}"
    return f"{head}. {entry.item_name.capitalize()} is now at {format_quantity(entry.new_quantity)} {entry.unit}."


def undo_message(entry: Optional[ActionLogEntry]) -> str:
    if entry is None:
        return "Nothing to undo."
    text = describe_command(entry.action, entry.item_name, entry.quantity, entry.unit)
    return f"Undid {text}. {entry.item_name.capitalize()} is back to {format_quantity(entry.previous_quantity)} {entry.unit}."


def clarification_prompt(spoken_item: str, suggestions: Sequence[str]) -> str:
    """ "I'm not sure which item you meant by 'milk'. Did you mean A, B or C?" """
    if not suggestions:
        return f"I couldn't find '{spoken_item}'. Which item did you mean?"
    if len(suggestions) == 1:
        options = suggestions[0]
    else:
        options = f"{', '.join(suggestions[:-1])} or {suggestions[-1]}"
    return f"I'm not sure which item you meant by '{spoken_item}'. Did you mean {options}?"


def listening_message(command: CandidateCommand) -> str:
    """Prompt for the fields a partial command still lacks."""
    if command.action is CommandAction.UNKNOWN:
        return "What would you like to do?"
    if not command.item:
        return f"What would you like to {command.action.value}?"
    if command.quantity is None:
        return f"How much {command.item}?"
    return f"What unit for {command.item}?"


def error_message(reason: str) -> str:
    return f"Sorry, {reason}"
