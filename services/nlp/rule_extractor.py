"""
STOCKCOUNT Rule-Based Command Extractor

Offline implementation of the CommandExtractor contract for when no LLM
backend is configured. A ladder of regular expressions over the normalized
utterance, backed by lookup tables for action synonyms, spoken numbers, unit
synonyms and per-item default units.

Unlike the LLM path, this extractor does infer a missing action: a bare
quantity or a known item defaults to "add".
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from stockcount.types import (
    CandidateCommand,
    CommandAction,
    ConversationTurn,
    RecentCommand,
)

from services.inventory.units import is_known_unit, normalize_unit

from .command_extractor import CommandExtractor, is_command_complete

logger = logging.getLogger("stockcount.extractor.rules")


__all__ = [
    "RuleBasedCommandExtractor",
    "normalize_unit",
    "word_to_number",
    "clean_item_name",
    "default_unit_for_item",
]


# =============================================================================
# Vocabulary
# =============================================================================

# Explicit verbs outrank filler verbs ("we need to remove ..." removes).
# Within a tier the earliest verb in the utterance wins.
ACTION_VARIANTS: List[List[Tuple[CommandAction, List[str]]]] = [
    [
        (CommandAction.ADD, [
            "add", "adding", "added", "increase", "buy", "purchase", "order", "include",
            "insert", "stock", "supply", "refill", "restock", "received", "receive",
        ]),
        (CommandAction.REMOVE, [
            "remove", "removing", "removed", "decrease", "take", "taken", "reduce",
            "pull", "delete", "subtract", "dispose", "discard", "trash", "eliminate",
            "drop", "consume", "use", "used", "sold", "waste", "wasted",
        ]),
        (CommandAction.SET, [
            "set", "update", "change", "adjust", "should be", "is now", "are now",
            "equals", "reset", "record", "count", "total",
        ]),
    ],
    [
        (CommandAction.ADD, ["put", "more", "need", "want", "get", "bring"]),
        (CommandAction.REMOVE, ["less"]),
        (CommandAction.SET, ["have", "got", "make", "contains", "there is", "there are"]),
    ],
]

WORD_NUMBERS = {
    "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11,
    "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15, "sixteen": 16,
    "seventeen": 17, "eighteen": 18, "nineteen": 19, "twenty": 20,
    "a dozen": 12, "dozen": 12, "half": 0.5,
}

ITEM_DEFAULT_UNITS = {
    "milk": "gallons", "cream": "gallons", "water": "gallons", "juice": "gallons",
    "syrup": "bottles", "caramel": "bottles", "vanilla": "bottles", "chocolate": "bottles",
    "coffee": "pounds", "beans": "pounds", "sugar": "pounds", "flour": "pounds",
    "tea": "boxes", "napkins": "packs", "cups": "sleeves", "lids": "sleeves",
    "straws": "boxes", "stirrers": "boxes", "filters": "packs",
    "pastry": "pieces", "muffin": "pieces", "cookie": "pieces",
}

FILLER_WORDS = [
    "the", "a", "an", "some", "more", "please", "thanks", "thank", "you", "would",
    "like", "can", "could", "to", "for", "of", "with", "i", "we", "our", "my", "this",
    "that", "these", "those", "few", "little", "need", "just", "only", "extra",
    "have", "got", "there", "is", "are", "now", "let's", "lets", "also",
]

ACTION_WORDS = [
    "add", "set", "remove", "get", "update", "change", "stock", "order", "buy",
    "take", "use", "used", "make", "count", "record",
]

_NUMBER_WORD_PATTERN = "|".join(
    sorted((re.escape(w) for w in WORD_NUMBERS), key=len, reverse=True)
)
_DIGITS = r"\d+(?:\.\d+)?"
_ANY_NUMBER = rf"(?:{_DIGITS}|{_NUMBER_WORD_PATTERN})"

UNDO_PATTERN = re.compile(r"^\s*(?:undo|revert|scratch that|take that back)\b", re.I)
QUERY_PATTERN = re.compile(r"\b(?:check|do we have|is there|how much|how many|are there)\b", re.I)
QUERY_ITEM_PATTERNS = [
    re.compile(r"\b(?:do we have|is there|check)\s+(?:any|some|the)?\s*(.+?)(?:\s+left)?\??$", re.I),
    re.compile(r"\bhow much\s+(.+?)\s+(?:do we have|is there|is left)\??$", re.I),
    re.compile(r"\bhow many\s+(.+?)\s+(?:do we have|are there|are left)\??$", re.I),
]
SET_TO_PATTERN = re.compile(
    rf"\b(?:set|update|change)?\s*(.+?)\s+to\s+({_ANY_NUMBER})\s+(.+)", re.I
)
SPLIT_PATTERN = re.compile(
    rf"\s*(?:,|;|\band\b)\s*(?=(?:add|remove|set|{_ANY_NUMBER})\b)", re.I
)

# (pattern, confidence, shape) tried in order
PATTERN_LADDER = [
    (re.compile(rf"({_DIGITS})\s+(\w+)\s+of\s+(.+)", re.I), 0.95, "unit_of_item"),
    (re.compile(rf"\b({_NUMBER_WORD_PATTERN})\s+(\w+)\s+of\s+(.+)", re.I), 0.85, "unit_of_item"),
    (re.compile(rf"({_DIGITS})\s+(.+)", re.I), 0.85 * 0.9, "item_with_unit"),
    (re.compile(rf"\b({_NUMBER_WORD_PATTERN})\s+(.+)", re.I), 0.85 * 0.9, "item_with_unit"),
]


# =============================================================================
# Helpers
# =============================================================================


def word_to_number(token: str) -> Optional[float]:
    """"5" -> 5.0, "five" -> 5.0, anything else -> None."""
    token = token.strip().lower()
    if re.fullmatch(_DIGITS, token):
        return float(token)
    value = WORD_NUMBERS.get(token)
    return float(value) if value is not None else None


def default_unit_for_item(item: str) -> str:
    """Typical unit for an item, matching on any word of its name."""
    words = item.lower().split()
    for word in reversed(words):
        if word in ITEM_DEFAULT_UNITS:
            return ITEM_DEFAULT_UNITS[word]
    return ""


def clean_item_name(text: str) -> str:
    """Strip filler, numbers, action verbs and punctuation from an item phrase."""
    item = text.lower().strip()
    item = re.sub(r"[.,/#!$%^&*;:{}=_`~()?\"]", " ", item)
    for word in FILLER_WORDS + ACTION_WORDS:
        item = re.sub(rf"\b{re.escape(word)}\b", " ", item)
    item = re.sub(rf"\b{_DIGITS}\b", " ", item)
    return re.sub(r"\s+", " ", item).strip()


def detect_action(text: str) -> CommandAction:
    lowered = text.lower()
    for tier in ACTION_VARIANTS:
        earliest: Optional[Tuple[int, CommandAction]] = None
        for action, variants in tier:
            for variant in variants:
                match = re.search(rf"\b{re.escape(variant)}\b", lowered)
                if match and (earliest is None or match.start() < earliest[0]):
                    earliest = (match.start(), action)
        if earliest is not None:
            return earliest[1]
    return CommandAction.UNKNOWN


def split_item_and_unit(text: str) -> Tuple[str, str]:
    """Split "pounds of coffee" / "pounds coffee" / "coffee" / "pounds" into (item, unit)."""
    words = text.strip().split()
    if words and is_known_unit(words[0]):
        rest = words[1:]
        if rest and rest[0].lower() == "of":
            rest = rest[1:]
        return clean_item_name(" ".join(rest)), normalize_unit(words[0])

    item = clean_item_name(text)
    return item, default_unit_for_item(item)


def split_commands(text: str) -> List[str]:
    """Split "5 pounds of coffee and 2 gallons of milk" into one segment per command."""
    return [part for part in SPLIT_PATTERN.split(text) if part.strip()]


# =============================================================================
# Extractor
# =============================================================================


class RuleBasedCommandExtractor(CommandExtractor):
    """Regex-ladder command extraction with no network dependency."""

    name = "rules"

    async def extract(
        self,
        utterance: str,
        conversation_history: Sequence[ConversationTurn] = (),
        recent_commands: Sequence[RecentCommand] = (),
    ) -> List[CandidateCommand]:
        text = utterance.strip()
        if not text:
            return []

        if UNDO_PATTERN.search(text):
            return [CandidateCommand(CommandAction.UNDO, confidence=0.95, is_complete=True)]

        commands: List[CandidateCommand] = []
        inherited: Optional[CommandAction] = None
        for segment in split_commands(text):
            candidate = self.parse_segment(segment, inherited)
            if candidate is None:
                continue
            if candidate.action is not CommandAction.UNKNOWN:
                inherited = candidate.action
            commands.append(candidate)

        logger.debug(f"Rules extracted {len(commands)} command(s) from {utterance!r}")
        return commands

    def parse_segment(
        self,
        text: str,
        inherited_action: Optional[CommandAction] = None,
    ) -> Optional[CandidateCommand]:
        """Parse one command-sized piece of an utterance."""
        lowered = re.sub(r"[.!?]+$", "", text.lower().strip()).strip()
        if not lowered:
            return None

        if QUERY_PATTERN.search(lowered) and not re.search(_DIGITS, lowered):
            return CandidateCommand(
                action=CommandAction.UNKNOWN,
                item=self._item_from_query(lowered),
                confidence=0.7,
            )

        action = detect_action(lowered)

        if action is CommandAction.SET or " to " in lowered:
            match = SET_TO_PATTERN.search(lowered)
            quantity = word_to_number(match.group(2)) if match else None
            if match and quantity is not None:
                item = clean_item_name(match.group(1))
                unit = normalize_unit(match.group(3).split()[0])
                return self._build(CommandAction.SET, item, quantity, unit, 0.9)

        if action is CommandAction.UNKNOWN:
            action = self._infer_action(lowered, inherited_action)

        for pattern, confidence, shape in PATTERN_LADDER:
            match = pattern.search(lowered)
            if not match:
                continue
            quantity = word_to_number(match.group(1))
            if quantity is None:
                continue
            if shape == "unit_of_item":
                item = clean_item_name(match.group(3))
                unit = normalize_unit(match.group(2))
            else:
                item, unit = split_item_and_unit(match.group(2))
            return self._build(action, item, quantity, unit, confidence)

        item = clean_item_name(lowered)
        confidence = 0.4 + (0.1 if item else 0.0)
        if action is CommandAction.UNKNOWN and not item:
            return None
        return self._build(action, item, None, default_unit_for_item(item), confidence)

    def _infer_action(
        self, lowered: str, inherited_action: Optional[CommandAction]
    ) -> CommandAction:
        if inherited_action is not None:
            return inherited_action
        if re.search(rf"\b{_ANY_NUMBER}\b", lowered):
            return CommandAction.ADD
        if default_unit_for_item(clean_item_name(lowered)):
            return CommandAction.ADD
        if len(lowered.split()) <= 3:
            return CommandAction.ADD
        return CommandAction.UNKNOWN

    def _item_from_query(self, lowered: str) -> str:
        for pattern in QUERY_ITEM_PATTERNS:
            match = pattern.search(lowered)
            if match:
                return clean_item_name(match.group(1))
        return clean_item_name(QUERY_PATTERN.sub(" ", lowered))

    @staticmethod
    def _build(
        action: CommandAction,
        item: str,
        quantity: Optional[float],
        unit: str,
        confidence: float,
    ) -> CandidateCommand:
        return CandidateCommand(
            action=action,
            item=item,
            quantity=quantity,
            unit=unit,
            confidence=round(confidence, 3),
            is_complete=is_command_complete(action, item, quantity, unit),
        )
