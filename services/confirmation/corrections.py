"""
Spoken answers to a pending confirmation.

While a VOICE or EXPLICIT confirmation is waiting, the next utterance is
first tried as an answer: a plain yes/no, or a correction of one field
("make it 5", "not coffee but tea", "don't add, remove", "not pounds but
bags"). Anything else goes through normal extraction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from stockcount.types import CandidateCommand, CommandAction

from services.inventory.units import KNOWN_UNITS, normalize_unit
from services.nlp.rule_extractor import word_to_number


__all__ = ["ReplyKind", "VoiceReply", "parse_voice_reply"]


class ReplyKind(Enum):
    CONFIRM = "confirm"
    REJECT = "reject"
    CORRECT = "correct"


@dataclass(frozen=True)
class VoiceReply:
    kind: ReplyKind
    corrected: Optional[CandidateCommand] = None
    mistake_type: Optional[str] = None  # "quantity", "item", "action", "unit"


YES_PATTERN = re.compile(
    r"^(?:yes|yeah|yep|yup|correct|right|that's right|sounds good|fine|okay|ok|confirm|do it)[.!]?$",
    re.I,
)
NO_PATTERN = re.compile(
    r"^(?:no|nope|incorrect|wrong|that's wrong|not right|cancel|never mind)[.!]?$",
    re.I,
)
QUANTITY_PATTERN = re.compile(
    r"^(?:no,?\s+)?(?:it'?s|it\s+should\s+be|make\s+it|should\s+be|i\s+meant|i\s+said|actually)\s+"
    r"(\d+(?:\.\d+)?|one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|twenty)\b",
    re.I,
)
ACTION_PATTERN = re.compile(r"\b(?:not|don'?t)\s+(add|remove|set)\b", re.I)
NOT_BUT_PATTERN = re.compile(
    r"\bnot\s+(?:the\s+)?(.+?),?\s+(?:but|it'?s|i\s+meant)\s+(?:the\s+)?(.+?)[.!]?$", re.I
)
ITEM_PATTERN = re.compile(
    r"^(?:no,?\s+)?(?:it'?s|i\s+meant|the\s+item\s+is|should\s+be)\s+(?:the\s+)?(.+?)[.!]?$", re.I
)


def parse_voice_reply(text: str, original: CandidateCommand) -> Optional[VoiceReply]:
    """Interpret ``text`` as an answer about ``original``; None if it is not one."""
    lowered = text.strip().lower()
    if not lowered:
        return None

    if YES_PATTERN.match(lowered):
        return VoiceReply(ReplyKind.CONFIRM)
    if NO_PATTERN.match(lowered):
        return VoiceReply(ReplyKind.REJECT)

    match = QUANTITY_PATTERN.match(lowered)
    if match:
        quantity = word_to_number(match.group(1))
        if quantity is not None:
            return _correction(original, "quantity", quantity=quantity)

    match = ACTION_PATTERN.search(lowered)
    if match:
        wrong = CommandAction(match.group(1).lower())
        for action in (CommandAction.ADD, CommandAction.REMOVE, CommandAction.SET):
            if action is not wrong and re.search(rf"\b{action.value}\b", lowered):
                return _correction(original, "action", action=action)

    match = NOT_BUT_PATTERN.search(lowered)
    if match:
        new_value = match.group(2).strip()
        unit = normalize_unit(new_value)
        if unit in KNOWN_UNITS:
            return _correction(original, "unit", unit=unit)
        if len(new_value) > 1:
            return _correction(original, "item", item=new_value)

    match = ITEM_PATTERN.match(lowered)
    if match and len(match.group(1).strip()) > 1:
        return _correction(original, "item", item=match.group(1).strip())

    return None


def _correction(original: CandidateCommand, mistake_type: str, **changes) -> VoiceReply:
    return VoiceReply(
        kind=ReplyKind.CORRECT,
        corrected=replace(original, **changes),
        mistake_type=mistake_type,
    )
