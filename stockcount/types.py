"""
STOCKCOUNT Shared Type Definitions

Data structures shared across the voice inventory pipeline: commands as they
move from extraction through accumulation, confirmation decisions, catalog
items, and the per-session action log.

Types are organized by category:
    - Command types (actions, candidates, partials)
    - Confirmation types (decision, pending confirmation, history)
    - Catalog and inventory types
    - Conversation types

Usage:
    from stockcount.types import CandidateCommand, CommandAction
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, TypeAlias, Union

JsonDict: TypeAlias = Dict[str, Any]


# =============================================================================
# Command Types
# =============================================================================

class CommandAction(Enum):
    """Inventory actions a spoken command can carry."""
    ADD = "add"
    REMOVE = "remove"
    SET = "set"
    UNDO = "undo"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Union[str, "CommandAction", None]) -> "CommandAction":
        """Map free-form action text onto an action, UNKNOWN when absent."""
        if isinstance(value, CommandAction):
            return value
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_mutation(self) -> bool:
        return self in (CommandAction.ADD, CommandAction.REMOVE, CommandAction.SET)


@dataclass(frozen=True)
class CandidateCommand:
    """One parsed, possibly incomplete inventory instruction.

    Immutable once produced by an extractor. UNKNOWN action, empty item,
    None quantity and empty unit all mean "not stated".
    """
    action: CommandAction = CommandAction.UNKNOWN
    item: str = ""
    quantity: Optional[float] = None
    unit: str = ""
    confidence: float = 0.0
    is_complete: bool = False

    def with_updates(self, **changes: Any) -> "CandidateCommand":
        return replace(self, **changes)

    def describe(self) -> str:
        """Short human-readable form for logs."""
        qty = "" if self.quantity is None else f"{format_quantity(self.quantity)} "
        unit = f"{self.unit} " if self.unit else ""
        of = "of " if (qty or unit) and self.item else ""
        return f"{self.action.value} {qty}{unit}{of}{self.item}".strip()

    def to_dict(self) -> JsonDict:
        return {
            "action": self.action.value,
            "item": self.item,
            "quantity": self.quantity,
            "unit": self.unit,
            "confidence": round(self.confidence, 3),
            "isComplete": self.is_complete,
        }


@dataclass
class PartialCommand:
    """In-progress accumulation state for an incomplete candidate."""
    action: CommandAction = CommandAction.UNKNOWN
    item: str = ""
    quantity: Optional[float] = None
    unit: str = ""
    last_updated: float = 0.0

    @classmethod
    def from_candidate(cls, candidate: CandidateCommand, now: float) -> "PartialCommand":
        return cls(
            action=candidate.action,
            item=candidate.item,
            quantity=candidate.quantity,
            unit=candidate.unit,
            last_updated=now,
        )


@dataclass
class RecentCommand:
    """A resolved command kept in the session's short command history."""
    action: CommandAction
    item: str
    quantity: Optional[float]
    unit: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> JsonDict:
        return {
            "action": self.action.value,
            "item": self.item,
            "quantity": self.quantity,
            "unit": self.unit,
        }


# =============================================================================
# Confirmation Types
# =============================================================================

class ConfirmationType(Enum):
    """How much human confirmation a command needs before it is applied."""
    IMPLICIT = "implicit"  # apply now, notify only
    VOICE = "voice"        # blocking, answered by voice
    VISUAL = "visual"      # non-blocking UI prompt, accepted on timeout
    EXPLICIT = "explicit"  # blocking, must be confirmed or rejected

    @property
    def is_blocking(self) -> bool:
        return self in (ConfirmationType.VOICE, ConfirmationType.EXPLICIT)


class FeedbackMode(Enum):
    SILENT = "silent"
    BRIEF = "brief"
    DETAILED = "detailed"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SessionStateType(Enum):
    NORMAL = "normal"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


@dataclass(frozen=True)
class ConfirmationDecision:
    """Policy output for one completed command."""
    type: ConfirmationType
    feedback_mode: FeedbackMode
    risk_level: RiskLevel
    timeout_seconds: Optional[float] = None
    reason: str = ""
    suggested_correction: Optional[str] = None

    @property
    def requires_confirmation(self) -> bool:
        return self.type is not ConfirmationType.IMPLICIT

    def to_dict(self) -> JsonDict:
        return {
            "confirmationType": self.type.value,
            "feedbackMode": self.feedback_mode.value,
            "timeoutSeconds": self.timeout_seconds,
            "riskLevel": self.risk_level.value,
            "reason": self.reason,
            "suggestedCorrection": self.suggested_correction,
        }


@dataclass
class PendingConfirmation:
    """A resolved command waiting on the user."""
    command: CandidateCommand
    item: "CatalogItem"
    decision: ConfirmationDecision
    feedback_text: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> JsonDict:
        data = {"id": self.id, **self.command.to_dict(), **self.decision.to_dict()}
        data["item"] = self.item.name
        data["feedback"] = self.feedback_text
        return data


@dataclass
class ConfirmationHistory:
    """Trailing record of how often the user had to correct the system."""
    MAX_RECENT_MISTAKES = 5

    correct: int = 0
    total: int = 0
    recent_mistakes: List[str] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        """Share of confirmations accepted as-is; 1.0 with no history."""
        if self.total == 0:
            return 1.0
        return self.correct / self.total

    @property
    def error_rate(self) -> float:
        return 1.0 - self.accuracy

    def record(self, was_correct: bool, mistake_type: Optional[str] = None) -> None:
        self.total += 1
        if was_correct:
            self.correct += 1
        elif mistake_type:
            self.recent_mistakes.append(mistake_type)
            del self.recent_mistakes[:-self.MAX_RECENT_MISTAKES]

    def to_dict(self) -> JsonDict:
        return {
            "correct": self.correct,
            "total": self.total,
            "recentMistakes": list(self.recent_mistakes),
        }


# =============================================================================
# Catalog and Inventory Types
# =============================================================================

@dataclass
class CatalogItem:
    """One inventory item as stored."""
    id: int
    name: str
    quantity: float = 0.0
    unit: str = "units"
    category: str = ""
    threshold: Optional[float] = None

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "category": self.category,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class CatalogItemMatch:
    """A catalog item paired with its similarity to the spoken text."""
    item: CatalogItem
    similarity_score: float


@dataclass(frozen=True)
class ActionLogEntry:
    """An applied mutation, kept for single-step undo."""
    action: CommandAction
    item_id: int
    item_name: str
    quantity: float
    unit: str
    previous_quantity: float
    new_quantity: float
    timestamp: float = field(default_factory=time.time)

    @property
    def delta(self) -> float:
        return self.new_quantity - self.previous_quantity

    def to_dict(self) -> JsonDict:
        return {
            "action": self.action.value,
            "itemId": self.item_id,
            "itemName": self.item_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "previousQuantity": self.previous_quantity,
            "newQuantity": self.new_quantity,
            "timestamp": self.timestamp,
        }


# =============================================================================
# Conversation Types
# =============================================================================

@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" or "assistant"
    content: str

    def to_dict(self) -> JsonDict:
        return {"role": self.role, "content": self.content}


def format_quantity(value: float) -> str:
    """Render 10.0 as "10" and 2.5 as "2.5"."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


__all__ = [
    "JsonDict",
    "CommandAction",
    "CandidateCommand",
    "PartialCommand",
    "RecentCommand",
    "ConfirmationType",
    "FeedbackMode",
    "RiskLevel",
    "SessionStateType",
    "ConfirmationDecision",
    "PendingConfirmation",
    "ConfirmationHistory",
    "CatalogItem",
    "CatalogItemMatch",
    "ActionLogEntry",
    "ConversationTurn",
    "format_quantity",
]
