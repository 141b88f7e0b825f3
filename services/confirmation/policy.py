"""
STOCKCOUNT Confirmation Policy Engine

Decides, per completed command, how much human confirmation is needed
before the inventory mutation is applied:

    IMPLICIT  apply now, notify only
    VISUAL    non-blocking UI prompt, accepted when its timeout passes
    VOICE     blocking, answered by voice
    EXPLICIT  blocking, must be confirmed or rejected

The decision is a pure function of the command, its confidence, the user's
role, the session's trailing confirmation accuracy and the item context
(current stock, reorder threshold, look-alike items). Rules only ever make
the decision stricter, except the two accuracy-based relaxations, which
apply to low-risk VISUAL decisions only.

Usage:
    policy = ConfirmationPolicy()
    decision = policy.decide(command, 0.92, "staff", history,
                             PolicyContext(current_quantity=12, threshold=4))
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from stockcount.config import ConfirmationConfig
from stockcount.types import (
    CandidateCommand,
    CommandAction,
    ConfirmationDecision,
    ConfirmationHistory,
    ConfirmationType,
    FeedbackMode,
    RiskLevel,
    format_quantity,
)

logger = logging.getLogger("stockcount.policy")


__all__ = [
    "ConfirmationPolicy",
    "PolicyContext",
    "item_similarity",
    "is_large_quantity_change",
]


_STRICTNESS = {
    ConfirmationType.IMPLICIT: 0,
    ConfirmationType.VISUAL: 1,
    ConfirmationType.VOICE: 2,
    ConfirmationType.EXPLICIT: 3,
}
_RISK_ORDER = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}

READONLY_ROLES = ("readonly", "read-only", "viewer")


def item_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity of two item names, case-insensitive."""
    return Levenshtein.normalized_similarity(a.strip().lower(), b.strip().lower())


def is_large_quantity_change(
    action: CommandAction,
    quantity: float,
    current_quantity: Optional[float],
    config: ConfirmationConfig,
) -> bool:
    """Absolute limits when stock is unknown, relative limits when it is known."""
    if current_quantity is None or current_quantity <= 0:
        limits = {
            CommandAction.ADD: config.large_add_quantity,
            CommandAction.REMOVE: config.large_remove_quantity,
            CommandAction.SET: config.large_set_quantity,
        }
        limit = limits.get(action)
        return limit is not None and quantity > limit

    if action is CommandAction.ADD:
        return quantity / current_quantity > config.large_add_ratio
    if action is CommandAction.REMOVE:
        return quantity / current_quantity > config.large_remove_ratio
    if action is CommandAction.SET:
        return abs(quantity - current_quantity) / current_quantity > config.large_set_ratio
    return False


@dataclass
class PolicyContext:
    """Item and session signals available when a command is decided."""
    current_quantity: Optional[float] = None
    threshold: Optional[float] = None
    similar_items: Sequence[str] = ()
    is_ambiguous: bool = False
    session_items: Sequence[str] = ()


@dataclass
class _Draft:
    type: ConfirmationType = ConfirmationType.IMPLICIT
    risk: RiskLevel = RiskLevel.LOW
    timeout: Optional[float] = None
    suggestion: Optional[str] = None
    reasons: List[str] = field(default_factory=list)

    def at_least(
        self,
        type_: ConfirmationType,
        risk: RiskLevel,
        reason: str,
        timeout: Optional[float] = None,
    ) -> None:
        if _STRICTNESS[type_] > _STRICTNESS[self.type]:
            self.type = type_
            self.timeout = timeout
        elif type_ is self.type and timeout is not None:
            self.timeout = max(self.timeout or 0.0, timeout)
        if _RISK_ORDER[risk] > _RISK_ORDER[self.risk]:
            self.risk = risk
        self.reasons.append(reason)


class ConfirmationPolicy:
    """Risk-based confirmation decisions."""

    def __init__(self, config: Optional[ConfirmationConfig] = None):
        self.config = config or ConfirmationConfig()

    def decide(
        self,
        command: CandidateCommand,
        confidence: float,
        user_role: str,
        history: Optional[ConfirmationHistory] = None,
        context: Optional[PolicyContext] = None,
    ) -> ConfirmationDecision:
        """Choose the confirmation for one complete command."""
        cfg = self.config
        history = history or ConfirmationHistory()
        context = context or PolicyContext()
        action = command.action

        if action is CommandAction.UNDO:
            return ConfirmationDecision(
                type=ConfirmationType.IMPLICIT,
                feedback_mode=FeedbackMode.BRIEF,
                risk_level=RiskLevel.LOW,
                reason="Undo is always applied immediately",
            )
        if action is CommandAction.UNKNOWN:
            return ConfirmationDecision(
                type=ConfirmationType.EXPLICIT,
                feedback_mode=FeedbackMode.DETAILED,
                risk_level=RiskLevel.HIGH,
                reason="Action could not be determined",
            )

        draft = _Draft()
        quantity = command.quantity or 0.0

        # 1. Recognition confidence
        if confidence < cfg.explicit_confidence:
            draft.at_least(ConfirmationType.EXPLICIT, RiskLevel.HIGH, "Low recognition confidence")
        elif confidence < cfg.implicit_confidence:
            if action is CommandAction.REMOVE:
                draft.at_least(
                    ConfirmationType.EXPLICIT, RiskLevel.HIGH,
                    "Removal with medium recognition confidence",
                )
            else:
                draft.at_least(
                    ConfirmationType.VISUAL, RiskLevel.MEDIUM,
                    "Medium recognition confidence", cfg.visual_timeout_seconds,
                )

        # 2. Look-alike catalog items
        lookalikes = [
            (item_similarity(command.item, name), name)
            for name in context.similar_items
            if name.strip().lower() != command.item.strip().lower()
        ]
        if lookalikes:
            score, name = max(lookalikes)
            if score > cfg.similar_item_threshold:
                draft.at_least(ConfirmationType.VOICE, RiskLevel.MEDIUM, f"Similar item exists: {name}")
                draft.suggestion = f"Did you mean {name}?"

        # 3. Ambiguous reference
        if context.is_ambiguous:
            draft.at_least(
                ConfirmationType.VISUAL, RiskLevel.MEDIUM,
                "Ambiguous item or quantity", cfg.ambiguous_timeout_seconds,
            )

        # 4. Large quantity change
        if is_large_quantity_change(action, quantity, context.current_quantity, cfg):
            draft.at_least(ConfirmationType.EXPLICIT, RiskLevel.HIGH, "Large quantity change")

        # 5. Removal below reorder threshold
        if (
            action is CommandAction.REMOVE
            and context.current_quantity is not None
            and context.threshold is not None
            and context.current_quantity - quantity < context.threshold
        ):
            draft.at_least(ConfirmationType.EXPLICIT, RiskLevel.HIGH, "Stock would fall below threshold")

        # 6. Set far from the current count
        if (
            action is CommandAction.SET
            and context.current_quantity
            and abs(quantity - context.current_quantity) / context.current_quantity > cfg.set_change_ratio
        ):
            draft.at_least(
                ConfirmationType.VISUAL, RiskLevel.LOW,
                "Count differs from current stock", cfg.set_change_timeout_seconds,
            )

        # 7. Role
        if user_role.strip().lower() in READONLY_ROLES:
            draft.at_least(ConfirmationType.EXPLICIT, RiskLevel.HIGH, "Read-only role")

        # 8. Trailing accuracy
        if history.total > cfg.min_history_for_personalization:
            error_rate = history.error_rate
            if error_rate > cfg.high_error_rate:
                draft.at_least(
                    ConfirmationType.VISUAL, RiskLevel.LOW,
                    "Frequent corrections this session", cfg.visual_timeout_seconds,
                )
                if draft.suggestion is None:
                    draft.suggestion = self._suggest_from_mistakes(command, history)
            elif (
                error_rate < cfg.low_error_rate
                and action is CommandAction.ADD
                and draft.type is ConfirmationType.VISUAL
                and draft.risk is RiskLevel.LOW
            ):
                draft.type = ConfirmationType.IMPLICIT
                draft.timeout = None
                draft.reasons.append("Consistently accurate session")

        # 9. Item already handled this session
        session_items = {name.strip().lower() for name in context.session_items}
        if (
            command.item.strip().lower() in session_items
            and draft.type is ConfirmationType.VISUAL
            and draft.risk is RiskLevel.LOW
        ):
            draft.type = ConfirmationType.IMPLICIT
            draft.timeout = None
            draft.reasons.append("Item already confirmed this session")

        # 10. Removals always get a spoken check
        if action is CommandAction.REMOVE and draft.type is ConfirmationType.IMPLICIT:
            draft.at_least(ConfirmationType.VOICE, RiskLevel.MEDIUM, "Removal")

        decision = self._finalize(draft)
        logger.debug(
            f"Decision for {command.describe()} @ {confidence:.2f}: "
            f"{decision.type.value}/{decision.risk_level.value} ({decision.reason})"
        )
        return decision

    def _finalize(self, draft: _Draft) -> ConfirmationDecision:
        if draft.risk is RiskLevel.HIGH:
            feedback = FeedbackMode.DETAILED
        elif draft.type is ConfirmationType.IMPLICIT and draft.risk is RiskLevel.LOW:
            feedback = FeedbackMode.SILENT
        else:
            feedback = FeedbackMode.BRIEF

        timeout = None
        if draft.type is ConfirmationType.VISUAL:
            timeout = draft.timeout or self.config.visual_timeout_seconds

        return ConfirmationDecision(
            type=draft.type,
            feedback_mode=feedback,
            risk_level=draft.risk,
            timeout_seconds=timeout,
            reason="; ".join(draft.reasons) or "High confidence, low risk",
            suggested_correction=draft.suggestion,
        )

    @staticmethod
    def _suggest_from_mistakes(command: CandidateCommand, history: ConfirmationHistory) -> Optional[str]:
        if not history.recent_mistakes:
            return None
        most_common, _ = Counter(history.recent_mistakes).most_common(1)[0]
        if most_common == "quantity" and command.quantity is not None:
            return f"Did you mean a different quantity than {format_quantity(command.quantity)}?"
        if most_common == "item":
            return "Please confirm the item name is correct"
        if most_common == "unit":
            return f"Please confirm the unit is {command.unit}"
        if most_common == "action":
            return f"Please confirm you want to {command.action.value}"
        return None
