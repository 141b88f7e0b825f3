"""
STOCKCOUNT Command Extractor

Turns one aggregated utterance, plus the session's recent context, into zero
or more candidate inventory commands.

Two implementations share the CommandExtractor contract:
- LLMCommandExtractor: structured prompt to a chat model, JSON response
- RuleBasedCommandExtractor (services.nlp.rule_extractor): regex ladder,
  used when no LLM backend is configured, and as the LLM extractor's
  fallback when a call fails at runtime

Neither raises past ``extract()``. A failed LLM call is answered by the
fallback extractor when one is set, otherwise by an empty list.

Usage:
    from services.nlp.command_extractor import create_command_extractor

    extractor = create_command_extractor(config.llm)
    commands = await extractor.extract("add 5 pounds of coffee", [], [])
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

from stockcount.exceptions import StockcountError
from stockcount.types import (
    CandidateCommand,
    CommandAction,
    ConversationTurn,
    RecentCommand,
)

logger = logging.getLogger("stockcount.extractor")


__all__ = [
    "CommandExtractor",
    "LLMCommandExtractor",
    "is_command_complete",
    "parse_quantity",
    "parse_commands_payload",
    "coerce_candidate",
    "create_command_extractor",
    "EXTRACTION_SYSTEM_PROMPT",
]


# =============================================================================
# Completeness
# =============================================================================


def is_command_complete(
    action: Union[CommandAction, str, None],
    item: Optional[str],
    quantity: Optional[float],
    unit: Optional[str],
) -> bool:
    """Whether a command carries every field its action requires.

    set needs item, quantity and unit; add/remove need item and quantity;
    undo needs nothing. A zero quantity counts as missing.
    """
    action = CommandAction.parse(action)

    if action is CommandAction.UNDO:
        return True
    if action is CommandAction.SET:
        return bool(item) and bool(quantity) and bool(unit)
    if action in (CommandAction.ADD, CommandAction.REMOVE):
        return bool(item) and bool(quantity)
    return False


def parse_quantity(value: Any) -> Optional[float]:
    """Coerce a model-provided quantity to a float; None when absent or junk."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value.replace(",", ""))
        if match:
            return float(match.group())
    return None


# =============================================================================
# Contract
# =============================================================================


class CommandExtractor(ABC):
    """Extracts candidate commands from an utterance."""

    name = "base"

    @abstractmethod
    async def extract(
        self,
        utterance: str,
        conversation_history: Sequence[ConversationTurn] = (),
        recent_commands: Sequence[RecentCommand] = (),
    ) -> List[CandidateCommand]:
        """Return candidates in spoken order; never raises."""


# =============================================================================
# LLM-backed extraction
# =============================================================================


EXTRACTION_SYSTEM_PROMPT = """You extract inventory commands for a restaurant inventory system from transcribed speech. Return every command in the input. Each command has:

action: "add", "remove", "set" or "undo" (empty string if not stated)
item: the item name, including attributes such as size (empty string if not stated)
quantity: a positive number, or null if not stated
unit: a unit such as "gallons", "pounds", "bags", "boxes" (empty string if not stated)
confidence: 0 to 1 (0.95 for a complete command, 0.8 for action and item, 0.6 for a fragment)

Rules:
1. Statements about CURRENT stock levels use action "set":
   "We have 30 gallons of whole milk", "30 gallons of whole milk", "There is 5 pounds of coffee".
2. Use "add" only when stock is explicitly being added, "remove" only when explicitly removed.
3. Keep attributes in the item name: "60 bags of 12 ounce paper cups" -> item "12 ounce paper cups".
4. "X units of Y" is one command; several of them joined by "and" or commas are separate commands.
5. For "more" or "another X", take the item and unit from the most recent command.
6. "undo" or "revert last" -> {"action": "undo", "confidence": 0.95}.
7. Fill missing details from the conversation history when it makes them clear.
8. If the input is not an inventory command, return no commands.

Examples:
Input: "We have 30 gallons of whole milk"
Output: {"commands": [{"action": "set", "item": "whole milk", "quantity": 30, "unit": "gallons", "confidence": 0.95}]}

Input: "Add 5 gallons of milk and 2 bags of sugar"
Output: {"commands": [{"action": "add", "item": "milk", "quantity": 5, "unit": "gallons", "confidence": 0.95}, {"action": "add", "item": "sugar", "quantity": 2, "unit": "bags", "confidence": 0.95}]}

Input: "undo"
Output: {"commands": [{"action": "undo", "item": "", "quantity": null, "unit": "", "confidence": 0.95}]}

Respond with a JSON object with a "commands" array."""


DEFAULT_LLM_CONFIDENCE = 0.6


def coerce_candidate(raw: Any) -> Optional[CandidateCommand]:
    """Normalize one model-produced command; None if it is not an object."""
    if not isinstance(raw, dict):
        return None

    action = CommandAction.parse(raw.get("action"))
    item = str(raw.get("item") or "").strip()
    unit = str(raw.get("unit") or "").strip().lower()
    quantity = parse_quantity(raw.get("quantity"))

    try:
        confidence = float(raw.get("confidence", DEFAULT_LLM_CONFIDENCE))
    except (TypeError, ValueError):
        confidence = DEFAULT_LLM_CONFIDENCE
    confidence = min(1.0, max(0.0, confidence))

    return CandidateCommand(
        action=action,
        item=item,
        quantity=quantity,
        unit=unit,
        confidence=confidence,
        is_complete=is_command_complete(action, item, quantity, unit),
    )


def parse_commands_payload(content: str) -> List[CandidateCommand]:
    """Parse ``{"commands": [...]}`` or a bare array; [] on anything else."""
    text = content.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*|\s*```$", "", text)

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        logger.warning(f"Extractor response is not JSON: {content[:120]!r}")
        return []

    if isinstance(data, dict):
        if "commands" in data:
            data = data["commands"]
        elif "action" in data:
            data = [data]

    if not isinstance(data, list):
        logger.warning(f"Extractor response has no command list: {type(data).__name__}")
        return []

    commands = []
    for raw in data:
        candidate = coerce_candidate(raw)
        if candidate is not None:
            commands.append(candidate)
    return commands


class LLMCommandExtractor(CommandExtractor):
    """Command extraction through a chat model in JSON mode."""

    name = "llm"

    def __init__(
        self,
        llm_client,
        temperature: float = 0.3,
        max_tokens: int = 300,
        fallback: Optional[CommandExtractor] = None,
    ):
        """
        Args:
            llm_client: Anything with ``async chat(messages, temperature,
                max_tokens, json_mode)`` returning an object with ``content``
            temperature: Sampling temperature
            max_tokens: Completion limit
            fallback: Extractor used for a call whose LLM request fails
        """
        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.fallback = fallback

    def build_messages(
        self,
        utterance: str,
        conversation_history: Sequence[ConversationTurn],
        recent_commands: Sequence[RecentCommand],
    ) -> List[Dict[str, str]]:
        user_content = (
            f"Transcription: {utterance}\n"
            f"Recent Commands: {json.dumps([c.to_dict() for c in recent_commands])}\n"
            f"Conversation History: {json.dumps([t.to_dict() for t in conversation_history])}"
        )
        return [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ]

    async def extract(
        self,
        utterance: str,
        conversation_history: Sequence[ConversationTurn] = (),
        recent_commands: Sequence[RecentCommand] = (),
    ) -> List[CandidateCommand]:
        if not utterance.strip():
            return []

        messages = self.build_messages(utterance, conversation_history, recent_commands)

        try:
            response = await self.llm_client.chat(
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                json_mode=True,
            )
        except StockcountError as e:
            logger.warning(f"LLM extraction unavailable: {e}")
            return await self._extract_fallback(utterance, conversation_history, recent_commands)
        except Exception as e:
            logger.error(f"LLM extraction failed: {e}")
            return await self._extract_fallback(utterance, conversation_history, recent_commands)

        commands = parse_commands_payload(response.content or "")
        logger.debug(f"LLM extracted {len(commands)} command(s) from {utterance!r}")
        return commands

    async def _extract_fallback(
        self,
        utterance: str,
        conversation_history: Sequence[ConversationTurn],
        recent_commands: Sequence[RecentCommand],
    ) -> List[CandidateCommand]:
        if self.fallback is None:
            return []
        logger.info(f"Falling back to {self.fallback.name} extraction for {utterance!r}")
        return await self.fallback.extract(utterance, conversation_history, recent_commands)


# =============================================================================
# Factory
# =============================================================================


def create_command_extractor(llm_config=None, llm_client=None) -> CommandExtractor:
    """
    Pick the extractor implementation for a configuration.

    The LLM extractor is used when a backend is configured and credentials
    are present (or a client is supplied), with the rule-based extractor as
    its runtime fallback; otherwise the rule-based one alone.

    Args:
        llm_config: stockcount.config.LLMConfig or None
        llm_client: Pre-built client; skips backend construction
    """
    from services.nlp.rule_extractor import RuleBasedCommandExtractor

    if llm_client is not None:
        temperature = llm_config.temperature if llm_config else 0.3
        max_tokens = llm_config.max_tokens if llm_config else 300
        return LLMCommandExtractor(llm_client, temperature, max_tokens, fallback=RuleBasedCommandExtractor())

    if llm_config is None or llm_config.backend == "rules":
        logger.info("Using rule-based command extraction")
        return RuleBasedCommandExtractor()

    import os

    from stockcount.llm_client import create_llm_client

    env_key = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}.get(llm_config.backend)
    if env_key and not (llm_config.api_key or os.environ.get(env_key)):
        logger.warning(
            f"No credentials for LLM backend '{llm_config.backend}', "
            f"falling back to rule-based command extraction"
        )
        return RuleBasedCommandExtractor()

    client = create_llm_client(
        llm_config.backend, api_key=llm_config.api_key, model=llm_config.model
    )
    logger.info(f"Using LLM command extraction ({llm_config.backend})")
    return LLMCommandExtractor(
        client, llm_config.temperature, llm_config.max_tokens, fallback=RuleBasedCommandExtractor()
    )
