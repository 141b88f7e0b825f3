"""
STOCKCOUNT Command Extractor Tests

Tests for completeness rules, response parsing and the LLM-backed extractor.
"""

import json

import pytest

from services.nlp.command_extractor import (
    EXTRACTION_SYSTEM_PROMPT,
    LLMCommandExtractor,
    coerce_candidate,
    create_command_extractor,
    is_command_complete,
    parse_commands_payload,
    parse_quantity,
)
from services.nlp.rule_extractor import RuleBasedCommandExtractor
from stockcount.config import LLMConfig
from stockcount.exceptions import LLMTransportError
from stockcount.llm_client import MockLLMClient
from stockcount.types import CommandAction, ConversationTurn, RecentCommand


# =============================================================================
# Completeness
# =============================================================================


class TestIsCommandComplete:
    """Tests for the per-action required fields."""

    @pytest.mark.parametrize("action,item,quantity,unit,expected", [
        ("set", "milk", 5, "gallons", True),
        ("set", "milk", 5, "", False),
        ("set", "milk", 0, "gallons", False),
        ("add", "milk", 1, "", True),
        ("add", "milk", None, "gallons", False),
        ("remove", "", 2, "bags", False),
        ("remove", "sugar", 2, "", True),
        ("undo", "", None, "", True),
        ("unknown", "milk", 5, "gallons", False),
        (None, "milk", 5, "gallons", False),
    ])
    def test_rules(self, action, item, quantity, unit, expected):
        assert is_command_complete(action, item, quantity, unit) is expected

    def test_accepts_enum(self):
        assert is_command_complete(CommandAction.ADD, "coffee", 5, "pounds")


class TestParseQuantity:
    """Tests for quantity coercion."""

    @pytest.mark.parametrize("raw,expected", [
        (5, 5.0),
        (2.5, 2.5),
        ("12", 12.0),
        ("about 1,200", 1200.0),
        (None, None),
        (True, None),
        ("some", None),
    ])
    def test_values(self, raw, expected):
        assert parse_quantity(raw) == expected


# =============================================================================
# Response Parsing
# =============================================================================


class TestCoerceCandidate:
    """Tests for normalizing one model-produced command."""

    def test_full_command(self):
        command = coerce_candidate({
            "action": "SET", "item": " whole milk ", "quantity": "30",
            "unit": "Gallons", "confidence": 0.95,
        })
        assert command.action is CommandAction.SET
        assert command.item == "whole milk"
        assert command.quantity == 30.0
        assert command.unit == "gallons"
        assert command.is_complete

    def test_missing_fields(self):
        command = coerce_candidate({"action": "add", "item": "coffee"})
        assert command.quantity is None
        assert command.confidence == 0.6
        assert not command.is_complete

    def test_confidence_clamped(self):
        assert coerce_candidate({"action": "undo", "confidence": 3}).confidence == 1.0
        assert coerce_candidate({"action": "undo", "confidence": "high"}).confidence == 0.6

    def test_unknown_action(self):
        assert coerce_candidate({"action": "juggle"}).action is CommandAction.UNKNOWN

    def test_not_an_object(self):
        assert coerce_candidate(["add"]) is None


class TestParseCommandsPayload:
    """Tests for parsing the JSON response body."""

    def test_commands_object(self):
        payload = json.dumps({"commands": [
            {"action": "add", "item": "milk", "quantity": 5, "unit": "gallons", "confidence": 0.95},
            {"action": "add", "item": "sugar", "quantity": 2, "unit": "bags", "confidence": 0.95},
        ]})
        commands = parse_commands_payload(payload)
        assert [c.item for c in commands] == ["milk", "sugar"]

    def test_bare_array(self):
        assert len(parse_commands_payload('[{"action": "undo"}]')) == 1

    def test_single_command_object(self):
        commands = parse_commands_payload('{"action": "remove", "item": "straws", "quantity": 1}')
        assert commands[0].action is CommandAction.REMOVE

    def test_code_fence(self):
        assert len(parse_commands_payload('```json\n{"commands": [{"action": "undo"}]}\n```')) == 1

    def test_not_json(self):
        assert parse_commands_payload("I think you want milk") == []

    def test_wrong_shape(self):
        assert parse_commands_payload('{"commands": "none"}') == []

    def test_skips_non_objects(self):
        assert len(parse_commands_payload('[{"action": "undo"}, 7, "x"]')) == 1


# =============================================================================
# LLM Extractor
# =============================================================================


class TestLLMCommandExtractor:
    """Tests for LLMCommandExtractor with a mock client."""

    @pytest.mark.asyncio
    async def test_extracts_commands(self):
        client = MockLLMClient([
            '{"commands": [{"action": "set", "item": "whole milk", "quantity": 30, '
            '"unit": "gallons", "confidence": 0.95}]}'
        ])
        extractor = LLMCommandExtractor(client)

        commands = await extractor.extract("We have 30 gallons of whole milk")

        assert len(commands) == 1
        assert commands[0].action is CommandAction.SET
        assert commands[0].is_complete
        assert client.call_count == 1

    @pytest.mark.asyncio
    async def test_prompt_includes_context(self):
        client = MockLLMClient()
        extractor = LLMCommandExtractor(client)
        history = [ConversationTurn("user", "add 5 pounds of coffee")]
        recent = [RecentCommand(CommandAction.ADD, "coffee", 5, "pounds")]

        await extractor.extract("another 5", history, recent)

        system, user = client.last_messages
        assert system["content"] == EXTRACTION_SYSTEM_PROMPT
        assert "Transcription: another 5" in user["content"]
        assert '"item": "coffee"' in user["content"]
        assert "add 5 pounds of coffee" in user["content"]

    @pytest.mark.asyncio
    async def test_transport_error_gives_no_result(self):
        client = MockLLMClient([LLMTransportError("timeout")])
        assert await LLMCommandExtractor(client).extract("add milk") == []

    @pytest.mark.asyncio
    async def test_unexpected_error_gives_no_result(self):
        client = MockLLMClient([RuntimeError("boom")])
        assert await LLMCommandExtractor(client).extract("add milk") == []

    @pytest.mark.asyncio
    async def test_blank_utterance_skips_call(self):
        client = MockLLMClient()
        assert await LLMCommandExtractor(client).extract("   ") == []
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_transport_error_uses_fallback(self):
        client = MockLLMClient([LLMTransportError("connection refused", service_name="openai")])
        extractor = LLMCommandExtractor(client, fallback=RuleBasedCommandExtractor())

        [command] = await extractor.extract("add 5 pounds of coffee")

        assert command.action is CommandAction.ADD
        assert command.item == "coffee"
        assert command.quantity == 5
        assert client.call_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_fallback(self):
        client = MockLLMClient([RuntimeError("boom")])
        extractor = LLMCommandExtractor(client, fallback=RuleBasedCommandExtractor())
        [command] = await extractor.extract("remove 2 gallons of milk")
        assert command.action is CommandAction.REMOVE

    @pytest.mark.asyncio
    async def test_fallback_only_on_failure(self):
        client = MockLLMClient(['{"commands": []}'])
        extractor = LLMCommandExtractor(client, fallback=RuleBasedCommandExtractor())
        assert await extractor.extract("add 5 pounds of coffee") == []


class TestCreateCommandExtractor:
    """Tests for backend selection."""

    def test_no_config(self):
        assert isinstance(create_command_extractor(None), RuleBasedCommandExtractor)

    def test_rules_backend(self):
        assert isinstance(create_command_extractor(LLMConfig(backend="rules")), RuleBasedCommandExtractor)

    def test_missing_credentials_falls_back(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        extractor = create_command_extractor(LLMConfig(backend="openai"))
        assert isinstance(extractor, RuleBasedCommandExtractor)

    def test_mock_backend(self):
        extractor = create_command_extractor(LLMConfig(backend="mock"))
        assert isinstance(extractor, LLMCommandExtractor)
        assert isinstance(extractor.fallback, RuleBasedCommandExtractor)

    def test_supplied_client(self):
        extractor = create_command_extractor(LLMConfig(temperature=0.1), llm_client=MockLLMClient())
        assert isinstance(extractor, LLMCommandExtractor)
        assert extractor.temperature == 0.1
        assert isinstance(extractor.fallback, RuleBasedCommandExtractor)

    @pytest.mark.asyncio
    async def test_llm_outage_still_understood(self):
        client = MockLLMClient([LLMTransportError("down")])
        extractor = create_command_extractor(LLMConfig(backend="mock"), llm_client=client)
        [command] = await extractor.extract("We have 10 gallons of milk.")
        assert command.action is CommandAction.SET
        assert command.is_complete
