"""
STOCKCOUNT Session Protocol Tests

Tests for protocol message encoding and for the TCP session server talking
to a real client connection.
"""

import asyncio
import json

import pytest
import pytest_asyncio

from services.catalog.item_resolver import ItemResolver
from services.nlp.rule_extractor import RuleBasedCommandExtractor
from stockcount.config import StockcountConfig
from voice.protocol import MessageType, ProtocolMessage, Transcript, read_message
from voice.session_server import InventorySessionServer

from tests.fixtures.fakes import wait_for


# =============================================================================
# Messages
# =============================================================================


class TestProtocolMessage:
    """ProtocolMessage encoding."""

    def test_round_trip(self):
        message = ProtocolMessage(MessageType.CORRECT_COMMAND, {"corrected": {"quantity": 3}})
        decoded = ProtocolMessage.from_bytes(message.to_bytes())
        assert decoded.type is MessageType.CORRECT_COMMAND
        assert decoded.data == {"corrected": {"quantity": 3}}

    def test_newline_terminated(self):
        assert ProtocolMessage(MessageType.UNDO).to_bytes().endswith(b"\n")

    def test_missing_data_is_empty(self):
        assert ProtocolMessage.from_json('{"type": "undo"}').data == {}

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '{"type": "dance"}',
        '{"type": "undo", "data": [1]}',
    ])
    def test_invalid_messages(self, raw):
        with pytest.raises(ValueError):
            ProtocolMessage.from_json(raw)

    def test_event(self):
        message = ProtocolMessage.event("command-processed", {"itemName": "milk"})
        assert message.type is MessageType.COMMAND_PROCESSED

    def test_error(self):
        message = ProtocolMessage.error("bad", "BadMessage")
        assert json.loads(message.to_json()) == {
            "type": "error",
            "data": {"message": "bad", "code": "BadMessage"},
        }

    def test_client_commands(self):
        assert MessageType.CONFIRM_COMMAND.is_client_command
        assert MessageType.UNDO.is_client_command
        assert not MessageType.TRANSCRIPT.is_client_command
        assert not MessageType.FEEDBACK.is_client_command


class TestTranscript:
    """Transcript payloads."""

    def test_defaults(self):
        transcript = Transcript.from_dict({"text": "add milk"})
        assert transcript.is_final is True
        assert transcript.confidence == 1.0

    def test_camel_case_final_flag(self):
        assert Transcript.from_dict({"text": "add", "isFinal": False}).is_final is False

    def test_snake_case_wins(self):
        transcript = Transcript.from_dict({"text": "add", "is_final": False, "isFinal": True})
        assert transcript.is_final is False


# =============================================================================
# Server
# =============================================================================


@pytest_asyncio.fixture
async def server(store, search):
    server = InventorySessionServer(
        StockcountConfig(),
        store,
        RuleBasedCommandExtractor(),
        ItemResolver(search),
        host="127.0.0.1",
        port=0,
    )
    await server.start_background()
    yield server
    await server.stop()


async def send(writer, message_type, data=None):
    writer.write(ProtocolMessage(MessageType(message_type), data or {}).to_bytes())
    await writer.drain()


async def read_until(reader, message_type, limit=20):
    """Read messages until one of ``message_type`` arrives."""
    seen = []
    for _ in range(limit):
        message = await asyncio.wait_for(read_message(reader), 2.0)
        assert message is not None, f"connection closed before {message_type}; saw {seen}"
        seen.append(message.type.value)
        if message.type.value == message_type:
            return message
    raise AssertionError(f"no {message_type} in {seen}")


class TestSessionServer:
    """InventorySessionServer over a loopback connection."""

    @pytest.mark.asyncio
    async def test_session_flow(self, server, store):
        reader, writer = await asyncio.open_connection("127.0.0.1", server.bound_port)
        try:
            started = await read_until(reader, "session-started")
            assert started.data["sessionId"]
            assert len(server.registry) == 1

            await send(writer, "transcript", {"text": "add 5 pounds of coffee beans.", "is_final": True})

            processed = await read_until(reader, "command-processed")
            assert processed.data["newQuantity"] == 45
            assert store.find_item("coffee beans").quantity == 45

            await send(writer, "undo")
            reverted = await read_until(reader, "command-processed")
            assert reverted.data["undo"] is True
            assert store.find_item("coffee beans").quantity == 40
        finally:
            writer.close()
            await writer.wait_closed()

        await wait_for(lambda: len(server.registry) == 0)

    @pytest.mark.asyncio
    async def test_bad_message(self, server):
        reader, writer = await asyncio.open_connection("127.0.0.1", server.bound_port)
        try:
            await read_until(reader, "session-started")

            writer.write(b"{not json\n")
            await writer.drain()

            error = await read_until(reader, "error")
            assert error.data["code"] == "BadMessage"

            await send(writer, "undo")
            feedback = await read_until(reader, "feedback")
            assert feedback.data["text"] == "Nothing to undo."
        finally:
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_server_event_from_client_rejected(self, server):
        reader, writer = await asyncio.open_connection("127.0.0.1", server.bound_port)
        try:
            await read_until(reader, "session-started")
            await send(writer, "feedback", {"text": "hi"})
            error = await read_until(reader, "error")
            assert error.data["code"] == "BadMessage"
        finally:
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, server):
        reader_a, writer_a = await asyncio.open_connection("127.0.0.1", server.bound_port)
        reader_b, writer_b = await asyncio.open_connection("127.0.0.1", server.bound_port)
        try:
            a = await read_until(reader_a, "session-started")
            b = await read_until(reader_b, "session-started")
            assert a.data["sessionId"] != b.data["sessionId"]

            await send(writer_a, "transcript", {"text": "remove 2 pounds of sugar.", "is_final": True})
            await read_until(reader_a, "feedback")

            pending_a = server.registry.get(a.data["sessionId"]).context.pending_confirmation
            pending_b = server.registry.get(b.data["sessionId"]).context.pending_confirmation
            assert pending_a is not None
            assert pending_b is None
        finally:
            for writer in (writer_a, writer_b):
                writer.close()
                await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_stop_closes_sessions(self, store, search):
        server = InventorySessionServer(
            StockcountConfig(), store, RuleBasedCommandExtractor(), ItemResolver(search),
            host="127.0.0.1", port=0,
        )
        await server.start_background()
        assert server.is_running

        reader, writer = await asyncio.open_connection("127.0.0.1", server.bound_port)
        await read_until(reader, "session-started")
        [pipeline] = list(server.registry)

        await server.stop()

        assert not server.is_running
        assert pipeline.is_closed
        writer.close()
