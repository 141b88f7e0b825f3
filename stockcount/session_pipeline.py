"""
STOCKCOUNT Session Pipeline
End-to-end processing of one voice session, from final transcripts to
applied inventory mutations.

Pipeline Flow:
    Transcripts -> Aggregator -> (channel) -> Extractor -> Context
    Enhancement -> Accumulator -> Item Resolver -> Confirmation Policy ->
    apply mutation | confirmation request

Everything that changes session state arrives through the session channel
and is handled by one consumer task: flushed utterances, visual confirmation
timeouts, and client commands (confirm, reject, correct, undo). Results go
back to the client through an async ``emit(event_type, data)`` sink.

Usage:
    from stockcount.session_pipeline import SessionPipeline

    pipeline = SessionPipeline("session-1", extractor, resolver, store, emit=send)
    await pipeline.start()
    await pipeline.on_transcript("add five pounds of coffee.", is_final=True)
    ...
    await pipeline.close()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from stockcount.exceptions import (
    AmbiguousMatch,
    NoPendingConfirmationError,
    NotFound,
    SessionClosedError,
    StockcountError,
    TransportError,
    ValidationError,
)
from stockcount.session_channel import (
    ClientCommand,
    ClientCommandType,
    ConfirmationTimedOut,
    SessionChannel,
    SessionEventType,
    SessionMessage,
    UtteranceReady,
)
from stockcount.types import (
    CandidateCommand,
    CatalogItem,
    CommandAction,
    ConfirmationType,
    PendingConfirmation,
)

from services.catalog.item_resolver import ItemResolver
from services.confirmation.corrections import ReplyKind, VoiceReply, parse_voice_reply
from services.confirmation.feedback import (
    clarification_prompt,
    confirmation_prompt,
    error_message,
    listening_message,
    success_message,
    undo_message,
)
from services.confirmation.policy import ConfirmationPolicy, PolicyContext
from services.inventory.action_log import ActionLog
from services.inventory.store import InventoryStore
from services.nlp.command_accumulator import CommandAccumulator
from services.nlp.command_extractor import (
    CommandExtractor,
    coerce_candidate,
    is_command_complete,
)
from services.nlp.context_enhancer import enhance_with_context
from services.nlp.session_context import SessionContext
from services.nlp.transcript_aggregator import TranscriptAggregator

logger = logging.getLogger("stockcount.pipeline")


__all__ = ["SessionPipeline", "EventSink", "create_session_pipeline"]


EventSink = Callable[[str, Dict[str, Any]], Awaitable[None]]

# An alternative this close to the accepted match makes the reference ambiguous
AMBIGUITY_MARGIN = 0.05


async def _discard_event(event_type: str, data: Dict[str, Any]) -> None:
    return None


class SessionPipeline:
    """
    Voice inventory pipeline for one connected session.

    Owns the session's channel, aggregator, accumulator, context and action
    log. Shares the extractor, resolver, store and policy with other
    sessions.
    """

    def __init__(
        self,
        session_id: str,
        extractor: CommandExtractor,
        resolver: ItemResolver,
        store: InventoryStore,
        policy: Optional[ConfirmationPolicy] = None,
        emit: Optional[EventSink] = None,
        user_role: str = "staff",
        idle_timeout: float = TranscriptAggregator.IDLE_TIMEOUT_SECONDS,
        context_window: float = CommandAccumulator.CONTEXT_WINDOW_SECONDS,
        context: Optional[SessionContext] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the session pipeline.

        Args:
            session_id: Connection-unique identifier
            extractor: LLM or rule-based command extractor
            resolver: Spoken item -> catalog item
            store: Inventory persistence
            policy: Confirmation policy (default thresholds if None)
            emit: Async sink for client events
            user_role: Role used by the confirmation policy
            idle_timeout: Seconds of silence before the aggregator flushes
            context_window: Seconds a partial command stays mergeable
            context: Pre-built session context (created if None)
            clock: Monotonic time source for the aggregator and accumulator
        """
        self.session_id = session_id
        self.extractor = extractor
        self.resolver = resolver
        self.store = store
        self.policy = policy or ConfirmationPolicy()
        self._emit = emit or _discard_event

        self.channel = SessionChannel(name=session_id)
        self.aggregator = TranscriptAggregator(self.channel, idle_timeout=idle_timeout, clock=clock)
        self.accumulator = CommandAccumulator(context_window=context_window, clock=clock)
        self.context = context or SessionContext(session_id, user_role=user_role)
        self.action_log = ActionLog()

        self._task: Optional[asyncio.Task] = None
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self):
        """Start the channel consumer."""
        if self._closed:
            raise SessionClosedError("Session already closed", self.session_id)
        if self.is_running:
            logger.warning(f"[{self.session_id}] Pipeline already running")
            return
        self._task = asyncio.create_task(self._run(), name=f"session-{self.session_id}")
        logger.info(f"[{self.session_id}] Session pipeline started")

    async def close(self):
        """Tear down: no flush, timeout or command is handled after this returns."""
        if self._closed:
            return
        self._closed = True

        self.aggregator.close()
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self.channel.close()

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self.accumulator.reset()
        self.context.clear()
        logger.info(f"[{self.session_id}] Session pipeline closed")

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    async def on_transcript(self, text: str, is_final: bool = True, confidence: float = 1.0):
        """Speech recognizer callback. Only final transcripts are aggregated."""
        if self._closed:
            return
        await self.emit(SessionEventType.TRANSCRIPTION, {
            "text": text,
            "isFinal": is_final,
            "confidence": confidence,
        })
        if is_final:
            self.aggregator.add_transcript(text)

    def submit(self, command: ClientCommand) -> bool:
        """Queue a client command behind any work already in the channel."""
        return self.channel.publish(command)

    async def emit(self, event_type: SessionEventType, data: Dict[str, Any]):
        try:
            await self._emit(event_type.value, data)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Could not deliver {event_type.value}: {e}")

    async def _emit_error(self, message: str, code: str = "error", **extra: Any):
        await self.emit(SessionEventType.ERROR, {"message": message, "code": code, **extra})

    async def _emit_feedback(self, text: str, **extra: Any):
        if not text:
            return
        await self.emit(SessionEventType.FEEDBACK, {"text": text, **extra})
        self.context.add_assistant_message(text)

    # -------------------------------------------------------------------------
    # Channel consumer
    # -------------------------------------------------------------------------

    async def _run(self):
        while True:
            message = await self.channel.receive()
            if message is None:
                break
            try:
                await self._dispatch(message)
            except StockcountError as e:
                logger.warning(f"[{self.session_id}] {type(e).__name__}: {e}")
                await self._emit_error(e.message, code=type(e).__name__)
            except Exception as e:
                logger.exception(f"[{self.session_id}] Failed to handle {type(message).__name__}")
                await self._emit_error(error_message("something went wrong processing that."), detail=str(e))

    async def _dispatch(self, message: SessionMessage):
        if isinstance(message, UtteranceReady):
            await self.handle_utterance(message.text)
        elif isinstance(message, ConfirmationTimedOut):
            await self._on_confirmation_timeout(message.confirmation_id)
        elif isinstance(message, ClientCommand):
            await self.handle_client_command(message)

    # -------------------------------------------------------------------------
    # Utterances
    # -------------------------------------------------------------------------

    async def handle_utterance(self, text: str):
        """Run one flushed utterance through extraction, accumulation and policy."""
        pending = self.context.pending_confirmation
        if pending is not None and pending.decision.type.is_blocking:
            reply = parse_voice_reply(text, pending.command)
            if reply is not None:
                self.context.add_user_message(text)
                await self._handle_voice_reply(pending, reply)
                return

        with self.context.processing():
            history = self.context.get_conversation_history()
            recent = self.context.get_recent_commands()
            self.context.add_user_message(text)

            candidates = await self.extractor.extract(text, history, recent)
            if not candidates:
                logger.info(f"[{self.session_id}] No command in {text!r}")

            candidates = [enhance_with_context(c, history, recent) for c in candidates]

            for command in self.accumulator.process_batch(candidates):
                if command.is_complete:
                    await self._handle_complete(command)
                else:
                    await self.emit(SessionEventType.NLP_RESPONSE, {
                        **command.to_dict(),
                        "feedback": listening_message(command),
                    })

    async def _handle_complete(self, command: CandidateCommand):
        if command.action is CommandAction.UNDO:
            await self.undo()
            return

        try:
            best, alternatives = await self.resolver.resolve_with_alternatives(command.item)
        except AmbiguousMatch as e:
            text = clarification_prompt(command.item, e.suggestions)
            await self.emit(SessionEventType.CLARIFICATION_NEEDED, {
                **command.to_dict(),
                "suggestions": e.suggestions,
                "text": text,
            })
            self.context.add_assistant_message(text)
            return
        except NotFound:
            await self._emit_error(f"I couldn't find '{command.item}' in the inventory.", code="NotFound")
            return
        except TransportError as e:
            logger.warning(f"[{self.session_id}] Item search unavailable: {e}")
            await self._emit_error(error_message("item search is unavailable right now."), code="TransportError")
            return

        item = self.store.get_item(best.item.id) or best.item
        resolved = command.with_updates(item=item.name)

        policy_context = PolicyContext(
            current_quantity=item.quantity,
            threshold=item.threshold,
            similar_items=[m.item.name for m in alternatives],
            is_ambiguous=any(
                best.similarity_score - m.similarity_score < AMBIGUITY_MARGIN for m in alternatives
            ),
            session_items=self.context.session_items,
        )
        decision = self.policy.decide(
            resolved,
            command.confidence,
            self.context.user_role,
            self.context.confirmation_history,
            policy_context,
        )
        await self.emit(SessionEventType.NLP_RESPONSE, {**resolved.to_dict(), **decision.to_dict()})

        # Mutations spoken while a confirmation is open wait their turn.
        if not decision.requires_confirmation and self.context.pending_confirmation is None:
            await self._apply(resolved, item)
            return

        pending = PendingConfirmation(
            command=resolved,
            item=item,
            decision=decision,
            feedback_text=confirmation_prompt(resolved, decision) if decision.requires_confirmation else "",
        )
        if self.context.begin_confirmation(pending):
            await self._present(pending)
        else:
            logger.info(
                f"[{self.session_id}] {resolved.describe()} queued behind "
                f"{self.context.pending_confirmation.command.describe()}"
            )

    # -------------------------------------------------------------------------
    # Confirmations
    # -------------------------------------------------------------------------

    async def _present(self, pending: PendingConfirmation):
        """Announce a confirmation that just became current."""
        await self._emit_feedback(
            pending.feedback_text,
            confirmationId=pending.id,
            confirmationType=pending.decision.type.value,
            timeoutSeconds=pending.decision.timeout_seconds,
        )
        if pending.decision.type is ConfirmationType.VISUAL:
            self._schedule_timeout(pending)

    def _schedule_timeout(self, pending: PendingConfirmation):
        loop = asyncio.get_running_loop()
        self._timers[pending.id] = loop.call_later(
            pending.decision.timeout_seconds, self._on_timer, pending.id
        )

    def _on_timer(self, confirmation_id: str):
        self._timers.pop(confirmation_id, None)
        if not self._closed:
            self.channel.publish(ConfirmationTimedOut(confirmation_id))

    async def _on_confirmation_timeout(self, confirmation_id: str):
        pending = self.context.pending_confirmation
        if pending is None or pending.id != confirmation_id:
            logger.debug(f"[{self.session_id}] Stale confirmation timeout {confirmation_id}")
            return
        logger.info(f"[{self.session_id}] Visual confirmation timed out; accepting {pending.command.describe()}")
        self.store.log_session_event(self.session_id, "confirmation-timeout", pending.command.describe())
        await self._finish_pending(pending, pending.command, pending.item)

    def _require_pending(self) -> PendingConfirmation:
        pending = self.context.pending_confirmation
        if pending is None:
            raise NoPendingConfirmationError("No command is waiting for confirmation", self.session_id)
        return pending

    async def confirm(self):
        pending = self._require_pending()
        self.context.confirmation_history.record(True)
        self.store.log_session_event(self.session_id, "confirm", pending.command.describe())
        await self._finish_pending(pending, pending.command, pending.item)

    async def reject(self):
        pending = self._require_pending()
        self.context.confirmation_history.record(False)
        self.store.log_session_event(self.session_id, "reject", pending.command.describe())
        await self._emit_feedback(f"Okay, I won't {pending.command.describe()}.")
        await self._finish_pending(pending)

    async def correct(self, corrected: Dict[str, Any], mistake_type: Optional[str] = None):
        """Apply the pending command with the client's corrected fields."""
        pending = self._require_pending()
        changes = coerce_candidate(corrected) or CandidateCommand()
        original = pending.command

        action = changes.action if changes.action is not CommandAction.UNKNOWN else original.action
        item_name = changes.item or original.item
        quantity = changes.quantity if changes.quantity is not None else original.quantity
        unit = changes.unit or original.unit
        command = CandidateCommand(
            action=action,
            item=item_name,
            quantity=quantity,
            unit=unit,
            confidence=1.0,
            is_complete=is_command_complete(action, item_name, quantity, unit),
        )

        self.context.confirmation_history.record(False, mistake_type)
        self.store.log_session_event(
            self.session_id, "correct", f"{original.describe()} -> {command.describe()}"
        )

        if not command.is_complete or not action.is_mutation:
            await self._finish_pending(pending)
            raise ValidationError(f"Corrected command is incomplete: {command.describe()}", "corrected", corrected)

        item = pending.item
        if item_name.strip().lower() != original.item.strip().lower():
            try:
                item = await self.resolver.resolve(item_name)
            except AmbiguousMatch as e:
                await self._finish_pending(pending)
                text = clarification_prompt(item_name, e.suggestions)
                await self.emit(SessionEventType.CLARIFICATION_NEEDED, {
                    **command.to_dict(),
                    "suggestions": e.suggestions,
                    "text": text,
                })
                return
            except NotFound:
                await self._finish_pending(pending)
                await self._emit_error(f"I couldn't find '{item_name}' in the inventory.", code="NotFound")
                return
            command = command.with_updates(item=item.name)

        await self._finish_pending(pending, command, item)

    async def _finish_pending(
        self,
        pending: PendingConfirmation,
        command: Optional[CandidateCommand] = None,
        item: Optional[CatalogItem] = None,
    ):
        """Leave AwaitingConfirmation, optionally apply, then present the next one."""
        handle = self._timers.pop(pending.id, None)
        if handle is not None:
            handle.cancel()

        _, promoted = self.context.resolve_confirmation()
        if command is not None and item is not None:
            await self._apply(command, item)

        # Queued implicit commands apply in arrival order up to the next blocking one.
        while promoted is not None and not promoted.decision.requires_confirmation:
            queued = promoted
            _, promoted = self.context.resolve_confirmation()
            await self._apply(queued.command, queued.item)

        if promoted is not None:
            await self._present(promoted)

    async def _handle_voice_reply(self, pending: PendingConfirmation, reply: VoiceReply):
        if reply.kind is ReplyKind.CONFIRM:
            await self.confirm()
        elif reply.kind is ReplyKind.REJECT:
            await self.reject()
        else:
            corrected = reply.corrected
            await self.correct(
                {
                    "action": corrected.action.value,
                    "item": corrected.item,
                    "quantity": corrected.quantity,
                    "unit": corrected.unit,
                },
                reply.mistake_type,
            )

    # -------------------------------------------------------------------------
    # Client commands
    # -------------------------------------------------------------------------

    async def handle_client_command(self, command: ClientCommand):
        kind = command.kind
        payload = command.payload
        if kind == ClientCommandType.CONFIRM.value:
            await self.confirm()
        elif kind == ClientCommandType.REJECT.value:
            await self.reject()
        elif kind == ClientCommandType.CORRECT.value:
            await self.correct(
                payload.get("corrected") or {},
                payload.get("mistakeType") or payload.get("mistake_type"),
            )
        elif kind == ClientCommandType.UNDO.value:
            await self.undo()
        else:
            await self._emit_error(f"Unknown command: {kind}", code="UnknownCommand")

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def _apply(self, command: CandidateCommand, item: CatalogItem):
        try:
            entry = self.store.apply_mutation(
                item.id, command.action, command.quantity, command.unit, self.session_id
            )
        except ValidationError as e:
            self.store.log_session_event(self.session_id, "command", command.describe(), status="error")
            await self._emit_error(error_message(f"I couldn't {command.describe()}: {e.message}"), code=type(e).__name__)
            return

        self.action_log.append(entry)
        self.store.log_session_event(self.session_id, "command", command.describe())
        self.context.add_recent_command(command)
        self.context.track_item(item.name)

        await self.emit(SessionEventType.COMMAND_PROCESSED, entry.to_dict())
        await self._emit_feedback(success_message(entry))

    async def undo(self):
        """Reverse the last applied mutation; a no-op when there is none."""
        entry = self.action_log.pop_last()
        if entry is None:
            await self._emit_feedback(undo_message(None))
            return

        action, amount = ActionLog.inverse_of(entry)
        reverted = self.store.apply_mutation(entry.item_id, action, amount, entry.unit, self.session_id)
        self.store.log_session_event(self.session_id, "undo", f"{action.value} {amount:g} {entry.unit} {entry.item_name}")

        await self.emit(SessionEventType.COMMAND_PROCESSED, {**reverted.to_dict(), "undo": True})
        await self._emit_feedback(undo_message(entry))


def create_session_pipeline(
    session_id: str,
    config,
    extractor: CommandExtractor,
    resolver: ItemResolver,
    store: InventoryStore,
    emit: Optional[EventSink] = None,
    user_role: Optional[str] = None,
) -> SessionPipeline:
    """
    Create a session pipeline from a StockcountConfig.

    Args:
        session_id: Connection-unique identifier
        config: stockcount.config.StockcountConfig
        extractor: Shared command extractor
        resolver: Shared item resolver
        store: Shared inventory store
        emit: Async event sink for this connection
        user_role: Overrides session.default_user_role
    """
    context = SessionContext(
        session_id,
        user_role=user_role or config.session.default_user_role,
        max_conversation_turns=config.session.max_conversation_turns,
        max_recent_commands=config.session.max_recent_commands,
        max_session_items=config.session.max_session_items,
    )
    return SessionPipeline(
        session_id=session_id,
        extractor=extractor,
        resolver=resolver,
        store=store,
        policy=ConfirmationPolicy(config.confirmation),
        emit=emit,
        idle_timeout=config.aggregator.idle_timeout_seconds,
        context_window=config.accumulator.context_window_seconds,
        context=context,
    )
