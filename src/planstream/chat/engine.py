"""
ChatEngine — runs one generation from user message to terminal event.

Data flow::

    history + user message
      -> prepare_conversation()           (intent + prompt shaping)
        -> provider.stream_message(reconciler)
          -> TokenEvent per delta          (ordered, forwarded immediately)
          -> PlanEvent per fenced plan     (incremental extractor over the transcript)
        -> reconciler.finish()             (authoritative final text)
        -> post_process_plan_response()    (if a plan was requested or the
                                            answer looks like one)
      -> DoneEvent(text) | ErrorEvent

Every generation owns its own reconciler and extractor. The only state
shared between concurrent generations is the StreamRegistry, a coarse map
from stream id to generation state, written when a stream starts and removed
when it ends, fails or is cancelled. A cancelled generation discards its
partial state without post-processing.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from planstream.chat.events import (
    ChatEvent,
    DoneEvent,
    ErrorEvent,
    ErrorReason,
    PlanEvent,
    TokenEvent,
)
from planstream.core.constants import DEFAULT_MAX_MESSAGE_CHARS, DEFAULT_MAX_PENDING_FENCE_CHARS
from planstream.core.exceptions import EmptyResponseError, ProviderError
from planstream.plans.extractor import IncrementalPlanExtractor, parse_project_plan
from planstream.plans.intent import looks_like_plan_response
from planstream.plans.models import PlanSegment
from planstream.plans.prompts import prepare_conversation
from planstream.plans.recovery import post_process_plan_response
from planstream.providers.base import (
    LLMProvider,
    Message,
    ProviderKind,
    create_provider,
    provider_for_model,
)
from planstream.streaming.reconciler import DeltaReconciler

if TYPE_CHECKING:
    from planstream.core.config import PlanStreamConfig

logger = structlog.get_logger()

_NO_RESPONSE = "No response from LLM"
_FAILED_RESPONSE = "Failed to get LLM response"


# ---------------------------------------------------------------------------
# Per-generation state
# ---------------------------------------------------------------------------


@dataclass
class GenerationState:
    stream_id: str
    provider: str
    model: str
    plan_requested: bool
    reconciler: DeltaReconciler
    extractor: IncrementalPlanExtractor
    transcript: str = ""
    started_at: float = field(default_factory=time.monotonic)


class StreamRegistry:
    """Active generations by stream id."""

    def __init__(self) -> None:
        self._streams: dict[str, GenerationState] = {}

    def register(self, state: GenerationState) -> None:
        if state.stream_id in self._streams:
            raise ValueError(f"Stream {state.stream_id!r} is already active")
        self._streams[state.stream_id] = state

    def remove(self, stream_id: str) -> GenerationState | None:
        return self._streams.pop(stream_id, None)

    def get(self, stream_id: str) -> GenerationState | None:
        return self._streams.get(stream_id)

    def active_ids(self) -> list[str]:
        return list(self._streams)

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._streams

    def __len__(self) -> int:
        return len(self._streams)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ChatEngine:
    """
    Streams generations from one provider.

    *max_message_chars* ends a generation that grows past it.
    *max_pending_fence_chars* releases a fence that stays unconfirmed past it
    as plain text; the effective bound is the smaller of the two.

    Usage::

        engine = ChatEngine.from_config(load_config())
        async for event in engine.generate(history, "Plan a bakery launch"):
            send(event.to_sse())
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
        max_pending_fence_chars: int = DEFAULT_MAX_PENDING_FENCE_CHARS,
        registry: StreamRegistry | None = None,
    ) -> None:
        self._provider = provider
        self._max_message_chars = max_message_chars
        self._max_pending_fence_chars = max_pending_fence_chars
        self.registry = registry or StreamRegistry()

    @classmethod
    def from_config(cls, config: PlanStreamConfig, model: str = "") -> ChatEngine:
        """
        Build an engine from config. An explicit *model* selects its provider;
        otherwise the configured provider serves the configured model (or its
        default when none is set).
        """
        if model:
            kind = provider_for_model(model)
        else:
            kind = ProviderKind(config.provider.name)
            model = config.provider.model
        options: dict[str, object] = {}
        if kind is ProviderKind.GROQ:
            options["temperature"] = config.provider.temperature
            options["plan_temperature"] = config.provider.plan_temperature
        elif kind is ProviderKind.GEMINI:
            options["simulated"] = config.streaming.simulate_gemini
            options["chunk_chars"] = config.streaming.simulated_chunk_chars

        provider = create_provider(
            kind,
            config.api_key_for(kind.value),
            model,
            timeout=config.provider.timeout_seconds,
            **options,
        )
        return cls(
            provider,
            max_message_chars=config.streaming.max_message_chars,
            max_pending_fence_chars=config.streaming.max_pending_fence_chars,
        )

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    async def close(self) -> None:
        await self._provider.close()

    async def generate(
        self,
        history: Sequence[Message],
        message: str,
        *,
        stream_id: str = "",
    ) -> AsyncIterator[ChatEvent]:
        """Run one generation, yielding token events then one terminal event."""
        prepared = prepare_conversation(history, message)
        state = GenerationState(
            stream_id=stream_id or uuid.uuid4().hex[:12],
            provider=self._provider.kind.value,
            model=self._provider.model,
            plan_requested=prepared.plan_requested,
            reconciler=self._provider.new_reconciler(),
            extractor=IncrementalPlanExtractor(max_pending_chars=self._max_pending_fence_chars),
        )
        self.registry.register(state)
        log = logger.bind(stream_id=state.stream_id, provider=state.provider, model=state.model)
        log.info(
            "stream_started",
            messages=len(prepared.messages),
            plan_intent=prepared.decision.intent.value,
        )

        try:
            async with aclosing(self._run(state, prepared.messages, log)) as events:
                async for event in events:
                    yield event
        except (asyncio.CancelledError, GeneratorExit):
            log.info("stream_cancelled", transcript_chars=len(state.transcript))
            raise
        finally:
            self.registry.remove(state.stream_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        state: GenerationState,
        messages: list[Message],
        log: structlog.stdlib.BoundLogger,
    ) -> AsyncIterator[ChatEvent]:
        deltas = self._provider.stream_message(messages, state.reconciler)
        try:
            async with aclosing(deltas):  # type: ignore[type-var]
                async for delta in deltas:
                    state.transcript += delta
                    if len(state.transcript) > self._max_message_chars:
                        log.warning("stream_too_long", limit=self._max_message_chars)
                        yield ErrorEvent(
                            error=_FAILED_RESPONSE,
                            details=f"Response exceeded {self._max_message_chars} characters",
                            reason=ErrorReason.MESSAGE_TOO_LONG,
                        )
                        return
                    yield TokenEvent(delta)
                    for segment in state.extractor.feed(state.transcript):
                        if isinstance(segment, PlanSegment):
                            yield PlanEvent(segment.plan, segment.start, segment.end)
            final = state.reconciler.finish()
        except EmptyResponseError as exc:
            log.warning("stream_empty")
            yield ErrorEvent(error=_NO_RESPONSE, details=str(exc), reason=ErrorReason.EMPTY_RESPONSE)
            return
        except ProviderError as exc:
            log.error("stream_failed", error=str(exc), status_code=exc.status_code)
            yield ErrorEvent(error=_FAILED_RESPONSE, details=str(exc), reason=ErrorReason.TRANSPORT)
            return

        if state.plan_requested or looks_like_plan_response(final):
            final = post_process_plan_response(final)
        plan = parse_project_plan(final)

        log.info(
            "stream_completed",
            deltas=state.reconciler.deltas_emitted,
            final_chars=len(final),
            plan_detected=plan is not None,
            elapsed_s=round(time.monotonic() - state.started_at, 3),
        )
        yield DoneEvent(
            text=final,
            plan_requested=state.plan_requested,
            plan_detected=plan is not None,
            deltas=state.reconciler.deltas_emitted,
        )
