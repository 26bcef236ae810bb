"""Unit tests for ChatEngine — event sequencing, post-processing, registry lifecycle."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

import pytest

from planstream.chat.engine import ChatEngine, GenerationState, StreamRegistry
from planstream.chat.events import (
    ChatEvent,
    DoneEvent,
    ErrorEvent,
    ErrorReason,
    PlanEvent,
    TokenEvent,
)
from planstream.core.config import PlanStreamConfig
from planstream.core.exceptions import ProviderError, ProviderNotConfiguredError
from planstream.plans.extractor import IncrementalPlanExtractor, parse_project_plan
from planstream.plans.models import Deliverable, ProjectPlan, Workstream
from planstream.plans.prompts import BASE_SYSTEM_PROMPT, PLAN_SYSTEM_PROMPT
from planstream.providers.base import Message, ProviderKind
from planstream.streaming.reconciler import AppendReconciler, DeltaReconciler

PROSE_PLAN = (
    "Here's a project plan for your bakery.\n\n"
    "1. **Brand Identity** - Build a recognisable brand.\n"
    "   - Logo design: A finished logo in three formats\n"
    "2. **Operations** - Get the kitchen running.\n"
    "   - Supplier contracts: Signed flour and dairy contracts\n\n"
    "Let me know if you'd like to adjust anything!"
)


class FakeProvider:
    """Replays fixed chunks through the caller's reconciler."""

    kind = ProviderKind.OPENAI
    model = "fake-model"

    def __init__(self, chunks: Sequence[str] = (), *, error: Exception | None = None) -> None:
        self._chunks = list(chunks)
        self._error = error
        self.requests: list[list[Message]] = []
        self.closed = False

    async def send_message(self, messages, *, temperature=None) -> str:
        return "".join(self._chunks)

    async def stream_message(
        self,
        messages: Sequence[Message],
        reconciler: DeltaReconciler,
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        self.requests.append(list(messages))
        for chunk in self._chunks:
            for delta in reconciler.feed(chunk):
                yield delta
        if self._error is not None:
            raise self._error

    def new_reconciler(self) -> DeltaReconciler:
        return AppendReconciler(provider="fake")

    def list_models(self) -> list[str]:
        return [self.model]

    async def close(self) -> None:
        self.closed = True


def _pieces(text: str, size: int = 7) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


def _plan() -> ProjectPlan:
    return ProjectPlan(
        workstreams=[
            Workstream(
                title="Brand",
                description="Identity",
                deliverables=[Deliverable(title="Logo", description="A finished logo")],
            )
        ]
    )


async def _run(engine: ChatEngine, message: str, history: Sequence[Message] = ()) -> list[ChatEvent]:
    return [event async for event in engine.generate(list(history), message)]


# ---------------------------------------------------------------------------
# Event sequencing
# ---------------------------------------------------------------------------


class TestGenerate:
    @pytest.mark.asyncio
    async def test_tokens_then_done(self) -> None:
        engine = ChatEngine(FakeProvider(["Hel", "", "lo"]))
        events = await _run(engine, "Say hello")

        assert events == [
            TokenEvent("Hel"),
            TokenEvent("lo"),
            DoneEvent(text="Hello", plan_requested=False, plan_detected=False, deltas=2),
        ]

    @pytest.mark.asyncio
    async def test_conversational_turn_uses_base_prompt(self) -> None:
        provider = FakeProvider(["ok"])
        history = [Message(role="user", content="hi"), Message(role="assistant", content="Hello!")]
        await _run(ChatEngine(provider), "How are you?", history)

        sent = provider.requests[0]
        assert sent[0] == Message(role="system", content=BASE_SYSTEM_PROMPT)
        assert sent[1:3] == history
        assert sent[-1] == Message(role="user", content="How are you?")

    @pytest.mark.asyncio
    async def test_requested_plan_is_recovered_from_prose(self) -> None:
        provider = FakeProvider(_pieces(PROSE_PLAN))
        events = await _run(ChatEngine(provider), "Create a project plan for a bakery")

        assert provider.requests[0][0].content == PLAN_SYSTEM_PROMPT
        tokens = [e.token for e in events if isinstance(e, TokenEvent)]
        assert "".join(tokens) == PROSE_PLAN

        done = events[-1]
        assert isinstance(done, DoneEvent)
        assert done.plan_requested
        assert done.plan_detected
        plan = parse_project_plan(done.text)
        assert plan is not None
        assert [ws.title for ws in plan.workstreams] == ["Brand Identity", "Operations"]

    @pytest.mark.asyncio
    async def test_unrequested_plan_shaped_answer_is_post_processed(self) -> None:
        events = await _run(ChatEngine(FakeProvider([PROSE_PLAN])), "Any thoughts?")
        done = events[-1]
        assert isinstance(done, DoneEvent)
        assert not done.plan_requested
        assert done.plan_detected
        assert "```json" in done.text

    @pytest.mark.asyncio
    async def test_ordinary_answer_is_not_post_processed(self) -> None:
        text = "1. **Rest** - sleep well.\n2. **Eat** - eat well.\n"
        events = await _run(ChatEngine(FakeProvider([text])), "Any tips?")
        done = events[-1]
        assert isinstance(done, DoneEvent)
        assert done.text == text
        assert not done.plan_detected

    @pytest.mark.asyncio
    async def test_fenced_plan_emits_plan_event_mid_stream(self) -> None:
        text = "Here you go.\n\n" + _plan().to_fenced_block() + "\n\nEnjoy!"
        events = await _run(ChatEngine(FakeProvider(_pieces(text, 5))), "Create a project plan")

        plan_events = [e for e in events if isinstance(e, PlanEvent)]
        assert len(plan_events) == 1
        assert plan_events[0].plan == _plan()
        assert text[plan_events[0].start : plan_events[0].end] == _plan().to_fenced_block()
        assert events.index(plan_events[0]) < len(events) - 1

        done = events[-1]
        assert isinstance(done, DoneEvent)
        assert done.text == text
        assert done.plan_detected

    @pytest.mark.asyncio
    async def test_provider_error_becomes_error_event(self) -> None:
        provider = FakeProvider(["partial "], error=ProviderError("boom", provider="fake"))
        engine = ChatEngine(provider)
        events = await _run(engine, "hi")

        assert events[0] == TokenEvent("partial ")
        error = events[-1]
        assert isinstance(error, ErrorEvent)
        assert error.reason is ErrorReason.TRANSPORT
        assert error.error == "Failed to get LLM response"
        assert "boom" in error.details
        assert len(engine.registry) == 0

    @pytest.mark.asyncio
    async def test_empty_response_becomes_error_event(self) -> None:
        events = await _run(ChatEngine(FakeProvider(["", ""])), "hi")
        assert len(events) == 1
        error = events[0]
        assert isinstance(error, ErrorEvent)
        assert error.reason is ErrorReason.EMPTY_RESPONSE
        assert error.error == "No response from LLM"

    @pytest.mark.asyncio
    async def test_too_long_response_is_cut_off(self) -> None:
        engine = ChatEngine(FakeProvider(["hello ", "world, again"]), max_message_chars=10)
        events = await _run(engine, "hi")

        assert events[0] == TokenEvent("hello ")
        assert len(events) == 2
        error = events[1]
        assert isinstance(error, ErrorEvent)
        assert error.reason is ErrorReason.MESSAGE_TOO_LONG
        assert len(engine.registry) == 0


# ---------------------------------------------------------------------------
# Registry lifecycle
# ---------------------------------------------------------------------------


class TestStreamLifecycle:
    @pytest.mark.asyncio
    async def test_registered_while_streaming(self) -> None:
        engine = ChatEngine(FakeProvider(["a", "b"]))
        gen = engine.generate([], "hi", stream_id="s1")

        first = await gen.__anext__()
        assert first == TokenEvent("a")
        assert "s1" in engine.registry
        state = engine.registry.get("s1")
        assert state is not None
        assert state.transcript == "a"

        rest = [event async for event in gen]
        assert isinstance(rest[-1], DoneEvent)
        assert "s1" not in engine.registry

    @pytest.mark.asyncio
    async def test_cancelled_stream_is_removed(self) -> None:
        engine = ChatEngine(FakeProvider(["a", "b", "c"]))
        gen = engine.generate([], "hi", stream_id="s2")

        await gen.__anext__()
        assert engine.registry.active_ids() == ["s2"]
        await gen.aclose()
        assert engine.registry.active_ids() == []

    @pytest.mark.asyncio
    async def test_duplicate_stream_id_is_rejected(self) -> None:
        engine = ChatEngine(FakeProvider(["a", "b"]))
        first = engine.generate([], "hi", stream_id="dup")
        await first.__anext__()

        second = engine.generate([], "hi", stream_id="dup")
        with pytest.raises(ValueError, match="already active"):
            await second.__anext__()

        await first.aclose()
        assert len(engine.registry) == 0

    @pytest.mark.asyncio
    async def test_concurrent_streams_are_independent(self) -> None:
        engine = ChatEngine(FakeProvider(["x", "y"]))
        one = engine.generate([], "hi", stream_id="one")
        two = engine.generate([], "hi", stream_id="two")

        await one.__anext__()
        await two.__anext__()
        assert sorted(engine.registry.active_ids()) == ["one", "two"]

        done_one = [e async for e in one][-1]
        done_two = [e async for e in two][-1]
        assert isinstance(done_one, DoneEvent) and done_one.text == "xy"
        assert isinstance(done_two, DoneEvent) and done_two.text == "xy"
        assert len(engine.registry) == 0

    @pytest.mark.asyncio
    async def test_unterminated_fence_is_released_past_bound(self) -> None:
        chunks = ['Hi ```json\n{"workstreams": [', "x" * 30, "]}"]
        engine = ChatEngine(FakeProvider(chunks), max_pending_fence_chars=20)
        gen = engine.generate([], "hi", stream_id="p1")

        await gen.__anext__()
        await gen.__anext__()
        state = engine.registry.get("p1")
        assert state is not None
        assert state.extractor.state.pending_fence is None
        assert state.extractor.state.skip_next_fence
        await gen.aclose()

    @pytest.mark.asyncio
    async def test_close_closes_provider(self) -> None:
        provider = FakeProvider()
        await ChatEngine(provider).close()
        assert provider.closed


class TestStreamRegistry:
    def _state(self, stream_id: str) -> GenerationState:
        return GenerationState(
            stream_id=stream_id,
            provider="fake",
            model="m",
            plan_requested=False,
            reconciler=AppendReconciler(),
            extractor=IncrementalPlanExtractor(),
        )

    def test_register_get_remove(self) -> None:
        registry = StreamRegistry()
        state = self._state("a")
        registry.register(state)
        assert registry.get("a") is state
        assert registry.remove("a") is state
        assert registry.remove("a") is None
        assert "a" not in registry


# ---------------------------------------------------------------------------
# Construction from config
# ---------------------------------------------------------------------------


class TestFromConfig:
    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for var in ("GEMINI_API_KEY", "OPENAI_API_KEY", "GROQ_API_KEY"):
            monkeypatch.delenv(var, raising=False)

    def test_configured_provider(self) -> None:
        config = PlanStreamConfig.model_validate(
            {"provider": {"name": "openai", "api_key": "sk", "model": "gpt-4o"}}
        )
        engine = ChatEngine.from_config(config)
        assert engine.provider.kind is ProviderKind.OPENAI
        assert engine.provider.model == "gpt-4o"

    def test_model_selects_its_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GROQ_API_KEY", "gq")
        config = PlanStreamConfig.model_validate({"provider": {"name": "openai", "api_key": "sk"}})
        engine = ChatEngine.from_config(config, model="llama-3.1-8b-instant")
        assert engine.provider.kind is ProviderKind.GROQ
        assert engine.provider.model == "llama-3.1-8b-instant"

    def test_configured_provider_serves_unrouted_model(self) -> None:
        config = PlanStreamConfig.model_validate(
            {"provider": {"name": "groq", "model": "qwen-2.5-32b", "api_key": "k"}}
        )
        engine = ChatEngine.from_config(config)
        assert engine.provider.kind is ProviderKind.GROQ
        assert engine.provider.model == "qwen-2.5-32b"

    def test_configured_model_does_not_reroute(self) -> None:
        config = PlanStreamConfig.model_validate(
            {"provider": {"name": "openai", "model": "llama-3.1-8b-instant", "api_key": "sk"}}
        )
        engine = ChatEngine.from_config(config)
        assert engine.provider.kind is ProviderKind.OPENAI

    def test_missing_key_for_routed_provider(self) -> None:
        config = PlanStreamConfig.model_validate({"provider": {"name": "openai", "api_key": "sk"}})
        with pytest.raises(ProviderNotConfiguredError):
            ChatEngine.from_config(config, model="gemini-2.5-pro")

    def test_simulated_gemini(self) -> None:
        config = PlanStreamConfig.model_validate(
            {"provider": {"api_key": "gk"}, "streaming": {"simulate_gemini": True}}
        )
        engine = ChatEngine.from_config(config)
        assert engine.provider.kind is ProviderKind.GEMINI
        assert isinstance(engine.provider.new_reconciler(), AppendReconciler)
