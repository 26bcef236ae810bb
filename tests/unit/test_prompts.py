"""Unit tests for conversation preparation and prompt selection."""

from __future__ import annotations

from planstream.plans.intent import PLAN_OFFER_PHRASE, PlanIntent
from planstream.plans.prompts import (
    BASE_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    build_plan_user_message,
    prepare_conversation,
)
from planstream.providers.base import Message


class TestBuildPlanUserMessage:
    def test_goal_is_quoted(self) -> None:
        content = build_plan_user_message("Launch a bakery")
        assert content.startswith('Create a project plan for: "Launch a bakery"')

    def test_example_block_is_valid_json_shape(self) -> None:
        content = build_plan_user_message("x")
        assert '```json\n{\n  "workstreams": [' in content
        assert "{{" not in content


class TestPrepareConversation:
    def test_conversational_turn(self) -> None:
        history = [
            Message(role="user", content="hi"),
            Message(role="assistant", content="Hello!"),
        ]
        prepared = prepare_conversation(history, "I want to open a bakery")

        assert not prepared.plan_requested
        assert prepared.goal == ""
        assert prepared.messages[0] == Message(role="system", content=BASE_SYSTEM_PROMPT)
        assert prepared.messages[1:3] == history
        assert prepared.messages[-1] == Message(role="user", content="I want to open a bakery")
        assert PLAN_OFFER_PHRASE in BASE_SYSTEM_PROMPT

    def test_explicit_plan_turn(self) -> None:
        message = "Create a project plan for launching a bakery"
        prepared = prepare_conversation([], message)

        assert prepared.decision.intent is PlanIntent.EXPLICIT
        assert prepared.goal == message
        assert [m.role for m in prepared.messages] == ["system", "user"]
        assert prepared.messages[0].content == PLAN_SYSTEM_PROMPT
        assert prepared.messages[-1].content == build_plan_user_message(message)

    def test_accepted_offer_rewrites_around_earlier_goal(self) -> None:
        history = [
            Message(role="user", content="I want to open a bakery"),
            Message(role="assistant", content=f"Great idea. {PLAN_OFFER_PHRASE}"),
        ]
        prepared = prepare_conversation(history, "ok")

        assert prepared.decision.intent is PlanIntent.ACCEPTED_OFFER
        assert prepared.goal == "I want to open a bakery"
        assert len(prepared.messages) == 4
        assert prepared.messages[-1].content == build_plan_user_message("I want to open a bakery")

    def test_history_is_copied_not_shared(self) -> None:
        history = [Message(role="user", content="hi")]
        prepared = prepare_conversation(history, "hello")
        prepared.messages[1].content = "changed"
        assert history == [Message(role="user", content="hi")]
        assert len(history) == 1
