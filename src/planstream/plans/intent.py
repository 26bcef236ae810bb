"""
Plan-intent classification — pure functions over message text.

Two independent decisions:

  - ``classify_plan_request`` — should this turn ask the model for a
    structured plan? Yes when the user uses plan-request vocabulary, or when
    the previous assistant turn offered a plan and the user accepts it.
  - ``looks_like_plan_response`` — does a response that was not requested as
    JSON still look like a plan, so recovery should run on it anyway?

Each decision is an ordered list of independent rules; the first rule that
fires decides. New heuristics are added by appending a rule.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from planstream.core.constants import LOOKS_LIKE_PLAN_MIN_CHARS

if TYPE_CHECKING:
    from planstream.providers.base import Message

_EXPLICIT_PLAN_REQUEST = re.compile(
    r"project\s+plan"
    r"|create\s+(?:a\s+)?plan"
    r"|plan\s+for"
    r"|write\s+(?:me\s+)?a\s+plan"
    r"|roadmap"
    r"|implementation\s+plan"
    r"|transition.*business"
    r"|business.*plan"
    r"|show.*plan"
    r"|present.*plan"
    r"|need\s+a\s+plan"
    r"|want\s+a\s+plan",
    re.IGNORECASE,
)

#: The phrase the conversational system prompt asks the model to use.
PLAN_OFFER_PHRASE = (
    "If you'd like, I can turn this into a detailed project plan with workstreams and deliverables."
)

_PLAN_OFFER = re.compile(
    r"turn this into a detailed project plan"
    r"|generate a project plan"
    r"|create a detailed project plan"
    r"|turn this into a project plan",
    re.IGNORECASE,
)

_AFFIRMATIVE = re.compile(
    r"\b(?:yes|yeah|yep|sure|sounds good|do it|go ahead|let'?s do it|okay|ok"
    r"|alright|please|that would be great|absolutely|go for it|create it"
    r"|make it|generate it)\b",
    re.IGNORECASE,
)

_NEGATIVE = re.compile(
    r"\b(?:no|nope|nah|not now|maybe later|don'?t|do not|no thanks|no thank you)\b",
    re.IGNORECASE,
)

_PLAN_ANNOUNCEMENTS: tuple[str, ...] = (
    "here is a project plan",
    "here's a project plan",
    "structured project plan",
    "project workstreams",
)

_OBJECTIVE_LINE = re.compile(r"(?:^|\n)\s*(?:objective|goal):", re.IGNORECASE)
_PHASE_LINE = re.compile(r"(?:^|\n)\s*phase\s*\d+[:\-\s]", re.IGNORECASE)

_PLAN_FOR_PREFIX = re.compile(r"create a project plan for:\s*(.+)", re.IGNORECASE | re.DOTALL)


# ---------------------------------------------------------------------------
# Plan request
# ---------------------------------------------------------------------------


class PlanIntent(StrEnum):
    """Why a turn does (or does not) request a structured plan."""

    EXPLICIT = "explicit"
    """The user's message uses plan-request vocabulary."""

    ACCEPTED_OFFER = "accepted_offer"
    """The assistant offered a plan and the user said yes."""

    NONE = "none"


@dataclass(frozen=True)
class PlanRequestDecision:
    intent: PlanIntent

    @property
    def requested(self) -> bool:
        return self.intent is not PlanIntent.NONE


def is_affirmative(message: str) -> bool:
    """Affirmative and not negative; negation wins when both match."""
    text = message.strip()
    return bool(_AFFIRMATIVE.search(text)) and not _NEGATIVE.search(text)


def offers_plan(assistant_text: str | None) -> bool:
    return bool(assistant_text) and bool(_PLAN_OFFER.search(assistant_text or ""))


def _explicit_request(message: str, previous_assistant: str | None) -> bool:
    return bool(_EXPLICIT_PLAN_REQUEST.search(message))


def _accepted_offer(message: str, previous_assistant: str | None) -> bool:
    return offers_plan(previous_assistant) and is_affirmative(message)


_PLAN_REQUEST_RULES: list[tuple[PlanIntent, Callable[[str, str | None], bool]]] = [
    (PlanIntent.EXPLICIT, _explicit_request),
    (PlanIntent.ACCEPTED_OFFER, _accepted_offer),
]


def classify_plan_request(message: str, previous_assistant: str | None = None) -> PlanRequestDecision:
    """Decide whether *message* (answering *previous_assistant*) should get a plan."""
    for intent, rule in _PLAN_REQUEST_RULES:
        if rule(message, previous_assistant):
            return PlanRequestDecision(intent)
    return PlanRequestDecision(PlanIntent.NONE)


def should_request_plan(message: str, previous_assistant: str | None = None) -> bool:
    return classify_plan_request(message, previous_assistant).requested


# ---------------------------------------------------------------------------
# Plan-shaped responses
# ---------------------------------------------------------------------------


def _announces_plan(text: str) -> bool:
    lower = text.lower()
    if any(phrase in lower for phrase in _PLAN_ANNOUNCEMENTS):
        return True
    return "project plan" in lower and "objective" in lower


def _objective_and_phases(text: str) -> bool:
    return (
        len(text) > LOOKS_LIKE_PLAN_MIN_CHARS
        and bool(_OBJECTIVE_LINE.search(text))
        and bool(_PHASE_LINE.search(text))
    )


_PLAN_SHAPE_RULES: list[Callable[[str], bool]] = [
    _announces_plan,
    _objective_and_phases,
]


def looks_like_plan_response(text: str) -> bool:
    """True when an unrequested response still reads like a project plan."""
    return any(rule(text) for rule in _PLAN_SHAPE_RULES)


# ---------------------------------------------------------------------------
# Conversation helpers
# ---------------------------------------------------------------------------


def last_assistant_message(history: Sequence[Message]) -> str | None:
    for msg in reversed(history):
        if msg.role == "assistant":
            return msg.content
    return None


def _is_plan_command(content: str) -> bool:
    lower = content.lower()
    return "create a project plan" in lower or "generate project plan" in lower


def resolve_plan_goal(
    message: str,
    history: Sequence[Message],
    intent: PlanIntent = PlanIntent.ACCEPTED_OFFER,
) -> str:
    """
    Return what the plan should be about.

    ``Create a project plan for: X`` yields X. An explicit request is its own
    goal. After an accepted offer (a bare "ok") the goal is the most recent
    earlier user message in *history* that is not itself a plan command.
    """
    m = _PLAN_FOR_PREFIX.search(message)
    if m and m.group(1).strip():
        return m.group(1).strip()
    if intent is not PlanIntent.ACCEPTED_OFFER:
        return message

    earlier_users = [msg for msg in history if msg.role == "user"]
    if earlier_users and earlier_users[-1].content == message:
        earlier_users = earlier_users[:-1]
    for msg in reversed(earlier_users):
        if not _is_plan_command(msg.content):
            return msg.content
    return message
