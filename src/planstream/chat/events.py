"""
Events a generation emits to the transport layer.

A generation yields any number of TokenEvents (and PlanEvents, when a fenced
plan completes mid-stream) followed by exactly one terminal event: DoneEvent
with the final post-processed text, or ErrorEvent.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from planstream.plans.models import ProjectPlan
from planstream.streaming.sse import format_event


class ErrorReason(StrEnum):
    TRANSPORT = "transport"
    EMPTY_RESPONSE = "empty_response"
    MESSAGE_TOO_LONG = "message_too_long"


@dataclass(frozen=True)
class TokenEvent:
    token: str

    name = "token"
    terminal = False

    def payload(self) -> dict[str, Any]:
        return {"token": self.token}

    def to_sse(self) -> str:
        return format_event(self.name, self.payload())


@dataclass(frozen=True)
class PlanEvent:
    """A fenced plan confirmed while the answer was still streaming."""

    plan: ProjectPlan
    start: int
    end: int

    name = "plan"
    terminal = False

    def payload(self) -> dict[str, Any]:
        return {"plan": self.plan.to_dict(), "start": self.start, "end": self.end}

    def to_sse(self) -> str:
        return format_event(self.name, self.payload())


@dataclass(frozen=True)
class DoneEvent:
    """Terminal success: *text* is what should be stored and shown."""

    text: str
    plan_requested: bool = False
    plan_detected: bool = False
    deltas: int = 0

    name = "done"
    terminal = True

    def payload(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "plan_requested": self.plan_requested,
            "plan_detected": self.plan_detected,
        }

    def to_sse(self) -> str:
        return format_event(self.name, self.payload())


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal failure; never retried by the engine."""

    error: str
    details: str
    reason: ErrorReason

    name = "error"
    terminal = True

    def payload(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details, "reason": self.reason.value}

    def to_sse(self) -> str:
        return format_event(self.name, self.payload())


ChatEvent = TokenEvent | PlanEvent | DoneEvent | ErrorEvent
