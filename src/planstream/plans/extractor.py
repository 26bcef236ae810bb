"""
Plan extraction — split text into prose and validated ProjectPlan segments.

A plan region is a three-backtick fence, optionally tagged ``json``, whose
body is a single balanced JSON object followed by a closing fence::

    ```json
    {"workstreams": [...]}
    ```

Two entry points share one scan loop:

  - ``extract_plan_blocks(text)`` — batch mode over a complete text.
  - ``IncrementalPlanExtractor.feed(buffer)`` — re-invoked with a growing
    buffer; returns only segments that became final since the last call.
    A plan is confirmed only after its closing fence arrives, and nothing
    confirmed is ever re-emitted.

Fenced regions that look like a plan but fail decoding or validation are
returned as text segments, fences included. Segment spans always tile the
input exactly: contiguous, ordered, non-overlapping.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

import structlog
from pydantic import ValidationError

from planstream.plans.models import (
    FENCE,
    ContentSegment,
    PlanSegment,
    ProjectPlan,
    TextSegment,
)
from planstream.plans.scanner import find_json_object, find_unquoted

logger = structlog.get_logger()

_JSON_TAG = re.compile(r"json", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Decode + validate
# ---------------------------------------------------------------------------


def parse_plan_json(raw: str) -> ProjectPlan | None:
    """Decode *raw* as JSON and validate it as a ProjectPlan. None on any failure."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return ProjectPlan.model_validate(data)
    except ValidationError as exc:
        logger.debug("plan_candidate_rejected", errors=exc.error_count())
        return None


# ---------------------------------------------------------------------------
# Fence classification
# ---------------------------------------------------------------------------


class _FenceKind(Enum):
    CANDIDATE = "candidate"  # fence + object + fence, complete
    PENDING = "pending"  # cannot decide until more text arrives
    OTHER = "other"  # some other fenced block, or a malformed one


class _Fence(NamedTuple):
    kind: _FenceKind
    end: int = -1
    """CANDIDATE: end of closing fence. OTHER: end of closing fence, or -1 if absent."""

    obj_start: int = -1
    obj_end: int = -1


def _skip_ws(text: str, i: int) -> int:
    n = len(text)
    while i < n and text[i].isspace():
        i += 1
    return i


def _other(text: str, search_from: int, final: bool) -> _Fence:
    close = text.find(FENCE, search_from)
    if close == -1:
        return _Fence(_FenceKind.OTHER, len(text) if final else -1)
    return _Fence(_FenceKind.OTHER, close + len(FENCE))


def _classify_fence(text: str, fence_at: int, final: bool) -> _Fence:
    """Classify the fence opening at *fence_at*. With *final*, never PENDING."""
    n = len(text)
    i = fence_at + len(FENCE)

    m = _JSON_TAG.match(text, i)
    if m:
        i = m.end()
    elif not final and n - i < 4 and "json".startswith(text[i:].lower()):
        return _Fence(_FenceKind.PENDING)

    body = _skip_ws(text, i)
    if body == n:
        return _other(text, i, final) if final else _Fence(_FenceKind.PENDING)
    if text[body] != "{":
        return _other(text, i, final)

    span = find_json_object(text, body)
    if span is None:
        # Unclosed object. A fence outside its strings means the body was never
        # valid JSON; backticks inside a string value are still plan content.
        close = find_unquoted(text, FENCE, body)
        if close != -1:
            return _Fence(_FenceKind.OTHER, close + len(FENCE))
        if final:
            return _other(text, i, final)
        return _Fence(_FenceKind.PENDING)

    after = _skip_ws(text, span[1])
    if text.startswith(FENCE, after):
        return _Fence(_FenceKind.CANDIDATE, after + len(FENCE), span[0], span[1])
    if not final and FENCE.startswith(text[after:]):
        return _Fence(_FenceKind.PENDING)
    return _other(text, span[1], final)


def _trailing_backticks(text: str, start: int) -> int:
    tail = text[start:]
    return len(tail) - len(tail.rstrip("`"))


# ---------------------------------------------------------------------------
# Incremental extractor
# ---------------------------------------------------------------------------


@dataclass
class IncrementalScanState:
    """Per-stream extraction state. Everything before ``offset`` is final."""

    offset: int = 0
    pending_fence: int | None = None
    skip_next_fence: bool = False
    plans: list[PlanSegment] = field(default_factory=list)


class IncrementalPlanExtractor:
    """
    Append-only plan extraction over a growing buffer.

    Usage::

        extractor = IncrementalPlanExtractor()
        for snapshot in growing_text:
            for segment in extractor.feed(snapshot):
                render(segment)
        for segment in extractor.finish(final_text):
            render(segment)

    *max_pending_chars* bounds how long an unterminated fence may stay
    pending; past it the fence is released as plain text and its closing
    fence, when it arrives, is treated as prose.
    """

    def __init__(
        self,
        state: IncrementalScanState | None = None,
        max_pending_chars: int | None = None,
    ) -> None:
        self.state = state or IncrementalScanState()
        self._max_pending_chars = max_pending_chars

    @property
    def plans(self) -> list[PlanSegment]:
        return list(self.state.plans)

    def finish(self, buffer: str) -> list[ContentSegment]:
        """Flush everything, resolving any pending fence as plain text."""
        return self.feed(buffer, final=True)

    def feed(self, buffer: str, *, final: bool = False) -> list[ContentSegment]:
        st = self.state
        if len(buffer) < st.offset:
            raise ValueError(
                f"Buffer shrank below the confirmed offset ({len(buffer)} < {st.offset})"
            )

        out: list[ContentSegment] = []
        pos = st.offset

        while True:
            if st.skip_next_fence:
                close = buffer.find(FENCE, pos)
                if close == -1:
                    hold = 0 if final else _trailing_backticks(buffer, pos)
                    self._emit_text(out, buffer, len(buffer) - hold)
                    break
                st.skip_next_fence = False
                pos = close + len(FENCE)
                continue

            fence_at = buffer.find(FENCE, pos)
            if fence_at == -1:
                hold = 0 if final else _trailing_backticks(buffer, pos)
                self._emit_text(out, buffer, len(buffer) - hold)
                st.pending_fence = None
                break

            fence = _classify_fence(buffer, fence_at, final)

            if fence.kind is _FenceKind.CANDIDATE:
                self._emit_text(out, buffer, fence_at)
                out.append(self._resolve_candidate(buffer, fence_at, fence))
                st.offset = pos = fence.end
                st.pending_fence = None
                continue

            if fence.kind is _FenceKind.OTHER and fence.end != -1:
                pos = fence.end
                continue

            # Pending: hold everything from the fence onwards.
            self._emit_text(out, buffer, fence_at)
            st.pending_fence = fence_at
            if (
                self._max_pending_chars is not None
                and len(buffer) - fence_at > self._max_pending_chars
            ):
                logger.warning(
                    "pending_fence_released",
                    fence_at=fence_at,
                    pending_chars=len(buffer) - fence_at,
                )
                hold = _trailing_backticks(buffer, fence_at + len(FENCE))
                self._emit_text(out, buffer, len(buffer) - hold)
                st.pending_fence = None
                st.skip_next_fence = True
            break

        return out

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _emit_text(self, out: list[ContentSegment], buffer: str, end: int) -> None:
        st = self.state
        if end > st.offset:
            out.append(TextSegment(text=buffer[st.offset : end], start=st.offset, end=end))
            st.offset = end

    def _resolve_candidate(self, buffer: str, fence_at: int, fence: _Fence) -> ContentSegment:
        raw = buffer[fence_at : fence.end]
        plan = parse_plan_json(buffer[fence.obj_start : fence.obj_end])
        if plan is None:
            return TextSegment(text=raw, start=fence_at, end=fence.end)

        segment = PlanSegment(plan=plan, raw=raw, start=fence_at, end=fence.end)
        self.state.plans.append(segment)
        logger.debug(
            "plan_confirmed",
            start=fence_at,
            end=fence.end,
            workstreams=len(plan.workstreams),
        )
        return segment


# ---------------------------------------------------------------------------
# Batch mode
# ---------------------------------------------------------------------------


def extract_plan_blocks(text: str) -> list[ContentSegment]:
    """Split a complete text into text and plan segments covering ``[0, len(text))``."""
    if not text:
        return [TextSegment(text="", start=0, end=0)]
    return IncrementalPlanExtractor().finish(text)


def parse_project_plan(text: str) -> ProjectPlan | None:
    """Return the first valid plan found in any fenced block of *text*."""
    for segment in extract_plan_blocks(text):
        if isinstance(segment, PlanSegment):
            return segment.plan
    return None


def render_plan_block(plan: ProjectPlan) -> str:
    """Canonical fenced ``json`` block for *plan*."""
    return plan.to_fenced_block()
