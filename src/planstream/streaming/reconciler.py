"""
Delta reconciliation — provider chunks in, ordered text deltas out.

Providers stream in one of two shapes:

  - Append mode (OpenAI, Groq): every chunk carries a fragment to append.
    The delta is the fragment itself.
  - Cumulative mode (Gemini ``streamGenerateContent``): every JSON object in
    the response repeats the whole text generated so far, sometimes with
    small rewrites. Objects may be split across network reads, so raw bytes
    are buffered and complete objects are cut out with the JSON scanner.

Both reconcilers keep all their state on the instance (one per stream) and
expose the same surface:

  - ``feed(...)`` — returns the deltas to forward now, in order.
  - ``finish()`` — returns the authoritative final text, or raises
    EmptyResponseError when no delta was ever emitted.

The sum of emitted deltas equals the final text in append mode. In
cumulative mode the final text is the longest snapshot seen, which protects
against a truncated last chunk shrinking the result.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from planstream.core.exceptions import EmptyResponseError
from planstream.plans.scanner import find_json_object

logger = structlog.get_logger()


class DeltaReconciler(Protocol):
    """What the chat engine needs from a reconciler."""

    @property
    def deltas_emitted(self) -> int: ...

    def feed(self, chunk: str) -> list[str]: ...

    def finish(self) -> str: ...


# ---------------------------------------------------------------------------
# Append mode
# ---------------------------------------------------------------------------


class AppendReconciler:
    """Reconciler for providers that stream true deltas."""

    def __init__(self, provider: str = "") -> None:
        self._provider = provider
        self._parts: list[str] = []

    @property
    def deltas_emitted(self) -> int:
        return len(self._parts)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, fragment: str | None) -> list[str]:
        """Forward *fragment* as a delta; empty fragments produce nothing."""
        if not fragment:
            return []
        self._parts.append(fragment)
        return [fragment]

    def finish(self) -> str:
        if not self._parts:
            raise EmptyResponseError(provider=self._provider)
        return self.text


# ---------------------------------------------------------------------------
# Cumulative mode
# ---------------------------------------------------------------------------


@dataclass
class StreamState:
    """
    Snapshot bookkeeping for one cumulative stream.

    ``last_sent_text`` is the cumulative text the consumer has been shown;
    ``longest_text`` is the longest snapshot observed, whatever its shape.
    """

    last_sent_text: str = ""
    longest_text: str = ""
    deltas_emitted: int = 0

    @property
    def final_text(self) -> str:
        if len(self.longest_text) > len(self.last_sent_text):
            return self.longest_text
        return self.last_sent_text


def gemini_candidate_text(obj: dict[str, Any]) -> str | None:
    """``candidates[0].content.parts[0].text``, or None when the shape differs."""
    try:
        text = obj["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


def reconcile_snapshot(state: StreamState, full_text: str) -> str | None:
    """
    Classify one cumulative snapshot against *state* and return the delta.

    Returns None when nothing new should be shown. The visible transcript
    never shrinks: shorter snapshots only feed ``longest_text``.
    """
    if len(full_text) > len(state.longest_text):
        state.longest_text = full_text

    last = state.last_sent_text
    if not last:
        if not full_text:
            return None
        state.last_sent_text = full_text
        state.deltas_emitted += 1
        return full_text

    if len(full_text) > len(last):
        if not full_text.startswith(last):
            # Earlier content was revised; the suffix past the old length is best effort.
            logger.debug("snapshot_prefix_mismatch", previous=len(last), current=len(full_text))
        state.last_sent_text = full_text
        state.deltas_emitted += 1
        return full_text[len(last) :]

    if len(full_text) == len(last) and full_text != last:
        state.last_sent_text = full_text
    return None


class CumulativeReconciler:
    """
    Reconciler for providers whose chunks repeat the whole text so far.

    Usage::

        rec = CumulativeReconciler(provider="gemini")
        async for raw in resp.aiter_bytes():
            for delta in rec.feed(raw):
                emit(delta)
        final = rec.finish()
    """

    def __init__(
        self,
        state: StreamState | None = None,
        *,
        provider: str = "",
        extract_text: Callable[[dict[str, Any]], str | None] = gemini_candidate_text,
    ) -> None:
        self.state = state or StreamState()
        self._provider = provider
        self._extract_text = extract_text
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def deltas_emitted(self) -> int:
        return self.state.deltas_emitted

    def feed(self, chunk: bytes | str) -> list[str]:
        """Buffer *chunk*, consume every complete object in it, return the deltas."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        return self._drain()

    def finish(self) -> str:
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._buffer += tail
            self._drain()
        if self._buffer.strip(" \r\n\t,]"):
            logger.debug("stream_tail_discarded", chars=len(self._buffer))
        self._buffer = ""

        if self.state.deltas_emitted == 0:
            raise EmptyResponseError(provider=self._provider)
        return self.state.final_text

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _drain(self) -> list[str]:
        deltas: list[str] = []
        while True:
            span = find_json_object(self._buffer)
            if span is None:
                break
            raw = self._buffer[span[0] : span[1]]
            self._buffer = self._buffer[span[1] :]

            text = self._snapshot_text(raw)
            if text is None:
                continue
            delta = reconcile_snapshot(self.state, text)
            if delta:
                deltas.append(delta)
        return deltas

    def _snapshot_text(self, raw: str) -> str | None:
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("chunk_skipped", reason="invalid_json", chars=len(raw))
            return None
        if not isinstance(obj, dict):
            return None
        text = self._extract_text(obj)
        if text is None:
            logger.debug("chunk_skipped", reason="unexpected_shape", keys=sorted(obj)[:5])
        return text
