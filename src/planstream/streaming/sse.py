"""
Server-sent-events framing.

Inbound: OpenAI-compatible providers stream ``data: {...}`` lines terminated
by ``data: [DONE]``. ``parse_data_line`` turns one line into a decoded event
dict, or None for anything that is not a usable data line.

Outbound: ``format_event`` renders one ``event:``/``data:`` frame for the
transport layer.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

logger = structlog.get_logger()

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def is_done_line(line: str) -> bool:
    return line.startswith(DATA_PREFIX) and line[len(DATA_PREFIX) :].strip() == DONE_SENTINEL


def parse_data_line(line: str) -> dict[str, Any] | None:
    """
    Decode one SSE line.

    Returns the JSON object carried by a ``data:`` line, None for comments,
    blank lines, other fields and undecodable payloads. The ``[DONE]``
    sentinel is not an event either; check it with ``is_done_line``.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    raw = line[len(DATA_PREFIX) :].strip()
    if raw == DONE_SENTINEL:
        return None
    try:
        event = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("sse_line_skipped", length=len(raw))
        return None
    return event if isinstance(event, dict) else None


def chat_delta_content(event: dict[str, Any]) -> str:
    """Text fragment of an OpenAI-style chunk: ``choices[0].delta.content``."""
    choices = event.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else ""


def format_event(event: str, data: dict[str, Any]) -> str:
    """Render one outbound SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"
