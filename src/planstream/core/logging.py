"""
Structured logging configuration for PlanStream.

Uses structlog so every log entry is a key-value event. Generation-scoped
context (stream_id, provider, model) is bound once per generation by the
chat engine.

Setup:
    The CLI calls ``configure_logging()`` at startup, and the chat command
    re-applies the ``[logging]`` config section once the config is loaded
    (``configure_from_config``). Every module then uses::

        import structlog
        logger = structlog.get_logger()

    Bound loggers carry context automatically::

        log = logger.bind(stream_id="abc123", provider="gemini")
        log.info("stream_completed", deltas=42, final_chars=1830)

Response text is never logged, only its length. API keys that end up in an
event (an ``api_key`` field, or a vendor-shaped key inside an error string)
are masked before rendering.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from planstream.core.config import LoggingConfig

HANDLER_NAME = "planstream"

_NOISY_LOGGERS = ("httpx", "httpcore")

_SECRET_FIELDS = frozenset({"api_key", "authorization", "x-goog-api-key"})

# OpenAI, Groq and Gemini key shapes
_KEY_PATTERN = re.compile(r"\b(?:sk-[A-Za-z0-9_-]{8,}|gsk_[A-Za-z0-9]{8,}|AIza[A-Za-z0-9_-]{20,})")

_MASK = "[REDACTED]"


def mask_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: mask API keys in field values."""
    for key, value in event_dict.items():
        if key.lower() in _SECRET_FIELDS:
            event_dict[key] = _MASK
        elif isinstance(value, str) and _KEY_PATTERN.search(value):
            event_dict[key] = _KEY_PATTERN.sub(_MASK, value)
    return event_dict


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structlog + stdlib logging for the process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, emit JSON lines. If False, emit coloured
                     human-readable output.

    Calling it again reconfigures in place: the PlanStream handler is reused
    and takes the new format and the current ``sys.stderr``.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    root = logging.getLogger()
    handler = _planstream_handler(root)
    handler.setFormatter(formatter)
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_from_config(
    config: LoggingConfig,
    *,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Apply a ``[logging]`` section. Explicit *level* / *json_output* win over it."""
    configure_logging(
        level=level or config.level,
        json_output=config.format == "json" if json_output is None else json_output,
    )


def _planstream_handler(root: logging.Logger) -> logging.StreamHandler:
    for existing in root.handlers:
        if existing.get_name() == HANDLER_NAME and isinstance(existing, logging.StreamHandler):
            existing.setStream(sys.stderr)
            return existing

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    root.addHandler(handler)
    return handler
