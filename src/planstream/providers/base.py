"""
LLM provider capability interface.

Every provider offers the same three capabilities:

  1. ``send_message`` — one complete, non-streamed answer
  2. ``stream_message`` — the answer as ordered text deltas
  3. ``list_models`` — the model identifiers it can serve

Providers differ in how their wire streams: OpenAI and Groq send true deltas,
Gemini repeats the whole text in each chunk. That difference is hidden
behind ``new_reconciler()``: the caller asks the provider for a fresh
reconciler per stream, passes it to ``stream_message`` and reads the
authoritative final text from ``reconciler.finish()`` once iteration ends.

Providers are stateless across generations; conversation history is owned by
the caller. Concrete providers are selected by ``ProviderKind`` through
``create_provider``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from planstream.core.constants import DEFAULT_SIMULATED_CHUNK_CHARS, DEFAULT_TIMEOUT_SECONDS
from planstream.core.exceptions import ProviderError, ProviderNotConfiguredError
from planstream.streaming.reconciler import DeltaReconciler

# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class ProviderKind(StrEnum):
    GEMINI = "gemini"
    OPENAI = "openai"
    GROQ = "groq"


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "user" | "assistant" | "system"
    content: str = ""


# Models each provider serves; the default is listed separately because it
# is not always among the advertised ones.
AVAILABLE_MODELS: dict[ProviderKind, list[str]] = {
    ProviderKind.GEMINI: [
        "gemini-3-pro-preview",
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.0-flash-exp",
    ],
    ProviderKind.OPENAI: [
        "gpt-5-mini",
        "gpt-4o-mini",
        "gpt-4o",
    ],
    ProviderKind.GROQ: [
        "llama-3.3-70b-versatile",
        "llama-3.1-8b-instant",
        "mixtral-8x7b-32768",
        "gemma2-9b-it",
    ],
}

DEFAULT_MODELS: dict[ProviderKind, str] = {
    ProviderKind.GEMINI: "gemini-2.5-flash",
    ProviderKind.OPENAI: "gpt-5-nano",
    ProviderKind.GROQ: "llama-3.3-70b-versatile",
}


# ---------------------------------------------------------------------------
# Capability interface
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Structural interface every provider satisfies."""

    kind: ProviderKind
    model: str

    async def send_message(
        self,
        messages: Sequence[Message],
        *,
        temperature: float | None = None,
    ) -> str: ...

    def stream_message(
        self,
        messages: Sequence[Message],
        reconciler: DeltaReconciler,
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]: ...

    def new_reconciler(self) -> DeltaReconciler: ...

    def list_models(self) -> list[str]: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Routing + factory
# ---------------------------------------------------------------------------


def provider_for_model(model: str) -> ProviderKind:
    """
    Route a model identifier to the provider that serves it.

    ``*gemini*`` → Gemini, ``gpt-*`` → OpenAI, ``llama-*`` / ``mixtral-*`` /
    ``gemma*`` → Groq. Anything else falls back to Gemini.
    """
    name = model.lower()
    if "gemini" in name:
        return ProviderKind.GEMINI
    if name.startswith("gpt-"):
        return ProviderKind.OPENAI
    if name.startswith(("llama-", "mixtral-", "gemma")):
        return ProviderKind.GROQ
    return ProviderKind.GEMINI


def create_provider(
    kind: ProviderKind | str,
    api_key: str,
    model: str = "",
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: Any = None,
    **options: Any,
) -> LLMProvider:
    """
    Instantiate the provider for *kind*.

    *client* injects a pre-built ``httpx.AsyncClient`` (tests pass one with a
    ``MockTransport``). Extra *options* go to the provider constructor.
    """
    try:
        kind = ProviderKind(str(kind).lower())
    except ValueError:
        supported = ", ".join(k.value for k in ProviderKind)
        raise ProviderError(f"Unknown provider {kind!r}. Supported: {supported}") from None

    if not api_key:
        raise ProviderNotConfiguredError(
            f"No API key configured for {kind.value}", provider=kind.value
        )

    if kind is ProviderKind.GEMINI:
        from planstream.providers.gemini import GeminiProvider

        return GeminiProvider(api_key, model, timeout=timeout, client=client, **options)
    if kind is ProviderKind.OPENAI:
        from planstream.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key, model, timeout=timeout, client=client, **options)

    from planstream.providers.groq import GroqProvider

    return GroqProvider(api_key, model, timeout=timeout, client=client, **options)


# ---------------------------------------------------------------------------
# Simulated streaming
# ---------------------------------------------------------------------------


def simulate_stream(text: str, chunk_chars: int = DEFAULT_SIMULATED_CHUNK_CHARS) -> list[str]:
    """Split a complete response into fixed-size deltas for replay."""
    if chunk_chars < 1:
        raise ValueError("chunk_chars must be positive")
    return [text[i : i + chunk_chars] for i in range(0, len(text), chunk_chars)]


# ---------------------------------------------------------------------------
# HTTP helpers shared by the httpx-based providers
# ---------------------------------------------------------------------------


async def raise_for_provider_status(resp: Any, provider: str) -> None:
    """Raise ProviderError for a non-2xx response, quoting the start of its body."""
    if resp.is_success:
        return
    await resp.aread()
    body = resp.text[:300]
    raise ProviderError(
        f"{provider} API error {resp.status_code}: {body}",
        provider=provider,
        status_code=resp.status_code,
    )
