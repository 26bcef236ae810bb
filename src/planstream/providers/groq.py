"""
Groq provider — OpenAI-compatible Chat Completions API via httpx.

Two request-shaping rules differ from OpenAI:

  - System messages are not sent as such; their contents are joined and
    prepended to the first user message.
  - Temperature follows the request type: the plan temperature when any
    system message mentions JSON (a structured plan is expected), the
    conversational temperature otherwise. An explicit temperature wins.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import structlog

from planstream.core.constants import DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT_SECONDS, PLAN_TEMPERATURE
from planstream.core.exceptions import ProviderError
from planstream.providers.base import (
    AVAILABLE_MODELS,
    DEFAULT_MODELS,
    Message,
    ProviderKind,
    raise_for_provider_status,
)
from planstream.providers.openai import completion_text, stream_chat_completions
from planstream.streaming.reconciler import AppendReconciler, DeltaReconciler

logger = structlog.get_logger()

_API_URL = "https://api.groq.com/openai/v1/chat/completions"


def fold_system_messages(messages: Sequence[Message]) -> list[dict[str, str]]:
    """Drop system messages, prepending their text to the first user message."""
    system = [m.content for m in messages if m.role == "system"]
    converted = [{"role": m.role, "content": m.content} for m in messages if m.role != "system"]
    if system and converted and converted[0]["role"] == "user":
        converted[0]["content"] = "\n\n".join(system) + "\n\n" + converted[0]["content"]
    return converted


def expects_json(messages: Sequence[Message]) -> bool:
    return any(m.role == "system" and "json" in m.content.lower() for m in messages)


class GroqProvider:
    """Groq API provider."""

    kind = ProviderKind.GROQ

    def __init__(
        self,
        api_key: str,
        model: str = "",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        plan_temperature: float = PLAN_TEMPERATURE,
    ) -> None:
        self._api_key = api_key
        self.model = model or DEFAULT_MODELS[self.kind]
        self._timeout = timeout
        self._client = client
        self._temperature = temperature
        self._plan_temperature = plan_temperature

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send_message(
        self,
        messages: Sequence[Message],
        *,
        temperature: float | None = None,
    ) -> str:
        client = await self._ensure_client()
        payload = self._build_payload(messages, temperature, stream=False)
        try:
            resp = await client.post(_API_URL, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise ProviderError(f"groq transport error: {exc}", provider=self.kind.value) from exc
        await raise_for_provider_status(resp, self.kind.value)
        return completion_text(resp.json())

    async def stream_message(
        self,
        messages: Sequence[Message],
        reconciler: DeltaReconciler,
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        client = await self._ensure_client()
        payload = self._build_payload(messages, temperature, stream=True)
        async for delta in stream_chat_completions(
            client, _API_URL, payload, self._headers(), reconciler, self.kind.value
        ):
            yield delta

    def new_reconciler(self) -> DeltaReconciler:
        return AppendReconciler(provider=self.kind.value)

    def list_models(self) -> list[str]:
        return list(AVAILABLE_MODELS[self.kind])

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(
        self,
        messages: Sequence[Message],
        temperature: float | None,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        if temperature is None:
            temperature = self._plan_temperature if expects_json(messages) else self._temperature
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": fold_system_messages(messages),
            "temperature": temperature,
        }
        if stream:
            payload["stream"] = True
        logger.debug("groq_payload_built", messages=len(payload["messages"]), temperature=temperature)
        return payload
