"""
OpenAI provider — Chat Completions API via httpx.

Uses https://platform.openai.com/docs/api-reference/chat. No SDK dependency,
raw httpx calls. Streaming is SSE in append mode: every ``data:`` line
carries ``choices[0].delta.content`` and the stream ends with ``[DONE]``.

``stream_chat_completions`` is shared with the Groq provider, whose API is
wire-compatible.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import structlog

from planstream.core.constants import DEFAULT_TIMEOUT_SECONDS
from planstream.core.exceptions import ProviderError
from planstream.providers.base import (
    AVAILABLE_MODELS,
    DEFAULT_MODELS,
    Message,
    ProviderKind,
    raise_for_provider_status,
)
from planstream.streaming.reconciler import AppendReconciler, DeltaReconciler
from planstream.streaming.sse import chat_delta_content, is_done_line, parse_data_line

logger = structlog.get_logger()

_API_URL = "https://api.openai.com/v1/chat/completions"


async def stream_chat_completions(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    reconciler: DeltaReconciler,
    provider: str,
) -> AsyncIterator[str]:
    """POST *payload* with ``stream: true`` and yield the reconciled deltas."""
    try:
        async with client.stream("POST", url, json=payload, headers=headers) as resp:
            await raise_for_provider_status(resp, provider)
            async for line in resp.aiter_lines():
                if is_done_line(line):
                    break
                event = parse_data_line(line)
                if event is None:
                    continue
                for delta in reconciler.feed(chat_delta_content(event)):
                    yield delta
    except httpx.HTTPError as exc:
        raise ProviderError(f"{provider} transport error: {exc}", provider=provider) from exc


def completion_text(data: dict[str, Any]) -> str:
    """``choices[0].message.content`` of a non-streamed completion, or ''."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content if isinstance(content, str) else ""


class OpenAIProvider:
    """OpenAI GPT API provider."""

    kind = ProviderKind.OPENAI

    def __init__(
        self,
        api_key: str,
        model: str = "",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model or DEFAULT_MODELS[self.kind]
        self._timeout = timeout
        self._client = client

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
            raise ProviderError(f"openai transport error: {exc}", provider=self.kind.value) from exc
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
        # Newer models only accept the default temperature, so it is sent only when asked for.
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if stream:
            payload["stream"] = True
        return payload
