"""
Google Gemini provider — Generative Language API via httpx.

Uses https://ai.google.dev/api/generate-content. No SDK dependency, raw
httpx calls.

``streamGenerateContent`` (without ``alt=sse``) returns a JSON array whose
elements arrive over time, and each element repeats the whole text generated
so far. The raw bytes go to a CumulativeReconciler, which cuts complete
objects out of the buffer and turns successive snapshots into deltas.

With ``simulated=True`` the provider instead fetches the complete answer with
``generateContent`` and replays it as fixed-size deltas, for deployments
where the native stream is unreliable.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import structlog

from planstream.core.constants import DEFAULT_SIMULATED_CHUNK_CHARS, DEFAULT_TIMEOUT_SECONDS
from planstream.core.exceptions import ProviderError
from planstream.providers.base import (
    AVAILABLE_MODELS,
    DEFAULT_MODELS,
    Message,
    ProviderKind,
    raise_for_provider_status,
    simulate_stream,
)
from planstream.streaming.reconciler import (
    AppendReconciler,
    CumulativeReconciler,
    DeltaReconciler,
    gemini_candidate_text,
)

logger = structlog.get_logger()

_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiProvider:
    """Google Gemini API provider."""

    kind = ProviderKind.GEMINI

    def __init__(
        self,
        api_key: str,
        model: str = "",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        simulated: bool = False,
        chunk_chars: int = DEFAULT_SIMULATED_CHUNK_CHARS,
    ) -> None:
        self._api_key = api_key
        self.model = model or DEFAULT_MODELS[self.kind]
        self._timeout = timeout
        self._client = client
        self._simulated = simulated
        self._chunk_chars = chunk_chars

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
        url = f"{_API_BASE}/{self.model}:generateContent"
        try:
            resp = await client.post(
                url,
                json=self._build_payload(messages, temperature),
                params={"key": self._api_key},
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"gemini transport error: {exc}", provider=self.kind.value) from exc
        await raise_for_provider_status(resp, self.kind.value)
        data = resp.json()
        return (gemini_candidate_text(data) if isinstance(data, dict) else None) or ""

    async def stream_message(
        self,
        messages: Sequence[Message],
        reconciler: DeltaReconciler,
        *,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        if self._simulated:
            text = await self.send_message(messages, temperature=temperature)
            logger.debug("gemini_simulated_stream", chars=len(text), chunk_chars=self._chunk_chars)
            for piece in simulate_stream(text, self._chunk_chars):
                for delta in reconciler.feed(piece):
                    yield delta
            return

        client = await self._ensure_client()
        url = f"{_API_BASE}/{self.model}:streamGenerateContent"
        try:
            async with client.stream(
                "POST",
                url,
                json=self._build_payload(messages, temperature),
                params={"key": self._api_key},
                headers={"Content-Type": "application/json"},
            ) as resp:
                await raise_for_provider_status(resp, self.kind.value)
                async for raw in resp.aiter_bytes():
                    for delta in reconciler.feed(raw):  # type: ignore[arg-type]
                        yield delta
        except httpx.HTTPError as exc:
            raise ProviderError(f"gemini transport error: {exc}", provider=self.kind.value) from exc

    def new_reconciler(self) -> DeltaReconciler:
        if self._simulated:
            return AppendReconciler(provider=self.kind.value)
        return CumulativeReconciler(provider=self.kind.value)

    def list_models(self) -> list[str]:
        return list(AVAILABLE_MODELS[self.kind])

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_payload(
        self,
        messages: Sequence[Message],
        temperature: float | None,
    ) -> dict[str, Any]:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        payload: dict[str, Any] = {"contents": self._convert_messages(messages)}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if temperature is not None:
            payload["generationConfig"] = {"temperature": temperature}
        return payload

    @staticmethod
    def _convert_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                continue
            role = "model" if msg.role == "assistant" else "user"
            result.append({"role": role, "parts": [{"text": msg.content}]})
        return result
