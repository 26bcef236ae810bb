"""
LLM providers — Gemini, OpenAI and Groq via httpx.

Each provider normalises its vendor's streaming wire into ordered text deltas
through a reconciler (append mode for OpenAI/Groq, cumulative mode for
Gemini). Use ``create_provider(kind, api_key, model)`` to obtain one.
"""

from planstream.providers.base import (  # noqa: F401
    LLMProvider,
    Message,
    ProviderKind,
    create_provider,
    provider_for_model,
)
