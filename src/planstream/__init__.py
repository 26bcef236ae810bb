"""
PlanStream — streaming LLM output normalisation and project-plan extraction.

PlanStream sits between an LLM provider's raw streaming wire and whatever
transports the answer to a user. It turns provider chunks into ordered text
deltas, then finds (or recovers) a structured project plan in the final text
and rewrites it into a canonical fenced JSON block.

Package layout (src/planstream/):
  core/       — constants, exceptions, logging, config
  plans/      — plan models, JSON scanner, extractor, recovery, intent
  streaming/  — delta reconcilers (append + cumulative snapshot)
  providers/  — Gemini, OpenAI and Groq adapters behind one protocol
  chat/       — per-generation orchestration and terminal events
  cli/        — Click CLI entry point
"""

__version__ = "0.4.0"
__all__ = ["__version__"]
