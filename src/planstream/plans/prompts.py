"""
Prompt shaping for conversational and plan-producing turns.

A conversational turn gets the base system prompt, which tells the model to
offer a plan rather than produce one. A plan turn gets the strict plan system
prompt and the final user message is rewritten around the resolved goal so
the model answers with the canonical fenced JSON block.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from planstream.plans.intent import (
    PLAN_OFFER_PHRASE,
    PlanRequestDecision,
    classify_plan_request,
    last_assistant_message,
    resolve_plan_goal,
)
from planstream.providers.base import Message

BASE_SYSTEM_PROMPT = f"""\
You are a professional project planning assistant. Your job is to help users think in terms of structured, actionable plans.

APPROACH:
- Be direct and concise. Keep greetings brief (1-2 sentences max).
- First, respond conversationally in 1-3 sentences: clarify, summarise, and give 1-2 concrete suggestions.
- Always think in terms of deliverables, timelines, and outcomes, but do NOT always output a full project plan.
- If the user explicitly asks for a "project plan", "roadmap", "implementation plan" or similar, then a structured project plan is appropriate.
- If the user describes goals, challenges, or long-term outcomes but does NOT explicitly ask for a plan:
  - Give a short, insightful response (1-3 sentences).
  - Then explicitly OFFER: "{PLAN_OFFER_PHRASE}"
- Once you have offered to create a plan and the user provides information or says "ok"/"yes", STOP asking questions and generate the plan. Use what you have and make reasonable assumptions."""

PLAN_SYSTEM_PROMPT = """\
You are a professional project planning assistant. Your job is to create structured, actionable project plans quickly and directly.

RESPONSE FORMAT:
- You MUST provide the project plan as a JSON code block starting with ```json and ending with ```.
- This is the ONLY acceptable format.
- DO NOT use plain text, markdown lists, "Workstream A/B/C", or any other format.

APPROACH:
- Create the plan immediately based on what the user tells you.
- Infer missing details from context. Make reasonable assumptions; DO NOT ask for more information.
- Keep intro text minimal (1-2 sentences max) before the plan.
- Keep outro text minimal (1-2 sentences max) after the plan, inviting the user to review it and give feedback.

FORMAT:
```json
{
  "workstreams": [...]
}
```

Break the work into workstreams (3-8 or more) with 2-5 deliverables each. Each deliverable description must be outcome-focused."""

_PLAN_USER_TEMPLATE = """\
Create a project plan for: "{goal}"

FORMAT REQUIREMENT: You MUST provide the plan as a JSON code block. Start with ```json, end with ```.

DO NOT:
- Provide plans as text lists, markdown, bullet points, numbered lists, or "Workstream A/B/C" format
- Show deliverables as bullet points or numbered lists outside JSON

DO:
- Provide a brief intro (1-2 sentences max)
- Then immediately provide the plan in JSON format:
```json
{{
  "workstreams": [
    {{
      "title": "Workstream Name",
      "description": "One well defined sentence describing this workstream.",
      "deliverables": [
        {{
          "title": "Deliverable Name",
          "description": "One well defined sentence describing this deliverable."
        }}
      ]
    }}
  ]
}}
```

Only title and description are required for deliverables.

Deliverable descriptions must describe WHAT will be delivered (the outcome), NOT what actions to take.
- CORRECT: "A comprehensive market analysis report with competitor insights"
- WRONG: "Research and analyze the market"
"""


def build_plan_user_message(goal: str) -> str:
    """The final user message of a plan turn, built around *goal*."""
    return _PLAN_USER_TEMPLATE.format(goal=goal)


@dataclass
class PreparedConversation:
    """Messages to send for one turn, plus how the turn was classified."""

    messages: list[Message]
    decision: PlanRequestDecision
    goal: str = ""

    @property
    def plan_requested(self) -> bool:
        return self.decision.requested


def prepare_conversation(history: Sequence[Message], message: str) -> PreparedConversation:
    """
    Build the message list for a new user *message* following *history*.

    *history* holds earlier turns only. The returned list starts with the
    appropriate system prompt and ends with the (possibly rewritten) user
    message; *history* itself is not modified.
    """
    decision = classify_plan_request(message, last_assistant_message(history))
    turns = [Message(role=m.role, content=m.content) for m in history]

    if not decision.requested:
        return PreparedConversation(
            messages=[
                Message(role="system", content=BASE_SYSTEM_PROMPT),
                *turns,
                Message(role="user", content=message),
            ],
            decision=decision,
        )

    goal = resolve_plan_goal(message, history, decision.intent)
    content = build_plan_user_message(goal)
    return PreparedConversation(
        messages=[
            Message(role="system", content=PLAN_SYSTEM_PROMPT),
            *turns,
            Message(role="user", content=content),
        ],
        decision=decision,
        goal=goal,
    )
