"""
Project plan data model.

A plan is a typed tree: ProjectPlan -> Workstream -> Deliverable. The models
are strictly typed (Pydantic v2, StrictStr) so that a JSON object produced by
an LLM is accepted only when every title and description is a real string.
Extra keys are ignored rather than rejected; models routinely add their own.

ContentSegment is the unit the extractor returns: either a run of prose or a
validated plan, each carrying the half-open [start, end) span it came from.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, Field, StrictStr, field_validator

NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]

FENCE = "```"


class Deliverable(BaseModel):
    """A concrete output of a workstream."""

    model_config = {"extra": "ignore"}

    title: NonEmptyStr
    description: NonEmptyStr
    outcome: StrictStr | None = None
    """Measurable outcome or KPI."""

    timeline: StrictStr | None = None
    """Dates or duration."""

    dependencies: StrictStr | None = None
    """Other deliverables or workstreams this one depends on."""


class Workstream(BaseModel):
    """A named group of deliverables."""

    model_config = {"extra": "ignore"}

    title: StrictStr
    description: StrictStr
    deliverables: list[Deliverable]


class ProjectPlan(BaseModel):
    """Ordered workstreams; order is display order, titles need not be unique."""

    model_config = {"extra": "ignore"}

    workstreams: list[Workstream]

    @field_validator("workstreams", mode="before")
    @classmethod
    def require_list(cls, v: Any) -> Any:
        if not isinstance(v, list):
            raise ValueError("workstreams must be an array")
        return v

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def to_json(self) -> str:
        """Standard two-space-indented JSON serialisation."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    def to_fenced_block(self) -> str:
        """Canonical fenced form: ```json, the JSON body, closing ```."""
        return f"{FENCE}json\n{self.to_json()}\n{FENCE}"


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


class SegmentKind(StrEnum):
    TEXT = "text"
    PLAN = "plan"


@dataclass(frozen=True)
class TextSegment:
    """A run of prose, copied verbatim from the source."""

    text: str
    start: int
    end: int
    kind: SegmentKind = SegmentKind.TEXT


@dataclass(frozen=True)
class PlanSegment:
    """A fenced region that decoded and validated as a ProjectPlan."""

    plan: ProjectPlan
    raw: str
    start: int
    end: int
    kind: SegmentKind = SegmentKind.PLAN


ContentSegment = TextSegment | PlanSegment
