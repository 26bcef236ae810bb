"""
Natural-language plan recovery.

When a response should have carried a fenced JSON plan but does not, this
module tries to rebuild the plan from the prose and splice the canonical
fenced block back in where the prose plan was.

Pipeline (``post_process_plan_response``):

  1. A valid fenced plan is already present → return the text unchanged.
  2. A bare JSON object with ``"workstreams"`` validates as a plan → wrap it
     in the canonical fence, keeping the surrounding text.
  3. Heuristic strategies, tried in priority order; the first whose result
     clears the acceptance bar wins:
       a. numbered bold headers   ``1. **Title** rest of line`` + bullets
       b. bold headers with an explicit ``**Deliverables:**`` marker
       c. numbered items under a heading that mentions "Plan"
  4. The recognised prose span is replaced by the fenced block. A short
     lead-in from before the span survives, and a trailing remark survives
     only when it reads as a closing pleasantry.

Acceptance bar: at least two workstreams, and at least one of them with a
real deliverable. Below the bar the original text is returned untouched.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from planstream.core.constants import (
    CLOSING_REMARK_MAX_CHARS,
    DESCRIPTION_PREVIEW_CHARS,
    FALLBACK_DESCRIPTION_CHARS,
    LEAD_IN_FALLBACK_CHARS,
    LEAD_IN_MAX_CHARS,
    MAX_DELIVERABLES_PER_WORKSTREAM,
    MAX_PLAN_HEADING_ITEMS,
    MIN_BULLET_CHARS,
    MIN_RECOVERED_WORKSTREAMS,
    TITLE_PREVIEW_CHARS,
)
from planstream.plans.extractor import parse_plan_json, parse_project_plan
from planstream.plans.models import Deliverable, ProjectPlan, Workstream
from planstream.plans.scanner import iter_json_objects

logger = structlog.get_logger()

_DEFAULT_WORKSTREAM_DESCRIPTION = "Project workstream"
_DEFAULT_DELIVERABLE_DESCRIPTION = "Project deliverable"
_PLACEHOLDER_DELIVERABLE_TITLE = "Implementation"

_BULLET = re.compile(r"^[ \t]*[*\-•][ \t]+([^\n]+)", re.MULTILINE)
_BULLET_SPLIT = re.compile(r"\s*(?::|\s[–—-]\s|[–—])\s*")
_BOLD_LEAD = re.compile(r"\*\*([^*]+)\*\*[ \t]*[:–—-]?[ \t]*(.*)")
_NUMBERED_BOLD = re.compile(r"^[ \t]*(\d+)\.[ \t]+\*\*([^*\n]+)\*\*([^\n]*)", re.MULTILINE)
_BOLD_HEADER = re.compile(
    r"^[ \t]*(?:#{1,6}[ \t]*)?\*\*([^*\n]+)\*\*[ \t]*:?[ \t]*([^\n]*)", re.MULTILINE
)
_DELIVERABLES_MARKER = re.compile(r"\*\*Deliverables?:?\*\*:?", re.IGNORECASE)
_PLAN_HEADING = re.compile(
    r"^[ \t]*(?:"
    r"#{1,6}[ \t]+[^\n]*\bplan\b[^\n]*"
    r"|\*\*[^*\n]*\bplan\b[^*\n]*\*\*[^\n]*"
    r"|[^\n]*\bplan\b[^\n]*:[ \t]*"
    r")$",
    re.IGNORECASE | re.MULTILINE,
)
_TOP_LEVEL_ITEM = re.compile(r"^ ?(\d+)[.)][ \t]+([^\n]+)", re.MULTILINE)
_SENTENCE = re.compile(r"[^.!?]+[.!?]+")

# Where the prose plan starts, highest priority first.
_PLAN_START_MARKERS: list[re.Pattern[str]] = [
    re.compile(r"(?:^|\n)[ \t]*\d+\.[ \t]+\*\*[^*\n]+\*\*"),
    re.compile(r"\*\*[^*\n]+\*\*[:\n]\s*\*\*Deliverables?:", re.IGNORECASE),
    re.compile(r"\*\*(?:Phase|Week|Workstream)\s+\d+", re.IGNORECASE),
    re.compile(r"(?:^|\n)[ \t]*(?:#{1,6}[ \t]*)?(?:Phase|Week)\s+\d+", re.IGNORECASE),
    re.compile(r"(?:^|\n)(?:Workstreams?\s+&|Core\s+Pillars|Key\s+Areas)", re.IGNORECASE),
]

# Wrap-up sections that follow the plan body.
_PLAN_END_MARKERS: list[re.Pattern[str]] = [
    re.compile(r"(?:^|\n)[ \t]*(?:#{1,6}[ \t]*)?\*\*Timeline", re.IGNORECASE),
    re.compile(r"(?:^|\n)[ \t]*(?:#{1,6}[ \t]*)?\*\*Key\s+Outcomes?", re.IGNORECASE),
    re.compile(r"(?:^|\n)[ \t]*(?:#{1,6}[ \t]*)?\*\*Expected\s+Outcomes?", re.IGNORECASE),
    re.compile(r"(?:^|\n)[ \t]*(?:#{1,6}[ \t]*)?\*\*Next\s+Steps?", re.IGNORECASE),
    re.compile(r"(?:^|\n)(?:Total|Overall)\s+Timeline", re.IGNORECASE),
    re.compile(r"(?:^|\n)Timeline\s*[(:]", re.IGNORECASE),
    re.compile(
        r"(?:^|\n)#{1,6}[ \t]*(?:Timeline|Next\s+Steps?|Key\s+Outcomes?|Expected\s+Outcomes?|Summary)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:^|\n)(?:Next\s+Steps?|Key\s+Outcomes?)\s*:", re.IGNORECASE),
]

_CLOSING_REMARK = re.compile(
    r"feel\s+free|adjust|review|let\s+me\s+know|questions?|feedback", re.IGNORECASE
)


# ---------------------------------------------------------------------------
# Recovered structure
# ---------------------------------------------------------------------------


@dataclass
class _Draft:
    """A workstream before placeholder deliverables are synthesised."""

    title: str
    description: str
    deliverables: list[Deliverable] = field(default_factory=list)


@dataclass
class _Recovered:
    strategy: str
    drafts: list[_Draft]
    anchor: int
    """Offset of the first header the strategy matched."""

    body_end: int
    """End offset of the last header the strategy matched."""

    def acceptable(self) -> bool:
        return len(self.drafts) >= MIN_RECOVERED_WORKSTREAMS and any(
            d.deliverables for d in self.drafts
        )

    def to_plan(self) -> ProjectPlan:
        workstreams: list[Workstream] = []
        for draft in self.drafts:
            deliverables = draft.deliverables or [
                Deliverable(
                    title=_PLACEHOLDER_DELIVERABLE_TITLE,
                    description=draft.description[:FALLBACK_DESCRIPTION_CHARS] or draft.title,
                )
            ]
            workstreams.append(
                Workstream(
                    title=draft.title,
                    description=draft.description,
                    deliverables=deliverables,
                )
            )
        return ProjectPlan(workstreams=workstreams)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _strip_markup(s: str) -> str:
    return s.replace("**", "").strip().rstrip(":").strip()


def _bullet_to_deliverable(bullet: str) -> Deliverable | None:
    """Split ``Title: description`` (or ``Title - description``) into a Deliverable."""
    clean = bullet.strip()
    if len(clean) <= MIN_BULLET_CHARS:
        return None
    bold = _BOLD_LEAD.match(clean)
    if bold is not None:
        parts = [bold.group(1), bold.group(2)] if bold.group(2) else [bold.group(1)]
    else:
        parts = _BULLET_SPLIT.split(clean, maxsplit=1)
    title = _strip_markup(parts[0])[:TITLE_PREVIEW_CHARS]
    description = parts[1].strip()[:DESCRIPTION_PREVIEW_CHARS] if len(parts) > 1 else ""
    if not title:
        title = _strip_markup(clean)[:TITLE_PREVIEW_CHARS] or clean[:TITLE_PREVIEW_CHARS]
    if not description:
        description = clean[:FALLBACK_DESCRIPTION_CHARS]
    return Deliverable(title=title, description=description)


def _bullets(section: str) -> list[Deliverable]:
    deliverables: list[Deliverable] = []
    for m in _BULLET.finditer(section):
        if len(deliverables) >= MAX_DELIVERABLES_PER_WORKSTREAM:
            break
        deliverable = _bullet_to_deliverable(m.group(1))
        if deliverable is not None:
            deliverables.append(deliverable)
    return deliverables


def _describe(rest_of_line: str) -> str:
    desc = rest_of_line.strip().lstrip(":–—- \t").strip()
    return desc[:DESCRIPTION_PREVIEW_CHARS] or _DEFAULT_WORKSTREAM_DESCRIPTION


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def _numbered_bold(text: str) -> _Recovered | None:
    """``1. **Title** rest`` headers; bullets up to the next header are deliverables."""
    headers = list(_NUMBERED_BOLD.finditer(text))
    if not headers:
        return None

    drafts: list[_Draft] = []
    for idx, m in enumerate(headers):
        if idx + 1 < len(headers):
            section_end = headers[idx + 1].start()
        else:
            section_end = _plan_end(text, m.end())
        title = _strip_markup(m.group(2))[:TITLE_PREVIEW_CHARS]
        if not title:
            continue
        drafts.append(
            _Draft(
                title=title,
                description=_describe(m.group(3)),
                deliverables=_bullets(text[m.end() : section_end]),
            )
        )
    return _Recovered("numbered_bold", drafts, headers[0].start(), headers[-1].end())


def _bold_deliverables(text: str) -> _Recovered | None:
    """``**Title**:`` blocks carrying an explicit ``**Deliverables:**`` marker."""
    headers = [m for m in _BOLD_HEADER.finditer(text) if not _is_deliverables_title(m.group(1))]
    if not headers:
        return None

    drafts: list[_Draft] = []
    first_used = -1
    last_end = -1
    for idx, m in enumerate(headers):
        block_end = headers[idx + 1].start() if idx + 1 < len(headers) else len(text)
        block = text[m.end() : block_end]
        marker = _DELIVERABLES_MARKER.search(block)
        if marker is None:
            continue
        deliverables = _bullets(block[marker.end() :])
        if not deliverables:
            continue
        intro = " ".join(
            line.strip() for line in (m.group(2) + "\n" + block[: marker.start()]).splitlines()
        ).strip()
        drafts.append(
            _Draft(
                title=_strip_markup(m.group(1))[:TITLE_PREVIEW_CHARS],
                description=_describe(intro),
                deliverables=deliverables,
            )
        )
        if first_used == -1:
            first_used = m.start()
        last_end = m.end() + marker.end()

    if not drafts:
        return None
    return _Recovered("bold_deliverables", drafts, first_used, last_end)


def _is_deliverables_title(title: str) -> bool:
    return title.strip().rstrip(":").strip().lower() in ("deliverable", "deliverables")


def _plan_heading(text: str) -> _Recovered | None:
    """Top-level numbered items under a "Plan" heading become workstreams."""
    heading = _PLAN_HEADING.search(text)
    if heading is None:
        return None

    items = list(_TOP_LEVEL_ITEM.finditer(text, heading.end()))[:MAX_PLAN_HEADING_ITEMS]
    drafts: list[_Draft] = []
    last_end = heading.end()
    for idx, m in enumerate(items):
        if idx + 1 < len(items):
            content_end = items[idx + 1].start()
        else:
            content_end = min(len(text), m.end() + 500)
        content = text[m.end() : content_end].strip()
        title = _strip_markup(m.group(2))[:TITLE_PREVIEW_CHARS]
        if not title:
            continue

        deliverables = _bullets(content)
        if not deliverables:
            first_sentence = re.split(r"[.!?]", content, maxsplit=1)[0].strip()
            if len(first_sentence) > MIN_BULLET_CHARS:
                rest = content[len(first_sentence) :].lstrip(".!? \n").strip()
                deliverables = [
                    Deliverable(
                        title=_strip_markup(first_sentence)[:TITLE_PREVIEW_CHARS] or title,
                        description=rest[:DESCRIPTION_PREVIEW_CHARS]
                        or _DEFAULT_DELIVERABLE_DESCRIPTION,
                    )
                ]

        if deliverables or len(content) > 50:
            prose = "\n".join(
                line for line in content.splitlines() if not _BULLET.match(line)
            ).strip()
            drafts.append(
                _Draft(
                    title=title,
                    description=prose[:DESCRIPTION_PREVIEW_CHARS] or _DEFAULT_WORKSTREAM_DESCRIPTION,
                    deliverables=deliverables,
                )
            )
            last_end = m.end()

    return _Recovered("plan_heading", drafts, heading.start(), last_end)


#: Ordered strategies; earlier entries win. New heuristics append here.
_STRATEGIES: list[Callable[[str], _Recovered | None]] = [
    _numbered_bold,
    _bold_deliverables,
    _plan_heading,
]


def _recover(text: str) -> _Recovered | None:
    for strategy in _STRATEGIES:
        result = strategy(text)
        if result is not None and result.acceptable():
            return result
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def recover_plan(text: str) -> ProjectPlan | None:
    """Rebuild a ProjectPlan from plan-shaped prose, or None below the acceptance bar."""
    result = _recover(text)
    return result.to_plan() if result is not None else None


def promote_raw_plan_json(text: str) -> str | None:
    """Wrap the first bare JSON plan object in the canonical fence, or None."""
    for start, end in iter_json_objects(text):
        raw = text[start:end]
        if '"workstreams"' not in raw:
            continue
        plan = parse_plan_json(raw)
        if plan is None:
            continue
        before = text[:start].strip()
        after = text[end:].strip()
        return "\n\n".join(part for part in (before, plan.to_fenced_block(), after) if part)
    return None


def post_process_plan_response(text: str) -> str:
    """
    Return *text* with its plan in canonical fenced-JSON form.

    The input is returned unchanged when it already carries a valid fenced
    plan, or when no plan can be confidently recovered.
    """
    if parse_project_plan(text) is not None:
        return text

    promoted = promote_raw_plan_json(text)
    if promoted is not None:
        logger.info("plan_promoted_from_raw_json", chars=len(text))
        return promoted

    result = _recover(text)
    if result is None:
        logger.debug("plan_recovery_declined", chars=len(text))
        return text

    plan = result.to_plan()
    start = _plan_start(text, result.anchor)
    end = _plan_end(text, max(start, result.body_end))

    parts = [_lead_in(text[:start]), plan.to_fenced_block(), _closing_remark(text[end:])]
    logger.info(
        "plan_recovered",
        strategy=result.strategy,
        workstreams=len(plan.workstreams),
        span_start=start,
        span_end=end,
    )
    return "\n\n".join(part for part in parts if part)


# ---------------------------------------------------------------------------
# Span boundaries
# ---------------------------------------------------------------------------


def _plan_start(text: str, anchor: int) -> int:
    """First start marker in priority order, unless the strategy anchor is earlier."""
    for pattern in _PLAN_START_MARKERS:
        m = pattern.search(text)
        if m is not None:
            return min(m.start(), anchor)
    return anchor


def _plan_end(text: str, body_end: int) -> int:
    """First wrap-up marker after the last recognised header, else end of text."""
    for pattern in _PLAN_END_MARKERS:
        m = pattern.search(text, body_end)
        if m is not None:
            return m.start()
    return len(text)


def _lead_in(before: str) -> str:
    before = before.strip()
    if not before:
        return ""
    sentences = [s.strip() for s in _SENTENCE.findall(before)]
    if sentences:
        return " ".join(sentences[:2])[:LEAD_IN_MAX_CHARS].strip()
    return before[:LEAD_IN_FALLBACK_CHARS].strip()


def _closing_remark(after: str) -> str:
    after = after.strip()
    if not after:
        return ""
    remark = re.split(r"\n\s*\n", after)[-1].strip()
    if len(remark) < CLOSING_REMARK_MAX_CHARS and _CLOSING_REMARK.search(remark):
        return remark
    return ""
