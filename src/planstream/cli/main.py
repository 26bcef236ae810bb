"""
PlanStream CLI entry point.

Commands:
  planstream extract FILE           — split a response into prose and plan segments
  planstream recover FILE           — post-process a response, restructuring plan-like prose
  planstream classify MESSAGE       — would this message request a structured plan?
  planstream models [--provider P]  — list the models each provider serves
  planstream chat MESSAGE           — stream one generation to the terminal
"""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from planstream import __version__

console = Console()
err_console = Console(stderr=True)

_PREVIEW_CHARS = 60


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="planstream %(version)s")
@click.option(
    "--log-level",
    default=None,
    help="Log level for structured logging (default: WARNING, or [logging] level for chat).",
)
@click.option("--log-json", is_flag=True, default=False, help="Emit JSON log lines.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, log_json: bool) -> None:
    """PlanStream — streaming LLM output normalisation and project-plan extraction."""
    from planstream.core.logging import configure_logging

    configure_logging(level=log_level or "WARNING", json_output=log_json)
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["log_json"] = log_json


# ---------------------------------------------------------------------------
# extract
# ---------------------------------------------------------------------------


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= _PREVIEW_CHARS else flat[: _PREVIEW_CHARS - 1] + "…"


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit segments as JSON.")
def extract(source: click.utils.LazyFile, as_json: bool) -> None:
    """Split a response (FILE, or - for stdin) into text and plan segments."""
    from planstream.plans.extractor import extract_plan_blocks
    from planstream.plans.models import PlanSegment

    segments = extract_plan_blocks(source.read())

    if as_json:
        out = []
        for seg in segments:
            item: dict[str, object] = {"kind": seg.kind.value, "start": seg.start, "end": seg.end}
            if isinstance(seg, PlanSegment):
                item["plan"] = seg.plan.to_dict()
            else:
                item["text"] = seg.text
            out.append(item)
        click.echo(json.dumps(out, indent=2, ensure_ascii=False))
        return

    table = Table(title="Segments")
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Span")
    table.add_column("Content")
    for i, seg in enumerate(segments, 1):
        if isinstance(seg, PlanSegment):
            content = f"{len(seg.plan.workstreams)} workstream(s): " + ", ".join(
                ws.title for ws in seg.plan.workstreams
            )
            kind = "[green]plan[/green]"
        else:
            content = _preview(seg.text)
            kind = "text"
        table.add_row(str(i), kind, f"{seg.start}–{seg.end}", content)
    console.print(table)


# ---------------------------------------------------------------------------
# recover
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option(
    "--plan-only", is_flag=True, default=False, help="Print only the recovered plan as JSON."
)
def recover(source: click.utils.LazyFile, plan_only: bool) -> None:
    """Restructure plan-like prose in FILE into the canonical fenced JSON block."""
    from planstream.core.constants import ExitCode
    from planstream.plans.extractor import parse_project_plan
    from planstream.plans.recovery import post_process_plan_response

    result = post_process_plan_response(source.read())
    if not plan_only:
        click.echo(result)
        return

    plan = parse_project_plan(result)
    if plan is None:
        err_console.print("[yellow]No plan found or recovered.[/yellow]")
        raise SystemExit(ExitCode.ERROR)
    click.echo(plan.to_json())


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("message")
@click.option("--previous", default=None, help="The preceding assistant message.")
@click.option("--json", "as_json", is_flag=True, default=False)
def classify(message: str, previous: str | None, as_json: bool) -> None:
    """Decide whether MESSAGE should get a structured plan."""
    from planstream.plans.intent import classify_plan_request

    decision = classify_plan_request(message, previous)
    if as_json:
        click.echo(
            json.dumps({"plan_requested": decision.requested, "intent": decision.intent.value})
        )
        return

    if decision.requested:
        console.print(f"[green]plan requested[/green] ({decision.intent.value})")
    else:
        console.print("[dim]no plan requested[/dim]")


# ---------------------------------------------------------------------------
# models
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--provider",
    "provider_name",
    type=click.Choice(["gemini", "openai", "groq"]),
    default=None,
    help="Only list this provider's models.",
)
def models(provider_name: str | None) -> None:
    """List the models each provider serves."""
    from planstream.providers.base import AVAILABLE_MODELS, DEFAULT_MODELS, ProviderKind

    kinds = [ProviderKind(provider_name)] if provider_name else list(ProviderKind)

    table = Table(title="Models")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Default")
    for kind in kinds:
        names = AVAILABLE_MODELS[kind]
        default = DEFAULT_MODELS[kind]
        if default not in names:
            names = [default, *names]
        for name in names:
            table.add_row(kind.value, name, "✓" if name == default else "")
    console.print(table)


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------

from planstream.cli._chat import chat_cmd  # noqa: E402

cli.add_command(chat_cmd)


if __name__ == "__main__":
    cli()
