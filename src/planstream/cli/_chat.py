"""planstream chat — stream one generation to the terminal."""

from __future__ import annotations

import click


@click.command("chat")
@click.argument("message")
@click.option(
    "--provider",
    type=click.Choice(["gemini", "openai", "groq"]),
    default=None,
    help="LLM provider to use (overrides config).",
)
@click.option("--model", default="", help="Model name (overrides config; implies its provider).")
@click.option(
    "--history",
    "history_file",
    type=click.File("r", encoding="utf-8"),
    default=None,
    help='Earlier turns as a JSON list of {"role", "content"} objects.',
)
@click.option("--config", "config_path", default=None, help="Path to config.toml.")
@click.option("--sse", is_flag=True, default=False, help="Print raw SSE frames instead of text.")
@click.pass_context
def chat_cmd(ctx, message, provider, model, history_file, config_path, sse):
    """Send MESSAGE and stream the answer.

    Plan requests (explicit, or accepting an earlier offer passed via
    --history) are answered with a canonical fenced JSON plan.

    \b
    Examples:
      planstream chat "Create a project plan for launching a bakery"
      planstream chat --model gpt-4o-mini "What should I focus on first?"
      planstream chat --history turns.json "ok"
    """
    import asyncio
    import json

    from rich.console import Console

    from planstream.core.config import load_config
    from planstream.core.constants import ExitCode
    from planstream.core.exceptions import ConfigError, ProviderNotConfiguredError
    from planstream.core.logging import configure_from_config
    from planstream.providers.base import DEFAULT_MODELS, Message, ProviderKind

    console = Console()
    err_console = Console(stderr=True)

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        raise SystemExit(ExitCode.CONFIG_ERROR) from exc

    flags = ctx.find_root().obj or {}
    configure_from_config(
        config.logging,
        level=flags.get("log_level"),
        json_output=True if flags.get("log_json") else None,
    )

    history: list[Message] = []
    if history_file is not None:
        try:
            raw = json.load(history_file)
            history = [Message(role=str(m["role"]), content=str(m["content"])) for m in raw]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            err_console.print(f"[red]Invalid history file:[/red] {exc}")
            raise SystemExit(ExitCode.ERROR) from exc

    if provider and not model:
        model = DEFAULT_MODELS[ProviderKind(provider)]

    from planstream.chat.engine import ChatEngine

    try:
        engine = ChatEngine.from_config(config, model=model)
    except ProviderNotConfiguredError as exc:
        err_console.print(
            f"[red]{exc}.[/red]\n"
            "Set one with:\n"
            "  [cyan]PLANSTREAM_API_KEY=...[/cyan] or the vendor variable "
            "([cyan]GEMINI_API_KEY[/cyan], [cyan]OPENAI_API_KEY[/cyan], [cyan]GROQ_API_KEY[/cyan])\n"
            "  or add api_key to config.toml under [provider]"
        )
        raise SystemExit(ExitCode.CONFIG_ERROR) from exc

    exit_code = asyncio.run(_stream(engine, history, message, sse, console, err_console))
    if exit_code != ExitCode.SUCCESS:
        raise SystemExit(exit_code)


async def _stream(engine, history, message, sse, console, err_console) -> int:
    from planstream.chat.events import DoneEvent, ErrorEvent, ErrorReason, PlanEvent, TokenEvent
    from planstream.core.constants import ExitCode

    exit_codes = {
        ErrorReason.TRANSPORT: ExitCode.NETWORK_ERROR,
        ErrorReason.EMPTY_RESPONSE: ExitCode.EMPTY_RESPONSE,
        ErrorReason.MESSAGE_TOO_LONG: ExitCode.ERROR,
    }
    code = ExitCode.SUCCESS
    try:
        async for event in engine.generate(history, message):
            if sse:
                click.echo(event.to_sse(), nl=False)
                continue
            if isinstance(event, TokenEvent):
                click.echo(event.token, nl=False)
            elif isinstance(event, PlanEvent):
                err_console.print(
                    f"\n[dim]plan confirmed: {len(event.plan.workstreams)} workstream(s)[/dim]"
                )
            elif isinstance(event, DoneEvent):
                click.echo()
                if event.plan_detected:
                    console.rule("[green]final answer (canonical plan)[/green]")
                    click.echo(event.text)
            elif isinstance(event, ErrorEvent):
                click.echo()
                err_console.print(f"[red]{event.error}:[/red] {event.details}")
                code = exit_codes[event.reason]
    finally:
        await engine.close()
    return code
