"""spanharness CLI — run an app under test by hand and look at its spans.

`spanharness invoke ./app /get` starts the app, waits for its port, GETs
the path, prints the span dump and stops the app again.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from spanharness.config import settings
from spanharness.exceptions import HarnessError
from spanharness.processes.supervisor import ProcessSupervisor
from spanharness.spans.reader import SpanDumpReader
from spanharness.spans.records import SpanDump, SpanRecord

console = Console()

app = typer.Typer(
    name="spanharness",
    help="spanharness -- drive sample apps and inspect their span dumps.",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level"),
):
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@app.command("invoke")
def invoke(
    cwd: Path = typer.Argument(help="Directory of the app under test"),
    path: str = typer.Argument("/", help="Path to GET once the app is ready"),
    service_name: str = typer.Option("spanharness-app", "--service-name", "-s"),
    dump: Optional[Path] = typer.Option(
        None, "--dump", "-d", help="Span dump file (default: CWD/spans.jsonl)",
    ),
    command: Optional[str] = typer.Option(
        None, "--command", "-c", help="Shell command that starts the app",
    ),
    expect: int = typer.Option(0, "--expect", "-n", help="Wait for this many spans"),
    env: List[str] = typer.Option([], "--env", "-e", help="KEY=VALUE, repeatable"),
):
    """Start an app, GET a path on it, and print the spans it dumped."""
    overrides = _parse_env(env)
    dump_path = dump or cwd / "spans.jsonl"

    try:
        spans, exit_code = asyncio.run(
            _invoke(cwd, path, service_name, dump_path, command, expect, overrides)
        )
    except HarnessError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    _print_spans(spans, title=f"Spans from {dump_path}")
    console.print(f"[dim]app exited with code {exit_code}[/dim]")


@app.command("spans")
def spans(
    dump: Path = typer.Argument(help="Span dump file"),
    expect: int = typer.Option(0, "--expect", "-n", help="Wait for this many spans"),
    timeout: float = typer.Option(
        settings.final_spans_timeout, "--timeout", "-t", help="Seconds to wait",
    ),
):
    """Print the spans currently in a dump file."""
    reader = SpanDumpReader(dump)
    if expect:
        records = asyncio.run(reader.read_until_count(expect, timeout))
    else:
        records = reader.read_all()
    _print_spans(records, title=f"Spans from {dump}")


@app.command("version")
def version():
    """Show the installed version."""
    from spanharness import __version__
    console.print(f"spanharness {__version__}")


async def _invoke(
    cwd: Path,
    path: str,
    service_name: str,
    dump_path: Path,
    command: str | None,
    expect: int,
    env: dict[str, str],
) -> tuple[list[SpanRecord], int | None]:
    supervisor = await ProcessSupervisor.spawn(
        cwd, service_name, dump_path, env=env, command=command,
    )
    try:
        await supervisor.invoke(path)
        records = await supervisor.final_spans(expect or None)
    finally:
        exit_code = await supervisor.terminate()
    return records, exit_code


def _parse_env(pairs: list[str]) -> dict[str, str]:
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="--env")
        result[key] = value
    return result


def _print_spans(records: list[SpanRecord], title: str) -> None:
    if not records:
        console.print("[dim]No spans.[/dim]")
        return

    dump = SpanDump(spans=records)
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Kind", style="blue")
    table.add_column("Trace", style="white", no_wrap=True)
    table.add_column("Span", style="white", no_wrap=True)
    table.add_column("Parent", style="dim", no_wrap=True)
    table.add_column("Status")

    for s in records:
        status = "[bold red]error[/bold red]" if s.is_error else "[green]ok[/green]"
        table.add_row(
            s.name,
            "" if s.kind is None else str(s.kind),
            s.trace_id,
            s.span_id,
            s.parent_span_id or "",
            status,
        )

    console.print(table)
    console.print(
        f"[dim]{dump.span_count} spans, {len(dump.roots())} roots, "
        f"{dump.error_count} errors[/dim]"
    )


if __name__ == "__main__":
    app()
