# display.py
# All terminal output for the skill runner.
#
# This module owns presentation entirely. The harness never formats
# strings for the terminal; it calls named functions here.
#
# Colour language:
#   cyan    : planning / routing events
#   blue    : model calls
#   magenta : tool calls
#   green   : success
#   yellow  : degraded paths (fallbacks, quotas)
#   red     : failures

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from skill_runner.models import ProgressEvent, SkillRunResult

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------


def banner(primary: str, fallback: str | None) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Skill Runner[/bold cyan]\n"
            "[dim]Plan → assemble → bounded tool loop → artifact reconciliation[/dim]\n\n"
            f"[dim]Primary  :[/dim] [white]{primary}[/white]\n"
            f"[dim]Fallback :[/dim] [white]{fallback or 'none'}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def run_started(skill_name: str, tools: list[str]) -> None:
    console.print()
    console.print(Rule(f"[cyan]RUN: {escape(skill_name)}[/cyan]", style="cyan"))
    console.print(f"[dim]  Tools: {escape(', '.join(tools)) or 'none'}[/dim]")


def plan_selected(capabilities: list[str], source: str) -> None:
    console.print()
    if not capabilities:
        console.print(
            _label("PLANNER", "cyan"),
            f"[cyan] No pipeline ({source}), general assistant mode.[/cyan]",
        )
        return

    table = Table(box=box.SIMPLE_HEAVY, border_style="cyan", header_style="bold cyan")
    table.add_column("Phase", justify="center", width=6)
    table.add_column("Capability", style="bold white")
    for index, name in enumerate(capabilities, start=1):
        table.add_row(str(index), name)
    console.print(
        Panel(
            table,
            title=_label("PLANNER", "cyan"),
            subtitle=f"[dim]source: {source}[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def progress(event: ProgressEvent) -> None:
    elapsed = f"[dim]{event.elapsed or 0:>6}ms[/dim]"
    if event.type == "tool-start":
        console.print(f"  {elapsed} [magenta]→ {escape(event.tool or '')}[/magenta]")
    elif event.type == "tool-done":
        console.print(f"  {elapsed} [magenta]← {escape(event.tool or '')}[/magenta]")
    elif event.type == "phase":
        console.print(f"  {elapsed} [bold cyan]{escape(event.message)}[/bold cyan]")
    elif event.type == "step":
        console.print(f"  {elapsed} [blue]{escape(event.message)}[/blue]")
    elif event.type == "error":
        console.print(f"  {elapsed} [bold red]{escape(_mono(event.message))}[/bold red]")
    elif event.type == "done":
        console.print(f"  {elapsed} [bold green]{escape(event.message)}[/bold green]")
    else:
        console.print(f"  {elapsed} [dim]{escape(_mono(event.message))}[/dim]")


def tool_failed(tool_name: str, error: str) -> None:
    console.print(f"  [bold red]✗ {escape(tool_name)}[/bold red] [dim]{escape(_mono(error, 160))}[/dim]")


def provider_fallback(failed: str, fallback: str, error: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold yellow]{failed} failed:[/bold yellow] [white]{escape(_mono(error, 200))}[/white]\n"
            f"[dim]Retrying the whole loop on {fallback}.[/dim]",
            title=_label("PROVIDER FALLBACK", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def warning(message: str) -> None:
    console.print(_label("WARN", "yellow"), f"[yellow] {escape(message)}[/yellow]")


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(result: SkillRunResult) -> None:
    console.print()
    table = Table(box=box.SIMPLE, border_style="dim", header_style="bold dim")
    table.add_column("Tool", width=20)
    table.add_column("ms", justify="right", width=8)
    table.add_column("Output", style="dim white")
    for call in result.tool_calls:
        table.add_row(call.tool_name, str(call.duration_ms), escape(_mono(str(call.output), 60)))
    if result.tool_calls:
        console.print(Panel(table, title="[dim]TOOL CALLS[/dim]", border_style="dim"))

    console.print(
        Panel(
            Text(result.output or "(empty)"),
            title=_label("RESULT", "green"),
            subtitle=f"[dim]{result.duration}ms[/dim]",
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
