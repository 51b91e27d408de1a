"""
TokenHeadroom terminal output.

Status lines, headers and preview panels. Everything the core wants an
operator to see goes through here; diagnostics go to loguru instead.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax

console = Console()
err_console = Console(stderr=True)


def info(message: str) -> None:
    console.print(f"[blue][INFO][/] {escape(message)}")


def result(message: str) -> None:
    console.print(f"[green][OK][/] {escape(message)}")


def warn(message: str) -> None:
    console.print(f"[yellow][WARN][/] {escape(message)}")


def error(message: str) -> None:
    err_console.print(f"[red][ERR][/] {escape(message)}")


def header(title: str) -> None:
    console.rule(f"[bold cyan]{escape(title)}[/]", style="cyan")


def json(data: object) -> None:
    console.print_json(data=data)


def diff(text: str) -> None:
    if not text.strip():
        info("No changes.")
        return
    console.print(Syntax(text, "diff", theme="ansi_dark", background_color="default"))


def preview_step(action_id: str, description: str, detail: str, rollback: str, access: str) -> None:
    """Render the standard preview panel a verb shows before any write."""
    console.print(Panel(
        f"[bold]Description:[/] {escape(description)}\n\n"
        f"{escape(detail)}\n\n"
        f"[bold]Rollback:[/] {escape(rollback)}\n"
        f"[bold]Access:[/] {escape(access)}",
        title=f"Action: {escape(action_id)}",
        border_style="cyan",
    ))
