"""
netforge.console - Shared Rich Console
======================================

All user-facing output goes through one ``rich.console.Console`` so that
tests can capture it and so colours are consistent across commands.

The ``log_*`` helpers print the ``[INFO]`` / ``[WARN]`` / ``[ERROR]``
prefixed lines the setup scripts have always printed.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table


console = Console()


def log_info(message: str) -> None:
    console.print(f"[green]\\[INFO][/] {escape(message)}")


def log_warn(message: str) -> None:
    console.print(f"[yellow]\\[WARN][/] {escape(message)}")


def log_error(message: str) -> None:
    console.print(f"[red]\\[ERROR][/] {escape(message)}")


def log_command(args: list[str]) -> None:
    """Echo an external command in verbose or dry-run mode."""
    console.print(f"[dim]$ {escape(' '.join(args))}[/]")


def print_panel(body: str, title: str, style: str = "blue") -> None:
    console.print(Panel(body, title=f"[bold]{title}[/]", border_style=style))


def settings_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """
    Build a two column Setting/Value table.

    Parameters
    ----------
    title : str
        Table title.

    rows : list[tuple[str, str]]
        Pairs of (setting, value).

    Returns
    -------
    Table
        Table ready for ``console.print``.
    """
    table = Table(title=title, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in rows:
        table.add_row(key, value or "[dim]-[/]")
    return table
