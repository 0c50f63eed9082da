"""
Display utilities for messages files.

Renders the messages a process wrote, for a launcher or a human inspecting
a finished (or still running) process.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pipekit.messages import MessageMethod, PipesMessage, read_messages

try:
    from rich.console import Console
    from rich.table import Table

    HAS_RICH = True
except ImportError:
    HAS_RICH = False


def summarize_message(message: PipesMessage) -> tuple[str, str]:
    """
    Return (asset key, one-line summary) for a message.

    Example:
        >>> summarize_message(PipesMessage.log("info", "hello"))
        ('', 'INFO: hello')
    """
    params = message.params
    asset_key = params.get("asset_key") or ""

    if message.method == MessageMethod.REPORT_ASSET_MATERIALIZATION:
        parts = [f"{k}={v}" for k, v in params.get("metadata", {}).items()]
        if params.get("data_version"):
            parts.append(f"data_version={params['data_version']}")
        return asset_key, ", ".join(parts)
    if message.method == MessageMethod.REPORT_ASSET_CHECK:
        outcome = "passed" if params.get("passed") else f"failed ({params.get('severity')})"
        return asset_key, f"{params.get('check_name')}: {outcome}"
    if message.method == MessageMethod.LOG:
        return asset_key, f"{params.get('level')}: {params.get('message')}"
    exception = params.get("exception")
    if exception:
        return asset_key, f"{exception.get('name')}: {exception.get('message')}"
    return asset_key, ""


def display_messages(path: str | Path, console: Any | None = None) -> None:
    """
    Display a messages file as a table.

    If rich is available, displays a formatted table.
    Otherwise falls back to plain text output.

    Args:
        path: The messages file.
        console: Optional rich Console instance.
    """
    messages = list(read_messages(path))

    if not messages:
        if HAS_RICH and console:
            console.print("[yellow]No messages to display.[/yellow]")
        else:
            print("No messages to display.")
        return

    if HAS_RICH:
        _display_rich(messages, console, str(path))
    else:
        _display_simple(messages, str(path))


def _display_rich(messages: list[PipesMessage], console: Any | None, title: str) -> None:
    """Display messages using rich formatting."""
    if console is None:
        console = Console()

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Method", style="cyan")
    table.add_column("Asset")
    table.add_column("Summary")

    for i, message in enumerate(messages, start=1):
        asset_key, summary = summarize_message(message)
        method = message.method.value
        if message.method == MessageMethod.CLOSED:
            method = f"[red]{method}[/red]" if message.params else f"[green]{method}[/green]"
        table.add_row(str(i), method, asset_key, summary)

    console.print(table)


def _display_simple(messages: list[PipesMessage], title: str) -> None:
    """Display messages using plain text."""
    print("=" * 60)
    print(title)
    print("=" * 60)

    for i, message in enumerate(messages, start=1):
        asset_key, summary = summarize_message(message)
        print(f"{i:>3}  {message.method.value:<30} {asset_key:<16} {summary}")
