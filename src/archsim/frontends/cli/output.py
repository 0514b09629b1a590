"""Output formatting utilities for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import Any, NoReturn

import rich_click as click
from rich.console import Console
from rich.table import Table

console = Console()

_SEVERITY_STYLES = {"error": "bold red", "warning": "yellow", "info": "cyan"}
_STAGE_STYLES = {"complete": "green", "incomplete": "yellow", "blocked": "red"}


def print_table(title: str, headers: list[str], rows: list[list[str]]) -> None:
    """Print a rich table.

    Args:
        title: Table title.
        headers: Column header strings.
        rows: List of rows, each row is a list of cell values.
    """
    table = Table(title=title, title_justify="left")
    for header in headers:
        table.add_column(header)
    for row in rows:
        padded_row = list(row) + [""] * (len(headers) - len(row))
        table.add_row(*padded_row[: len(headers)])
    console.print(table)


def output_json(data: Any, indent: int = 2) -> None:
    """Output data as formatted JSON."""
    click.echo(json.dumps(data, indent=indent))


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def severity_markup(severity: str) -> str:
    style = _SEVERITY_STYLES.get(severity, "white")
    return f"[{style}]{severity}[/{style}]"


def stage_markup(status: str) -> str:
    style = _STAGE_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def print_issues(title: str, issues: list[dict[str, Any]]) -> None:
    """Print analyzer findings, or a short note when there are none."""
    if not issues:
        console.print(f"[green]{title}: no issues[/green]")
        return
    print_table(
        title,
        ["Severity", "Code", "Title", "Refs"],
        [
            [
                severity_markup(issue["severity"]),
                issue["code"],
                issue["title"],
                ", ".join(issue.get("refs", [])),
            ]
            for issue in issues
        ],
    )
