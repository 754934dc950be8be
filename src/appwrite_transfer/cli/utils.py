"""
Utility functions for CLI commands.

This module provides helper functions for formatting output and loading
input files.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

console = Console()

STATUS_COLORS = {
    "pending": "white",
    "processing": "cyan",
    "completed": "green",
    "failed": "red",
}


def echo_success(message: str) -> None:
    """Print success message in green."""
    click.secho(f"✓ {message}", fg="green")


def echo_error(message: str) -> None:
    """Print error message in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def echo_warning(message: str) -> None:
    """Print warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def echo_info(message: str) -> None:
    """Print info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def format_timestamp(dt: datetime) -> str:
    """
    Format timestamp in human-readable format.

    Args:
        dt: Datetime object

    Returns:
        Formatted timestamp string
    """
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_count(count: int) -> str:
    """Format large numbers with thousands separator (e.g. "1,234,567")."""
    return f"{count:,}"


def format_status(status: str) -> str:
    """Wrap a migration status in rich color markup."""
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[Any]],
    show_header: bool = True,
) -> None:
    """
    Print a formatted table using rich.

    Args:
        title: Table title
        columns: Column headers
        rows: List of row data
        show_header: Whether to show header row
    """
    table = Table(title=title, show_header=show_header)

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def load_json_or_yaml(path: Path) -> dict[str, Any]:
    """
    Load JSON or YAML file based on extension.

    Raises:
        click.BadParameter: If the format is unsupported or the file is not a mapping
    """
    suffix = path.suffix.lower()

    if suffix == ".json":
        with open(path) as f:
            data = json.load(f)
    elif suffix in [".yaml", ".yml"]:
        with open(path) as f:
            data = yaml.safe_load(f)
    else:
        raise click.BadParameter(f"Unsupported file format: {suffix}. Use .json, .yaml, or .yml")

    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} must contain a mapping")
    return data
