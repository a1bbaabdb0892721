"""Output formatting for the IPMI finder CLI.

Supports table (human-readable) and JSON output modes.
"""

from __future__ import annotations

import sys
from typing import Any

import click

from ipmi_finder.serialization import serialize


def print_table(
    headers: list[str],
    rows: list[list[Any]],
) -> None:
    """Print aligned columns with separator lines."""
    # Compute column widths
    str_rows = [[str(v) for v in row] for row in rows]
    widths = [len(h) for h in headers]
    for row in str_rows:
        for i, val in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(val))

    header_line = "  ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    sep = "  ".join("-" * w for w in widths)
    click.echo(header_line)
    click.echo(sep)

    for row in str_rows:
        line = "  ".join(
            (row[i] if i < len(row) else "").ljust(widths[i]) for i in range(len(headers))
        )
        click.echo(line)


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    click.echo(serialize(data, pretty=True).decode("utf-8"))


def print_error(message: str, use_json: bool = False) -> None:
    """Print an error message, respecting output mode."""
    if use_json:
        click.echo(serialize({"error": message}, pretty=True).decode("utf-8"))
    else:
        click.echo(f"Error: {message}", file=sys.stderr)


def print_kv(pairs: list[tuple[str, Any]]) -> None:
    """Print key-value pairs aligned on the colon."""
    if not pairs:
        return
    max_key = max(len(k) for k, _ in pairs)
    for key, value in pairs:
        click.echo(f"  {key.ljust(max_key)}  {value}")
