"""Output formatting utilities for CLI."""

from typing import Any, List, Sequence

import click

from psa_engine.calculators.money import format_cents


def format_success(message: str) -> str:
    """Format a success message with green color.

    Args:
        message: The success message to format

    Returns:
        Formatted success message with color
    """
    return click.style(f"✓ {message}", fg="green", bold=True)


def format_error(message: str) -> str:
    """Format an error message with red color."""
    return click.style(f"✗ {message}", fg="red", bold=True)


def format_warning(message: str) -> str:
    """Format a warning message with yellow color."""
    return click.style(f"⚠ {message}", fg="yellow", bold=True)


def format_info(message: str) -> str:
    return click.style(f"ℹ {message}", fg="blue")


def format_money(cents: int) -> str:
    """Dollar string for an amount in cents, e.g. ``$2,155.00``."""
    return format_cents(cents)


def format_table(
    headers: List[str], rows: Sequence[Sequence[Any]], max_width: int = 60
) -> str:
    """Format data as a table.

    Args:
        headers: List of column headers
        rows: Data rows (each row is a sequence of cell values)
        max_width: Maximum width for each column (default: 60)

    Returns:
        Formatted table as a string
    """
    if not headers:
        return ""

    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[: len(headers)]):
            col_widths[i] = max(col_widths[i], len(str(cell)))
    col_widths = [min(w, max_width) for w in col_widths]

    separator = "+" + "+".join("-" * (w + 2) for w in col_widths) + "+"

    def _render(cells: Sequence[Any]) -> str:
        rendered = [
            f" {str(cell)[: col_widths[i]]:<{col_widths[i]}} "
            for i, cell in enumerate(cells[: len(headers)])
        ]
        return "|" + "|".join(rendered) + "|"

    lines = [separator, _render(headers), separator]
    if rows:
        lines.extend(_render(row) for row in rows)
        lines.append(separator)

    return "\n".join(lines)
