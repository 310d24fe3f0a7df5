"""Console text output renderers.

Renders entry results as bullet lines or `console.table`-style text tables.
Provides ConsoleOutputWriter implementation for command output.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Sequence

from BookReport.core.models import Book, DeleteResult, PlanSummary, UpdateResult
from BookReport.renderers.base import OutputWriter
from BookReport.services.report import EntryResult
from BookReport.utils.log import log

_INDEX_HEADER = "(index)"
_EMPTY = "(no results)"


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "-"


def format_value(value: Any) -> str:
    """Format one cell value for display.

    Args:
        value: Scalar or nested value.

    Returns:
        Floats with two decimals (whole floats without), booleans in lower
        case, empty string for None.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else f"{value:.2f}"
    if isinstance(value, (list, tuple)):
        return ", ".join(format_value(item) for item in value)
    return str(value)


def flatten(doc: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dotted column names."""
    out: dict[str, Any] = {}
    for key, value in doc.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            out.update(flatten(value, prefix=f"{name}."))
        else:
            out[name] = value
    return out


def render_lines(books: Iterable[Book], line_format: str) -> list[str]:
    """Render one line per book from a `str.format` template.

    Fields missing from a book render as "-".
    """
    return [line_format.format_map(_Placeholders(book.as_dict())) for book in books]


def render_table(rows: Sequence[Mapping[str, Any]]) -> list[str]:
    """Render rows as an aligned text table with an index column.

    Columns are the union of row keys in order of first appearance; nested
    mappings become dotted columns.
    """
    if not rows:
        return [_EMPTY]
    flat = [flatten(row) for row in rows]
    columns: list[str] = []
    for row in flat:
        for name in row:
            if name not in columns:
                columns.append(name)

    header = [_INDEX_HEADER, *columns]
    body = [[str(idx), *(format_value(row.get(name)) for name in columns)] for idx, row in enumerate(flat)]
    widths = [max(len(line[col]) for line in [header, *body]) for col in range(len(header))]

    def _line(cells: Sequence[str]) -> str:
        return " | ".join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()

    separator = "-+-".join("-" * width for width in widths)
    return [_line(header), separator, *(_line(cells) for cells in body)]


def render_plan(summary: PlanSummary) -> list[str]:
    """Render the plan stage tree as indented JSON plus a one-line verdict."""
    lines = json.dumps([stage.to_dict() for stage in summary.stages], indent=2).splitlines()
    if summary.uses_index:
        lines.append(f"Index scan using: {', '.join(summary.index_names) or '-'}")
    elif summary.is_collection_scan:
        lines.append("Full collection scan")
    if summary.n_returned is not None:
        lines.append(f"Documents returned: {summary.n_returned}")
    return lines


def render_result(result: EntryResult) -> list[str]:
    """Render one entry result into display lines.

    Args:
        result: Entry result from the report runner.

    Returns:
        Lines ready to be logged, heading first.
    """
    entry = result.entry
    value = result.value
    if isinstance(value, UpdateResult):
        return [f"{entry.heading}: {value.modified_count} document(s) modified"]
    if isinstance(value, DeleteResult):
        return [f"{entry.heading}: {value.deleted_count} document(s) deleted"]
    if isinstance(value, str):
        return [f"{entry.heading}: {value}"]

    lines = [f"{entry.heading}:"]
    if isinstance(value, PlanSummary):
        lines.extend(render_plan(value))
    elif entry.line_format and all(isinstance(item, Book) for item in value):
        lines.extend(render_lines(value, entry.line_format) or [_EMPTY])
    else:
        rows = [item.as_dict() if isinstance(item, Book) else item for item in value]
        lines.extend(render_table(rows))
    return lines


class ConsoleOutputWriter(OutputWriter):
    """Write results to console via logging."""

    def write_result(self, result: EntryResult) -> None:
        for line in render_result(result):
            log.info(line)

    def finalize(self, action: str) -> None:
        """No-op for console output."""
