"""JSON output renderers.

Renders entry results into JSON-serializable objects.
Provides JsonFileWriter implementation for command output.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from BookReport.core.catalog import (
    AggregateOperation,
    CreateIndexOperation,
    DeleteOperation,
    ExplainOperation,
    FindOperation,
    UpdateOperation,
)
from BookReport.core.models import Book, DeleteResult, PlanSummary, UpdateResult
from BookReport.renderers.base import OutputWriter
from BookReport.services.report import EntryResult
from BookReport.utils.log import log

_OPERATION_KINDS = {
    FindOperation: "find",
    UpdateOperation: "update_one",
    DeleteOperation: "delete_one",
    AggregateOperation: "aggregate",
    CreateIndexOperation: "create_index",
    ExplainOperation: "explain",
}


def render_json(result: EntryResult) -> dict[str, Any]:
    """Render one entry result into a JSON-serializable dict.

    Args:
        result: Entry result from the report runner.

    Returns:
        Dict with the entry name, heading, operation kind and payload.
    """
    value = result.value
    if isinstance(value, UpdateResult):
        payload: Any = {"matchedCount": value.matched_count, "modifiedCount": value.modified_count}
    elif isinstance(value, DeleteResult):
        payload = {"deletedCount": value.deleted_count}
    elif isinstance(value, PlanSummary):
        payload = value.to_dict()
    elif isinstance(value, str):
        payload = {"index": value}
    else:
        payload = [item.as_dict() if isinstance(item, Book) else dict(item) for item in value]
    return {
        "name": result.entry.name,
        "heading": result.entry.heading,
        "kind": _OPERATION_KINDS.get(type(result.entry.operation), "unknown"),
        "result": payload,
    }


class JsonFileWriter(OutputWriter):
    """Accumulate results and write to JSON file on finalize."""

    def __init__(self, base_dir: str) -> None:
        """Initialize JSON writer.

        Args:
            base_dir: Base output directory.
        """
        self.output_dir = Path(base_dir) / "json"
        self.all_results: list[dict] = []
        self.output_path: Path | None = None

    def write_result(self, result: EntryResult) -> None:
        """Accumulate an entry result for later writing."""
        self.all_results.append(render_json(result))

    def finalize(self, action: str) -> None:
        """Write accumulated results to JSON file.

        Args:
            action: The CLI command name (used in filename).
        """
        # ObjectId and other driver types fall back to their string form.
        payload = json.dumps(self.all_results, ensure_ascii=False, indent=2, default=str)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.output_path = self.output_dir / f"{action}_{timestamp}.json"
        self.output_path.write_text(payload, encoding="utf-8")
        log.info("JSON saved to %s", self.output_path)
