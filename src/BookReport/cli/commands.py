"""Command implementations for BookReport CLI.

Encapsulates the work of each command, separated from CLI parameter handling
and from store lifecycle management.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from BookReport.core.catalog import CatalogEntry
from BookReport.core.models import Book
from BookReport.renderers import OutputWriter
from BookReport.services import ReportRunner, seed_books
from BookReport.storage.base import DocumentStore
from BookReport.utils.log import log


@dataclass(slots=True)
class ReportCommand:
    """Run catalog entries in order and hand each result to the writer.

    Results are written as soon as they are produced, so entries printed
    before a failure stay visible.
    """

    runner: ReportRunner
    entries: Sequence[CatalogEntry]
    output_writer: OutputWriter

    def execute(self) -> int:
        """Run the report.

        Returns:
            Number of entries completed.
        """
        completed = 0
        for result in self.runner.run(self.entries):
            self.output_writer.write_result(result)
            completed += 1
        log.debug("Completed %d/%d entries", completed, len(self.entries))
        return completed


@dataclass(slots=True)
class SeedCommand:
    """Insert sample books into the store."""

    store: DocumentStore
    books: Sequence[Book]
    drop: bool = False

    def execute(self) -> int:
        inserted = seed_books(self.store, self.books, drop=self.drop)
        log.info("Inserted %d books", inserted)
        return inserted
