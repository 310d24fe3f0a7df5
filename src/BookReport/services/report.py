"""Ordered, fail-fast execution of catalog entries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from BookReport.core.catalog import (
    AggregateOperation,
    CatalogEntry,
    CreateIndexOperation,
    DeleteOperation,
    ExplainOperation,
    FindOperation,
    UpdateOperation,
)
from BookReport.core.errors import InvalidSpec
from BookReport.services.executor import QueryExecutor
from BookReport.services.indexes import IndexManager
from BookReport.services.plan import PlanInspector
from BookReport.storage.base import DocumentStore
from BookReport.utils.log import log


@dataclass(frozen=True, slots=True)
class EntryResult:
    """Value produced by one catalog entry.

    `value` is a list of books (find), an `UpdateResult`, a `DeleteResult`,
    a list of documents (aggregate), an index id (create index), or a
    `PlanSummary` (explain).
    """

    entry: CatalogEntry
    value: Any


@dataclass(slots=True)
class ReportRunner:
    """Dispatch catalog entries to the executor, index manager and inspector."""

    executor: QueryExecutor
    indexes: IndexManager
    inspector: PlanInspector

    @classmethod
    def for_store(cls, store: DocumentStore) -> ReportRunner:
        return cls(
            executor=QueryExecutor(store),
            indexes=IndexManager(store),
            inspector=PlanInspector(store),
        )

    def run_entry(self, entry: CatalogEntry) -> EntryResult:
        """Run one entry.

        Raises:
            InvalidSpec: If the entry carries an unknown operation.
        """
        op = entry.operation
        if isinstance(op, FindOperation):
            value: Any = self.executor.find(op.spec)
        elif isinstance(op, UpdateOperation):
            value = self.executor.update_one(op.filter, op.patch)
        elif isinstance(op, DeleteOperation):
            value = self.executor.delete_one(op.filter)
        elif isinstance(op, AggregateOperation):
            value = self.executor.aggregate(op.spec)
        elif isinstance(op, CreateIndexOperation):
            value = self.indexes.create_index(op.spec)
        elif isinstance(op, ExplainOperation):
            value = self.inspector.explain(op.filter)
        else:
            raise InvalidSpec(f"Unsupported operation for entry {entry.name}: {type(op).__name__}")
        return EntryResult(entry=entry, value=value)

    def run(self, entries: Iterable[CatalogEntry]) -> Iterator[EntryResult]:
        """Run entries in order, yielding each result before the next runs.

        The first failing entry stops the run: its error propagates and no
        later entry is attempted.
        """
        entries = tuple(entries)
        for idx, entry in enumerate(entries, start=1):
            log.debug("Running entry %d/%d name=%s", idx, len(entries), entry.name)
            yield self.run_entry(entry)
