"""Tests for fail-fast report runs and scoped store release."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from BookReport.cli.commands import ReportCommand
from BookReport.core.catalog import CatalogEntry, FindOperation, UpdateOperation, get_entries
from BookReport.core.errors import InvalidSpec, ResourceReleaseFailure, StoreUnavailable
from BookReport.core.query import QuerySpec, where
from BookReport.services import ReportRunner
from BookReport.storage import StoreSession
from BookReport.storage.sqlite import SqliteDocumentStore


def _entries() -> tuple[CatalogEntry, ...]:
    return (
        CatalogEntry("all_books", "All books", FindOperation(QuerySpec())),
        CatalogEntry("broken", "Broken", FindOperation(QuerySpec(limit=-1))),
        CatalogEntry("reprice", "Reprice", UpdateOperation(where(title="1984"), {"price": 1.0})),
    )


class _RecordingWriter:
    def __init__(self) -> None:
        self.names: list[str] = []

    def write_result(self, result) -> None:
        self.names.append(result.entry.name)

    def finalize(self, action: str) -> None:
        del action


class _ClosingStore:
    name = "stub"

    def __init__(self, close_error: Exception | None = None) -> None:
        self.close_error = close_error
        self.closed = False

    def close(self) -> None:
        self.closed = True
        if self.close_error:
            raise self.close_error


class TestReportRunner(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SqliteDocumentStore.open(":memory:")
        self.store.insert_many([{"title": "1984", "price": 10.99}])

    def tearDown(self) -> None:
        self.store.close()

    def test_first_failure_stops_the_run(self) -> None:
        writer = _RecordingWriter()
        command = ReportCommand(runner=ReportRunner.for_store(self.store), entries=_entries(), output_writer=writer)
        with self.assertRaises(InvalidSpec):
            command.execute()
        self.assertEqual(writer.names, ["all_books"])
        price = ReportRunner.for_store(self.store).executor.find(QuerySpec())[0].price
        self.assertEqual(price, 10.99)

    def test_results_are_yielded_one_at_a_time(self) -> None:
        results = ReportRunner.for_store(self.store).run(_entries())
        first = next(results)
        self.assertEqual(first.entry.name, "all_books")
        self.assertEqual([book.title for book in first.value], ["1984"])
        with self.assertRaises(InvalidSpec):
            next(results)

    def test_unknown_operation_rejected(self) -> None:
        entry = CatalogEntry("odd", "Odd", operation="find everything")
        with self.assertRaisesRegex(InvalidSpec, "odd"):
            ReportRunner.for_store(self.store).run_entry(entry)

    def test_selected_entries_run(self) -> None:
        results = list(ReportRunner.for_store(self.store).run(get_entries(["update_1984_price"])))
        self.assertEqual(results[0].value.modified_count, 1)


class TestStoreSession(unittest.TestCase):
    def test_store_closed_on_success(self) -> None:
        store = _ClosingStore()
        with StoreSession(store) as handle:
            self.assertIs(handle, store)
        self.assertTrue(store.closed)

    def test_store_closed_on_failure(self) -> None:
        store = _ClosingStore()
        with self.assertRaises(StoreUnavailable):
            with StoreSession(store):
                raise StoreUnavailable("lost connection")
        self.assertTrue(store.closed)

    def test_close_failure_after_success_raises(self) -> None:
        store = _ClosingStore(close_error=OSError("socket stuck"))
        with self.assertRaisesRegex(ResourceReleaseFailure, "socket stuck"):
            with StoreSession(store):
                pass

    def test_close_failure_keeps_original_error(self) -> None:
        store = _ClosingStore(close_error=OSError("socket stuck"))
        with self.assertRaisesRegex(InvalidSpec, "bad filter"):
            with StoreSession(store):
                raise InvalidSpec("bad filter")
        self.assertTrue(store.closed)

    def test_sqlite_store_unusable_after_session(self) -> None:
        store = SqliteDocumentStore.open(":memory:")
        with StoreSession(store):
            store.insert_many([{"title": "A"}])
        with self.assertRaises(StoreUnavailable):
            store.find(QuerySpec())


if __name__ == "__main__":
    unittest.main()
