"""Tests for the SQLite document store and the services on top of it."""

from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from BookReport.core.catalog import DEFAULT_CATALOG
from BookReport.core.errors import InvalidSpec, StoreUnavailable
from BookReport.core.query import (
    ASCENDING,
    DESCENDING,
    AggregationSpec,
    BucketKey,
    FieldKey,
    GroupStage,
    IndexSpec,
    LimitStage,
    QuerySpec,
    SortKey,
    SortStage,
    avg_of,
    count,
    eq,
    gt,
    gte,
    lt,
    ne,
    sum_of,
    where,
)
from BookReport.services import IndexManager, PlanInspector, QueryExecutor, ReportRunner, load_books, seed_books
from BookReport.storage.sqlite import SqliteDocumentStore


def _docs() -> list[dict]:
    return [
        {"title": "Alpha", "author": "Ann", "genre": "Fiction", "published_year": 1949, "price": 10.0, "in_stock": True},
        {"title": "Beta", "author": "Bob", "genre": "Fiction", "published_year": 1987, "price": 20.0, "in_stock": False},
        {"title": "Gamma", "author": "Ann", "genre": "Poetry", "published_year": 2012, "price": 7.5, "in_stock": True},
        {"title": "Delta", "author": "Cid", "genre": "Poetry", "published_year": 1955, "price": 7.5, "in_stock": True},
        {"title": "Epsilon", "author": "Bob", "genre": "History", "published_year": 2015, "price": 30.0, "in_stock": False},
        {"title": "Zeta", "author": "Ann", "genre": "History", "published_year": 1981, "price": 12.0},
    ]


class _StoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SqliteDocumentStore.open(Path(tempfile.mkdtemp()) / "books.db")
        self.store.insert_many(_docs())
        self.executor = QueryExecutor(self.store)

    def tearDown(self) -> None:
        self.store.close()

    def titles(self, spec: QuerySpec) -> list[str]:
        return [book.title for book in self.executor.find(spec)]


class TestFind(_StoreTestCase):
    def test_equality_filter(self) -> None:
        self.assertEqual(self.titles(QuerySpec(filter=where(genre="Fiction"))), ["Alpha", "Beta"])

    def test_range_filters(self) -> None:
        self.assertEqual(self.titles(QuerySpec(filter=(gt("published_year", 1950),))), ["Beta", "Gamma", "Delta", "Epsilon", "Zeta"])
        self.assertEqual(self.titles(QuerySpec(filter=(gte("price", 20), lt("price", 30)))), ["Beta"])

    def test_bool_and_missing_values(self) -> None:
        self.assertEqual(self.titles(QuerySpec(filter=(eq("in_stock", True),))), ["Alpha", "Gamma", "Delta"])
        self.assertEqual(self.titles(QuerySpec(filter=(eq("in_stock", None),))), ["Zeta"])
        self.assertEqual(self.titles(QuerySpec(filter=(ne("in_stock", True),))), ["Beta", "Epsilon", "Zeta"])

    def test_range_does_not_cross_types(self) -> None:
        self.store.insert_many([{"title": "Odd", "published_year": "2020"}])
        self.assertNotIn("Odd", self.titles(QuerySpec(filter=(gt("published_year", 2000),))))

    def test_result_independent_of_insertion_order(self) -> None:
        other = SqliteDocumentStore.open(":memory:")
        try:
            other.insert_many(list(reversed(_docs())))
            spec = QuerySpec(filter=(gt("published_year", 1950), eq("in_stock", True)))
            mine = {book.title for book in self.executor.find(spec)}
            theirs = {book.title for book in QueryExecutor(other).find(spec)}
            self.assertEqual(mine, theirs)
            self.assertEqual(mine, {"Gamma", "Delta"})
        finally:
            other.close()

    def test_results_are_subset_of_collection(self) -> None:
        everything = {book.id for book in self.executor.find(QuerySpec())}
        matched = {book.id for book in self.executor.find(QuerySpec(filter=where(author="Ann")))}
        self.assertTrue(matched <= everything)
        self.assertEqual(len(matched), 3)

    def test_projection_drops_id_unless_requested(self) -> None:
        books = self.executor.find(QuerySpec(filter=where(title="Alpha"), projection=("title", "price")))
        self.assertEqual(books[0].as_dict(), {"title": "Alpha", "price": 10.0})
        with_id = self.executor.find(QuerySpec(filter=where(title="Alpha"), projection=("title",), include_id=True))
        self.assertIsNotNone(with_id[0].id)

    def test_sort_is_stable_on_ties(self) -> None:
        asc = self.titles(QuerySpec(sort=(SortKey("price", ASCENDING),)))
        self.assertEqual(asc[:2], ["Gamma", "Delta"])
        desc = self.titles(QuerySpec(sort=(SortKey("price", DESCENDING),)))
        self.assertEqual(desc[0], "Epsilon")
        self.assertEqual(desc[-2:], ["Gamma", "Delta"])

    def test_pages_concatenate_to_sorted_list(self) -> None:
        sort = (SortKey("price", ASCENDING),)
        full = self.titles(QuerySpec(sort=sort))
        pages = [self.titles(QuerySpec(sort=sort, skip=skip, limit=2)) for skip in (0, 2, 4, 6)]
        self.assertEqual([title for page in pages for title in page], full)
        self.assertEqual(pages[-1], [])

    def test_limit_zero_means_unlimited(self) -> None:
        self.assertEqual(len(self.titles(QuerySpec(limit=0))), 6)

    def test_invalid_spec_raised_before_store(self) -> None:
        with self.assertRaises(InvalidSpec):
            self.executor.find(QuerySpec(skip=-1))

    def test_closed_store_is_unavailable(self) -> None:
        self.store.close()
        with self.assertRaises(StoreUnavailable):
            self.executor.find(QuerySpec())


class TestUpdateDelete(_StoreTestCase):
    def test_update_first_match_only(self) -> None:
        result = self.executor.update_one(where(author="Ann"), {"price": 1.0})
        self.assertEqual((result.matched_count, result.modified_count), (1, 1))
        prices = [book.price for book in self.executor.find(QuerySpec(filter=where(author="Ann")))]
        self.assertEqual(prices, [1.0, 7.5, 12.0])

    def test_update_same_value_modifies_nothing(self) -> None:
        result = self.executor.update_one(where(title="Alpha"), {"price": 10.0})
        self.assertEqual((result.matched_count, result.modified_count), (1, 0))

    def test_update_without_match(self) -> None:
        result = self.executor.update_one(where(title="Missing"), {"price": 5.0})
        self.assertEqual((result.matched_count, result.modified_count), (0, 0))

    def test_update_keeps_other_fields(self) -> None:
        self.executor.update_one(where(title="Alpha"), {"price": 13.99})
        book = self.executor.find(QuerySpec(filter=where(title="Alpha")))[0]
        self.assertEqual(book.price, 13.99)
        self.assertEqual(book.author, "Ann")
        self.assertEqual(book.published_year, 1949)

    def test_invalid_patch_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            self.executor.update_one(where(title="Alpha"), {"price": -3})

    def test_delete_one_then_none(self) -> None:
        self.assertEqual(self.executor.delete_one(where(title="Beta")).deleted_count, 1)
        self.assertEqual(self.executor.delete_one(where(title="Beta")).deleted_count, 0)
        self.assertEqual(len(self.executor.find(QuerySpec())), 5)

    def test_delete_removes_first_match(self) -> None:
        self.executor.delete_one(where(author="Bob"))
        self.assertEqual(self.titles(QuerySpec(filter=where(author="Bob"))), ["Epsilon"])


class TestAggregate(_StoreTestCase):
    def test_average_by_group_in_first_seen_order(self) -> None:
        spec = AggregationSpec((GroupStage(FieldKey("genre"), {"averagePrice": avg_of("price")}),))
        docs = self.executor.aggregate(spec)
        self.assertEqual([doc["_id"] for doc in docs], ["Fiction", "Poetry", "History"])
        self.assertAlmostEqual(docs[0]["averagePrice"], 15.0)
        self.assertAlmostEqual(docs[1]["averagePrice"], 7.5)

    def test_top_group_tie_goes_to_first_seen(self) -> None:
        self.store.insert_many([{"title": "Eta", "author": "Bob"}])
        spec = AggregationSpec(
            (
                GroupStage(FieldKey("author"), {"count": count()}),
                SortStage((SortKey("count", DESCENDING),)),
                LimitStage(1),
            )
        )
        self.assertEqual(self.executor.aggregate(spec), [{"_id": "Ann", "count": 3}])

    def test_decade_buckets(self) -> None:
        spec = AggregationSpec(
            (
                GroupStage(BucketKey("published_year", 10, "decade"), {"count": count()}),
                SortStage((SortKey("_id.decade", ASCENDING),)),
            )
        )
        docs = self.executor.aggregate(spec)
        self.assertEqual(
            docs,
            [
                {"_id": {"decade": 1940}, "count": 1},
                {"_id": {"decade": 1950}, "count": 1},
                {"_id": {"decade": 1980}, "count": 2},
                {"_id": {"decade": 2010}, "count": 2},
            ],
        )

    def test_sum_and_unlabelled_bucket(self) -> None:
        spec = AggregationSpec((GroupStage(BucketKey("price", 10), {"total": sum_of("price"), "n": count()}),))
        docs = self.executor.aggregate(spec)
        self.assertEqual(docs[0], {"_id": 10, "total": 22.0, "n": 2})

    def test_limit_before_group_applies_first(self) -> None:
        spec = AggregationSpec((LimitStage(2), GroupStage(FieldKey("genre"), {"count": count()})))
        self.assertEqual(self.executor.aggregate(spec), [{"_id": "Fiction", "count": 2}])

    def test_group_by_boolean_field(self) -> None:
        spec = AggregationSpec((GroupStage(FieldKey("in_stock"), {"count": count()}),))
        docs = self.executor.aggregate(spec)
        self.assertEqual(
            docs,
            [{"_id": True, "count": 3}, {"_id": False, "count": 2}, {"_id": None, "count": 1}],
        )
        self.assertIs(docs[1]["_id"], False)


class TestIndexesAndPlans(_StoreTestCase):
    def test_create_index_is_idempotent(self) -> None:
        manager = IndexManager(self.store)
        spec = IndexSpec((("title", ASCENDING),))
        self.assertEqual(manager.create_index(spec), "title_1")
        self.assertEqual(manager.create_index(spec), "title_1")
        self.assertEqual(manager.list_indexes(), ["_id_", "title_1"])

    def test_explain_full_scan_without_index(self) -> None:
        summary = PlanInspector(self.store).explain(where(title="Alpha"))
        self.assertFalse(summary.uses_index)
        self.assertTrue(summary.is_collection_scan)
        self.assertEqual(summary.n_returned, 1)

    def test_explain_index_scan_after_create(self) -> None:
        IndexManager(self.store).create_index(IndexSpec((("title", ASCENDING),)))
        summary = PlanInspector(self.store).explain(where(title="Alpha"))
        self.assertTrue(summary.uses_index)
        self.assertEqual(summary.index_names, ("title_1",))

    def test_explain_compound_index(self) -> None:
        IndexManager(self.store).create_index(IndexSpec((("author", ASCENDING), ("published_year", ASCENDING))))
        summary = PlanInspector(self.store).explain((eq("author", "Ann"), gt("published_year", 1900)))
        self.assertTrue(summary.uses_index)
        self.assertIn("author_1_published_year_1", summary.index_names)
        self.assertEqual(summary.n_returned, 3)

    def test_explain_does_not_modify_data(self) -> None:
        before = [book.as_dict() for book in self.executor.find(QuerySpec())]
        PlanInspector(self.store).explain(where(title="Alpha"))
        self.assertEqual([book.as_dict() for book in self.executor.find(QuerySpec())], before)

    def test_drop_recreates_empty_collection(self) -> None:
        self.store.drop()
        self.assertEqual(self.executor.find(QuerySpec()), [])


class TestTypeSeparation(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SqliteDocumentStore.open(":memory:")
        self.store.insert_many([{"title": "A", "flag": True}, {"title": "B", "flag": 1}, {"title": "C"}])

    def tearDown(self) -> None:
        self.store.close()

    def titles(self, *conditions) -> list[str]:
        return [doc["title"] for doc in self.store.find(QuerySpec(filter=conditions))]

    def test_number_equality_skips_booleans(self) -> None:
        self.assertEqual(self.titles(eq("flag", 1)), ["B"])
        self.assertEqual(self.titles(eq("flag", True)), ["A"])
        self.assertEqual(self.titles(ne("flag", 1)), ["A", "C"])

    def test_string_equality_skips_numbers(self) -> None:
        self.store.insert_many([{"title": "D", "flag": "1"}])
        self.assertEqual(self.titles(eq("flag", "1")), ["D"])
        self.assertEqual(self.titles(eq("flag", 1)), ["B"])

    def test_group_keeps_true_apart_from_one(self) -> None:
        spec = AggregationSpec((GroupStage(FieldKey("flag"), {"n": count()}),))
        docs = self.store.aggregate(spec)
        self.assertEqual(docs, [{"_id": True, "n": 1}, {"_id": 1, "n": 1}, {"_id": None, "n": 1}])
        self.assertIs(docs[0]["_id"], True)


class TestPatchSerialization(unittest.TestCase):
    def test_non_json_patch_reaching_store_is_invalid_spec(self) -> None:
        store = SqliteDocumentStore.open(":memory:")
        try:
            store.insert_many([{"title": "A", "price": 1.0}])
            with self.assertRaises(InvalidSpec):
                store.update_one(where(title="A"), {"price": float("inf")})
            with self.assertRaises(InvalidSpec):
                store.update_one(where(title="A"), {"tags": {"x"}})
            self.assertEqual(store.find(QuerySpec())[0]["price"], 1.0)
        finally:
            store.close()


class TestFictionScenario(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SqliteDocumentStore.open(":memory:")
        self.store.insert_many(
            [
                {
                    "title": "1984",
                    "author": "George Orwell",
                    "genre": "Fiction",
                    "published_year": 1949,
                    "price": 10.00,
                    "in_stock": True,
                },
                {
                    "title": "Moby Dick",
                    "author": "Herman Melville",
                    "genre": "Fiction",
                    "published_year": 1851,
                    "price": 12.00,
                    "in_stock": False,
                },
            ]
        )
        self.executor = QueryExecutor(self.store)

    def tearDown(self) -> None:
        self.store.close()

    def test_find_update_delete_round(self) -> None:
        fiction = self.executor.find(QuerySpec(filter=where(genre="Fiction")))
        self.assertEqual([book.title for book in fiction], ["1984", "Moby Dick"])

        self.assertEqual(self.executor.update_one(where(title="1984"), {"price": 13.99}).modified_count, 1)
        self.assertEqual(self.executor.delete_one(where(title="Moby Dick")).deleted_count, 1)

        remaining = {book.title: book for book in self.executor.find(QuerySpec())}
        self.assertIn("1984", remaining)
        self.assertNotIn("Moby Dick", remaining)
        self.assertEqual(remaining["1984"].price, 13.99)
        self.assertEqual(remaining["1984"].author, "George Orwell")
        self.assertIs(remaining["1984"].in_stock, True)


class TestFullReport(unittest.TestCase):
    def test_default_catalog_against_sample_data(self) -> None:
        store = SqliteDocumentStore.open(":memory:")
        try:
            seed_books(store, load_books(REPO_ROOT / "data" / "books.yml"))
            results = {result.entry.name: result.value for result in ReportRunner.for_store(store).run(DEFAULT_CATALOG)}
        finally:
            store.close()

        self.assertEqual(len(results), len(DEFAULT_CATALOG))
        self.assertEqual(
            [book.title for book in results["fiction_books"]],
            ["To Kill a Mockingbird", "The Great Gatsby", "The Catcher in the Rye", "The Alchemist"],
        )
        self.assertEqual([book.title for book in results["orwell_books"]], ["1984", "Animal Farm"])
        self.assertEqual(results["update_1984_price"].modified_count, 1)
        self.assertEqual(results["delete_moby_dick"].deleted_count, 1)
        self.assertEqual(
            [book.as_dict() for book in results["in_stock_after_2010"]],
            [
                {"title": "The Martian", "author": "Andy Weir", "price": 11.99},
                {"title": "Project Hail Mary", "author": "Andy Weir", "price": 15.99},
            ],
        )
        self.assertNotIn("Moby Dick", [book.title for book in results["price_ascending"]])
        self.assertEqual(results["price_descending"][0].title, "The Lord of the Rings")
        page_titles = [book.title for book in results["page_1"] + results["page_2"]]
        self.assertEqual(len(page_titles), 10)
        self.assertEqual(len(set(page_titles)), 10)
        self.assertEqual(results["top_author"], [{"_id": "George Orwell", "count": 2}])
        decades = [doc["_id"]["decade"] for doc in results["books_by_decade"]]
        self.assertEqual(decades, sorted(decades))
        self.assertNotIn(1850, decades)
        self.assertEqual(results["title_index"], "title_1")
        self.assertEqual(results["author_year_index"], "author_1_published_year_1")
        self.assertTrue(results["explain_title"].uses_index)
        self.assertTrue(results["explain_author_year"].uses_index)
        self.assertEqual(results["explain_author_year"].n_returned, 2)


if __name__ == "__main__":
    unittest.main()
