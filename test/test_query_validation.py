"""Tests for query, pipeline and index validation."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from BookReport.core.errors import InvalidSpec
from BookReport.core.query import (
    DESCENDING,
    AggregationSpec,
    BucketKey,
    Condition,
    FieldKey,
    GroupStage,
    IndexSpec,
    LimitStage,
    QuerySpec,
    SortKey,
    SortStage,
    avg_of,
    check_aggregation,
    check_filter,
    check_index,
    check_patch,
    check_query,
    count,
    eq,
    gt,
    where,
)


class TestFilterValidation(unittest.TestCase):
    def test_where_builds_equality_conditions(self) -> None:
        self.assertEqual(where(genre="Fiction"), (Condition("genre", "eq", "Fiction"),))

    def test_unknown_operator_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "operator"):
            check_filter([Condition("price", "regex", "x")])

    def test_bad_field_name_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            check_filter([eq("$where", 1)])
        with self.assertRaises(InvalidSpec):
            check_filter([eq("a.b", 1)])

    def test_range_on_bool_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "Range filter"):
            check_filter([gt("in_stock", True)])

    def test_equality_on_list_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            check_filter([eq("title", ["a", "b"])])

    def test_non_finite_number_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            check_filter([gt("price", float("nan"))])

    def test_string_filter_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            check_filter("title")


class TestQueryValidation(unittest.TestCase):
    def test_default_spec_is_valid(self) -> None:
        check_query(QuerySpec())

    def test_negative_skip_and_limit_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "skip"):
            check_query(QuerySpec(skip=-1))
        with self.assertRaisesRegex(InvalidSpec, "limit"):
            check_query(QuerySpec(limit=-5))

    def test_empty_projection_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "projection"):
            check_query(QuerySpec(projection=()))

    def test_bad_sort_direction_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "direction"):
            check_query(QuerySpec(sort=(SortKey("price", 0),)))
        with self.assertRaises(InvalidSpec):
            check_query(QuerySpec(sort=(SortKey("price", True),)))


class TestPatchValidation(unittest.TestCase):
    def test_price_patch_normalized(self) -> None:
        self.assertEqual(check_patch({"price": 13}), {"price": 13.0})

    def test_negative_price_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "price"):
            check_patch({"price": -1})

    def test_wrong_type_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "in_stock"):
            check_patch({"in_stock": "yes"})

    def test_empty_patch_and_id_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            check_patch({})
        with self.assertRaisesRegex(InvalidSpec, "_id"):
            check_patch({"_id": "abc"})

    def test_unknown_fields_pass_through(self) -> None:
        self.assertEqual(check_patch({"pages": 100}), {"pages": 100})
        self.assertEqual(check_patch({"tags": ["classic", {"shelf": 3}]}), {"tags": ["classic", {"shelf": 3}]})

    def test_non_finite_price_rejected(self) -> None:
        for value in (float("inf"), float("-inf"), float("nan")):
            with self.assertRaisesRegex(InvalidSpec, "price"):
                check_patch({"price": value})

    def test_non_json_values_rejected(self) -> None:
        for value in ({"x"}, {1: "a"}, [float("nan")], object()):
            with self.assertRaisesRegex(InvalidSpec, "tags"):
                check_patch({"tags": value})


class TestAggregationValidation(unittest.TestCase):
    def test_sort_after_group_must_use_group_output(self) -> None:
        spec = AggregationSpec(
            (
                GroupStage(FieldKey("author"), {"count": count()}),
                SortStage((SortKey("price", DESCENDING),)),
            )
        )
        with self.assertRaisesRegex(InvalidSpec, "not produced by the group stage"):
            check_aggregation(spec)

    def test_bucket_label_path_is_sortable(self) -> None:
        spec = AggregationSpec(
            (
                GroupStage(BucketKey("published_year", 10, "decade"), {"count": count()}),
                SortStage((SortKey("_id.decade"),)),
            )
        )
        check_aggregation(spec)

    def test_non_positive_limit_and_width_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "limit"):
            check_aggregation(AggregationSpec((LimitStage(0),)))
        with self.assertRaisesRegex(InvalidSpec, "width"):
            check_aggregation(AggregationSpec((GroupStage(BucketKey("published_year", 0)),)))

    def test_two_groups_rejected(self) -> None:
        group = GroupStage(FieldKey("genre"), {"averagePrice": avg_of("price")})
        with self.assertRaisesRegex(InvalidSpec, "single group"):
            check_aggregation(AggregationSpec((group, group)))

    def test_empty_pipeline_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            check_aggregation(AggregationSpec(()))


class TestIndexSpec(unittest.TestCase):
    def test_name_is_deterministic(self) -> None:
        self.assertEqual(IndexSpec((("title", 1),)).name, "title_1")
        self.assertEqual(
            IndexSpec((("author", 1), ("published_year", -1))).name,
            "author_1_published_year_-1",
        )

    def test_duplicate_field_rejected(self) -> None:
        with self.assertRaisesRegex(InvalidSpec, "twice"):
            check_index(IndexSpec((("title", 1), ("title", -1))))

    def test_empty_index_rejected(self) -> None:
        with self.assertRaises(InvalidSpec):
            check_index(IndexSpec(()))


if __name__ == "__main__":
    unittest.main()
