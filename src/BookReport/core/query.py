"""Declarative query, pipeline and index shapes.

These structures describe what to ask the store for. They hold no store
handle and compile to nothing by themselves: each storage adapter translates
them into its own dialect. The `check_*` functions reject shapes no adapter
could run, raising `InvalidSpec` before a request is issued.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Sequence, Union

from BookReport.core.errors import InvalidDocument, InvalidSpec
from BookReport.core.models import check_book_value

ASCENDING = 1
DESCENDING = -1

OP_EQ = "eq"
OP_NE = "ne"
OP_GT = "gt"
OP_GTE = "gte"
OP_LT = "lt"
OP_LTE = "lte"
RANGE_OPS = frozenset({OP_GT, OP_GTE, OP_LT, OP_LTE})
FILTER_OPS = frozenset({OP_EQ, OP_NE}) | RANGE_OPS

ACC_SUM = "sum"
ACC_AVG = "avg"
ACC_COUNT = "count"
ACCUMULATOR_OPS = frozenset({ACC_SUM, ACC_AVG, ACC_COUNT})

ID_FIELD = "_id"

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True, slots=True)
class Condition:
    """One predicate on a single document field.

    Attributes:
        field: Top-level field name.
        op: One of `eq`, `ne`, `gt`, `gte`, `lt`, `lte`.
        value: Value compared against. Equality accepts strings, numbers,
            booleans and `None` (missing or null); ranges accept numbers and
            strings and only match values of the same kind.
    """

    field: str
    op: str
    value: Any


def eq(field: str, value: Any) -> Condition:
    return Condition(field, OP_EQ, value)


def ne(field: str, value: Any) -> Condition:
    return Condition(field, OP_NE, value)


def gt(field: str, value: Any) -> Condition:
    return Condition(field, OP_GT, value)


def gte(field: str, value: Any) -> Condition:
    return Condition(field, OP_GTE, value)


def lt(field: str, value: Any) -> Condition:
    return Condition(field, OP_LT, value)


def lte(field: str, value: Any) -> Condition:
    return Condition(field, OP_LTE, value)


def where(**fields: Any) -> tuple[Condition, ...]:
    """Build an equality filter from keyword arguments."""
    return tuple(eq(name, value) for name, value in fields.items())


@dataclass(frozen=True, slots=True)
class SortKey:
    field: str
    direction: int = ASCENDING


@dataclass(frozen=True, slots=True)
class QuerySpec:
    """Find request: filter, then projection, sort, skip and limit.

    Attributes:
        filter: Conditions combined by conjunction; empty matches everything.
        projection: Field names to keep, or None for whole documents.
        include_id: Keep the identity key in projected output.
        sort: Ordered sort keys; ties keep natural order.
        skip: Number of leading matches to drop.
        limit: Maximum number of documents, 0 for no limit.
    """

    filter: tuple[Condition, ...] = ()
    projection: tuple[str, ...] | None = None
    include_id: bool = False
    sort: tuple[SortKey, ...] = ()
    skip: int = 0
    limit: int = 0


@dataclass(frozen=True, slots=True)
class FieldKey:
    """Group by the raw value of a field."""

    field: str


@dataclass(frozen=True, slots=True)
class BucketKey:
    """Group by `floor(field / width) * width`.

    With a label the group id is `{label: bucket}`, otherwise the bucket value.
    """

    field: str
    width: int
    label: str | None = None


GroupKey = Union[FieldKey, BucketKey]


@dataclass(frozen=True, slots=True)
class Accumulator:
    op: str
    field: str | None = None


def count() -> Accumulator:
    return Accumulator(ACC_COUNT)


def sum_of(field: str) -> Accumulator:
    return Accumulator(ACC_SUM, field)


def avg_of(field: str) -> Accumulator:
    return Accumulator(ACC_AVG, field)


@dataclass(frozen=True, slots=True)
class GroupStage:
    key: GroupKey
    accumulators: Mapping[str, Accumulator] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "accumulators", MappingProxyType(dict(self.accumulators)))

    def output_fields(self) -> frozenset[str]:
        """Field paths addressable by stages that follow this group."""
        if isinstance(self.key, BucketKey) and self.key.label:
            key_paths = {f"{ID_FIELD}.{self.key.label}"}
        else:
            key_paths = {ID_FIELD}
        return frozenset(key_paths | set(self.accumulators))


@dataclass(frozen=True, slots=True)
class SortStage:
    keys: tuple[SortKey, ...]


@dataclass(frozen=True, slots=True)
class LimitStage:
    n: int


Stage = Union[GroupStage, SortStage, LimitStage]


@dataclass(frozen=True, slots=True)
class AggregationSpec:
    """Ordered pipeline; stage order is kept verbatim."""

    stages: tuple[Stage, ...]

    @property
    def group(self) -> GroupStage | None:
        for stage in self.stages:
            if isinstance(stage, GroupStage):
                return stage
        return None


@dataclass(frozen=True, slots=True)
class IndexSpec:
    """Ordered index keys as `(field, direction)` pairs."""

    keys: tuple[tuple[str, int], ...]

    @property
    def name(self) -> str:
        """Deterministic index identifier, e.g. `author_1_published_year_1`."""
        return "_".join(f"{name}_{direction}" for name, direction in self.keys)


def check_field(name: Any, what: str = "field") -> str:
    """Validate a top-level field name.

    Raises:
        InvalidSpec: If the name is not an identifier-like string.
    """
    if not isinstance(name, str) or not _FIELD_RE.match(name):
        raise InvalidSpec(f"{what} must be an identifier-like field name, got {name!r}")
    return name


def check_direction(direction: Any, what: str) -> int:
    if isinstance(direction, bool) or direction not in (ASCENDING, DESCENDING):
        raise InvalidSpec(f"{what} direction must be 1 or -1, got {direction!r}")
    return direction


def check_filter(conditions: Sequence[Condition]) -> tuple[Condition, ...]:
    """Validate a filter and return it as a tuple.

    Raises:
        InvalidSpec: If a condition is malformed or compares an unusable value.
    """
    if isinstance(conditions, (str, bytes)) or not isinstance(conditions, Sequence):
        raise InvalidSpec(f"filter must be a sequence of conditions, got {type(conditions).__name__}")
    for cond in conditions:
        if not isinstance(cond, Condition):
            raise InvalidSpec(f"filter entries must be Condition, got {type(cond).__name__}")
        check_field(cond.field, "filter")
        if cond.op not in FILTER_OPS:
            raise InvalidSpec(f"Unsupported filter operator {cond.op!r} on {cond.field}")
        value = cond.value
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidSpec(f"filter on {cond.field} compares a non-finite number")
        if cond.op in RANGE_OPS:
            if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                raise InvalidSpec(f"Range filter on {cond.field} needs a number or string, got {value!r}")
        elif value is not None and not isinstance(value, (str, bool, int, float)):
            raise InvalidSpec(f"Equality filter on {cond.field} needs a scalar, got {value!r}")
    return tuple(conditions)


def check_query(spec: QuerySpec) -> None:
    """Validate a find request.

    Raises:
        InvalidSpec: If any part of the request is malformed.
    """
    if not isinstance(spec, QuerySpec):
        raise InvalidSpec(f"Expected QuerySpec, got {type(spec).__name__}")
    check_filter(spec.filter)
    if spec.projection is not None:
        if isinstance(spec.projection, str) or not spec.projection:
            raise InvalidSpec("projection must be a non-empty sequence of field names")
        for name in spec.projection:
            check_field(name, "projection")
    for key in spec.sort:
        if not isinstance(key, SortKey):
            raise InvalidSpec(f"sort entries must be SortKey, got {type(key).__name__}")
        check_field(key.field, "sort")
        check_direction(key.direction, f"sort on {key.field}")
    _check_count(spec.skip, "skip")
    _check_count(spec.limit, "limit")


def check_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Validate an update patch and return the normalized field values.

    Known Book fields are type-checked and `price` must be finite and not
    negative. `published_year` is not range-checked. Other fields accept any
    JSON value: scalars, lists and string-keyed mappings.

    Raises:
        InvalidSpec: If the patch is empty, touches `_id`, or has bad values.
    """
    if not isinstance(patch, Mapping) or not patch:
        raise InvalidSpec("update patch must be a non-empty mapping")
    out: dict[str, Any] = {}
    for name, value in patch.items():
        check_field(name, "patch")
        if name == ID_FIELD:
            raise InvalidSpec("update patch must not modify _id")
        if not _is_json_value(value):
            raise InvalidSpec(f"update patch rejected: {name} is not a JSON value: {value!r}")
        try:
            out[name] = check_book_value(name, value)
        except InvalidDocument as e:
            raise InvalidSpec(f"update patch rejected: {e}") from e
    return out


def _is_json_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, (list, tuple)):
        return all(_is_json_value(item) for item in value)
    if isinstance(value, Mapping):
        return all(isinstance(key, str) and _is_json_value(item) for key, item in value.items())
    return False


def check_aggregation(spec: AggregationSpec) -> None:
    """Validate a pipeline.

    Stages before the group work on document fields; stages after it may only
    address the group output (`_id`, `_id.<label>`, accumulator names).

    Raises:
        InvalidSpec: If the pipeline is empty or any stage is malformed.
    """
    if not isinstance(spec, AggregationSpec) or not spec.stages:
        raise InvalidSpec("aggregation needs at least one stage")
    group: GroupStage | None = None
    for stage in spec.stages:
        if isinstance(stage, GroupStage):
            if group is not None:
                raise InvalidSpec("aggregation supports a single group stage")
            _check_group(stage)
            group = stage
        elif isinstance(stage, SortStage):
            if not stage.keys:
                raise InvalidSpec("sort stage needs at least one key")
            allowed = group.output_fields() if group else None
            for key in stage.keys:
                if allowed is None:
                    check_field(key.field, "sort")
                elif key.field not in allowed:
                    raise InvalidSpec(
                        f"sort field {key.field!r} is not produced by the group stage; use one of {sorted(allowed)}"
                    )
                check_direction(key.direction, f"sort on {key.field}")
        elif isinstance(stage, LimitStage):
            if isinstance(stage.n, bool) or not isinstance(stage.n, int) or stage.n <= 0:
                raise InvalidSpec(f"limit stage needs a positive integer, got {stage.n!r}")
        else:
            raise InvalidSpec(f"Unsupported pipeline stage {type(stage).__name__}")


def check_index(spec: IndexSpec) -> None:
    if not isinstance(spec, IndexSpec) or not spec.keys:
        raise InvalidSpec("index needs at least one key")
    seen: set[str] = set()
    for name, direction in spec.keys:
        check_field(name, "index")
        check_direction(direction, f"index on {name}")
        if name in seen:
            raise InvalidSpec(f"index lists {name} twice")
        seen.add(name)


def _check_group(stage: GroupStage) -> None:
    key = stage.key
    if isinstance(key, FieldKey):
        check_field(key.field, "group key")
    elif isinstance(key, BucketKey):
        check_field(key.field, "group key")
        if isinstance(key.width, bool) or not isinstance(key.width, int) or key.width <= 0:
            raise InvalidSpec(f"bucket width must be a positive integer, got {key.width!r}")
        if key.label is not None:
            check_field(key.label, "bucket label")
    else:
        raise InvalidSpec(f"Unsupported group key {type(key).__name__}")
    for name, acc in stage.accumulators.items():
        check_field(name, "accumulator")
        if name.startswith("_"):
            raise InvalidSpec(f"accumulator names must not start with '_': {name!r}")
        if not isinstance(acc, Accumulator) or acc.op not in ACCUMULATOR_OPS:
            raise InvalidSpec(f"Unsupported accumulator for {name}: {acc!r}")
        if acc.op == ACC_COUNT:
            if acc.field is not None:
                raise InvalidSpec(f"count accumulator {name} takes no field")
        else:
            check_field(acc.field, f"{acc.op} accumulator")


def _check_count(value: Any, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidSpec(f"{what} must be a non-negative integer, got {value!r}")
