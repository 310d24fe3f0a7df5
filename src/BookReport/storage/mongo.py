"""MongoDB document store built on pymongo.

Specs compile to plain filter documents, sort lists and aggregation pipelines.
The compile functions are pure so they can be checked without a server.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, OperationFailure, PyMongoError

from BookReport.core.errors import InvalidSpec, StoreUnavailable
from BookReport.core.models import DeleteResult, PlanStage, PlanSummary, UpdateResult
from BookReport.core.query import (
    ACC_AVG,
    ACC_COUNT,
    ACC_SUM,
    ASCENDING,
    ID_FIELD,
    OP_EQ,
    Accumulator,
    AggregationSpec,
    BucketKey,
    Condition,
    GroupKey,
    GroupStage,
    IndexSpec,
    QuerySpec,
    SortKey,
    SortStage,
)
from BookReport.utils.log import log

FIRST_SEEN_FIELD = "__first"


def compile_filter(conditions: Sequence[Condition]) -> dict[str, Any]:
    """Compile conditions into a MongoDB filter document.

    Conditions on distinct fields, or distinct operators on one field, merge
    into a single document; anything else falls back to `$and`.
    """
    clauses: list[dict[str, Any]] = []
    merged: dict[str, Any] = {}
    conflict = False
    for cond in conditions:
        value = _id_value(cond.value) if cond.field == ID_FIELD else cond.value
        term: Any = value if cond.op == OP_EQ else {f"${cond.op}": value}
        clauses.append({cond.field: term})
        if cond.field not in merged:
            merged[cond.field] = term
        elif _is_operator_doc(merged[cond.field]) and _is_operator_doc(term) and not set(term) & set(merged[cond.field]):
            merged[cond.field] = {**merged[cond.field], **term}
        else:
            conflict = True
    if conflict:
        return {"$and": clauses}
    return merged


def compile_projection(spec: QuerySpec) -> dict[str, int] | None:
    if spec.projection is None:
        return None
    projection = {name: 1 for name in spec.projection if name != ID_FIELD}
    projection[ID_FIELD] = 1 if spec.include_id or ID_FIELD in spec.projection else 0
    return projection


def compile_sort(keys: Sequence[SortKey], tie_field: str = ID_FIELD) -> list[tuple[str, int]]:
    """Sort pairs with a trailing tie-break field unless already present."""
    pairs = [(key.field, key.direction) for key in keys]
    if tie_field not in {name for name, _ in pairs}:
        pairs.append((tie_field, ASCENDING))
    return pairs


def compile_group_key(key: GroupKey) -> Any:
    if not isinstance(key, BucketKey):
        return f"${key.field}"
    value = f"${key.field}"
    scaled = {"$multiply": [{"$floor": {"$divide": [value, key.width]}}, key.width]}
    bucket = {"$cond": [{"$isNumber": value}, scaled, None]}
    return {key.label: bucket} if key.label else bucket


def compile_accumulator(acc: Accumulator) -> dict[str, Any]:
    if acc.op == ACC_COUNT:
        return {"$sum": 1}
    if acc.op == ACC_SUM:
        return {"$sum": f"${acc.field}"}
    if acc.op == ACC_AVG:
        return {"$avg": f"${acc.field}"}
    raise InvalidSpec(f"Unsupported accumulator {acc.op!r}")


def compile_pipeline(spec: AggregationSpec) -> list[dict[str, Any]]:
    """Compile stages in order.

    The group stage records the smallest member `_id` so that group output is
    ordered, and sort ties are broken, by first-encountered group.
    """
    pipeline: list[dict[str, Any]] = []
    grouped = False
    for stage in spec.stages:
        if isinstance(stage, GroupStage):
            body: dict[str, Any] = {ID_FIELD: compile_group_key(stage.key)}
            body.update((name, compile_accumulator(acc)) for name, acc in stage.accumulators.items())
            body[FIRST_SEEN_FIELD] = {"$min": f"${ID_FIELD}"}
            pipeline.append({"$group": body})
            pipeline.append({"$sort": {FIRST_SEEN_FIELD: ASCENDING}})
            grouped = True
        elif isinstance(stage, SortStage):
            tie = FIRST_SEEN_FIELD if grouped else ID_FIELD
            pipeline.append({"$sort": dict(compile_sort(stage.keys, tie))})
        else:
            pipeline.append({"$limit": stage.n})
    if grouped:
        pipeline.append({"$project": {FIRST_SEEN_FIELD: 0}})
    return pipeline


def parse_plan_stage(node: Mapping[str, Any]) -> PlanStage:
    """Convert one explain stage document (and its inputs) into a PlanStage."""
    inputs: list[Mapping[str, Any]] = []
    if isinstance(node.get("inputStage"), Mapping):
        inputs.append(node["inputStage"])
    inputs.extend(item for item in node.get("inputStages", ()) if isinstance(item, Mapping))
    return PlanStage(
        kind=str(node.get("stage", "UNKNOWN")),
        index_name=node.get("indexName"),
        detail=str(node["filter"]) if node.get("filter") else None,
        children=tuple(parse_plan_stage(child) for child in inputs),
    )


def parse_explain(payload: Mapping[str, Any]) -> PlanSummary:
    """Summarize an `explain` command reply in executionStats verbosity."""
    stats = payload.get("executionStats") or {}
    winning = (payload.get("queryPlanner") or {}).get("winningPlan") or {}
    # Slot-based engine replies nest the classic tree under queryPlan.
    tree = winning.get("queryPlan") or winning or stats.get("executionStages") or {}
    return PlanSummary(
        stages=(parse_plan_stage(tree),) if tree else (),
        n_returned=stats.get("nReturned"),
        docs_examined=stats.get("totalDocsExamined"),
        keys_examined=stats.get("totalKeysExamined"),
        raw=dict(payload),
    )


class MongoDocumentStore:
    """Document store over one MongoDB collection."""

    name = "mongodb"

    def __init__(self, client: Any, database: str, collection: str = "books") -> None:
        """Bind the store to a collection of an already connected client.

        Args:
            client: `pymongo.MongoClient` (or a compatible object).
            database: Database name.
            collection: Collection name.
        """
        log.debug("Initializing MongoDocumentStore database=%s collection=%s", database, collection)
        self.client = client
        self.db = client[database]
        self.collection = self.db[collection]
        self.collection_name = collection

    @classmethod
    def connect(cls, uri: str, database: str, collection: str = "books", timeout_ms: int = 5000) -> MongoDocumentStore:
        """Open a client and verify the server answers a ping.

        Raises:
            StoreUnavailable: If the server cannot be reached.
        """
        client = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        try:
            client.admin.command("ping")
        except PyMongoError as e:
            client.close()
            raise StoreUnavailable(f"Cannot reach MongoDB: {e}") from e
        return cls(client, database, collection)

    def find(self, spec: QuerySpec) -> list[dict[str, Any]]:
        query = compile_filter(spec.filter)
        projection = compile_projection(spec)
        log.debug("Mongo find: filter=%s projection=%s sort=%s", query, projection, spec.sort)
        with _translate_errors("find"):
            cursor = self.collection.find(query, projection)
            if spec.sort:
                cursor = cursor.sort(compile_sort(spec.sort))
            cursor = cursor.skip(spec.skip).limit(spec.limit)
            return list(cursor)

    def update_one(self, conditions: Sequence[Condition], patch: Mapping[str, Any]) -> UpdateResult:
        with _translate_errors("update"):
            result = self.collection.update_one(compile_filter(conditions), {"$set": dict(patch)})
        return UpdateResult(matched_count=result.matched_count, modified_count=result.modified_count)

    def delete_one(self, conditions: Sequence[Condition]) -> DeleteResult:
        with _translate_errors("delete"):
            result = self.collection.delete_one(compile_filter(conditions))
        return DeleteResult(deleted_count=result.deleted_count)

    def aggregate(self, spec: AggregationSpec) -> list[dict[str, Any]]:
        pipeline = compile_pipeline(spec)
        log.debug("Mongo aggregate: %s", pipeline)
        with _translate_errors("aggregate"):
            return list(self.collection.aggregate(pipeline))

    def create_index(self, spec: IndexSpec) -> str:
        with _translate_errors("create index"):
            return self.collection.create_index(list(spec.keys), name=spec.name)

    def list_indexes(self) -> list[str]:
        with _translate_errors("list indexes"):
            return [index["name"] for index in self.collection.list_indexes()]

    def explain(self, conditions: Sequence[Condition]) -> PlanSummary:
        command = {"find": self.collection_name, "filter": compile_filter(conditions)}
        with _translate_errors("explain"):
            payload = self.db.command("explain", command, verbosity="executionStats")
        return parse_explain(payload)

    def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> int:
        if not documents:
            return 0
        with _translate_errors("insert"):
            result = self.collection.insert_many([dict(doc) for doc in documents])
        return len(result.inserted_ids)

    def drop(self) -> None:
        with _translate_errors("drop"):
            self.collection.drop()

    def close(self) -> None:
        self.client.close()


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except ConnectionFailure as e:
        raise StoreUnavailable(f"MongoDB {action} failed: {e}") from e
    except OperationFailure as e:
        raise InvalidSpec(f"MongoDB rejected {action}: {e}") from e
    except PyMongoError as e:
        raise StoreUnavailable(f"MongoDB {action} failed: {e}") from e


def _is_operator_doc(term: Any) -> bool:
    return isinstance(term, dict) and bool(term) and all(key.startswith("$") for key in term)


def _id_value(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value
