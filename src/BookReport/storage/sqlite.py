"""SQLite-backed document store.

Each collection is one table of JSON bodies. Filters, sorts, groups and index
keys all compile to the same `json_extract(body, '$.<field>')` expression, so
an index created on a field is visible to the planner when a filter uses that
field.
"""

from __future__ import annotations

import json
import re
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

from BookReport.core.errors import InvalidSpec, StoreUnavailable
from BookReport.core.models import (
    STAGE_COLLSCAN,
    STAGE_IXSCAN,
    DeleteResult,
    PlanStage,
    PlanSummary,
    UpdateResult,
)
from BookReport.core.query import (
    ACC_AVG,
    ACC_COUNT,
    ACC_SUM,
    ASCENDING,
    ID_FIELD,
    OP_EQ,
    OP_GT,
    OP_GTE,
    OP_LT,
    OP_LTE,
    OP_NE,
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
    check_field,
)
from BookReport.storage.db import DatabaseManager
from BookReport.utils.log import log

ID_INDEX_NAME = "_id_"

_NUMERIC_TYPES = "('integer', 'real')"
_SQL_RANGE_OPS = {OP_GT: ">", OP_GTE: ">=", OP_LT: "<", OP_LTE: "<="}
_INDEX_RE = re.compile(r"USING (?:COVERING )?INDEX (\S+)")
_KEY_COLUMN = "group_key"
_FIRST_COLUMN = "first_seq"
_KIND_COLUMN = "group_kind"
_BOOL_KINDS = {"true": True, "false": False}


def field_expr(name: str) -> str:
    """SQL expression reading a top-level field of the JSON body."""
    if name == ID_FIELD:
        return ID_FIELD
    return f"json_extract(body, '$.{name}')"


def type_expr(name: str) -> str:
    """SQL expression returning the JSON type of a field (NULL if missing)."""
    if name == ID_FIELD:
        return "'text'"
    return f"json_type(body, '$.{name}')"


def compile_filter(conditions: Sequence[Condition]) -> tuple[str, list[Any]]:
    """Compile conditions into a WHERE clause and its parameters.

    Every comparison is guarded by the JSON type of the stored value, so
    `true` never equals `1` in either direction, and range comparisons only
    match values of the same kind as the bound.
    """
    clauses: list[str] = []
    params: list[Any] = []
    for cond in conditions:
        expr = field_expr(cond.field)
        value = cond.value
        if cond.op in (OP_EQ, OP_NE):
            negate = cond.op == OP_NE
            if value is None:
                clauses.append(f"{expr} IS NOT NULL" if negate else f"{expr} IS NULL")
            elif isinstance(value, bool):
                literal = "'true'" if value else "'false'"
                clauses.append(f"{type_expr(cond.field)} {'IS NOT' if negate else '='} {literal}")
            elif cond.field == ID_FIELD:
                clauses.append(f"{expr} IS NOT ?" if negate else f"{expr} = ?")
                params.append(value)
            else:
                kind = type_expr(cond.field)
                kinds = _value_kinds(value)
                if negate:
                    clauses.append(f"({kind} IS NULL OR {kind} NOT IN {kinds} OR {expr} IS NOT ?)")
                else:
                    clauses.append(f"{expr} = ? AND {kind} IN {kinds}")
                params.append(value)
        else:
            kinds = _value_kinds(value)
            clauses.append(f"{type_expr(cond.field)} IN {kinds} AND {expr} {_SQL_RANGE_OPS[cond.op]} ?")
            params.append(value)
    return (" AND ".join(clauses) if clauses else "1"), params


def _value_kinds(value: Any) -> str:
    return "('text')" if isinstance(value, str) else _NUMERIC_TYPES


def compile_sort(keys: Sequence[SortKey]) -> list[str]:
    return [f"{field_expr(key.field)} {_direction(key.direction)}" for key in keys]


def group_key_sql(key: GroupKey) -> str:
    """SQL for a group key; buckets compute `floor(value / width) * width`."""
    if not isinstance(key, BucketKey):
        return field_expr(key.field)
    value = field_expr(key.field)
    quotient = f"({value} * 1.0 / {int(key.width)})"
    floor = f"(CAST({quotient} AS INTEGER) - ({quotient} < CAST({quotient} AS INTEGER)))"
    return f"CASE WHEN {type_expr(key.field)} IN {_NUMERIC_TYPES} THEN {floor} * {int(key.width)} END"


def group_kind_sql(key: GroupKey) -> str:
    """SQL that tells JSON booleans apart from the numbers they extract as."""
    if isinstance(key, BucketKey) or key.field == ID_FIELD:
        return "NULL"
    kind = type_expr(key.field)
    return f"CASE WHEN {kind} IN ('true', 'false') THEN {kind} END"


def accumulator_sql(acc: Accumulator) -> str:
    if acc.op == ACC_COUNT:
        return "COUNT(*)"
    numeric = f"CASE WHEN {type_expr(acc.field)} IN {_NUMERIC_TYPES} THEN {field_expr(acc.field)} END"
    if acc.op == ACC_SUM:
        return f"COALESCE(SUM({numeric}), 0)"
    if acc.op == ACC_AVG:
        return f"AVG({numeric})"
    raise InvalidSpec(f"Unsupported accumulator {acc.op!r}")


def project(doc: Mapping[str, Any], spec: QuerySpec) -> dict[str, Any]:
    """Keep the projected fields of a document, `_id` only when asked for."""
    if spec.projection is None:
        return dict(doc)
    out: dict[str, Any] = {}
    if (spec.include_id or ID_FIELD in spec.projection) and ID_FIELD in doc:
        out[ID_FIELD] = doc[ID_FIELD]
    for name in spec.projection:
        if name != ID_FIELD and name in doc:
            out[name] = doc[name]
    return out


class PipelineCompiler:
    """Compile an aggregation pipeline into one nested SELECT.

    Consecutive sort and limit stages share a SELECT level; a sort that
    follows a limit, or a group that follows a limit, starts a new level so
    that stage order is preserved. Every level orders its ties by insertion
    sequence (documents) or by first-encountered member (groups).
    """

    def __init__(self, table: str) -> None:
        self.source = _quote(table)
        self.order: list[str] = []
        self.limit: int | None = None
        self.group: GroupStage | None = None

    def compile(self, spec: AggregationSpec) -> str:
        for stage in spec.stages:
            if isinstance(stage, GroupStage):
                self._add_group(stage)
            elif isinstance(stage, SortStage):
                self._add_sort(stage)
            else:
                self.limit = stage.n if self.limit is None else min(self.limit, stage.n)
        return self._select(self._output_columns())

    def decode(self, row: Sequence[Any]) -> dict[str, Any]:
        if self.group is None:
            return _decode_document(row)
        key = _BOOL_KINDS.get(row[1], row[0])
        if isinstance(self.group.key, BucketKey) and self.group.key.label:
            key = {self.group.key.label: key}
        doc: dict[str, Any] = {ID_FIELD: key}
        doc.update(zip(self.group.accumulators, row[2:]))
        return doc

    def _add_group(self, stage: GroupStage) -> None:
        if self.limit is not None:
            self._wrap()
        self.order = []
        columns = [f"{group_key_sql(stage.key)} AS {_KEY_COLUMN}", f"{group_kind_sql(stage.key)} AS {_KIND_COLUMN}"]
        columns.extend(f"{accumulator_sql(acc)} AS {_quote(name)}" for name, acc in stage.accumulators.items())
        columns.append(f"MIN(seq) AS {_FIRST_COLUMN}")
        self.source = f"(SELECT {', '.join(columns)} FROM {self.source} GROUP BY {_KEY_COLUMN}, {_KIND_COLUMN})"
        self.group = stage

    def _add_sort(self, stage: SortStage) -> None:
        if self.limit is not None:
            self._wrap()
        terms = [f"{self._column(key.field)} {_direction(key.direction)}" for key in stage.keys]
        self.order = terms + [term for term in self.order if term not in terms]

    def _wrap(self) -> None:
        self.source = f"({self._select('*')})"
        self.order = []
        self.limit = None

    def _select(self, columns: str) -> str:
        tie = f"{_FIRST_COLUMN} ASC" if self.group else "seq ASC"
        sql = f"SELECT {columns} FROM {self.source} ORDER BY {', '.join(self.order + [tie])}"
        if self.limit is not None:
            sql += f" LIMIT {int(self.limit)}"
        return sql

    def _column(self, path: str) -> str:
        if self.group is None:
            return field_expr(path)
        if path == ID_FIELD or path.startswith(f"{ID_FIELD}."):
            return _KEY_COLUMN
        return _quote(path)

    def _output_columns(self) -> str:
        if self.group is None:
            return "_id, body"
        return ", ".join([_KEY_COLUMN, _KIND_COLUMN, *(_quote(name) for name in self.group.accumulators)])


class SqliteDocumentStore:
    """Document store over a single SQLite table per collection."""

    name = "sqlite"

    def __init__(self, db_manager: DatabaseManager, collection: str = "books") -> None:
        """Bind the store to a collection, creating its table if needed.

        Args:
            db_manager: Open database manager; closed by `close()`.
            collection: Collection name.

        Raises:
            InvalidSpec: If the collection name is not identifier-like.
            StoreUnavailable: If the table cannot be created.
        """
        log.debug("Initializing SqliteDocumentStore collection=%s", collection)
        self.collection = check_field(collection, "collection")
        self.table = f"docs_{collection}"
        self.db_manager = db_manager
        self._index_prefix = f"{self.table}__"
        self._create_table()

    @classmethod
    def open(cls, path: Path | str, collection: str = "books") -> SqliteDocumentStore:
        return cls(DatabaseManager(path), collection)

    @property
    def conn(self) -> sqlite3.Connection:
        return self.db_manager.get_connection()

    def find(self, spec: QuerySpec) -> list[dict[str, Any]]:
        where, params = compile_filter(spec.filter)
        order = ", ".join(compile_sort(spec.sort) + ["seq ASC"])
        sql = f"SELECT _id, body FROM {_quote(self.table)} WHERE {where} ORDER BY {order} LIMIT ? OFFSET ?"
        params.extend([spec.limit or -1, spec.skip])
        log.debug("SQLite find: %s params=%s", sql, params)
        with _translate_errors("find"):
            rows = self.conn.execute(sql, params).fetchall()
        return [project(_decode_document(row), spec) for row in rows]

    def update_one(self, conditions: Sequence[Condition], patch: Mapping[str, Any]) -> UpdateResult:
        with _translate_errors("update"), self.conn:
            row = self._first_match(conditions)
            if row is None:
                return UpdateResult(matched_count=0, modified_count=0)
            seq, body = row
            current = json.loads(body)
            try:
                new_body = _dump({**current, **patch})
            except (TypeError, ValueError) as e:
                raise InvalidSpec(f"Update is not JSON serializable: {e}") from e
            if new_body == _dump(current):
                return UpdateResult(matched_count=1, modified_count=0)
            self.conn.execute(f"UPDATE {_quote(self.table)} SET body = ? WHERE seq = ?", (new_body, seq))
        return UpdateResult(matched_count=1, modified_count=1)

    def delete_one(self, conditions: Sequence[Condition]) -> DeleteResult:
        with _translate_errors("delete"), self.conn:
            row = self._first_match(conditions)
            if row is None:
                return DeleteResult(deleted_count=0)
            self.conn.execute(f"DELETE FROM {_quote(self.table)} WHERE seq = ?", (row[0],))
        return DeleteResult(deleted_count=1)

    def aggregate(self, spec: AggregationSpec) -> list[dict[str, Any]]:
        compiler = PipelineCompiler(self.table)
        sql = compiler.compile(spec)
        log.debug("SQLite aggregate: %s", sql)
        with _translate_errors("aggregate"):
            rows = self.conn.execute(sql).fetchall()
        return [compiler.decode(row) for row in rows]

    def create_index(self, spec: IndexSpec) -> str:
        name = spec.name
        columns = ", ".join(f"{field_expr(field)} {_direction(direction)}" for field, direction in spec.keys)
        sql = f"CREATE INDEX IF NOT EXISTS {_quote(self._index_prefix + name)} ON {_quote(self.table)} ({columns})"
        log.debug("SQLite create index: %s", sql)
        with _translate_errors("create index"):
            self.conn.execute(sql)
            self.conn.commit()
        return name

    def list_indexes(self) -> list[str]:
        with _translate_errors("list indexes"):
            rows = self.conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ? ORDER BY rowid",
                (self.table,),
            ).fetchall()
        names = [ID_INDEX_NAME]
        names.extend(row[0][len(self._index_prefix):] for row in rows if row[0].startswith(self._index_prefix))
        return names

    def explain(self, conditions: Sequence[Condition]) -> PlanSummary:
        where, params = compile_filter(conditions)
        with _translate_errors("explain"):
            rows = self.conn.execute(
                f"EXPLAIN QUERY PLAN SELECT _id, body FROM {_quote(self.table)} WHERE {where}", params
            ).fetchall()
            n_returned = self.conn.execute(
                f"SELECT COUNT(*) FROM {_quote(self.table)} WHERE {where}", params
            ).fetchone()[0]
        return PlanSummary(
            stages=self._plan_stages(rows),
            n_returned=n_returned,
            raw=[list(row) for row in rows],
        )

    def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> int:
        rows: list[tuple[str, str]] = []
        for doc in documents:
            body = dict(doc)
            doc_id = body.pop(ID_FIELD, None)
            try:
                rows.append((uuid.uuid4().hex if doc_id is None else str(doc_id), _dump(body)))
            except (TypeError, ValueError) as e:
                raise InvalidSpec(f"Document is not JSON serializable: {e}") from e
        with _translate_errors("insert"), self.conn:
            self.conn.executemany(f"INSERT INTO {_quote(self.table)} (_id, body) VALUES (?, ?)", rows)
        return len(rows)

    def drop(self) -> None:
        with _translate_errors("drop"):
            self.conn.execute(f"DROP TABLE IF EXISTS {_quote(self.table)}")
            self.conn.commit()
        self._create_table()

    def close(self) -> None:
        self.db_manager.close()

    def _create_table(self) -> None:
        with _translate_errors("create table"):
            self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_quote(self.table)} (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  _id TEXT NOT NULL UNIQUE,
                  body TEXT NOT NULL
                )
                """
            )
            self.conn.commit()

    def _first_match(self, conditions: Sequence[Condition]) -> tuple[int, str] | None:
        where, params = compile_filter(conditions)
        return self.conn.execute(
            f"SELECT seq, body FROM {_quote(self.table)} WHERE {where} ORDER BY seq LIMIT 1", params
        ).fetchone()

    def _plan_stages(self, rows: Sequence[Sequence[Any]]) -> tuple[PlanStage, ...]:
        children: dict[int, list[tuple[int, str]]] = {}
        for node_id, parent, _unused, detail in rows:
            children.setdefault(parent, []).append((node_id, detail))

        def build(node_id: int, detail: str) -> PlanStage:
            kind, index_name = self._classify(detail)
            return PlanStage(
                kind=kind,
                index_name=index_name,
                detail=detail,
                children=tuple(build(child, text) for child, text in children.get(node_id, [])),
            )

        return tuple(build(node_id, detail) for node_id, detail in children.get(0, []))

    def _classify(self, detail: str) -> tuple[str, str | None]:
        if detail.startswith(("SCAN", "SEARCH")):
            match = _INDEX_RE.search(detail)
            if match:
                sql_name = match.group(1)
                if sql_name.startswith("sqlite_autoindex_"):
                    return STAGE_IXSCAN, ID_INDEX_NAME
                return STAGE_IXSCAN, sql_name.removeprefix(self._index_prefix)
            if "PRIMARY KEY" in detail:
                return "SEQSCAN", None
            return STAGE_COLLSCAN, None
        if "TEMP B-TREE" in detail:
            return "SORT", None
        return detail.split(" ", 1)[0], None


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise InvalidSpec(f"SQLite rejected {action}: {e}") from e
    except sqlite3.Error as e:
        raise StoreUnavailable(f"SQLite {action} failed: {e}") from e


def _decode_document(row: Sequence[Any]) -> dict[str, Any]:
    return {ID_FIELD: row[0], **json.loads(row[1])}


def _dump(body: Mapping[str, Any]) -> str:
    return json.dumps(body, ensure_ascii=False, sort_keys=False, allow_nan=False)


def _direction(direction: int) -> str:
    return "ASC" if direction == ASCENDING else "DESC"


def _quote(identifier: str) -> str:
    return f'"{identifier}"'
