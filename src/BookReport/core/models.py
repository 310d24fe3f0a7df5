"""Book record, update/delete results and query plan summaries."""

from __future__ import annotations

import math
from dataclasses import dataclass
from dataclasses import field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from BookReport.core.errors import InvalidDocument

BOOK_FIELDS: tuple[str, ...] = ("title", "author", "genre", "published_year", "price", "in_stock")

STAGE_IXSCAN = "IXSCAN"
STAGE_COLLSCAN = "COLLSCAN"


def check_book_value(name: str, value: Any) -> Any:
    """Validate one Book field value and return its normalized form.

    Fields outside the Book record are returned untouched. `None` is always
    accepted because the store does not enforce a schema.

    Args:
        name: Field name.
        value: Raw value as stored.

    Returns:
        Normalized value (ints for years, floats for prices).

    Raises:
        InvalidDocument: If the value does not fit the field.
    """
    if value is None or name not in BOOK_FIELDS:
        return value
    if name in ("title", "author", "genre"):
        if not isinstance(value, str):
            raise InvalidDocument(f"{name} must be a string, got {type(value).__name__}")
        if name == "title" and not value.strip():
            raise InvalidDocument("title must not be empty")
        return value
    if name == "published_year":
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidDocument(f"published_year must be an integer, got {value!r}")
        return value
    if name == "price":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidDocument(f"price must be a number, got {value!r}")
        if not math.isfinite(value) or value < 0:
            raise InvalidDocument(f"price must be a finite number >= 0, got {value!r}")
        return float(value)
    if not isinstance(value, bool):
        raise InvalidDocument(f"in_stock must be a boolean, got {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class Book:
    """Typed view of one catalog document.

    Every field is optional: projections drop fields and the store does not
    enforce a schema. Present fields are validated by `from_document`.

    Attributes:
        id: Store identity key in string form, if it was returned.
        title: Book title (non-empty when present).
        author: Author name.
        genre: Genre label.
        published_year: Year of first publication.
        price: Price, never negative.
        in_stock: Availability flag.
        extra: Fields outside the Book record, kept read-only.
    """

    id: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    published_year: Optional[int] = None
    price: Optional[float] = None
    in_stock: Optional[bool] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Book:
        """Build a Book from a raw store document.

        Args:
            doc: Document as returned by the store adapter.

        Returns:
            Validated Book.

        Raises:
            InvalidDocument: If the document is not a mapping or a known field
                has the wrong type.
        """
        if not isinstance(doc, Mapping):
            raise InvalidDocument(f"Document must be a mapping, got {type(doc).__name__}")
        data = dict(doc)
        raw_id = data.pop("_id", None)
        values = {name: check_book_value(name, data.pop(name, None)) for name in BOOK_FIELDS}
        return cls(id=None if raw_id is None else str(raw_id), extra=data, **values)

    def as_dict(self) -> dict[str, Any]:
        """Return present fields in canonical order, `_id` first when known."""
        out: dict[str, Any] = {}
        if self.id is not None:
            out["_id"] = self.id
        for name in BOOK_FIELDS:
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        out.update(self.extra)
        return out

    def to_document(self) -> dict[str, Any]:
        """Return an insertable document (no identity key)."""
        doc = self.as_dict()
        doc.pop("_id", None)
        return doc


@dataclass(frozen=True, slots=True)
class UpdateResult:
    """Outcome of a single-document update."""

    matched_count: int
    modified_count: int


@dataclass(frozen=True, slots=True)
class DeleteResult:
    """Outcome of a single-document delete."""

    deleted_count: int


@dataclass(frozen=True, slots=True)
class PlanStage:
    """One node of an execution plan.

    Attributes:
        kind: `IXSCAN`, `COLLSCAN`, or the store's own stage name.
        index_name: Index used by the stage, if any.
        detail: Store-specific description of the stage.
        children: Nested input stages.
    """

    kind: str
    index_name: str | None = None
    detail: str | None = None
    children: tuple[PlanStage, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"stage": self.kind}
        if self.index_name:
            out["indexName"] = self.index_name
        if self.detail:
            out["detail"] = self.detail
        if self.children:
            out["inputStages"] = [child.to_dict() for child in self.children]
        return out


@dataclass(frozen=True, slots=True)
class PlanSummary:
    """Structured summary of a query plan produced in statistics mode.

    Attributes:
        stages: Root stages of the winning plan.
        n_returned: Number of documents the query would return, if reported.
        docs_examined: Documents examined by the store, if reported.
        keys_examined: Index keys examined by the store, if reported.
        raw: Unparsed plan payload from the store.
    """

    stages: tuple[PlanStage, ...]
    n_returned: int | None = None
    docs_examined: int | None = None
    keys_examined: int | None = None
    raw: Any = None

    def walk(self) -> Iterator[PlanStage]:
        """Yield every stage depth-first, parents before children."""
        pending = list(reversed(self.stages))
        while pending:
            stage = pending.pop()
            yield stage
            pending.extend(reversed(stage.children))

    @property
    def uses_index(self) -> bool:
        return any(stage.kind == STAGE_IXSCAN for stage in self.walk())

    @property
    def is_collection_scan(self) -> bool:
        return not self.uses_index and any(stage.kind == STAGE_COLLSCAN for stage in self.walk())

    @property
    def index_names(self) -> tuple[str, ...]:
        return tuple(stage.index_name for stage in self.walk() if stage.index_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "executionStages": [stage.to_dict() for stage in self.stages],
            "nReturned": self.n_returned,
            "totalDocsExamined": self.docs_examined,
            "totalKeysExamined": self.keys_examined,
        }
