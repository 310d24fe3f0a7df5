"""Catalog of the canonical bookstore report.

Entries are plain data and can be built and inspected without a store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Union

from BookReport.core.errors import InvalidSpec
from BookReport.core.query import (
    ASCENDING,
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
    count,
    eq,
    gt,
    where,
)


@dataclass(frozen=True, slots=True)
class FindOperation:
    spec: QuerySpec


@dataclass(frozen=True, slots=True)
class UpdateOperation:
    filter: tuple[Condition, ...]
    patch: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "patch", MappingProxyType(dict(self.patch)))


@dataclass(frozen=True, slots=True)
class DeleteOperation:
    filter: tuple[Condition, ...]


@dataclass(frozen=True, slots=True)
class AggregateOperation:
    spec: AggregationSpec


@dataclass(frozen=True, slots=True)
class CreateIndexOperation:
    spec: IndexSpec


@dataclass(frozen=True, slots=True)
class ExplainOperation:
    filter: tuple[Condition, ...]


Operation = Union[
    FindOperation,
    UpdateOperation,
    DeleteOperation,
    AggregateOperation,
    CreateIndexOperation,
    ExplainOperation,
]


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """One named step of the report.

    Attributes:
        name: Stable identifier used on the command line.
        heading: Human-readable title printed above the result.
        operation: What to run against the store.
        line_format: `str.format` template applied to each returned book to
            print a bullet list instead of a table.
    """

    name: str
    heading: str
    operation: Operation
    line_format: str | None = None


_TITLE_AUTHOR_PRICE = ("title", "author", "price")

DEFAULT_CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry(
        name="fiction_books",
        heading="Books in Fiction genre",
        operation=FindOperation(QuerySpec(filter=where(genre="Fiction"))),
        line_format="- {title}",
    ),
    CatalogEntry(
        name="published_after_1950",
        heading="Books published after 1950",
        operation=FindOperation(QuerySpec(filter=(gt("published_year", 1950),))),
        line_format="- {title} ({published_year})",
    ),
    CatalogEntry(
        name="orwell_books",
        heading="Books by George Orwell",
        operation=FindOperation(QuerySpec(filter=where(author="George Orwell"))),
        line_format="- {title}",
    ),
    CatalogEntry(
        name="update_1984_price",
        heading='Updated price of "1984"',
        operation=UpdateOperation(filter=where(title="1984"), patch={"price": 13.99}),
    ),
    CatalogEntry(
        name="delete_moby_dick",
        heading='Deleted "Moby Dick"',
        operation=DeleteOperation(filter=where(title="Moby Dick")),
    ),
    CatalogEntry(
        name="in_stock_after_2010",
        heading="Books in stock and published after 2010 (projected fields)",
        operation=FindOperation(
            QuerySpec(
                filter=(eq("in_stock", True), gt("published_year", 2010)),
                projection=_TITLE_AUTHOR_PRICE,
            )
        ),
    ),
    CatalogEntry(
        name="price_ascending",
        heading="Books sorted by price (ascending)",
        operation=FindOperation(
            QuerySpec(projection=("title", "price"), sort=(SortKey("price", ASCENDING),))
        ),
    ),
    CatalogEntry(
        name="price_descending",
        heading="Books sorted by price (descending)",
        operation=FindOperation(
            QuerySpec(projection=("title", "price"), sort=(SortKey("price", DESCENDING),))
        ),
    ),
    CatalogEntry(
        name="page_1",
        heading="Page 1 (5 books)",
        operation=FindOperation(QuerySpec(projection=_TITLE_AUTHOR_PRICE, skip=0, limit=5)),
    ),
    CatalogEntry(
        name="page_2",
        heading="Page 2 (5 books)",
        operation=FindOperation(QuerySpec(projection=_TITLE_AUTHOR_PRICE, skip=5, limit=5)),
    ),
    CatalogEntry(
        name="avg_price_by_genre",
        heading="Average price by genre",
        operation=AggregateOperation(
            AggregationSpec((GroupStage(FieldKey("genre"), {"averagePrice": avg_of("price")}),))
        ),
    ),
    CatalogEntry(
        name="top_author",
        heading="Author with the most books",
        operation=AggregateOperation(
            AggregationSpec(
                (
                    GroupStage(FieldKey("author"), {"count": count()}),
                    SortStage((SortKey("count", DESCENDING),)),
                    LimitStage(1),
                )
            )
        ),
    ),
    CatalogEntry(
        name="books_by_decade",
        heading="Books grouped by publication decade",
        operation=AggregateOperation(
            AggregationSpec(
                (
                    GroupStage(BucketKey("published_year", 10, "decade"), {"count": count()}),
                    SortStage((SortKey("_id.decade", ASCENDING),)),
                )
            )
        ),
    ),
    CatalogEntry(
        name="title_index",
        heading="Created index on title",
        operation=CreateIndexOperation(IndexSpec((("title", ASCENDING),))),
    ),
    CatalogEntry(
        name="author_year_index",
        heading="Created compound index on author and published_year",
        operation=CreateIndexOperation(IndexSpec((("author", ASCENDING), ("published_year", ASCENDING)))),
    ),
    CatalogEntry(
        name="explain_title",
        heading="Explain for title search",
        operation=ExplainOperation(where(title="1984")),
    ),
    CatalogEntry(
        name="explain_author_year",
        heading="Explain for author and published_year query",
        operation=ExplainOperation((eq("author", "George Orwell"), gt("published_year", 1900))),
    ),
)


def get_entries(
    names: Iterable[str] | None = None,
    catalog: tuple[CatalogEntry, ...] = DEFAULT_CATALOG,
) -> tuple[CatalogEntry, ...]:
    """Select catalog entries by name, keeping catalog order.

    Args:
        names: Entry names to keep; None or empty keeps every entry.
        catalog: Catalog to select from.

    Returns:
        Selected entries in catalog order.

    Raises:
        InvalidSpec: If a name is not in the catalog.
    """
    wanted = list(names or ())
    if not wanted:
        return catalog
    known = {entry.name for entry in catalog}
    unknown = [name for name in wanted if name not in known]
    if unknown:
        raise InvalidSpec(f"Unknown catalog entries: {', '.join(unknown)}")
    return tuple(entry for entry in catalog if entry.name in set(wanted))
