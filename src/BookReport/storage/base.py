"""Document store boundary used by the query services."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from BookReport.core.models import DeleteResult, PlanSummary, UpdateResult
from BookReport.core.query import AggregationSpec, Condition, IndexSpec, QuerySpec


class DocumentStore(Protocol):
    """Protocol for a collection-scoped document store adapter.

    Adapters receive specs that already passed the `check_*` validators and
    translate them into their own dialect. Driver failures surface as
    `StoreUnavailable` or `InvalidSpec`.
    """

    name: str

    def find(self, spec: QuerySpec) -> list[dict[str, Any]]:
        """Return matching documents after projection, sort, skip and limit."""
        raise NotImplementedError

    def update_one(self, conditions: Sequence[Condition], patch: Mapping[str, Any]) -> UpdateResult:
        """Set `patch` fields on the first matching document."""
        raise NotImplementedError

    def delete_one(self, conditions: Sequence[Condition]) -> DeleteResult:
        """Delete the first matching document."""
        raise NotImplementedError

    def aggregate(self, spec: AggregationSpec) -> list[dict[str, Any]]:
        """Run pipeline stages in order."""
        raise NotImplementedError

    def create_index(self, spec: IndexSpec) -> str:
        """Create the index if missing and return its identifier."""
        raise NotImplementedError

    def list_indexes(self) -> list[str]:
        """Return identifiers of the collection's indexes."""
        raise NotImplementedError

    def explain(self, conditions: Sequence[Condition]) -> PlanSummary:
        """Describe how the store would run a find with this filter."""
        raise NotImplementedError

    def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> int:
        """Insert documents and return how many were written."""
        raise NotImplementedError

    def drop(self) -> None:
        """Remove every document and index of the collection."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the connection held by the adapter."""
        raise NotImplementedError
