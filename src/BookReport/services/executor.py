"""Query execution against an injected document store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from BookReport.core.models import Book, DeleteResult, UpdateResult
from BookReport.core.query import (
    AggregationSpec,
    Condition,
    QuerySpec,
    check_aggregation,
    check_filter,
    check_patch,
    check_query,
)
from BookReport.storage.base import DocumentStore
from BookReport.utils.log import log


@dataclass(slots=True)
class QueryExecutor:
    """Run find, update, delete and aggregate requests.

    Every request is validated before it reaches the store, and every
    document read back is validated into a `Book`. Nothing is cached: each
    call reflects the store as it is at call time.
    """

    store: DocumentStore

    def find(self, spec: QuerySpec) -> list[Book]:
        """Return books matching the spec.

        Args:
            spec: Filter, projection, sort and pagination window.

        Returns:
            Books in sort order, projected to the requested fields.

        Raises:
            InvalidSpec: If the spec is malformed.
            InvalidDocument: If a stored document does not fit the Book record.
            StoreUnavailable: If the store cannot be queried.
        """
        check_query(spec)
        log.debug(
            "find filter=%s projection=%s sort=%s skip=%d limit=%d",
            spec.filter,
            spec.projection,
            spec.sort,
            spec.skip,
            spec.limit,
        )
        books = [Book.from_document(doc) for doc in self.store.find(spec)]
        log.debug("find returned %d documents", len(books))
        return books

    def update_one(self, conditions: Sequence[Condition], patch: Mapping[str, Any]) -> UpdateResult:
        """Set `patch` fields on at most one matching document.

        Zero matches is not an error; it yields `modified_count == 0`.

        Raises:
            InvalidSpec: If the filter or patch is malformed.
            StoreUnavailable: If the store cannot be updated.
        """
        conditions = check_filter(conditions)
        values = check_patch(patch)
        log.debug("update_one filter=%s patch=%s", conditions, values)
        result = self.store.update_one(conditions, values)
        log.debug("update_one matched=%d modified=%d", result.matched_count, result.modified_count)
        return result

    def delete_one(self, conditions: Sequence[Condition]) -> DeleteResult:
        """Delete at most one matching document."""
        conditions = check_filter(conditions)
        log.debug("delete_one filter=%s", conditions)
        result = self.store.delete_one(conditions)
        log.debug("delete_one deleted=%d", result.deleted_count)
        return result

    def aggregate(self, spec: AggregationSpec) -> list[dict[str, Any]]:
        """Run the pipeline stages in order and return the output documents."""
        check_aggregation(spec)
        log.debug("aggregate stages=%s", spec.stages)
        documents = self.store.aggregate(spec)
        log.debug("aggregate returned %d documents", len(documents))
        return documents
