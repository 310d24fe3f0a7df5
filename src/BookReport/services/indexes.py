"""Secondary index management."""

from __future__ import annotations

from dataclasses import dataclass

from BookReport.core.query import IndexSpec, check_index
from BookReport.storage.base import DocumentStore
from BookReport.utils.log import log


@dataclass(slots=True)
class IndexManager:
    """Create indexes idempotently.

    Equal specs always map to the same identifier, so creating an index that
    already exists returns its id without building a duplicate.
    """

    store: DocumentStore

    def create_index(self, spec: IndexSpec) -> str:
        check_index(spec)
        name = self.store.create_index(spec)
        log.debug("create_index keys=%s -> %s", spec.keys, name)
        return name

    def list_indexes(self) -> list[str]:
        return self.store.list_indexes()
