"""Scoped ownership of a store handle."""

from __future__ import annotations

from BookReport.core.errors import ResourceReleaseFailure
from BookReport.storage.base import DocumentStore
from BookReport.utils.log import log


class StoreSession:
    """Context manager that always closes the store it was given.

    A failure while closing raises `ResourceReleaseFailure`, unless another
    error is already propagating: that error is kept and the close failure is
    only logged.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def __enter__(self) -> DocumentStore:
        return self.store

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        name = getattr(self.store, "name", "store")
        try:
            self.store.close()
        except Exception as e:  # noqa: BLE001 - close must not mask an earlier error
            if exc_val is not None:
                log.error("Failed to disconnect from %s: %s", name, e)
                return
            raise ResourceReleaseFailure(f"Failed to disconnect from {name}: {e}") from e
        log.info("Disconnected from %s", name)
