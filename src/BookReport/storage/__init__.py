"""Storage layer for BookReport.

Provides the document store protocol, the SQLite and MongoDB adapters, and
the scoped session that guarantees the store is closed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from BookReport.config.store import BACKEND_MONGO, BACKEND_SQLITE
from BookReport.storage.base import DocumentStore
from BookReport.storage.db import DatabaseManager
from BookReport.storage.session import StoreSession
from BookReport.storage.sqlite import SqliteDocumentStore
from BookReport.utils.log import log

if TYPE_CHECKING:
    from BookReport.config import StoreConfig


def create_store(config: StoreConfig) -> DocumentStore:
    """Open the document store selected by configuration.

    Args:
        config: Store configuration.

    Returns:
        Connected store adapter; the caller owns closing it.

    Raises:
        StoreUnavailable: If the store cannot be opened or reached.
        ValueError: If the backend is unknown.
    """
    if config.backend == BACKEND_SQLITE:
        log.info("Connecting to SQLite store: %s", config.sqlite_path)
        return SqliteDocumentStore.open(config.sqlite_path, config.collection)
    if config.backend == BACKEND_MONGO:
        from BookReport.storage.mongo import MongoDocumentStore

        log.info("Connecting to MongoDB store: database=%s", config.mongo_database)
        return MongoDocumentStore.connect(
            config.mongo_uri,
            config.mongo_database,
            config.collection,
            timeout_ms=config.mongo_timeout_ms,
        )
    raise ValueError(f"Unsupported store backend: {config.backend}")


__all__ = [
    "DatabaseManager",
    "DocumentStore",
    "SqliteDocumentStore",
    "StoreSession",
    "create_store",
]
