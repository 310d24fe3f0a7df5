"""Sample data loading for the `seed` command."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import yaml

from BookReport.core.errors import InvalidDocument
from BookReport.core.models import Book
from BookReport.storage.base import DocumentStore
from BookReport.utils.log import log


def load_books(path: Path) -> list[Book]:
    """Read a YAML list of book documents.

    Args:
        path: YAML file whose root is a list of mappings.

    Returns:
        Validated books.

    Raises:
        InvalidDocument: If the root is not a list or an item is not a valid book.
    """
    data: Any = yaml.safe_load(path.read_text(encoding="utf-8")) or []
    if not isinstance(data, list):
        raise InvalidDocument(f"{path} must contain a list of books")
    books: list[Book] = []
    for idx, item in enumerate(data):
        try:
            book = Book.from_document(item)
        except InvalidDocument as e:
            raise InvalidDocument(f"{path}[{idx}]: {e}") from e
        if book.title is None:
            raise InvalidDocument(f"{path}[{idx}]: title is required")
        books.append(book)
    return books


def seed_books(store: DocumentStore, books: Sequence[Book], *, drop: bool = False) -> int:
    """Insert books into the store, optionally dropping the collection first.

    Returns:
        Number of inserted documents.
    """
    if drop:
        log.info("Dropping existing collection before seeding")
        store.drop()
    inserted = store.insert_many([book.to_document() for book in books])
    log.debug("Inserted %d documents", inserted)
    return inserted
