"""Store domain configuration: backend selection and connection settings."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from BookReport.config.common import ConfigSection, check_non_empty

BACKEND_SQLITE = "sqlite"
BACKEND_MONGO = "mongo"
_ALLOWED_BACKENDS = {BACKEND_SQLITE, BACKEND_MONGO}
_COLLECTION_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Document store configuration.

    Attributes:
        backend: `sqlite` or `mongo`.
        collection: Collection holding the book documents.
        sqlite_path: SQLite database file (sqlite backend).
        mongo_uri: Connection string; the value of `mongo_uri_env` wins when set.
        mongo_uri_env: Environment variable consulted for the connection string.
        mongo_database: Database name (mongo backend).
        mongo_timeout_ms: Server selection timeout in milliseconds.
        seed_path: YAML file with sample books for the `seed` command.
    """

    backend: str
    collection: str
    sqlite_path: str
    mongo_uri: str
    mongo_uri_env: str
    mongo_database: str
    mongo_timeout_ms: int
    seed_path: str


def load_store(root: ConfigSection) -> StoreConfig:
    """Load store domain config from the `store` and `seed` sections.

    The connection string named by `store.mongo.uri_env` wins over
    `store.mongo.uri` when that environment variable is set.

    Raises:
        TypeError: If config types are invalid.
        ValueError: If required keys are missing.
    """
    section = root.section("store", required=True)
    sqlite = section.section("sqlite")
    mongo = section.section("mongo")

    uri_env = mongo.string("uri_env", "MONGODB_URI")
    return StoreConfig(
        backend=section.string("backend").strip().lower(),
        collection=section.string("collection"),
        sqlite_path=sqlite.string("path", "database/bookstore.db"),
        mongo_uri=_load_uri_from_env(uri_env) or mongo.string("uri", "mongodb://localhost:27017"),
        mongo_uri_env=uri_env,
        mongo_database=mongo.string("database", "plp_bookstore"),
        mongo_timeout_ms=mongo.integer("timeout_ms", 5000),
        seed_path=root.section("seed").string("path", "data/books.yml"),
    )


def check_store(config: StoreConfig) -> None:
    """Validate store domain constraints.

    Raises:
        ValueError: If values violate store constraints.
    """
    if config.backend not in _ALLOWED_BACKENDS:
        raise ValueError(f"store.backend must be one of {sorted(_ALLOWED_BACKENDS)}")
    if not _COLLECTION_RE.match(config.collection):
        raise ValueError("store.collection must be an identifier (letters, digits, underscore)")
    if config.backend == BACKEND_SQLITE:
        check_non_empty(config.sqlite_path, "store.sqlite.path")
    else:
        check_non_empty(config.mongo_uri, "store.mongo.uri")
        check_non_empty(config.mongo_database, "store.mongo.database")
    if config.mongo_timeout_ms <= 0:
        raise ValueError("store.mongo.timeout_ms must be positive")


def _load_uri_from_env(uri_env: str) -> str:
    """Load the connection string from an environment variable."""
    if not uri_env.strip():
        return ""
    return os.getenv(uri_env, "").strip()
