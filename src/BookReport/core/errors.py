"""Error hierarchy shared by the query layer and the store adapters."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for every error raised by BookReport."""


class StoreUnavailable(CatalogError):
    """The document store cannot be reached or refused to run a request."""


class InvalidSpec(CatalogError):
    """A filter, projection, sort, patch or pipeline has no usable shape."""


class InvalidDocument(CatalogError):
    """A document read from the store does not fit the Book record."""


class ResourceReleaseFailure(CatalogError):
    """Closing the store session failed."""
