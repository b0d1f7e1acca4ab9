"""Error types raised by the around core."""

from __future__ import annotations


class AroundError(RuntimeError):
    """Base class for request-scoped failures."""


class MalformedInput(AroundError, ValueError):
    """Raised when a request cannot be decoded into a post or search."""


class StoreUnavailable(AroundError):
    """Raised when the document store cannot be reached or written to."""


class QueryFailed(AroundError):
    """Raised when a geo search query cannot be executed."""
