"""Exceptions raised by PayFinder."""

from __future__ import annotations

from typing import Any


class PayFinderError(Exception):
    """Base class for every PayFinder error."""


class LoadError(PayFinderError):
    """A bulk load stopped before producing records."""


class SourceUnavailableError(LoadError):
    """No readable payroll source could be found."""


class DecodeFailureError(LoadError):
    """The source bytes match none of the configured encodings."""

    def __init__(self, path: Any, encodings: tuple[str, ...]) -> None:
        super().__init__(f"Unable to decode {path} with any of: {', '.join(encodings)}")
        self.path = path
        self.encodings = encodings


class PersistenceError(PayFinderError):
    """One or more insert batches could not be committed."""

    def __init__(self, message: str, stats: Any = None) -> None:
        super().__init__(message)
        self.stats = stats


class IndexNotReadyError(PayFinderError):
    """The search index was not published before the wait timed out."""


class RemoteStoreError(PayFinderError):
    """The remote record store rejected or failed a request."""


class NotAuthenticatedError(RemoteStoreError):
    """A remote operation was attempted without a caller identity."""
