"""Exception types shared across Folio."""

from __future__ import annotations


class FolioError(Exception):
    """Base class for Folio errors."""


class WorkerError(FolioError):
    """A model worker answered a request with an error."""


class WorkerUnavailableError(WorkerError):
    """The worker process exited (crash or model-load failure) before replying."""


class StoreError(FolioError):
    """The document store could not be initialized or queried."""
