"""
Exception hierarchy for the foundry data pipeline.

Precondition failures are raised and abort the whole operation before any
mutation. Per-record failures are never raised past the orchestrating
function; they are collected into result objects instead.
"""

from typing import Iterable


class FoundryDataError(Exception):
    """Base class for pipeline errors."""
    pass


class NotFoundError(FoundryDataError):
    """A referenced slug or backup id does not exist."""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        super().__init__(message)
        self.missing = list(missing)


class InvalidChangesetError(FoundryDataError):
    """A changeset batch is malformed (empty, or touches immutable fields)."""
    pass


class InvalidFieldError(FoundryDataError, ValueError):
    """A field name is unknown or its value has the wrong type."""
    pass


class BackupError(FoundryDataError):
    """Backup could not be persisted, read back, or verified."""
    pass


class AlreadyRolledBackError(FoundryDataError):
    """The backup has already been rolled back."""
    pass


class BackupExpiredError(FoundryDataError):
    """The backup has expired and can no longer be used for rollback."""
    pass
