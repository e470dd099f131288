"""
Exception types raised by the storage layer.

Missing rows are never errors: lookups return None, False or an empty
collection instead.
"""


class StorageError(Exception):
    """Base class for storage failures."""


class InitializationError(StorageError):
    """The store could not be created or bootstrapped. Not retried."""


class ConstraintViolationError(StorageError):
    """A unique or foreign-key constraint rejected a write. Not retried."""


class StorageBusyError(StorageError):
    """The store stayed locked for every retry attempt."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"Store still locked after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class DocumentDecodeError(StorageError):
    """A stored value could not be parsed back into its document type."""

    def __init__(self, table: str, key: str, cause: Exception):
        super().__init__(f"Corrupt value in {table} for {key!r}: {cause}")
        self.table = table
        self.key = key
        self.cause = cause
