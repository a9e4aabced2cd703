class StorageError(Exception):
    """Base class for errors raised by the storage layer."""


class StorageInitError(StorageError):
    """The schema could not be created; the application cannot continue."""


class StorageIOError(StorageError):
    """The storage medium failed while a statement or transaction was running."""


class WriteConflict(StorageError, ValueError):
    """An insert collided with an existing id."""


class NotFound(StorageError, ValueError):
    """A row required by the operation does not exist."""
