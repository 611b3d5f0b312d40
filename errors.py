class ValidationFailure(ValueError):
    """Caller supplied data that violates a precondition; nothing was written."""


class ConflictFailure(ValueError):
    """A uniqueness constraint would be violated."""


class StorageFailure(RuntimeError):
    """The database is unavailable or rejected the operation."""
