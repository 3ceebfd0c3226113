"""
Typed storage errors raised by the pool, migrations and repositories.
"""


class StorageError(Exception):
    """Base class for registry storage failures."""


class DatabaseUnavailableError(StorageError):
    """The pool is not open (database disabled or never initialized)."""

    def __init__(self, operation: str = "query"):
        self.operation = operation
        super().__init__(f"Registry database unavailable for {operation}")


class DatabaseOperationError(StorageError):
    """A statement failed inside the database."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class DuplicateRecordError(StorageError):
    """A unique column already holds the given value."""

    def __init__(self, entity: str, field: str, value):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} with {field}={value!r} already exists")
