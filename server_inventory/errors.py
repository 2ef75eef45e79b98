"""
Error taxonomy for the inventory core.

Every failure raised by the registries and the persistence gateway is an
InventoryError. None of them are retried or logged by the core; callers
decide how to surface them.
"""

from typing import Optional


class InventoryError(Exception):
    """Base class for all inventory errors."""


class NotFound(InventoryError):
    """Raised when a read, update or delete targets a missing record."""
    def __init__(self, entity: str, record_id: int):
        super().__init__(f"{entity} {record_id} not found")
        self.entity = entity
        self.record_id = record_id


class ConstraintViolation(InventoryError):
    """Raised when a required field is missing or a foreign key does not resolve."""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ValidationError(InventoryError, ValueError):
    """Raised when a supplied value is malformed (bad email, enum, date, ...)."""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StorageError(InventoryError):
    """Raised for any lower-level SQLite failure.

    The original sqlite3 exception is available as __cause__.
    """
