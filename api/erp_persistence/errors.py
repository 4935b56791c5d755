# erp_persistence/errors.py
"""
Repository error taxonomy.

Every failure a repository surfaces is a RepositoryError subclass carrying a
stable ``kind``. Driver errors are wrapped once, in the database handle, as
DatabaseError with the operation context; nothing else translates kinds.
"""
from __future__ import annotations
import enum
import uuid
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    entity_not_found = "entity_not_found"
    invalid_sort_column = "invalid_sort_column"
    invalid_sort_order = "invalid_sort_order"
    invalid_argument = "invalid_argument"
    insufficient_stock = "insufficient_stock"
    insufficient_reserved = "insufficient_reserved"
    not_found_or_already_approved = "not_found_or_already_approved"
    order_number_exhausted = "order_number_exhausted"
    database_error = "database_error"


class RepositoryError(Exception):
    """Base exception for repository operations"""
    kind: ErrorKind = ErrorKind.database_error


class EntityNotFoundError(RepositoryError):
    """Raised when a lookup by id/code/path matched zero rows"""
    kind = ErrorKind.entity_not_found

    def __init__(self, entity: str, key: Any = None):
        self.entity = entity
        self.key = key
        if key is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} not found: {key}")


class InvalidSortColumnError(RepositoryError):
    """Raised when a sort column is not in the entity's whitelist"""
    kind = ErrorKind.invalid_sort_column

    def __init__(self, entity: str, column: str):
        self.entity = entity
        self.column = column
        super().__init__(f"invalid sort column {column!r} for {entity}")


class InvalidSortOrderError(RepositoryError):
    """Raised when a sort order is neither ASC nor DESC"""
    kind = ErrorKind.invalid_sort_order

    def __init__(self, order: str):
        self.order = order
        super().__init__(f"invalid sort order {order!r}, expected ASC or DESC")


class InvalidArgumentError(RepositoryError):
    kind = ErrorKind.invalid_argument


class InsufficientStockError(RepositoryError):
    kind = ErrorKind.insufficient_stock


class InsufficientReservedError(RepositoryError):
    kind = ErrorKind.insufficient_reserved


class NotFoundOrAlreadyApprovedError(RepositoryError):
    kind = ErrorKind.not_found_or_already_approved


class OrderNumberExhaustedError(RepositoryError):
    kind = ErrorKind.order_number_exhausted


class DatabaseError(RepositoryError):
    """Wraps any error returned by the driver, with the operation context."""
    kind = ErrorKind.database_error

    def __init__(self, context: str, cause: Optional[BaseException] = None):
        self.context = context
        message = context if cause is None else f"{context}: {cause}"
        super().__init__(message)


def parse_uuid(value: Any, field: str = "id") -> uuid.UUID:
    """Parse a UUID from a string (or pass a UUID through)."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"invalid {field}: {value!r}") from e
