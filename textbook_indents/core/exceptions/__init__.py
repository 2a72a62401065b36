from textbook_indents.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    InvalidQuantityError,
    InvalidTransitionError,
    AuthenticationError,
    AuthorizationError,
    InsufficientStockError,
    ConcurrencyConflictError,
    InventoryInvariantViolation,
    DuplicateError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "InvalidQuantityError",
    "InvalidTransitionError",
    "AuthenticationError",
    "AuthorizationError",
    "InsufficientStockError",
    "ConcurrencyConflictError",
    "InventoryInvariantViolation",
    "DuplicateError",
]
