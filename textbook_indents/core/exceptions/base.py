from typing import Any


class AppException(Exception):
    """Base application exception.

    ``code`` is a stable machine-readable tag; ``retryable`` tells the caller
    whether repeating the same request may succeed.
    """

    code: str = "app_error"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    code = "not_found"

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Validation error."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class InvalidQuantityError(ValidationError):
    """Quantity outside the allowed bounds (e.g. returning more than was issued)."""

    code = "invalid_quantity"


class InvalidTransitionError(AppException):
    """Lifecycle transition not allowed from the current state."""

    code = "invalid_transition"

    def __init__(self, entity: str, current_status: str, action: str, reason: str | None = None):
        message = f"Cannot {action} {entity} in status '{current_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            status_code=409,
            details={"status": current_status, "action": action},
        )


class AuthenticationError(AppException):
    """Authentication failed."""

    code = "authentication_error"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    """Not authorized to perform action."""

    code = "authorization_error"

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message=message, status_code=403)


class InsufficientStockError(AppException):
    """Not enough stock for operation."""

    code = "insufficient_stock"

    def __init__(self, textbook_id: int, requested: int, available: int, title: str | None = None):
        label = f"'{title}'" if title else f"textbook {textbook_id}"
        message = f"Insufficient stock for {label}: requested {requested}, available {available}"
        super().__init__(
            message=message,
            status_code=409,
            details={"textbook_id": textbook_id, "requested": requested, "available": available},
        )


class ConcurrencyConflictError(AppException):
    """Concurrent writers kept winning the race for the same record."""

    code = "concurrency_conflict"
    retryable = True

    def __init__(self, resource: str, identifier: Any, attempts: int):
        super().__init__(
            message=f"{resource} {identifier} was modified concurrently; gave up after {attempts} attempts",
            status_code=409,
            details={"resource": resource, "id": identifier, "attempts": attempts},
        )


class InventoryInvariantViolation(AppException):
    """Stock counters would leave 0 <= available <= quantity.

    Indicates a lifecycle bug upstream, not bad user input.
    """

    code = "inventory_invariant_violation"

    def __init__(self, textbook_id: int, message: str):
        super().__init__(
            message=f"Inventory invariant violated for textbook {textbook_id}: {message}",
            status_code=500,
            details={"textbook_id": textbook_id},
        )


class DuplicateError(AppException):
    """Duplicate resource."""

    code = "duplicate"

    def __init__(self, resource: str, field: str, value: Any):
        message = f"{resource} with {field}={value} already exists"
        super().__init__(message=message, status_code=409, details={"field": field, "value": value})
