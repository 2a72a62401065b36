import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from textbook_indents.core.config import settings
from textbook_indents.core.exceptions import AppException, InventoryInvariantViolation
from textbook_indents.shared.schemas import ErrorResponse, ErrorDetail

logger = logging.getLogger(__name__)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application exceptions."""
    if isinstance(exc, InventoryInvariantViolation):
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)

    field = exc.details.get("field")
    errors = [ErrorDetail(field=field, message=exc.message)]

    response = ErrorResponse(
        message=exc.message,
        code=exc.code,
        retryable=exc.retryable,
        errors=errors,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(),
    )


def _format_validation_errors(errors: list[dict]) -> list[ErrorDetail]:
    details: list[ErrorDetail] = []
    for error in errors:
        loc = error.get("loc", ())
        # Drop top-level "body" for cleaner field paths
        if loc and loc[0] == "body":
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) if loc else None
        details.append(ErrorDetail(field=field, message=error.get("msg", "Invalid value")))
    return details


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI validation errors."""
    response = ErrorResponse(
        message="Validation error",
        code="validation_error",
        errors=_format_validation_errors(exc.errors()),
    )
    return JSONResponse(
        status_code=422,
        content=response.model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle generic HTTP exceptions."""
    errors = [ErrorDetail(field=None, message=str(exc.detail) if exc.detail else "HTTP error")]
    response = ErrorResponse(
        message=str(exc.detail) if exc.detail else "HTTP error",
        errors=errors,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(),
    )


def _friendly_db_error(exc: Exception) -> tuple[str, str | None, int, bool]:
    """
    Convert common DB constraint errors to a stable, user-facing message.

    Returns (message, field, status_code, retryable). Full DB error details are
    only exposed when debug is enabled.
    """
    raw = str(getattr(exc, "orig", exc))
    lower = raw.lower()

    if "does not exist" in lower and "column" in lower:
        # Typical after deploying code without running Alembic migrations.
        return (
            "Database schema is out of date. Run the latest migrations and try again.",
            None,
            500,
            False,
        )

    if "indent_number" in lower and ("unique" in lower or "duplicate" in lower):
        # Two creates raced for the same sequence row
        return ("Indent number already taken. Please try again.", None, 409, True)

    if "deadlock" in lower or "could not serialize" in lower or "database is locked" in lower:
        return ("Database is busy. Please try again.", None, 503, True)

    if settings.debug:
        return (raw, None, 500, False)

    return ("Database error", None, 500, False)


async def sqlalchemy_db_error_handler(request: Request, exc: Exception) -> JSONResponse:
    message, field, status_code, retryable = _friendly_db_error(exc)
    logger.warning("Database error on %s %s: %s", request.method, request.url.path, exc)
    response = ErrorResponse(
        message=message,
        code="database_error",
        retryable=retryable,
        errors=[ErrorDetail(field=field, message=message)],
    )
    return JSONResponse(status_code=status_code, content=response.model_dump())
