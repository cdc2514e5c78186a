"""Maps domain errors onto HTTP responses.

Every error body has the shape ``{"error": message}``.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from taskflow.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StoreError,
    TaskflowError,
    ValidationError,
)

logger = structlog.get_logger()

STATUS_BY_ERROR: dict[type[TaskflowError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_400_BAD_REQUEST,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StoreError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: TaskflowError) -> int:
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def describe_validation_error(exc: RequestValidationError) -> str:
    """One readable sentence for the first request validation problem."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = loc[-1] if loc else "request"
    where = first.get("loc", ("",))[0]

    if first.get("type") == "missing":
        return f"{field} is required"
    if where == "path" and field.endswith("_id"):
        return f"Invalid {field[:-3].replace('_', ' ')} id"
    return f"Invalid {field}: {first.get('msg', 'invalid value')}"


async def taskflow_error_handler(request: Request, exc: TaskflowError) -> ORJSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("request_store_error", error=exc.message, code=exc.code)
    else:
        logger.info("request_rejected", error=exc.message, code=exc.code, status_code=code)
    return ORJSONResponse(status_code=code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    message = describe_validation_error(exc)
    logger.info("request_invalid", error=message)
    return ORJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception("request_unhandled_error", error=str(exc))
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskflowError, taskflow_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
