"""
Typed application errors and their FastAPI handlers.

Every lifecycle and authorization failure is raised as an AppError subclass
carrying its HTTP status; the handlers render a uniform payload:

    {"success": false, "message": "...", "detail": "...", "code": "...", "errors": [...]}
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobboard.core.logging import capture_error, get_logger

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong! Please try again."


class AppError(HTTPException):
    """Base class for errors surfaced verbatim to the caller."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "unexpected"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(status_code=self.status_code, detail=message)
        self.message = message
        self.errors = errors or []


class ValidationFailedError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_failed"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class UnexpectedError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "unexpected"


@asynccontextmanager
async def storage_errors(message: str, db: Optional[AsyncSession] = None, **context: Any):
    """
    Convert storage failures into a generic UnexpectedError.

    The original exception is logged and sent to Sentry, never exposed. When
    a session is given it is rolled back before the error propagates.

    Usage:
        async with storage_errors("Failed to submit join request", db=db, organization_id=org_id):
            await db.commit()
    """
    try:
        yield
    except SQLAlchemyError as exc:
        if db is not None:
            await db.rollback()
        capture_error(exc, context={"storage": context} if context else None, tags={"layer": "storage"})
        raise UnexpectedError(message) from exc


def _error_payload(message: str, code: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    payload = {
        "success": False,
        "message": message,
        "detail": message,
        "code": code,
    }
    if errors:
        payload["errors"] = errors
    return payload


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(exc.message, exc.code, exc.errors),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())) or "unknown",
            "message": error.get("msg", "Invalid input"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_payload("Validation failed", ValidationFailedError.code, errors),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    capture_error(exc, context={"request": {"method": request.method, "path": request.url.path}})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_payload(GENERIC_ERROR_MESSAGE, UnexpectedError.code),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
