"""
Error taxonomy and the centralized error-response translator.

Operational errors are raised as AppError anywhere in the request path;
every exception that reaches the app ends up here and is rendered with the
uniform envelope: {"status": "fail"|"error", "message": ...}.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DataError, IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Any, Dict, List, Optional
import logging
import traceback

from natours.core.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """An expected, operational error with an HTTP status attached."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.status = "fail" if 400 <= status_code < 500 else "error"


def _envelope(
    status_code: int,
    message: str,
    exc: Optional[BaseException] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "status": "fail" if 400 <= status_code < 500 else "error",
        "message": message,
    }
    if extra:
        content.update(extra)
    if exc is not None and not settings.is_production:
        content["error"] = type(exc).__name__
        content["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return JSONResponse(status_code=status_code, content=content)


def _format_validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    formatted = []
    for error in errors:
        # drop the "body"/"query"/"path" prefix from the location
        loc = [str(part) for part in error.get("loc", ())[1:]]
        message = error.get("msg", "")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        formatted.append({"field": ".".join(loc), "message": message})
    return formatted


def _is_unique_violation(exc: IntegrityError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode == "23505"
    text = str(exc.orig).lower()
    return "unique" in text or "duplicate key" in text


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return _envelope(exc.status_code, exc.message, exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _format_validation_errors(exc.errors())
    details = ". ".join(
        f"{e['field']}: {e['message']}" if e["field"] else e["message"] for e in errors
    )
    logger.info(f"Validation failed on {request.url.path}: {details}")
    return _envelope(
        status.HTTP_400_BAD_REQUEST,
        f"Invalid input data. {details}".strip(),
        extra={"errors": errors},
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    if _is_unique_violation(exc):
        message = "Duplicate field value: a record with this value already exists. Please use another value!"
    else:
        message = "Invalid input data. The request violates a database constraint."
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    return _envelope(status.HTTP_400_BAD_REQUEST, message, exc)


async def data_error_handler(request: Request, exc: DataError) -> JSONResponse:
    logger.warning(f"Data error on {request.url.path}: {exc.orig}")
    return _envelope(
        status.HTTP_400_BAD_REQUEST,
        "Invalid input data. A value has the wrong type or is out of range.",
        exc,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        message = f"Can't find {request.url.path} on this server!"
    else:
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "fail" if 400 <= exc.status_code < 500 else "error",
            "message": message,
        },
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    message = "Something went very wrong!" if settings.is_production else str(exc)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, message, exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(DataError, data_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
