"""Terminal error handling: every failure leaves as ``{status, message}``."""

from __future__ import annotations

import logging
import re
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from tours_api.core.config import settings
from tours_api.core.errors import AppError, DuplicateKey, NotFound, TooManyRequests, ValidationError
from tours_api.db.session import Base

_LOG = logging.getLogger("tours_api.errors")

GENERIC_MESSAGE = "Something went very wrong!"
PG_UNIQUE_VIOLATION = "23505"
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (\w+)\.(\w+)")


def _body(status: str, message: str, exc: BaseException | None = None) -> dict:
    body = {"status": status, "message": message}
    if exc is not None and settings.is_development:
        body["error"] = type(exc).__name__
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def _error_response(err: AppError, exc: BaseException | None = None) -> JSONResponse:
    headers = {}
    if isinstance(err, TooManyRequests) and err.retry_after_seconds:
        headers["Retry-After"] = str(err.retry_after_seconds)
    return JSONResponse(
        status_code=err.status_code,
        content=_body(err.status, err.message, exc or err),
        headers=headers or None,
    )


def _constraint_column(constraint_name: str) -> str | None:
    for table_name in Base.metadata.tables:
        prefix = f"uq_{table_name}_"
        if constraint_name.startswith(prefix):
            return constraint_name[len(prefix):]
    return None


def duplicate_key_from_integrity_error(exc: IntegrityError) -> DuplicateKey | None:
    """Name the duplicated field from driver diagnostics when available.

    psycopg exposes the violated constraint on ``orig.diag``; SQLite only has
    its error text, which is used as the fallback.
    """
    orig = exc.orig
    diag = getattr(orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name and getattr(orig, "sqlstate", None) == PG_UNIQUE_VIOLATION:
        column = _constraint_column(constraint_name)
        return DuplicateKey(to_camel(column) if column else None)
    match = _SQLITE_UNIQUE_RE.search(str(orig))
    if match:
        return DuplicateKey(to_camel(match.group(2)))
    return None


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        msg = str(error.get("msg") or "").removeprefix("Value error, ")
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return "Invalid input data. " + ". ".join(messages)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500 or not exc.is_operational:
            _LOG.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(ValidationError(_validation_message(exc)), exc)

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        err = duplicate_key_from_integrity_error(exc)
        if err is None:
            _LOG.warning("integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
            err = ValidationError("Invalid input data.")
        return _error_response(err, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            err = NotFound(f"Can't find {request.url.path} on this server!")
        else:
            err = AppError(str(exc.detail), status_code=exc.status_code)
        return _error_response(err)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        _LOG.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        message = str(exc) if settings.is_development else GENERIC_MESSAGE
        return JSONResponse(status_code=500, content=_body("error", message or GENERIC_MESSAGE, exc))
