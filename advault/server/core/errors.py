from __future__ import annotations

import logging
import traceback
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from advault.core.errors import (AdVaultError, ExternalToolError, GroupError,
                                 NotFoundError, StorageError, ValidationError)
from advault.logging_config import reset_request_id, set_request_id

_log = logging.getLogger("advault.errors")

DOMAIN_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    GroupError: 409,
    ExternalToolError: 502,
    StorageError: 500,
}


def _request_id(request: Request) -> Optional[str]:
    state_rid = getattr(request.state, "request_id", None)
    header_rid = request.headers.get("X-Request-ID")
    return state_rid or header_rid or None


def _activate_context(rid: Optional[str]):
    if not rid:
        return None
    return set_request_id(rid)


def _clear_context(token) -> None:
    if token is None:
        return
    reset_request_id(token)


def _error_response(
    request: Request,
    *,
    status: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    rid = _request_id(request)
    body = {"ok": False, "code": code, "message": message}
    if details is not None:
        body["details"] = details
    if rid:
        body["request_id"] = rid

    response = JSONResponse(body, status_code=status)
    if rid:
        response.headers["X-Request-ID"] = rid
    return response


def status_for(exc: AdVaultError) -> int:
    for exc_type, status in DOMAIN_STATUS.items():
        if isinstance(exc, exc_type):
            return status
    return 500


def register_exception_handlers(app):
    @app.exception_handler(AdVaultError)
    async def _domain_exc(request: Request, exc: AdVaultError):
        rid = _request_id(request)
        token = _activate_context(rid)
        try:
            status = status_for(exc)
            level = logging.ERROR if status >= 500 else logging.INFO
            _log.log(level, "domain error %s: %s", exc.code, exc.message)
            details = {"id": exc.asset_id} if exc.asset_id is not None else None
            return _error_response(
                request,
                status=status,
                code=exc.code,
                message=exc.message,
                details=details,
            )
        finally:
            _clear_context(token)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc(request: Request, exc: StarletteHTTPException):
        rid = _request_id(request)
        token = _activate_context(rid)
        try:
            detail = exc.detail
            message = str(detail) if detail else "Request failed"
            details = detail if isinstance(detail, (dict, list)) else None
            return _error_response(
                request,
                status=exc.status_code,
                code=f"http_{exc.status_code}",
                message=message,
                details=details,
            )
        finally:
            _clear_context(token)

    @app.exception_handler(RequestValidationError)
    async def _val_exc(request: Request, exc: RequestValidationError):
        rid = _request_id(request)
        token = _activate_context(rid)
        try:
            _log.debug("validation error: %s", exc)
            return _error_response(
                request,
                status=422,
                code="validation_error",
                message="Request validation failed",
                details=jsonable_errors(exc),
            )
        finally:
            _clear_context(token)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        rid = _request_id(request)
        token = _activate_context(rid)
        err_id = uuid.uuid4().hex
        try:
            tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            _log.error("Unhandled exception [%s]: %s", err_id, tb)
            return _error_response(
                request,
                status=500,
                code="internal_error",
                message="Internal server error",
                details={"error_id": err_id},
            )
        finally:
            _clear_context(token)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    errors = []
    for entry in exc.errors():
        errors.append(
            {
                "loc": [str(part) for part in entry.get("loc", ())],
                "msg": str(entry.get("msg", "")),
                "type": str(entry.get("type", "")),
            }
        )
    return errors
