from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.auth.core.logging_config import REQUEST_ID_HEADER, get_request_id

logger = logging.getLogger(__name__)

# code -> default HTTP status
ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "EMAIL_TAKEN": 409,
    "INVALID_CREDENTIALS": 401,
    "INVALID_EMAIL_DOMAIN": 400,
    "MISSING_REFRESH": 400,
    "INVALID_REFRESH": 401,
    "REFRESH_REVOKED": 401,
    "MISSING_TOKEN": 401,
    "INVALID_TOKEN": 401,
    "TOKEN_EXPIRED": 401,
    "ALREADY_VERIFIED": 400,
    "USER_NOT_FOUND": 404,
    "FORBIDDEN": 403,
    "INTERNAL_ERROR": 500,
}


class AuthError(Exception):
    """Typed failure carrying a stable machine-readable code."""

    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code or ERROR_STATUS.get(code, 400)

    def __repr__(self) -> str:
        return f"AuthError({self.code!r}, {self.message!r})"


def error_response(
    code: str, message: str, status_code: int, request_id: str | None = None
) -> JSONResponse:
    payload = {
        "error": {"code": code, "message": message, "requestId": request_id or get_request_id()}
    }
    return JSONResponse(status_code=status_code, content=payload)


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    if field:
        return f"{field}: {first.get('msg', 'invalid value')}"
    return first.get("msg", "Invalid input")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn("%s %s -> %s", request.method, request.url.path, exc.code)
        return error_response(
            exc.code, exc.message, exc.status_code, getattr(request.state, "request_id", None)
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(
            "VALIDATION_ERROR",
            _first_validation_message(exc),
            400,
            getattr(request.state, "request_id", None),
        )

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        # runs in ServerErrorMiddleware, outside the request-id middleware
        request_id = getattr(request.state, "request_id", None)
        response = error_response("INTERNAL_ERROR", "Internal error", 500, request_id)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response
