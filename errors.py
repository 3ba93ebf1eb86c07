"""
Error taxonomy and the JSON error handlers installed on the app.

Every error body is an object with an `error` field; validation failures
also carry `details`, a list of field-level messages.
"""
import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[List[str]] = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, details: List[str], message: Optional[str] = None):
        super().__init__(message, details)


class AuthenticationError(AppError):
    status_code = 401
    message = "Authentication required"


class InvalidCredentials(AuthenticationError):
    message = "Invalid credentials"


class InvalidToken(AuthenticationError):
    status_code = 400
    message = "Invalid token."


class AuthorizationError(AppError):
    status_code = 403
    message = "Access denied."


# The gate's name for a rejected action.
AccessDenied = AuthorizationError


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class Conflict(AppError):
    status_code = 409
    message = "Conflict"


class RateLimited(AppError):
    status_code = 429
    message = "Too many requests, please try again later."


class DependencyError(AppError):
    status_code = 503
    message = "Service unavailable"


def _format_validation_error(err: dict) -> str:
    loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc)
    return f"{field}: {err.get('msg')}" if field else str(err.get("msg"))


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [_format_validation_error(e) for e in exc.errors()]
        return JSONResponse(status_code=400, content={"error": "Validation failed", "details": details})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
