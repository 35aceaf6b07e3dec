"""
Application Errors

Every failure the API reports is one of these exceptions. Each carries the
HTTP status it maps to; the handlers registered by install_error_handlers()
render all of them, plus FastAPI's own errors, as {"error": message}.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class CanteenError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    default_message = "An internal error occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CanteenError):
    status_code = 400
    default_message = "Invalid request."


class AuthenticationError(CanteenError):
    status_code = 401
    default_message = "Invalid credentials."


class TokenError(CanteenError):
    status_code = 403
    default_message = "Invalid or expired token."


class NotFoundError(CanteenError):
    status_code = 404
    default_message = "Not found."


class ConflictError(CanteenError):
    status_code = 409
    default_message = "Conflict."


class ItemUnavailableError(ValidationError):
    """A requested menu item is missing, unavailable or from another canteen."""

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(
            f"Failed to create order. Item with ID {item_id} is not available or does not exist."
        )


class OrderCreationError(CanteenError):
    default_message = "Failed to create order."


class OrderUpdateError(CanteenError):
    default_message = "Failed to update order status."


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _format_validation_error(exc: RequestValidationError) -> str:
    """First validation problem as '<field>: <reason>'."""
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "form", "query", "path")]
    field = ".".join(location)
    reason = first.get("msg", "invalid value")
    return f"{field}: {reason}" if field else reason


def install_error_handlers(app: FastAPI) -> None:
    """Register the uniform {"error": message} handlers on the app."""

    @app.exception_handler(CanteenError)
    async def canteen_error_handler(request: Request, exc: CanteenError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _format_validation_error(exc)
        logger.debug(f"Rejected {request.method} {request.url.path}: {message}")
        return error_response(400, message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all exception handler."""
        logger.exception(f"Unhandled exception: {exc}")
        return error_response(500, CanteenError.default_message)
