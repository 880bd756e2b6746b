"""Service-level errors and their HTTP mapping."""
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base error raised by services; carries the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    status_code = 400


class UnauthorizedError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class PaymentError(ServiceError):
    status_code = 502


class ServiceUnavailableError(ServiceError):
    status_code = 503


def not_found(entity: str, entity_id: Any) -> NotFoundError:
    """Build the standard not-found error for an entity id."""
    return NotFoundError(f"{entity} with id {entity_id} not found")


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a ServiceError as a JSON error response."""
    logger.warning("Request failed", extra={
        "path": request.url.path,
        "method": request.method,
        "status_code": exc.status_code,
        "error": exc.message
    })
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the service error handler to an application."""
    app.add_exception_handler(ServiceError, service_error_handler)
