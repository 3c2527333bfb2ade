"""Scheduling error taxonomy and its HTTP mapping."""
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Base class for errors the scheduling core reports to callers."""
    code = "scheduling_error"
    status_code = 500

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SchedulingError):
    """Malformed input or a target slot that cannot be used (past, break, ...)."""
    code = "validation_error"
    status_code = 400


class NotWorkingDayError(ValidationError):
    """The doctor has no working hours on the requested date."""
    code = "not_working_day"


class ConflictError(SchedulingError):
    """A concurrent writer got there first; re-fetch and retry."""
    code = "conflict"
    status_code = 409


class NotFoundError(SchedulingError):
    code = "not_found"
    status_code = 404


class ExternalServiceError(SchedulingError):
    """A downstream collaborator (notifications) failed."""
    code = "external_service_error"
    status_code = 502


async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    content = {"message": exc.message, "code": exc.code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)


__all__ = [
    "SchedulingError",
    "ValidationError",
    "NotWorkingDayError",
    "ConflictError",
    "NotFoundError",
    "ExternalServiceError",
    "register_exception_handlers",
]
