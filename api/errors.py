"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from api.middleware import request_id_of
from core.exceptions import ConfigurationError, DuplicateInvoiceError, SequenceConflictError

logger = logging.getLogger(__name__)


def _error(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, request_id_of(request)).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return _error(request, 409, ErrorCodes.SETUP_INCOMPLETE, str(exc))

    @app.exception_handler(DuplicateInvoiceError)
    async def duplicate_invoice_handler(request: Request, exc: DuplicateInvoiceError):
        return _error(request, 409, ErrorCodes.ALREADY_INVOICED, str(exc))

    @app.exception_handler(SequenceConflictError)
    async def sequence_conflict_handler(request: Request, exc: SequenceConflictError):
        logger.warning("Sequence conflict: %s", exc)
        return _error(request, 503, ErrorCodes.SEQUENCE_CONFLICT, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _error(request, 404, ErrorCodes.NOT_FOUND, message)
        if "already exists" in message.lower():
            return _error(request, 409, ErrorCodes.ALREADY_EXISTS, message)
        return _error(request, 400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
