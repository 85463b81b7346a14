"""
Global exception handler for the Match Video Upload API.
Maps every failure onto its ErrorKind and a stable JSON body.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from .exceptions import ErrorKind, UploadSessionException
from .logger import get_logger

logger = get_logger(__name__)

STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.EXPIRED: 410,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PROVIDER: 502,
    ErrorKind.INTERNAL: 500,
}

ERROR_LABELS = {
    ErrorKind.VALIDATION: "Validation Error",
    ErrorKind.UNAUTHENTICATED: "Unauthorized",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.EXPIRED: "Session Expired",
    ErrorKind.CONFLICT: "Conflict",
    ErrorKind.PROVIDER: "Provider Error",
    ErrorKind.INTERNAL: "Internal Server Error",
}

OPAQUE_MESSAGE = "An unexpected error occurred"


def error_response(kind: ErrorKind, message: str, details: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_CODES[kind],
        content={
            "error": ERROR_LABELS[kind],
            "kind": kind.value,
            "message": message,
            "details": details or {}
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""

    @app.exception_handler(UploadSessionException)
    async def handle_upload_session_error(request: Request, exc: UploadSessionException):
        if exc.kind == ErrorKind.INTERNAL:
            logger.error(f"Internal error on {request.url.path}: {exc.message}")
            return error_response(exc.kind, OPAQUE_MESSAGE)
        if exc.kind == ErrorKind.PROVIDER:
            logger.warning(f"Provider error on {request.url.path}: {exc.message}")
        return error_response(exc.kind, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        return error_response(
            ErrorKind.VALIDATION,
            f"Invalid request parameters: {', '.join(fields)}",
            {"fields": fields}
        )

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        return error_response(ErrorKind.INTERNAL, OPAQUE_MESSAGE)
