"""
Error taxonomy and the FastAPI handlers that render it.

Every failure a client can observe is a ServiceError carrying an explicit
kind, a public message that is safe to return, and an optional internal
detail that only ever reaches the operator logs.
"""

from enum import Enum

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import get_settings
from core.logger import logger


class ErrorKind(str, Enum):
    """Failure categories"""

    MISSING_UPLOAD = "missing_upload"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UPLOAD_CANCELLED = "upload_cancelled"
    STORE_UNAVAILABLE = "store_unavailable"
    DUPLICATE_FINGERPRINT = "duplicate_fingerprint"
    INDEX_UNAVAILABLE = "index_unavailable"
    NOT_FOUND = "not_found"


class ServiceError(Exception):
    """Base class for failures surfaced at the API boundary"""

    kind: ErrorKind
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal Server Error"

    def __init__(self, detail: str | None = None, public_message: str | None = None):
        if public_message is not None:
            self.public_message = public_message
        self.detail = detail
        super().__init__(detail or self.public_message)


class MissingUpload(ServiceError):
    kind = ErrorKind.MISSING_UPLOAD
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "No file uploaded"


class PayloadTooLarge(ServiceError):
    """Upload exceeded the configured size limit while staging"""

    kind = ErrorKind.PAYLOAD_TOO_LARGE
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "File exceeds the maximum upload size"


class UploadCancelled(ServiceError):
    """Inbound stream broke off before staging completed"""

    kind = ErrorKind.UPLOAD_CANCELLED
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Upload was interrupted"


class StoreUnavailable(ServiceError):
    """Blob store rejected or could not complete a write"""

    kind = ErrorKind.STORE_UNAVAILABLE


class DuplicateFingerprint(ServiceError):
    """
    Insert lost to an existing row with the same fingerprint.
    Absorbed by the ingestion pipeline; never returned to clients.
    """

    kind = ErrorKind.DUPLICATE_FINGERPRINT
    status_code = status.HTTP_409_CONFLICT
    public_message = "File already exists"


class IndexUnavailable(ServiceError):
    """Metadata index could not be read or written"""

    kind = ErrorKind.INDEX_UNAVAILABLE


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    public_message = "File not found"


def error_response(status_code: int, message: str) -> JSONResponse:
    """ Build the {status, error} body shared by all failures """
    return JSONResponse(
        status_code=status_code,
        content={"status": status_code, "error": message},
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if get_settings().is_production:
        logger.warning(
            "%s %s failed: %s (%d)",
            request.method, request.url.path, exc.kind.value, exc.status_code,
        )
    else:
        logger.error(
            "%s %s failed: %s (%d): %s",
            request.method, request.url.path, exc.kind.value, exc.status_code,
            exc.detail or exc.public_message,
            exc_info=exc.__cause__,
        )
    return error_response(exc.status_code, exc.public_message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Framework-raised errors (unknown route, wrong method) keep the same shape
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(exc.status_code, message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    if not get_settings().is_production:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.errors())
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Anything that escaped the taxonomy is still rendered as {status, error}
    if get_settings().is_production:
        logger.error(
            "%s %s failed: unexpected %s",
            request.method, request.url.path, type(exc).__name__,
        )
    else:
        logger.error(
            "%s %s failed: unexpected %s: %s",
            request.method, request.url.path, type(exc).__name__, exc,
            exc_info=exc,
        )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


def register_exception_handlers(app: FastAPI) -> None:
    """ Install the handlers on the application """
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
