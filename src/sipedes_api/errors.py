"""Error handling for FastAPI application and permohonan workflow exceptions."""

import pydantic
from fastapi import Request
from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from loguru import logger

from sipedes_api.monitoring.logger import log_response_info
from sipedes_api.workflow.exceptions import ConcurrentModification
from sipedes_api.workflow.exceptions import FileTooLarge
from sipedes_api.workflow.exceptions import InvalidState
from sipedes_api.workflow.exceptions import InvalidTransition
from sipedes_api.workflow.exceptions import MissingReason
from sipedes_api.workflow.exceptions import MissingResultDocument
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import PermohonanError
from sipedes_api.workflow.exceptions import TrackingNumberExhausted
from sipedes_api.workflow.exceptions import UnsupportedType
from sipedes_api.workflow.exceptions import ValidationFailed

# Explicit exports
__all__ = [
    "PERMOHONAN_ERROR_STATUS",
    "handle_broad_exceptions",
    "handle_permohonan_errors",
    "handle_pydantic_validation_errors",
]

# Looked up along the exception's MRO
PERMOHONAN_ERROR_STATUS = {
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
    MissingReason: status.HTTP_400_BAD_REQUEST,
    MissingResultDocument: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_409_CONFLICT,
    InvalidState: status.HTTP_409_CONFLICT,
    ConcurrentModification: status.HTTP_409_CONFLICT,
    FileTooLarge: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    UnsupportedType: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    TrackingNumberExhausted: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: PermohonanError) -> int:
    for cls in type(exc).__mro__:
        if cls in PERMOHONAN_ERROR_STATUS:
            return PERMOHONAN_ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


# fastapi docs on middlewares: https://fastapi.tiangolo.com/tutorial/middleware/
async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that goes unhandled by a more specific exception handler."""
    try:
        return await call_next(request)
    except Exception as err:  # pylint: disable=broad-except
        error_response = {"detail": "Internal server error", "error_type": type(err).__name__}

        logger.error(
            f"Unhandled exception: {type(err).__name__}: {str(err)}",
            http_status=500,
            http_method=request.method,
            url_path=str(request.url.path),
            error_type=type(err).__name__,
            error_message=str(err),
            response_body=error_response,
            exc_info=True,  # Include full traceback
        )

        response = JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response,
        )
        log_response_info(response)
        return response


# fastapi docs on error handlers: https://fastapi.tiangolo.com/tutorial/handling-errors/
async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    errors = exc.errors()
    error_response = {
        "detail": [
            {
                "msg": error["msg"],
                "input": error.get("input"),
            }
            for error in errors
        ]
    }

    logger.warning(
        f"Validation error: {len(errors)} validation errors",
        http_status=422,
        http_method=request.method,
        url_path=str(request.url.path),
        error_type="ValidationError",
        validation_errors=errors,
        response_body=error_response,
    )

    response = JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable(error_response),
    )
    log_response_info(response)

    return response


def jsonable(content):
    """Inputs echoed back by pydantic may be bytes or other non-JSON values."""
    return jsonable_encoder(content, custom_encoder={bytes: lambda b: f"<{len(b)} bytes>"})


async def handle_permohonan_errors(request: Request, exc: PermohonanError) -> JSONResponse:
    """
    Convert workflow exceptions into HTTP responses.

    Maps business-rule failures to HTTP status codes:
    - ValidationFailed, MissingReason, MissingResultDocument -> 400 Bad Request
    - NotFound -> 404 Not Found
    - InvalidTransition, InvalidState, ConcurrentModification -> 409 Conflict
    - FileTooLarge -> 413 Content Too Large
    - UnsupportedType -> 415 Unsupported Media Type
    - TrackingNumberExhausted -> 503 Service Unavailable

    Parameters
    ----------
    request : Request
        FastAPI request object
    exc : PermohonanError
        Workflow exception

    Returns
    -------
    JSONResponse
        HTTP response with ``detail`` and ``error_type``
    """
    http_status = status_for(exc)
    error_response = {"detail": exc.message, "error_type": exc.error_type}
    if isinstance(exc, ValidationFailed) and exc.errors:
        error_response["errors"] = exc.errors

    log = logger.error if http_status >= 500 else logger.warning
    log(
        f"Permohonan error: {exc.error_type}: {exc.message}",
        http_status=http_status,
        http_method=request.method,
        url_path=str(request.url.path),
        error_type=exc.error_type,
        error_context={k: str(v) for k, v in exc.context.items()},
        response_body=error_response,
    )

    response = JSONResponse(status_code=http_status, content=error_response)
    log_response_info(response)
    return response
