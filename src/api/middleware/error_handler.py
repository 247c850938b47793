"""API error types and the middleware that renders them.

Every error a caller can see is an ``APIError`` subclass carrying its HTTP
status and an ``error`` code for the JSON envelope. Errors that must never
reach a gateway as a failure status live in ``src.core.exceptions`` instead.
"""

import logging
import traceback
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors returned to API callers.

    Subclasses set ``status_code``, ``error_type`` and ``default_message``
    as class attributes.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, details: list[dict[str, Any]] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class ValidationError(APIError):
    """Caller input was rejected before any state was touched."""

    status_code = 422
    error_type = "validation_error"
    default_message = "Validation error"


class AuthenticityError(APIError):
    """Callback signature or token did not match the configured secret."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authenticity_error"
    default_message = "Callback authenticity check failed"


class AuthorizationError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization_error"
    default_message = "Access denied"


class GatewayError(APIError):
    """The payment provider rejected an outbound request."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_type = "gateway_error"
    default_message = "Payment gateway rejected the request"


class GatewayUnavailableError(APIError):
    """The payment provider did not answer in time; the caller may retry."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error_type = "gateway_timeout"
    default_message = "Payment gateway timed out"


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Render the standard error envelope.

    Args:
        error_type: Machine-readable error code.
        message: Human-readable description.
        status_code: HTTP status code.
        details: Optional field-level details.
        request_id: X-Request-ID of the failed request, if any.

    Returns:
        JSONResponse: The envelope with ``None`` fields dropped.
    """
    body = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Turn exceptions raised by route handlers into error envelopes.

    Authenticity failures are logged as security events; other APIErrors at
    WARNING; anything unexpected at ERROR with its traceback and a generic
    500 for the caller.
    """
    request_id = request.headers.get("X-Request-ID")
    log_extra = {"request_id": request_id}

    try:
        return await call_next(request)

    except APIError as e:
        if isinstance(e, AuthenticityError):
            logger.warning("Security event: %s on %s", e.message, request.url.path, extra=log_extra)
        else:
            logger.warning("API error on %s: %s - %s", request.url.path, e.error_type, e.message, extra=log_extra)
        return create_error_response(e.error_type, e.message, e.status_code, e.details, request_id)

    except HTTPException as e:
        logger.warning("HTTP exception on %s: %s - %s", request.url.path, e.status_code, e.detail, extra=log_extra)
        return create_error_response("http_error", str(e.detail), e.status_code, request_id=request_id)

    except Exception as e:
        logger.error(
            "Unhandled exception on %s: %s\n%s",
            request.url.path,
            str(e),
            traceback.format_exc(),
            extra=log_extra,
        )
        return create_error_response(
            "internal_error",
            "An unexpected error occurred",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
