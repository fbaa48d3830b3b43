"""
Mapping from booking errors to HTTP responses.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from recovery.core.exceptions import (
    BookingError,
    GatewayError,
    IllegalTransitionError,
    InvalidSignatureError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

_STATUS_CODES: dict[type[BookingError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    IllegalTransitionError: status.HTTP_409_CONFLICT,
    InvalidSignatureError: status.HTTP_400_BAD_REQUEST,
    GatewayError: status.HTTP_502_BAD_GATEWAY,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def booking_error_to_http(exc: BookingError) -> HTTPException:
    """Map a BookingError to an appropriate HTTP error response."""
    status_code = _STATUS_CODES.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, GatewayError):
        return HTTPException(
            status_code=status_code,
            detail={
                "message": exc.message,
                "gateway_error_code": exc.gateway_error_code,
                "gateway_error_type": exc.gateway_error_type,
            },
        )

    return HTTPException(status_code=status_code, detail=exc.message)
