"""
Booking error taxonomy.

Services raise these; the API layer maps each one to an HTTP status code.
"""

from __future__ import annotations

import uuid


class BookingError(Exception):
    """Base class for all booking lifecycle errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Input was malformed or out of range."""


class NotFoundError(BookingError):
    """Raised when a referenced job or payment does not exist."""

    def __init__(self, entity: str, entity_id: uuid.UUID | str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found.")


class IllegalTransitionError(BookingError):
    """Raised when a job status change is rejected by the state machine."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class InvalidSignatureError(BookingError):
    """Webhook payload failed authenticity verification."""


class GatewayError(BookingError):
    """Raised when the payment gateway is unreachable or rejects a request.

    Attributes:
        message: Human-readable error description.
        gateway_error_code: The Stripe error code, if available.
        gateway_error_type: The Stripe error type, if available.
    """

    def __init__(
        self,
        message: str,
        gateway_error_code: str | None = None,
        gateway_error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.gateway_error_code = gateway_error_code
        self.gateway_error_type = gateway_error_type

    def __repr__(self) -> str:
        return (
            f"GatewayError(message={self.message!r}, "
            f"code={self.gateway_error_code!r}, "
            f"type={self.gateway_error_type!r})"
        )


class PersistenceError(BookingError):
    """A store read or write failed or timed out."""
