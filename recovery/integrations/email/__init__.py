"""
Email Integration Module
========================

Usage::

    from recovery.integrations.email import EmailClient, EmailDeliveryError
"""

from .emailService import EmailClient, EmailDeliveryError, EmailResult

__all__ = [
    "EmailClient",
    "EmailDeliveryError",
    "EmailResult",
]
