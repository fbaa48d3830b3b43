"""
Stripe Integration Module
=========================

Central export point for the Stripe checkout gateway and webhook event types.

Usage::

    from recovery.integrations.stripe import (
        StripeCheckoutGateway,
        CheckoutSessionCompleted,
        parse_event,
    )
"""

from .checkoutService import GatewaySession, StripeCheckoutGateway
from .events import (
    CheckoutSessionCompleted,
    GatewayEvent,
    PaymentIntentFailed,
    PaymentIntentSucceeded,
    UnknownEvent,
    parse_event,
)

__all__ = [
    # Checkout Gateway
    "GatewaySession",
    "StripeCheckoutGateway",
    # Webhook Events
    "CheckoutSessionCompleted",
    "GatewayEvent",
    "PaymentIntentFailed",
    "PaymentIntentSucceeded",
    "UnknownEvent",
    "parse_event",
]
