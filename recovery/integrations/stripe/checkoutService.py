"""
Stripe Checkout Gateway
=======================

Thin adapter over the Stripe SDK used by the booking core:

- Hosted Checkout Session creation for deposits and full payments
- Webhook signature verification and event parsing

The SDK is synchronous, so API calls run in a worker thread and are bounded
by ``timeout`` seconds, both by the SDK's HTTP client and by the awaiting
coroutine. The SDK's own network retries are disabled; retry policy belongs
to the caller. All monetary amounts are in cents (integers).
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

import stripe

from recovery.core.exceptions import GatewayError, InvalidSignatureError
from recovery.integrations.stripe.events import GatewayEvent, parse_event

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Stripe SDK configuration
# ---------------------------------------------------------------------------

stripe.api_version = "2024-06-20"
stripe.max_network_retries = 0

_PRODUCT_DESCRIPTIONS = {
    "deposit": "Deposit",
    "full": "Full payment for lost item recovery",
    "finder-fee": "Finder's fee for recovered item",
}


# ---------------------------------------------------------------------------
# Response dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GatewaySession:
    """A hosted checkout session as returned by Stripe."""
    session_id: str
    url: str
    payment_intent_id: str | None = None


# ---------------------------------------------------------------------------
# Helper: map Stripe errors
# ---------------------------------------------------------------------------

def _handle_stripe_error(exc: stripe.StripeError) -> GatewayError:
    """Convert a Stripe SDK exception into a GatewayError."""
    error_body = getattr(exc, "error", None)

    code = getattr(error_body, "code", None) if error_body else getattr(exc, "code", None)
    error_type = getattr(error_body, "type", None) if error_body else None

    logger.error("Stripe API error: %s (code=%s, type=%s)", str(exc), code, error_type)

    return GatewayError(
        message=str(exc),
        gateway_error_code=code,
        gateway_error_type=error_type,
    )


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class StripeCheckoutGateway:
    """Creates Checkout Sessions and verifies webhook payloads."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        *,
        timeout: float = 10.0,
        webhook_tolerance: int = 300,
    ) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._timeout = timeout
        self._webhook_tolerance = webhook_tolerance
        # The SDK HTTP client is process-wide; without its own timeout a
        # timed-out call keeps running in its worker thread.
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    async def create_checkout_session(
        self,
        *,
        job_id: str,
        amount_cents: int,
        currency: str,
        payment_type: str,
        customer_email: str,
        description: str,
        success_url: str,
        cancel_url: str,
    ) -> GatewaySession:
        """Create a one-off payment Checkout Session for a job.

        ``job_id`` and ``payment_type`` are stored in both the session and
        the resulting PaymentIntent metadata so every webhook for this
        payment can be correlated back to the job.

        Raises:
            GatewayError: If Stripe rejects the request, is unreachable, or
                does not answer within the timeout.
        """
        metadata = {"job_id": job_id, "payment_type": payment_type}
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {
                            "name": f"Recovery Service - {description}",
                            "description": _PRODUCT_DESCRIPTIONS.get(
                                payment_type, payment_type
                            ),
                        },
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }

        try:
            session = await asyncio.wait_for(
                asyncio.to_thread(
                    stripe.checkout.Session.create,
                    api_key=self._api_key,
                    **params,
                ),
                timeout=self._timeout,
            )
        except stripe.StripeError as exc:
            raise _handle_stripe_error(exc) from exc
        except asyncio.TimeoutError as exc:
            logger.critical(
                "Stripe Checkout Session creation timed out after %.1fs: job_id=%s. "
                "Stripe may still have created the session; check the dashboard "
                "for an orphaned session with this job_id in its metadata.",
                self._timeout,
                job_id,
            )
            raise GatewayError(
                f"Payment gateway did not respond within {self._timeout}s"
            ) from exc

        logger.info(
            "Checkout Session created: id=%s, job_id=%s, amount=%d %s",
            session.id,
            job_id,
            amount_cents,
            currency,
        )

        # Only populated when Stripe creates the intent eagerly.
        intent = getattr(session, "payment_intent", None)
        return GatewaySession(
            session_id=session.id,
            url=session.url,
            payment_intent_id=intent if isinstance(intent, str) else None,
        )

    def construct_event(self, payload: bytes, signature_header: str) -> GatewayEvent:
        """Verify a webhook signature and parse the event body.

        Raises:
            InvalidSignatureError: If the signature, timestamp, or payload
                is invalid. Nothing has been parsed or processed.
        """
        if not signature_header:
            raise InvalidSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature_header,
                self._webhook_secret,
                tolerance=self._webhook_tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignatureError(f"Invalid webhook signature: {exc}") from exc
        except ValueError as exc:
            raise InvalidSignatureError(f"Invalid webhook payload: {exc}") from exc

        try:
            return parse_event(json.loads(body))
        except ValueError as exc:
            raise InvalidSignatureError(f"Invalid webhook payload: {exc}") from exc
