"""
Payments API Routes
===================

FastAPI route handlers for the checkout and reconciliation flow:

  POST /payments/checkout-session  -- Start hosted checkout for a job
  POST /payments/webhook           -- Stripe webhook endpoint
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from recovery.api.deps import Checkout, Reconciler
from recovery.api.errors import booking_error_to_http
from recovery.api.schemas.payment import (
    CheckoutSessionOut,
    CheckoutSessionRequest,
    WebhookResultOut,
)
from recovery.core.exceptions import BookingError, InvalidSignatureError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


# ---------------------------------------------------------------------------
# POST /payments/checkout-session
# ---------------------------------------------------------------------------

@router.post(
    "/checkout-session",
    response_model=CheckoutSessionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a Stripe Checkout Session for a job",
    description=(
        "Creates a hosted Stripe Checkout Session for a deposit, full payment "
        "or finder's fee and records a pending payment against the job. The "
        "client redirects the customer to ``redirect_url``. Amounts are in "
        "cents and must be positive."
    ),
)
async def create_checkout_session_endpoint(
    body: CheckoutSessionRequest,
    checkout: Checkout,
) -> CheckoutSessionOut:
    try:
        session = await checkout.create_checkout_session(
            job_id=body.item_id,
            amount_cents=body.amount,
            payment_type=body.payment_type,
            customer_email=body.customer_email,
            description=body.item_description,
        )
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc

    return CheckoutSessionOut(
        session_id=session.session_id,
        redirect_url=session.redirect_url,
    )


# ---------------------------------------------------------------------------
# POST /payments/webhook
# ---------------------------------------------------------------------------

@router.post(
    "/webhook",
    response_model=WebhookResultOut,
    summary="Stripe webhook endpoint",
    description=(
        "Receives webhook events from Stripe. Verifies the signature and "
        "reconciles payment state idempotently. This endpoint must receive "
        "the raw request body (not JSON-parsed) for signature verification. "
        "Returns 400 only for signature failures; duplicates and unknown "
        "event types are acknowledged with 200."
    ),
)
async def stripe_webhook_endpoint(
    request: Request,
    reconciler: Reconciler,
) -> WebhookResultOut:
    # Read raw body for signature verification
    payload = await request.body()
    sig_header = request.headers.get("Stripe-Signature", "")

    try:
        result = await reconciler.handle_callback(payload, sig_header)
    except InvalidSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except BookingError as exc:
        logger.error("Webhook processing failed, asking Stripe to retry: %s", exc.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Temporary failure processing event; please retry.",
        ) from exc

    return WebhookResultOut(
        event_type=result.event_type,
        processed=result.processed,
        message=result.message,
    )
