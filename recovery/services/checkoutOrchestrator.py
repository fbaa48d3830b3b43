"""
Checkout Orchestrator
=====================

Creates a hosted payment session for a job and records the matching
pending ``Payment``:

  1. Validate the amount and that the job exists and is payable.
  2. Ask the gateway for a Checkout Session whose metadata carries
     ``{job_id, payment_type}`` and whose redirect targets point back at
     the web app for this job.
  3. Persist a pending Payment keyed by the returned session id.
  4. Return the session id and the redirect URL.

A gateway failure aborts before anything is written. A persistence failure
after the gateway has accepted the session leaves an orphaned remote
session; it is logged at CRITICAL with the session id so an operator can
reconcile it from the Stripe dashboard, and the error is re-raised.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from recovery.core.exceptions import NotFoundError, PersistenceError, ValidationError
from recovery.events.jobEvents import emit_checkout_session_created
from recovery.integrations.stripe.checkoutService import GatewaySession
from recovery.models.job import Job, JobStatus, PaymentStatus
from recovery.models.payment import PaymentType
from recovery.services.bookingRepository import BookingRepository, Clock, utc_now

logger = logging.getLogger(__name__)


class CheckoutGateway(Protocol):
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
    ) -> GatewaySession: ...


@dataclass(frozen=True)
class CheckoutSession:
    """What the caller needs to redirect the customer."""
    session_id: str
    redirect_url: str


def ensure_payable(job: Job, payment_type: PaymentType) -> None:
    """Raise ``ValidationError`` if ``job`` cannot take this payment.

    A cancelled job, or one already paid in full or refunded, takes no
    further payments. A deposit is only accepted while the job is unpaid.
    """
    if job.status == JobStatus.CANCELLED:
        raise ValidationError(f"Job {job.id} is cancelled and cannot be paid for.")
    if job.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
        raise ValidationError(
            f"Job {job.id} payment status is '{job.payment_status.value}'; "
            "no further payment is accepted."
        )
    if payment_type == PaymentType.DEPOSIT and job.payment_status != PaymentStatus.UNPAID:
        raise ValidationError(f"Job {job.id} already has a deposit recorded.")


class CheckoutOrchestrator:
    """Coordinates gateway session creation with the local Payment record."""

    def __init__(
        self,
        repository: BookingRepository,
        gateway: CheckoutGateway,
        *,
        app_url: str,
        currency: str = "aud",
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._app_url = app_url.rstrip("/")
        self._currency = currency
        self._clock = clock

    def _success_url(self) -> str:
        # {CHECKOUT_SESSION_ID} is substituted by Stripe on redirect.
        return f"{self._app_url}/confirmation?session_id={{CHECKOUT_SESSION_ID}}"

    def _cancel_url(self, job_id: uuid.UUID) -> str:
        return f"{self._app_url}/checkout/{job_id}?cancelled=true"

    async def create_checkout_session(
        self,
        job_id: uuid.UUID,
        amount_cents: int,
        payment_type: PaymentType,
        customer_email: str,
        description: str,
    ) -> CheckoutSession:
        """Create a gateway session and its pending Payment.

        Args:
            job_id: The job being paid for.
            amount_cents: Amount in minor currency units; must be > 0.
            payment_type: deposit, full, or finder-fee.
            customer_email: Prefilled on the hosted checkout page.
            description: Item description shown on the line item.

        Raises:
            ValidationError: Non-positive amount, or job not payable.
            NotFoundError: The job does not exist.
            GatewayError: The gateway failed; nothing was persisted.
            PersistenceError: The store failed (possibly after the gateway
                created a session).
        """
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
            raise ValidationError("Amount must be an integer number of minor units.")
        if amount_cents <= 0:
            raise ValidationError(f"Amount must be positive, got {amount_cents}.")
        try:
            payment_type = PaymentType(payment_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown payment type: {payment_type!r}.") from exc

        job = await self._repository.get_job(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        ensure_payable(job, payment_type)

        session = await self._gateway.create_checkout_session(
            job_id=str(job_id),
            amount_cents=amount_cents,
            currency=self._currency,
            payment_type=payment_type.value,
            customer_email=customer_email,
            description=description,
            success_url=self._success_url(),
            cancel_url=self._cancel_url(job_id),
        )

        try:
            await self._repository.create_payment(
                job_id=job_id,
                session_id=session.session_id,
                amount_cents=amount_cents,
                currency=self._currency,
                payment_type=payment_type,
                payment_intent_id=session.payment_intent_id,
            )
        except PersistenceError:
            logger.critical(
                "Orphaned gateway session: session_id=%s job_id=%s amount=%d %s type=%s. "
                "Payment row was not written; reconcile manually.",
                session.session_id,
                job_id,
                amount_cents,
                self._currency,
                payment_type.value,
            )
            raise

        emit_checkout_session_created(
            job_id,
            self._clock(),
            session.session_id,
            amount_cents,
            payment_type.value,
        )
        return CheckoutSession(session_id=session.session_id, redirect_url=session.url)
