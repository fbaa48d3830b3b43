"""
Webhook Reconciler
==================

Applies verified Stripe webhook events to local payment and job state,
exactly once per logical event.

Processing steps:
  1. Verify the ``Stripe-Signature`` header. A failure raises
     ``InvalidSignatureError`` before anything is read or written.
  2. Dispatch on the parsed event variant:
       - checkout.session.completed    -> payment succeeded, job paid /
                                          deposit-paid, notify customer + staff
       - payment_intent.succeeded      -> informational only
       - payment_intent.payment_failed -> payment failed (job untouched)
       - anything else                 -> acknowledged, not handled

Idempotency:
  The payment row is the source of truth. ``mark_payment_succeeded`` is a
  conditional update on the payment's status, so of any number of
  concurrent or repeated deliveries exactly one performs the write and sends
  notifications; the rest return ``processed=False``.

Side effects:
  Notifications are dispatched after the state change has committed and are
  wrapped in ``dispatch_quietly``. A notification failure never fails the
  callback. A ``PersistenceError`` during reconciliation does propagate so
  the endpoint answers 5xx and Stripe redelivers.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from recovery.core.exceptions import InvalidSignatureError, PersistenceError
from recovery.events.jobEvents import emit_payment_status_changed
from recovery.integrations.stripe.events import (
    CheckoutSessionCompleted,
    GatewayEvent,
    PaymentIntentFailed,
    PaymentIntentSucceeded,
)
from recovery.models.job import PaymentStatus
from recovery.models.payment import Payment, PaymentType
from recovery.services.bookingRepository import BookingRepository, Clock, utc_now
from recovery.services.notificationService import NotificationSender, dispatch_quietly

logger = logging.getLogger(__name__)


class WebhookVerifier(Protocol):
    def construct_event(self, payload: bytes, signature_header: str) -> GatewayEvent: ...


# ---------------------------------------------------------------------------
# Response dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WebhookResult:
    """Result of processing a webhook event."""
    event_type: str
    processed: bool
    message: str


# Job payment status reached when a payment of each type succeeds.
JOB_PAYMENT_STATUS_ON_SUCCESS: dict[PaymentType, PaymentStatus] = {
    PaymentType.DEPOSIT: PaymentStatus.DEPOSIT_PAID,
    PaymentType.FULL: PaymentStatus.PAID,
    PaymentType.FINDER_FEE: PaymentStatus.PAID,
}


class WebhookReconciler:
    """Verifies and applies Stripe webhook callbacks."""

    def __init__(
        self,
        repository: BookingRepository,
        verifier: WebhookVerifier,
        notifier: NotificationSender,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._verifier = verifier
        self._notifier = notifier
        self._clock = clock
        self._handlers: dict[type, Callable[[Any], Awaitable[WebhookResult]]] = {
            CheckoutSessionCompleted: self._handle_session_completed,
            PaymentIntentSucceeded: self._handle_intent_succeeded,
            PaymentIntentFailed: self._handle_intent_failed,
        }

    async def handle_callback(
        self,
        raw_payload: bytes,
        signature_header: str,
    ) -> WebhookResult:
        """Verify and process one inbound webhook delivery.

        Args:
            raw_payload: The raw request body bytes, exactly as received.
            signature_header: The ``Stripe-Signature`` header value.

        Returns:
            WebhookResult describing what happened. Benign no-ops (unknown
            event types, duplicates, unmatched sessions) are results, not
            errors.

        Raises:
            InvalidSignatureError: Authenticity check failed; nothing was
                processed.
            PersistenceError: The store failed mid-reconciliation; the
                gateway should redeliver.
        """
        try:
            event = self._verifier.construct_event(raw_payload, signature_header)
        except InvalidSignatureError as exc:
            logger.error("Rejected webhook callback: %s", exc.message)
            raise

        handler = self._handlers.get(type(event))
        if handler is None:
            logger.info(
                "Webhook event type not handled: id=%s, type=%s",
                event.event_id,
                event.event_type,
            )
            return WebhookResult(
                event_type=event.event_type,
                processed=False,
                message=f"Event type '{event.event_type}' acknowledged but not handled",
            )

        result = await handler(event)
        logger.info(
            "Webhook event handled: id=%s, type=%s, processed=%s",
            event.event_id,
            event.event_type,
            result.processed,
        )
        return result

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _handle_session_completed(self, event: CheckoutSessionCompleted) -> WebhookResult:
        payment = await self._repository.find_payment_by_session_id(event.session_id)
        if payment is None:
            logger.warning(
                "No payment recorded for session %s (metadata job_id=%s); acknowledging",
                event.session_id,
                event.job_id,
            )
            return WebhookResult(
                event_type=event.event_type,
                processed=False,
                message=f"No payment recorded for session {event.session_id}",
            )

        if event.job_id and event.job_id != str(payment.job_id):
            logger.warning(
                "Session %s metadata job_id=%s disagrees with payment job_id=%s; "
                "using the payment record",
                event.session_id,
                event.job_id,
                payment.job_id,
            )
        if event.payment_type and event.payment_type != payment.payment_type.value:
            logger.warning(
                "Session %s metadata payment_type=%s disagrees with payment type=%s; "
                "using the payment record",
                event.session_id,
                event.payment_type,
                payment.payment_type.value,
            )

        new_job_status = JOB_PAYMENT_STATUS_ON_SUCCESS[payment.payment_type]
        won = await self._repository.mark_payment_succeeded(
            payment.id,
            event.payment_intent_id,
            job_id=payment.job_id,
            job_payment_status=new_job_status,
        )
        if not won:
            logger.info(
                "Session %s already reconciled (payment %s); skipping",
                event.session_id,
                payment.id,
            )
            return WebhookResult(
                event_type=event.event_type,
                processed=False,
                message=f"Payment {payment.id} already reconciled (idempotent skip)",
            )

        emit_payment_status_changed(
            payment.job_id, self._clock(), payment.id, new_job_status.value
        )
        await self._notify_payment_received(payment)

        return WebhookResult(
            event_type=event.event_type,
            processed=True,
            message=(
                f"Payment {payment.id} succeeded; job {payment.job_id} is now "
                f"{new_job_status.value}"
            ),
        )

    async def _notify_payment_received(self, payment: Payment) -> None:
        try:
            job = await self._repository.get_job(payment.job_id)
        except PersistenceError:
            logger.exception(
                "Could not load job %s for payment notifications", payment.job_id
            )
            return
        if job is None:
            logger.error("Job %s vanished before payment notifications", payment.job_id)
            return

        await dispatch_quietly(
            self._notifier.send_payment_confirmation(job, payment.payment_type),
            description=f"payment confirmation for job {job.id}",
        )
        await dispatch_quietly(
            self._notifier.send_staff_new_job_alert(job),
            description=f"staff new-job alert for job {job.id}",
        )

    async def _handle_intent_succeeded(self, event: PaymentIntentSucceeded) -> WebhookResult:
        logger.info(
            "Payment intent succeeded: intent=%s, job_id=%s, amount=%s",
            event.payment_intent_id,
            event.job_id,
            event.amount,
        )
        return WebhookResult(
            event_type=event.event_type,
            processed=False,
            message=f"Payment intent {event.payment_intent_id} succeeded (informational)",
        )

    async def _handle_intent_failed(self, event: PaymentIntentFailed) -> WebhookResult:
        logger.warning(
            "Payment failed: intent=%s, job_id=%s, error=%s",
            event.payment_intent_id,
            event.job_id,
            event.failure_message,
        )

        payment = await self._repository.find_payment_by_intent_id(event.payment_intent_id)
        if payment is None:
            return WebhookResult(
                event_type=event.event_type,
                processed=False,
                message=f"No payment recorded for intent {event.payment_intent_id}",
            )

        if not await self._repository.mark_payment_failed(payment.id):
            return WebhookResult(
                event_type=event.event_type,
                processed=False,
                message=f"Payment {payment.id} is no longer pending; left unchanged",
            )

        return WebhookResult(
            event_type=event.event_type,
            processed=True,
            message=f"Payment {payment.id} marked failed: {event.failure_message}",
        )

