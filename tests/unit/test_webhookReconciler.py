"""
Unit tests for the Webhook Reconciler.

Payloads are signed with the test webhook secret and verified by the real
Stripe signature check. State is asserted against the SQLite database.
"""

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest

from recovery.core.exceptions import InvalidSignatureError, PersistenceError
from recovery.models.job import JobStatus, PaymentStatus
from recovery.models.payment import PaymentRecordStatus, PaymentType
from recovery.services.bookingRepository import BookingRepository
from recovery.services.webhookReconciler import (
    JOB_PAYMENT_STATUS_ON_SUCCESS,
    WebhookReconciler,
    WebhookResult,
)
from tests.conftest import (
    checkout_completed_payload,
    generic_event_payload,
    intent_failed_payload,
    sign_payload,
)


pytestmark = pytest.mark.asyncio


@pytest.fixture
def reconciler(repository, gateway, notifier, clock) -> WebhookReconciler:
    return WebhookReconciler(repository, gateway, notifier, clock=clock)


async def _pending(repository, job_id, session_id="cs_test_1", payment_type=PaymentType.DEPOSIT,
                   payment_intent_id=None):
    return await repository.create_payment(
        job_id=job_id,
        session_id=session_id,
        amount_cents=21000,
        currency="aud",
        payment_type=payment_type,
        payment_intent_id=payment_intent_id,
    )


async def _deliver(reconciler, payload: bytes) -> WebhookResult:
    return await reconciler.handle_callback(payload, sign_payload(payload))


# ---------------------------------------------------------------------------
# checkout.session.completed
# ---------------------------------------------------------------------------


class TestSessionCompleted:
    async def test_deposit_marks_payment_and_job(self, reconciler, repository, notifier, job_id):
        payment_id = await _pending(repository, job_id)

        result = await _deliver(
            reconciler, checkout_completed_payload("cs_test_1", job_id=job_id)
        )

        assert result.processed is True
        assert result.event_type == "checkout.session.completed"
        payment = await repository.get_payment(payment_id)
        assert payment.status == PaymentRecordStatus.SUCCEEDED
        assert payment.payment_intent_id == "pi_test_1"
        job = await repository.get_job(job_id)
        assert job.payment_status == PaymentStatus.DEPOSIT_PAID
        assert job.status == JobStatus.PENDING

    async def test_session_without_intent_keeps_recorded_intent(
        self, reconciler, repository, job_id
    ):
        payment_id = await _pending(repository, job_id, payment_intent_id="pi_known")

        result = await _deliver(
            reconciler,
            checkout_completed_payload("cs_test_1", job_id=job_id, payment_intent_id=None),
        )

        assert result.processed is True
        payment = await repository.get_payment(payment_id)
        assert payment.status == PaymentRecordStatus.SUCCEEDED
        assert payment.payment_intent_id == "pi_known"

    async def test_full_payment_marks_job_paid(self, reconciler, repository, job_id):
        await _pending(repository, job_id, payment_type=PaymentType.FULL)

        await _deliver(
            reconciler,
            checkout_completed_payload("cs_test_1", job_id=job_id, payment_type="full"),
        )

        assert (await repository.get_job(job_id)).payment_status == PaymentStatus.PAID

    async def test_customer_and_staff_are_notified(self, reconciler, repository, notifier, job_id):
        await _pending(repository, job_id)

        await _deliver(reconciler, checkout_completed_payload("cs_test_1", job_id=job_id))

        assert notifier.confirmations == [(job_id, PaymentType.DEPOSIT)]
        assert notifier.staff_alerts == [job_id]

    async def test_duplicate_delivery_is_idempotent(self, reconciler, repository, notifier, job_id):
        payment_id = await _pending(repository, job_id)
        payload = checkout_completed_payload("cs_test_1", job_id=job_id)

        first = await _deliver(reconciler, payload)
        completed_at = (await repository.get_payment(payment_id)).completed_at
        second = await _deliver(reconciler, payload)

        assert first.processed is True
        assert second.processed is False
        assert "already reconciled" in second.message
        assert (await repository.get_payment(payment_id)).completed_at == completed_at
        assert len(notifier.confirmations) == 1
        assert len(notifier.staff_alerts) == 1

    async def test_concurrent_deliveries_notify_once(self, reconciler, repository, notifier, job_id):
        await _pending(repository, job_id)
        payload = checkout_completed_payload("cs_test_1", job_id=job_id)

        results = await asyncio.gather(*(_deliver(reconciler, payload) for _ in range(4)))

        assert sum(r.processed for r in results) == 1
        assert len(notifier.confirmations) == 1
        assert len(notifier.staff_alerts) == 1
        assert (await repository.get_job(job_id)).payment_status == PaymentStatus.DEPOSIT_PAID

    async def test_unknown_session_is_acknowledged(self, reconciler, notifier):
        result = await _deliver(
            reconciler, checkout_completed_payload("cs_unknown", job_id=uuid.uuid4())
        )

        assert result.processed is False
        assert "cs_unknown" in result.message
        assert notifier.confirmations == []

    async def test_payment_record_beats_metadata(self, reconciler, repository, job_id):
        await _pending(repository, job_id)

        result = await _deliver(
            reconciler,
            checkout_completed_payload("cs_test_1", job_id=uuid.uuid4(), payment_type="full"),
        )

        assert result.processed is True
        assert (await repository.get_job(job_id)).payment_status == PaymentStatus.DEPOSIT_PAID

    async def test_notification_failure_does_not_fail_callback(
        self, reconciler, repository, notifier, job_id
    ):
        payment_id = await _pending(repository, job_id)
        notifier.fail = True

        result = await _deliver(reconciler, checkout_completed_payload("cs_test_1", job_id=job_id))

        assert result.processed is True
        assert (await repository.get_payment(payment_id)).status == PaymentRecordStatus.SUCCEEDED

    async def test_deposit_after_full_payment_keeps_job_paid(self, reconciler, repository, job_id):
        await _pending(repository, job_id, "cs_full", PaymentType.FULL)
        await _pending(repository, job_id, "cs_deposit", PaymentType.DEPOSIT)

        await _deliver(
            reconciler,
            checkout_completed_payload("cs_full", job_id=job_id, payment_type="full",
                                       payment_intent_id="pi_full", event_id="evt_1"),
        )
        await _deliver(
            reconciler,
            checkout_completed_payload("cs_deposit", job_id=job_id,
                                       payment_intent_id="pi_dep", event_id="evt_2"),
        )

        assert (await repository.get_job(job_id)).payment_status == PaymentStatus.PAID


# ---------------------------------------------------------------------------
# Signature verification
# ---------------------------------------------------------------------------


class TestSignature:
    async def test_bad_signature_touches_nothing(self, gateway, notifier):
        repository = AsyncMock(spec=BookingRepository)
        reconciler = WebhookReconciler(repository, gateway, notifier)
        payload = checkout_completed_payload("cs_test_1")

        with pytest.raises(InvalidSignatureError):
            await reconciler.handle_callback(payload, sign_payload(payload, secret="whsec_wrong"))

        assert repository.method_calls == []
        assert notifier.confirmations == []

    async def test_tampered_payload_is_rejected(self, reconciler, repository, job_id):
        payment_id = await _pending(repository, job_id)
        original = checkout_completed_payload("cs_test_1", job_id=job_id)
        tampered = checkout_completed_payload("cs_test_1", job_id=job_id, amount_total=1)

        with pytest.raises(InvalidSignatureError):
            await reconciler.handle_callback(tampered, sign_payload(original))

        assert (await repository.get_payment(payment_id)).status == PaymentRecordStatus.PENDING

    async def test_missing_signature(self, reconciler):
        with pytest.raises(InvalidSignatureError):
            await reconciler.handle_callback(checkout_completed_payload("cs_test_1"), "")


# ---------------------------------------------------------------------------
# Other event types
# ---------------------------------------------------------------------------


class TestOtherEvents:
    async def test_unknown_type_is_acknowledged(self, reconciler):
        result = await _deliver(
            reconciler, generic_event_payload("customer.created", "cus_123")
        )
        assert result.processed is False
        assert result.event_type == "customer.created"
        assert "not handled" in result.message

    async def test_intent_succeeded_is_informational(self, reconciler, repository, job_id):
        payment_id = await _pending(repository, job_id, payment_intent_id="pi_test_1")

        result = await _deliver(
            reconciler, generic_event_payload("payment_intent.succeeded", "pi_test_1")
        )

        assert result.processed is False
        assert (await repository.get_payment(payment_id)).status == PaymentRecordStatus.PENDING

    async def test_intent_failed_marks_payment_failed(self, reconciler, repository, job_id):
        payment_id = await _pending(repository, job_id, payment_intent_id="pi_test_9")

        result = await _deliver(reconciler, intent_failed_payload("pi_test_9", job_id=job_id))

        assert result.processed is True
        assert "declined" in result.message
        assert (await repository.get_payment(payment_id)).status == PaymentRecordStatus.FAILED
        job = await repository.get_job(job_id)
        assert job.payment_status == PaymentStatus.UNPAID
        assert job.status == JobStatus.PENDING

    async def test_intent_failed_for_unknown_intent(self, reconciler):
        result = await _deliver(reconciler, intent_failed_payload("pi_unknown"))
        assert result.processed is False

    async def test_intent_failed_after_success_is_ignored(self, reconciler, repository, job_id):
        payment_id = await _pending(repository, job_id)
        await _deliver(reconciler, checkout_completed_payload("cs_test_1", job_id=job_id))

        result = await _deliver(reconciler, intent_failed_payload("pi_test_1", job_id=job_id))

        assert result.processed is False
        assert (await repository.get_payment(payment_id)).status == PaymentRecordStatus.SUCCEEDED


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


class TestStoreFailures:
    async def test_persistence_error_propagates_for_redelivery(self, gateway, notifier):
        repository = AsyncMock(spec=BookingRepository)
        repository.find_payment_by_session_id.side_effect = PersistenceError("timed out")
        reconciler = WebhookReconciler(repository, gateway, notifier)

        with pytest.raises(PersistenceError):
            await _deliver(reconciler, checkout_completed_payload("cs_test_1"))

        assert notifier.confirmations == []


async def test_every_payment_type_has_a_success_status():
    assert set(JOB_PAYMENT_STATUS_ON_SUCCESS) == set(PaymentType)
