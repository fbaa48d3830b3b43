"""
Shared pytest fixtures for the recovery backend tests.

Provides a real async SQLite database per test, a fixed clock, and
stand-ins for the external collaborators (Stripe session creation and
notification delivery). Webhook signature verification is NOT faked: the
gateway stand-in inherits the real ``construct_event`` and tests sign
payloads with the test webhook secret.

SQLite is driven with ``BEGIN IMMEDIATE`` so concurrent transactions
serialise on the write lock the way row locks serialise them on
PostgreSQL.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from recovery.integrations.stripe import GatewaySession, StripeCheckoutGateway
from recovery.models import Base
from recovery.models.job import ItemType, Job, JobStatus, PaymentStatus, PreferredContact
from recovery.models.payment import PaymentType
from recovery.services.bookingRepository import BookingRepository

WEBHOOK_SECRET = "whsec_test_secret"

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def naive(value: datetime) -> datetime:
    """SQLite hands timestamps back without tzinfo; compare on wall time."""
    return value.replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FixedClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine, one database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'recovery.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _):
        # Let SQLAlchemy emit BEGIN itself (see _on_begin)
        dbapi_conn.isolation_level = None
        # SQLite does not enforce foreign keys by default
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def repository(session_factory, clock: FixedClock) -> BookingRepository:
    return BookingRepository(session_factory, clock=clock, timeout=10.0)


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

def make_job_data(**overrides: Any) -> dict[str, Any]:
    """Column values for a lost ring at Bondi, as a customer would submit."""
    data: dict[str, Any] = {
        "user_id": "user-bondi-1",
        "requester_name": "Sam Taylor",
        "requester_email": "sam.taylor@example.com",
        "requester_phone": "0412 345 678",
        "preferred_contact": PreferredContact.EMAIL,
        "item_type": ItemType.RING,
        "item_description": "18ct gold wedding band, engraved inside",
        "estimated_value": 1200.0,
        "date_lost": date(2026, 2, 20),
        "time_lost": "15:30",
        "latitude": -33.8908,
        "longitude": 151.2743,
        "address": "North Bondi, NSW 2026",
        "search_radius_m": 50,
        "circumstances": "Slipped off while swimming between the flags.",
        "photos": [],
        "estimated_cost_cents": 42000,
        "finders_fee_cents": 12000,
        "deposit_amount_cents": 21000,
    }
    data.update(overrides)
    return data


def make_job(**overrides: Any) -> Job:
    """Transient Job instance for code that only reads attributes."""
    fields = make_job_data()
    fields.update(
        id=uuid.UUID("0f0f0f0f-0000-4000-8000-000000000001"),
        status=JobStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )
    fields.update(overrides)
    return Job(**fields)


@pytest_asyncio.fixture
async def job_id(repository: BookingRepository) -> uuid.UUID:
    """A freshly created (pending, unpaid) job."""
    return await repository.create_job(make_job_data())


# ---------------------------------------------------------------------------
# External collaborator stand-ins
# ---------------------------------------------------------------------------

class FakeCheckoutGateway(StripeCheckoutGateway):
    """Canned Checkout Session creation with real webhook verification."""

    def __init__(self, *, payment_intent_id: Optional[str] = None) -> None:
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.calls: list[dict[str, Any]] = []
        self.error: Optional[Exception] = None
        self.payment_intent_id = payment_intent_id

    async def create_checkout_session(self, **kwargs: Any) -> GatewaySession:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        session_id = f"cs_test_{len(self.calls)}"
        return GatewaySession(
            session_id=session_id,
            url=f"https://checkout.stripe.com/c/pay/{session_id}",
            payment_intent_id=self.payment_intent_id,
        )


class RecordingNotifier:
    """NotificationSender that records what would have been sent."""

    def __init__(self) -> None:
        self.confirmations: list[tuple[uuid.UUID, PaymentType]] = []
        self.staff_alerts: list[uuid.UUID] = []
        self.status_updates: list[tuple[uuid.UUID, str]] = []
        self.fail = False

    async def send_payment_confirmation(self, job: Job, payment_type: PaymentType) -> None:
        if self.fail:
            raise RuntimeError("email provider unavailable")
        self.confirmations.append((job.id, payment_type))

    async def send_staff_new_job_alert(self, job: Job) -> None:
        if self.fail:
            raise RuntimeError("email provider unavailable")
        self.staff_alerts.append(job.id)

    async def send_status_update(self, job: Job) -> None:
        if self.fail:
            raise RuntimeError("email provider unavailable")
        self.status_updates.append((job.id, job.status.value))


@pytest.fixture
def gateway() -> FakeCheckoutGateway:
    return FakeCheckoutGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ---------------------------------------------------------------------------
# Webhook payload helpers
# ---------------------------------------------------------------------------

def sign_payload(
    payload: bytes,
    secret: str = WEBHOOK_SECRET,
    timestamp: Optional[int] = None,
) -> str:
    """Build a ``Stripe-Signature`` header for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def checkout_completed_payload(
    session_id: str,
    *,
    job_id: Optional[uuid.UUID] = None,
    payment_type: str = "deposit",
    payment_intent_id: Optional[str] = "pi_test_1",
    amount_total: int = 21000,
    event_id: str = "evt_test_completed_1",
) -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "payment_intent": payment_intent_id,
                    "amount_total": amount_total,
                    "payment_status": "paid",
                    "metadata": {
                        "job_id": str(job_id) if job_id else None,
                        "payment_type": payment_type,
                    },
                }
            },
        }
    ).encode("utf-8")


def intent_failed_payload(
    payment_intent_id: str,
    *,
    job_id: Optional[uuid.UUID] = None,
    message: str = "Your card was declined.",
    event_id: str = "evt_test_failed_1",
) -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": "payment_intent.payment_failed",
            "data": {
                "object": {
                    "id": payment_intent_id,
                    "object": "payment_intent",
                    "metadata": {"job_id": str(job_id) if job_id else None},
                    "last_payment_error": {"message": message},
                }
            },
        }
    ).encode("utf-8")


def generic_event_payload(event_type: str, object_id: str, event_id: str = "evt_test_x") -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": object_id, "metadata": {}}},
        }
    ).encode("utf-8")
