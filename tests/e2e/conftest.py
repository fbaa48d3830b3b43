"""
E2E test fixtures for the recovery backend.

Provides:
- An in-process FastAPI test app with all routes registered
- httpx AsyncClient wired via ASGI transport (no network needed)
- The per-test SQLite database from ``tests/conftest.py``
- Bearer tokens for a staff member and a customer
- Helpers for driving a job through the API

Stripe session creation and notification delivery are replaced through
``app.dependency_overrides``; webhook signature verification is real.
"""

from __future__ import annotations

from typing import Any, AsyncGenerator

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient, Response

from recovery.core.config import settings
from tests.conftest import FakeCheckoutGateway, RecordingNotifier

API = "/api/v1"

STAFF_USER_ID = "staff-0001"
CUSTOMER_USER_ID = "user-bondi-1"


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

def _create_test_app(session_factory, clock, gateway, notifier):
    """Build a FastAPI app with all routes registered and the external
    collaborators overridden."""
    from fastapi import FastAPI

    from recovery.api.deps import get_clock, get_gateway, get_notifier, get_session_factory
    from recovery.api.routes.jobs import router as jobs_router
    from recovery.api.routes.payments import router as payments_router
    from recovery.api.routes.pricing import router as pricing_router

    app = FastAPI(title="Recovery Test")

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier

    app.include_router(jobs_router, prefix=API)
    app.include_router(pricing_router, prefix=API)
    app.include_router(payments_router, prefix=API)

    return app


@pytest_asyncio.fixture
async def client(
    session_factory,
    clock,
    gateway: FakeCheckoutGateway,
    notifier: RecordingNotifier,
) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    app = _create_test_app(session_factory, clock, gateway, notifier)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def bearer(sub: str, role: str | None = None) -> dict[str, str]:
    claims: dict[str, Any] = {"sub": sub}
    if role is not None:
        claims["role"] = role
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_headers() -> dict[str, str]:
    return bearer(STAFF_USER_ID, role="admin")


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return bearer(CUSTOMER_USER_ID, role="customer")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def job_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "user_id": CUSTOMER_USER_ID,
        "requester_name": "Sam Taylor",
        "requester_email": "sam.taylor@example.com",
        "requester_phone": "0412 345 678",
        "preferred_contact": "email",
        "item_type": "ring",
        "item_description": "18ct gold wedding band, engraved inside",
        "estimated_value": 1200,
        "date_lost": "2026-02-20",
        "time_lost": "15:30",
        "location": {
            "latitude": -33.8908,
            "longitude": 151.2743,
            "address": "North Bondi, NSW 2026",
            "search_radius_m": 50,
        },
        "circumstances": "Slipped off while swimming between the flags.",
        "travel_distance_km": 10,
        "labour_hours": 2,
    }
    payload.update(overrides)
    return payload


async def create_job_via_api(client: AsyncClient, **overrides: Any) -> Response:
    """POST to /api/v1/jobs and return the response."""
    return await client.post(f"{API}/jobs", json=job_payload(**overrides))


async def transition_job(
    client: AsyncClient,
    job_id: str,
    new_status: str,
    headers: dict[str, str],
) -> Response:
    """PATCH /api/v1/jobs/{job_id}/status and return the response."""
    return await client.patch(
        f"{API}/jobs/{job_id}/status",
        json={"new_status": new_status},
        headers=headers,
    )


async def start_checkout(
    client: AsyncClient,
    job_id: str,
    amount: int = 21000,
    payment_type: str = "deposit",
) -> Response:
    return await client.post(
        f"{API}/payments/checkout-session",
        json={
            "item_id": job_id,
            "amount": amount,
            "payment_type": payment_type,
            "customer_email": "sam.taylor@example.com",
            "item_description": "Gold wedding band",
        },
    )
