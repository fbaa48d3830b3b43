"""
Shared FastAPI dependencies for the recovery backend.

Builds the booking core components (repository, checkout orchestrator,
webhook reconciler) from configuration and exposes them as ``Annotated``
dependencies, plus bearer-token authentication for staff endpoints. Tests
substitute collaborators through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from recovery.core.config import settings
from recovery.integrations.email import EmailClient
from recovery.integrations.fcm import FirebaseCredentials
from recovery.integrations.stripe import StripeCheckoutGateway
from recovery.services.bookingRepository import BookingRepository, Clock, utc_now
from recovery.services.checkoutOrchestrator import CheckoutOrchestrator
from recovery.services.costEstimator import PricingRates, rates_from_settings
from recovery.services.notificationService import NotificationSender, NotificationService
from recovery.services.webhookReconciler import WebhookReconciler

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# Created once at import time. The repository opens one short-lived session
# per operation from this factory.
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


def get_clock() -> Clock:
    return utc_now


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------

@lru_cache
def get_gateway() -> StripeCheckoutGateway:
    return StripeCheckoutGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        timeout=settings.gateway_timeout_seconds,
        webhook_tolerance=settings.stripe_webhook_tolerance_seconds,
    )


@lru_cache
def get_notifier() -> NotificationSender:
    return NotificationService(
        EmailClient(
            api_key=settings.resend_api_key,
            sender_email=settings.email_from,
            sender_name=settings.email_from_name,
        ),
        staff_email=settings.staff_email,
        app_url=settings.app_url,
        firebase=FirebaseCredentials(
            service_account_path=settings.firebase_service_account_path,
            credentials_json=settings.firebase_credentials_json,
        ),
        staff_topic=settings.staff_alert_topic,
    )


def get_pricing_rates() -> PricingRates:
    return rates_from_settings(settings)


# ---------------------------------------------------------------------------
# Booking core components
# ---------------------------------------------------------------------------

def get_repository(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> BookingRepository:
    return BookingRepository(
        session_factory,
        clock=clock,
        timeout=settings.persistence_timeout_seconds,
    )


Repository = Annotated[BookingRepository, Depends(get_repository)]
Notifier = Annotated[NotificationSender, Depends(get_notifier)]
Rates = Annotated[PricingRates, Depends(get_pricing_rates)]


def get_checkout_orchestrator(
    repository: Repository,
    gateway: Annotated[StripeCheckoutGateway, Depends(get_gateway)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        repository,
        gateway,
        app_url=settings.app_url,
        currency=settings.currency,
        clock=clock,
    )


def get_webhook_reconciler(
    repository: Repository,
    gateway: Annotated[StripeCheckoutGateway, Depends(get_gateway)],
    notifier: Notifier,
    clock: Annotated[Clock, Depends(get_clock)],
) -> WebhookReconciler:
    return WebhookReconciler(repository, gateway, notifier, clock=clock)


Checkout = Annotated[CheckoutOrchestrator, Depends(get_checkout_orchestrator)]
Reconciler = Annotated[WebhookReconciler, Depends(get_webhook_reconciler)]


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------
# Tokens are issued by the external identity provider and signed with the
# shared ``jwt_secret``. Staff tokens carry ``role: admin``.
# ---------------------------------------------------------------------------

STAFF_ROLE = "admin"

_bearer_scheme = HTTPBearer(auto_error=True)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT access token.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is otherwise invalid.
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


async def get_current_claims(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> dict[str, Any]:
    """Return the verified claims of the Bearer token, or raise 401."""
    try:
        claims = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token has expired.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not claims.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing subject.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims


CurrentClaims = Annotated[dict[str, Any], Depends(get_current_claims)]


async def require_staff(claims: CurrentClaims) -> dict[str, Any]:
    """Allow only staff (``role: admin``) tokens through."""
    if claims.get("role") != STAFF_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required.",
        )
    return claims


StaffClaims = Annotated[dict[str, Any], Depends(require_staff)]
