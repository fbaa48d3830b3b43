"""
Stripe Webhook Event Variants
=============================

Verified webhook payloads are parsed into a closed set of frozen
dataclasses, one per event kind the reconciler acts on, plus
``UnknownEvent`` for everything else. Handlers receive typed fields instead
of digging through nested dictionaries.

Parsed event types:
  - checkout.session.completed    -> CheckoutSessionCompleted
  - payment_intent.succeeded      -> PaymentIntentSucceeded
  - payment_intent.payment_failed -> PaymentIntentFailed
  - anything else                 -> UnknownEvent
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    event_id: str
    session_id: str
    payment_intent_id: Optional[str]
    job_id: Optional[str]
    payment_type: Optional[str]
    amount_total: Optional[int]

    event_type = CHECKOUT_SESSION_COMPLETED


@dataclass(frozen=True)
class PaymentIntentSucceeded:
    event_id: str
    payment_intent_id: str
    job_id: Optional[str]
    amount: Optional[int]

    event_type = PAYMENT_INTENT_SUCCEEDED


@dataclass(frozen=True)
class PaymentIntentFailed:
    event_id: str
    payment_intent_id: str
    job_id: Optional[str]
    failure_message: str

    event_type = PAYMENT_INTENT_FAILED


@dataclass(frozen=True)
class UnknownEvent:
    event_id: str
    event_type: str


GatewayEvent = Union[
    CheckoutSessionCompleted,
    PaymentIntentSucceeded,
    PaymentIntentFailed,
    UnknownEvent,
]


def _metadata(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.get("metadata") or {}


def parse_event(payload: dict[str, Any]) -> GatewayEvent:
    """Convert a decoded Stripe event body into its typed variant.

    Raises:
        ValueError: If the envelope lacks ``id``/``type`` or a known event
            lacks the object id it is keyed on.
    """
    try:
        event_id = str(payload["id"])
        event_type = str(payload["type"])
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed event envelope: missing {exc}") from exc

    obj = (payload.get("data") or {}).get("object") or {}
    metadata = _metadata(obj)

    if event_type == CHECKOUT_SESSION_COMPLETED:
        if not obj.get("id"):
            raise ValueError("checkout.session.completed without a session id")
        return CheckoutSessionCompleted(
            event_id=event_id,
            session_id=obj["id"],
            payment_intent_id=obj.get("payment_intent"),
            job_id=metadata.get("job_id"),
            payment_type=metadata.get("payment_type"),
            amount_total=obj.get("amount_total"),
        )

    if event_type in (PAYMENT_INTENT_SUCCEEDED, PAYMENT_INTENT_FAILED):
        if not obj.get("id"):
            raise ValueError(f"{event_type} without a payment intent id")
        if event_type == PAYMENT_INTENT_SUCCEEDED:
            return PaymentIntentSucceeded(
                event_id=event_id,
                payment_intent_id=obj["id"],
                job_id=metadata.get("job_id"),
                amount=obj.get("amount"),
            )
        last_error = obj.get("last_payment_error") or {}
        return PaymentIntentFailed(
            event_id=event_id,
            payment_intent_id=obj["id"],
            job_id=metadata.get("job_id"),
            failure_message=last_error.get("message") or "Unknown error",
        )

    return UnknownEvent(event_id=event_id, event_type=event_type)
