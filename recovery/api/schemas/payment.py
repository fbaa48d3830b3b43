"""
Pydantic schemas for the Payments API.

All monetary amounts are integers in the smallest currency unit (cents).
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from recovery.models.payment import PaymentRecordStatus, PaymentType


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

class CheckoutSessionRequest(BaseModel):
    """Request body for starting a hosted checkout for a job."""

    item_id: uuid.UUID = Field(description="Job UUID being paid for")
    amount: int = Field(gt=0, description="Amount in cents; zero or negative is rejected")
    payment_type: PaymentType = Field(description="deposit, full or finder-fee")
    customer_email: str = Field(
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        max_length=320,
        description="Prefilled on the checkout page",
    )
    item_description: str = Field(
        min_length=1, max_length=500, description="Shown on the checkout line item"
    )


class CheckoutSessionOut(BaseModel):
    session_id: str
    redirect_url: str


# ---------------------------------------------------------------------------
# Payment records
# ---------------------------------------------------------------------------

class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    session_id: str
    payment_intent_id: Optional[str] = None
    amount_cents: int
    currency: str
    status: PaymentRecordStatus
    payment_type: PaymentType
    created_at: datetime
    completed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

class WebhookResultOut(BaseModel):
    """Response from the webhook endpoint."""

    event_type: str
    processed: bool
    message: str
