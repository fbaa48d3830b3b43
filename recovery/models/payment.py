"""
SQLAlchemy model for payments: one row per Stripe Checkout Session.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, string_enum


class PaymentRecordStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentType(str, enum.Enum):
    DEPOSIT = "deposit"
    FULL = "full"
    FINDER_FEE = "finder-fee"


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "payments"

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("jobs.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Gateway correlation keys
    session_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )

    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[PaymentRecordStatus] = mapped_column(
        string_enum(PaymentRecordStatus, "payment_record_status"),
        nullable=False,
        default=PaymentRecordStatus.PENDING,
    )
    payment_type: Mapped[PaymentType] = mapped_column(
        string_enum(PaymentType, "payment_type"), nullable=False
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Payment {self.session_id} {self.payment_type} status={self.status}>"
