"""
SQLAlchemy model for jobs (lost-item recovery reports).
"""

import enum
import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Date, DateTime, Float, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, string_enum


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RECOVERED = "recovered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    DEPOSIT_PAID = "deposit-paid"
    PAID = "paid"
    REFUNDED = "refunded"


class ItemType(str, enum.Enum):
    RING = "ring"
    KEY = "key"
    WATCH = "watch"
    PHONE = "phone"
    NECKLACE = "necklace"
    BRACELET = "bracelet"
    EARRING = "earring"
    HEIRLOOM = "heirloom"
    COIN = "coin"
    OTHER = "other"


class PreferredContact(str, enum.Enum):
    EMAIL = "email"
    PHONE = "phone"
    EITHER = "either"


class Job(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "jobs"

    # Requester
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False)
    requester_email: Mapped[str] = mapped_column(String(320), nullable=False)
    requester_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    preferred_contact: Mapped[PreferredContact] = mapped_column(
        string_enum(PreferredContact, "preferred_contact"),
        nullable=False,
        default=PreferredContact.EITHER,
    )

    # Item
    item_type: Mapped[ItemType] = mapped_column(
        string_enum(ItemType, "item_type"), nullable=False
    )
    item_description: Mapped[str] = mapped_column(Text, nullable=False)
    estimated_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # When & where
    date_lost: Mapped[date] = mapped_column(Date, nullable=False)
    time_lost: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    search_radius_m: Mapped[Optional[int]] = mapped_column(nullable=True)
    circumstances: Mapped[str] = mapped_column(Text, nullable=False)

    # Media
    photos: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    # Lifecycle
    status: Mapped[JobStatus] = mapped_column(
        string_enum(JobStatus, "job_status"),
        nullable=False,
        default=JobStatus.PENDING,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        string_enum(PaymentStatus, "job_payment_status"),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    # Assignment
    assigned_worker_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )
    assigned_worker_name: Mapped[Optional[str]] = mapped_column(
        String(200), nullable=True
    )

    # Pricing snapshot (cents)
    estimated_cost_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    finders_fee_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    deposit_amount_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    final_cost_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    recovered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Staff notes
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recovery_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recovery_photos: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, default=list
    )

    def __repr__(self) -> str:
        return f"<Job {self.id} status={self.status} payment={self.payment_status}>"
