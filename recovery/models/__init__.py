"""
Recovery SQLAlchemy Models
==========================

Central import point for all ORM models. Import ``Base`` from here for the
``create_all`` convenience in tests.

Usage::

    from recovery.models import Base, Job, Payment
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Jobs --
from .job import ItemType, Job, JobStatus, PaymentStatus, PreferredContact

# -- Payments --
from .payment import Payment, PaymentRecordStatus, PaymentType

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "ItemType",
    "Job",
    "JobStatus",
    "PaymentStatus",
    "PreferredContact",
    "Payment",
    "PaymentRecordStatus",
    "PaymentType",
]
