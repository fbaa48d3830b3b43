"""
Pydantic schemas for the Jobs API (lost-item reports).
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from recovery.models.job import ItemType, JobStatus, PaymentStatus, PreferredContact


# ---------------------------------------------------------------------------
# Nested input objects
# ---------------------------------------------------------------------------

class JobLocationInput(BaseModel):
    """Where the item was lost."""

    latitude: float = Field(ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(ge=-180, le=180, description="Longitude in degrees")
    address: str = Field(min_length=1, max_length=500)
    search_radius_m: Optional[int] = Field(
        default=None, ge=0, le=10_000, description="Search radius in meters"
    )


# ---------------------------------------------------------------------------
# Job creation
# ---------------------------------------------------------------------------

class JobCreateRequest(BaseModel):
    """Public lost-item report submission.

    Status, payment status and all monetary fields are computed server-side.
    """

    user_id: Optional[str] = Field(
        default=None, max_length=128, description="Identity-provider subject, if signed in"
    )
    requester_name: str = Field(min_length=1, max_length=200)
    requester_email: str = Field(
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=320
    )
    requester_phone: str = Field(min_length=3, max_length=50)
    preferred_contact: PreferredContact = PreferredContact.EITHER

    item_type: ItemType
    item_description: str = Field(min_length=1, max_length=2000)
    estimated_value: Optional[float] = Field(default=None, ge=0)

    date_lost: date
    time_lost: Optional[str] = Field(
        default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="HH:MM"
    )
    location: JobLocationInput
    circumstances: str = Field(min_length=1, max_length=5000)
    photos: list[str] = Field(default_factory=list, max_length=20)

    # Estimate inputs
    travel_distance_km: float = Field(default=0, ge=0, description="Trip distance in km")
    labour_hours: Optional[float] = Field(
        default=None, gt=0, le=24, description="Expected search hours"
    )


# ---------------------------------------------------------------------------
# Staff actions
# ---------------------------------------------------------------------------

class JobStatusUpdateRequest(BaseModel):
    """Request body for updating a job's status."""

    new_status: JobStatus = Field(description="Target status to transition to")


class JobAssignRequest(BaseModel):
    worker_id: uuid.UUID = Field(description="UUID of the detectorist")
    worker_name: str = Field(min_length=1, max_length=200)


class JobNotesRequest(BaseModel):
    admin_notes: str = Field(max_length=5000)


class RecoveryDetailsRequest(BaseModel):
    recovery_notes: str = Field(min_length=1, max_length=5000)
    recovery_photos: list[str] = Field(default_factory=list, max_length=20)
    final_cost_cents: Optional[int] = Field(default=None, ge=0)


class JobPhotosRequest(BaseModel):
    photo_urls: list[str] = Field(min_length=1, max_length=20)


# ---------------------------------------------------------------------------
# Job output
# ---------------------------------------------------------------------------

class JobOut(BaseModel):
    """Full job representation returned by detail and list endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: Optional[str] = None
    requester_name: str
    requester_email: str
    requester_phone: str
    preferred_contact: PreferredContact

    item_type: ItemType
    item_description: str
    estimated_value: Optional[float] = None

    date_lost: date
    time_lost: Optional[str] = None
    latitude: float
    longitude: float
    address: str
    search_radius_m: Optional[int] = None
    circumstances: str
    photos: list[str] = Field(default_factory=list)

    # Status
    status: JobStatus
    payment_status: PaymentStatus
    assigned_worker_id: Optional[uuid.UUID] = None
    assigned_worker_name: Optional[str] = None

    # Pricing snapshot (cents)
    estimated_cost_cents: int
    finders_fee_cents: int
    deposit_amount_cents: Optional[int] = None
    final_cost_cents: Optional[int] = None

    # Notes
    admin_notes: Optional[str] = None
    recovery_notes: Optional[str] = None
    recovery_photos: list[str] = Field(default_factory=list)

    # Timestamps
    created_at: datetime
    updated_at: datetime
    recovered_at: Optional[datetime] = None


class JobListResponse(BaseModel):
    data: list[JobOut]
    count: int


# ---------------------------------------------------------------------------
# Status transition info (for UI hints)
# ---------------------------------------------------------------------------

class StatusTransitionInfo(BaseModel):
    """Available status transitions from the current state."""

    current_status: JobStatus
    available_transitions: list[JobStatus]
