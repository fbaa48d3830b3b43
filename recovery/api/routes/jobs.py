"""
Job API Routes
==============

REST endpoints for the lost-item job lifecycle.

Public:
  POST   /api/v1/jobs                            -- Submit a lost-item report
  GET    /api/v1/jobs/{job_id}                   -- Get job detail
  POST   /api/v1/jobs/{job_id}/photos            -- Attach uploaded photo URLs

Customer (Bearer token, own jobs):
  GET    /api/v1/jobs/user/{user_id}             -- Jobs submitted by a user

Staff (Bearer token with role=admin):
  GET    /api/v1/jobs                            -- All jobs, newest first
  PATCH  /api/v1/jobs/{job_id}/status            -- Update job status
  GET    /api/v1/jobs/{job_id}/transitions       -- Valid next statuses
  POST   /api/v1/jobs/{job_id}/assign            -- Assign a detectorist
  PATCH  /api/v1/jobs/{job_id}/notes             -- Update admin notes
  POST   /api/v1/jobs/{job_id}/recovery-details  -- Record recovery report
  GET    /api/v1/jobs/{job_id}/payments          -- Payment records for a job
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from recovery.api.deps import (
    STAFF_ROLE,
    CurrentClaims,
    Notifier,
    Rates,
    Repository,
    StaffClaims,
)
from recovery.api.errors import booking_error_to_http
from recovery.api.schemas.job import (
    JobAssignRequest,
    JobCreateRequest,
    JobListResponse,
    JobNotesRequest,
    JobOut,
    JobPhotosRequest,
    JobStatusUpdateRequest,
    RecoveryDetailsRequest,
    StatusTransitionInfo,
)
from recovery.api.schemas.payment import PaymentOut
from recovery.core.config import settings
from recovery.core.exceptions import BookingError, NotFoundError
from recovery.models.job import Job, JobStatus
from recovery.services.bookingRepository import BookingRepository
from recovery.services.costEstimator import deposit_for, estimate, to_cents
from recovery.services.jobStateManager import get_valid_transitions
from recovery.services.notificationService import dispatch_quietly

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


async def _load_job(repository: BookingRepository, job_id: uuid.UUID) -> Job:
    try:
        job = await repository.get_job(job_id)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    if job is None:
        raise booking_error_to_http(NotFoundError("job", job_id))
    return job


# ---------------------------------------------------------------------------
# POST /jobs
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=JobOut,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a lost-item report",
    description=(
        "Creates a new job in 'pending' status with payment status 'unpaid'. "
        "The cost estimate, finder's fee and deposit are computed server-side "
        "from the travel distance, labour hours and declared item value."
    ),
)
async def create_job(
    body: JobCreateRequest,
    repository: Repository,
    rates: Rates,
) -> JobOut:
    quote = estimate(
        body.travel_distance_km,
        body.labour_hours or settings.default_labour_hours,
        body.estimated_value or 0,
        rates,
    )

    data = body.model_dump(exclude={"location", "travel_distance_km", "labour_hours"})
    data.update(
        latitude=body.location.latitude,
        longitude=body.location.longitude,
        address=body.location.address,
        search_radius_m=body.location.search_radius_m,
        estimated_cost_cents=to_cents(quote.total),
        finders_fee_cents=to_cents(quote.finders_fee),
        deposit_amount_cents=to_cents(deposit_for(quote.total, settings.deposit_percent)),
    )

    try:
        job_id = await repository.create_job(data)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc

    return JobOut.model_validate(await _load_job(repository, job_id))


# ---------------------------------------------------------------------------
# GET /jobs (staff)
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=JobListResponse,
    summary="List all jobs",
    description="Staff only. Returns jobs newest first, optionally filtered by status.",
)
async def list_jobs(
    repository: Repository,
    _staff: StaffClaims,
    status_filter: Optional[JobStatus] = Query(
        default=None, alias="status", description="Filter by job status"
    ),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> JobListResponse:
    try:
        jobs = await repository.list_jobs(status_filter, limit=limit, offset=offset)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    return JobListResponse(data=[JobOut.model_validate(j) for j in jobs], count=len(jobs))


# ---------------------------------------------------------------------------
# GET /jobs/user/{user_id}
# ---------------------------------------------------------------------------

@router.get(
    "/user/{user_id}",
    response_model=JobListResponse,
    summary="List jobs submitted by a user",
    description="Customers may list their own jobs; staff may list anyone's.",
)
async def list_jobs_for_user(
    user_id: str,
    repository: Repository,
    claims: CurrentClaims,
) -> JobListResponse:
    if claims.get("sub") != user_id and claims.get("role") != STAFF_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only list your own jobs.",
        )
    try:
        jobs = await repository.list_jobs_for_user(user_id)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    return JobListResponse(data=[JobOut.model_validate(j) for j in jobs], count=len(jobs))


# ---------------------------------------------------------------------------
# GET /jobs/{job_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{job_id}",
    response_model=JobOut,
    summary="Get job detail",
)
async def get_job(job_id: uuid.UUID, repository: Repository) -> JobOut:
    return JobOut.model_validate(await _load_job(repository, job_id))


# ---------------------------------------------------------------------------
# POST /jobs/{job_id}/photos
# ---------------------------------------------------------------------------

@router.post(
    "/{job_id}/photos",
    response_model=JobOut,
    summary="Attach photo URLs to a job",
    description="Appends URLs of photos already uploaded to file storage.",
)
async def add_job_photos(
    job_id: uuid.UUID,
    body: JobPhotosRequest,
    repository: Repository,
) -> JobOut:
    try:
        job = await repository.add_photos(job_id, body.photo_urls)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# PATCH /jobs/{job_id}/status (staff)
# ---------------------------------------------------------------------------

@router.patch(
    "/{job_id}/status",
    response_model=JobOut,
    summary="Update job status",
    description=(
        "Staff only. Transitions a job to a new status. The transition is "
        "validated against the job state machine; illegal transitions return "
        "409. The customer is emailed about the change."
    ),
)
async def update_job_status(
    job_id: uuid.UUID,
    body: JobStatusUpdateRequest,
    repository: Repository,
    notifier: Notifier,
    _staff: StaffClaims,
) -> JobOut:
    try:
        job = await repository.update_job_status(job_id, body.new_status)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc

    await dispatch_quietly(
        notifier.send_status_update(job),
        description=f"status update for job {job.id}",
    )
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# GET /jobs/{job_id}/transitions (staff)
# ---------------------------------------------------------------------------

@router.get(
    "/{job_id}/transitions",
    response_model=StatusTransitionInfo,
    summary="List valid next statuses",
)
async def get_job_transitions(
    job_id: uuid.UUID,
    repository: Repository,
    _staff: StaffClaims,
) -> StatusTransitionInfo:
    job = await _load_job(repository, job_id)
    return StatusTransitionInfo(
        current_status=job.status,
        available_transitions=get_valid_transitions(job.status),
    )


# ---------------------------------------------------------------------------
# POST /jobs/{job_id}/assign (staff)
# ---------------------------------------------------------------------------

@router.post(
    "/{job_id}/assign",
    response_model=JobOut,
    summary="Assign a detectorist",
    description=(
        "Staff only. Assigns a detectorist and moves a pending job to "
        "'assigned'. An already-assigned job is handed to the new worker."
    ),
)
async def assign_worker(
    job_id: uuid.UUID,
    body: JobAssignRequest,
    repository: Repository,
    notifier: Notifier,
    _staff: StaffClaims,
) -> JobOut:
    before = await _load_job(repository, job_id)
    try:
        job = await repository.assign_worker(job_id, body.worker_id, body.worker_name)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc

    if before.status != job.status:
        await dispatch_quietly(
            notifier.send_status_update(job),
            description=f"status update for job {job.id}",
        )
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# PATCH /jobs/{job_id}/notes (staff)
# ---------------------------------------------------------------------------

@router.patch(
    "/{job_id}/notes",
    response_model=JobOut,
    summary="Update admin notes",
)
async def update_admin_notes(
    job_id: uuid.UUID,
    body: JobNotesRequest,
    repository: Repository,
    _staff: StaffClaims,
) -> JobOut:
    try:
        job = await repository.update_admin_notes(job_id, body.admin_notes)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# POST /jobs/{job_id}/recovery-details (staff)
# ---------------------------------------------------------------------------

@router.post(
    "/{job_id}/recovery-details",
    response_model=JobOut,
    summary="Record recovery report",
    description=(
        "Staff only. Stores the detectorist's notes, recovery photos and the "
        "final cost. Does not change the job status."
    ),
)
async def add_recovery_details(
    job_id: uuid.UUID,
    body: RecoveryDetailsRequest,
    repository: Repository,
    _staff: StaffClaims,
) -> JobOut:
    try:
        job = await repository.add_recovery_details(
            job_id,
            body.recovery_notes,
            body.recovery_photos,
            body.final_cost_cents,
        )
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    return JobOut.model_validate(job)


# ---------------------------------------------------------------------------
# GET /jobs/{job_id}/payments (staff)
# ---------------------------------------------------------------------------

@router.get(
    "/{job_id}/payments",
    response_model=list[PaymentOut],
    summary="List payment records for a job",
)
async def list_job_payments(
    job_id: uuid.UUID,
    repository: Repository,
    _staff: StaffClaims,
) -> list[PaymentOut]:
    await _load_job(repository, job_id)
    try:
        payments = await repository.list_payments_for_job(job_id)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    return [PaymentOut.model_validate(p) for p in payments]
