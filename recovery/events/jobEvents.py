"""
Job Domain Events
=================

Structured log records for job lifecycle changes. Each emitter builds a
standard payload, logs it at INFO with the payload attached as ``extra`` so
log shippers can index it, and returns the payload to the caller.

Events emitted:
  - job.created
  - job.status_changed
  - job.worker_assigned
  - job.payment_status_changed
  - payment.session_created
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    job_id: uuid.UUID,
    occurred_at: datetime,
    *,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "job_id": str(job_id),
        "timestamp": occurred_at.isoformat(),
        "data": data or {},
    }


def _log(event: dict[str, Any], message: str, *args: Any) -> dict[str, Any]:
    logger.info(message, *args, extra={"event": event})
    return event


def emit_job_created(
    job_id: uuid.UUID,
    occurred_at: datetime,
    item_type: str,
    estimated_cost_cents: int,
) -> dict[str, Any]:
    """Emit event when a new lost-item report is submitted."""
    event = _build_event(
        "job.created",
        job_id,
        occurred_at,
        data={"item_type": item_type, "estimated_cost_cents": estimated_cost_cents},
    )
    return _log(event, "Event emitted: %s for job %s", event["event_type"], job_id)


def emit_job_status_changed(
    job_id: uuid.UUID,
    occurred_at: datetime,
    old_status: str,
    new_status: str,
) -> dict[str, Any]:
    """Emit event when a job transitions between states."""
    event = _build_event(
        "job.status_changed",
        job_id,
        occurred_at,
        data={"old_status": old_status, "new_status": new_status},
    )
    return _log(
        event,
        "Event emitted: %s for job %s (%s -> %s)",
        event["event_type"],
        job_id,
        old_status,
        new_status,
    )


def emit_worker_assigned(
    job_id: uuid.UUID,
    occurred_at: datetime,
    worker_id: uuid.UUID,
    worker_name: str,
) -> dict[str, Any]:
    """Emit event when a detectorist is assigned to a job."""
    event = _build_event(
        "job.worker_assigned",
        job_id,
        occurred_at,
        data={"worker_id": str(worker_id), "worker_name": worker_name},
    )
    return _log(
        event,
        "Event emitted: %s for job %s (worker=%s)",
        event["event_type"],
        job_id,
        worker_id,
    )


def emit_payment_status_changed(
    job_id: uuid.UUID,
    occurred_at: datetime,
    payment_id: uuid.UUID,
    new_payment_status: str,
) -> dict[str, Any]:
    """Emit event when a reconciled payment moves the job's payment status."""
    event = _build_event(
        "job.payment_status_changed",
        job_id,
        occurred_at,
        data={
            "payment_id": str(payment_id),
            "new_payment_status": new_payment_status,
        },
    )
    return _log(
        event,
        "Event emitted: %s for job %s (-> %s)",
        event["event_type"],
        job_id,
        new_payment_status,
    )


def emit_checkout_session_created(
    job_id: uuid.UUID,
    occurred_at: datetime,
    session_id: str,
    amount_cents: int,
    payment_type: str,
) -> dict[str, Any]:
    """Emit event when a gateway session and its pending payment exist."""
    event = _build_event(
        "payment.session_created",
        job_id,
        occurred_at,
        data={
            "session_id": session_id,
            "amount_cents": amount_cents,
            "payment_type": payment_type,
        },
    )
    return _log(
        event,
        "Event emitted: %s for job %s (session=%s)",
        event["event_type"],
        job_id,
        session_id,
    )
