"""
Notification Service
====================

High-level notification orchestration between the booking core and the
delivery integrations. The core only sees the ``NotificationSender``
protocol; ``NotificationService`` is the production implementation:

  - Customer payment confirmation   -> email
  - Staff new-job alert              -> email + FCM topic push (if configured)
  - Customer status update           -> email

Callers on the webhook path wrap every send in ``dispatch_quietly`` so a
delivery failure is logged and never changes the callback outcome.
"""

from __future__ import annotations

import html
import logging
from collections.abc import Awaitable
from typing import Optional, Protocol

from recovery.integrations.email import EmailClient
from recovery.integrations.fcm import pushService
from recovery.models.job import Job, JobStatus
from recovery.models.payment import PaymentType

logger = logging.getLogger(__name__)

BRAND = "FindMyTreasure"

_PAYMENT_TYPE_LABELS = {
    PaymentType.DEPOSIT: "deposit",
    PaymentType.FULL: "full",
    PaymentType.FINDER_FEE: "finder's fee",
}

_STATUS_EXTRA = {
    JobStatus.RECOVERED: "<p>Great news! We have successfully recovered your item!</p>",
    JobStatus.IN_PROGRESS: "<p>Our detectorist is currently searching for your item.</p>",
}


class NotificationSender(Protocol):
    """One-way notification collaborator used by the booking core."""

    async def send_payment_confirmation(self, job: Job, payment_type: PaymentType) -> None: ...

    async def send_staff_new_job_alert(self, job: Job) -> None: ...

    async def send_status_update(self, job: Job) -> None: ...


async def dispatch_quietly(notification: Awaitable[None], *, description: str) -> bool:
    """Await a notification send, logging and swallowing any failure.

    Returns True if the send completed without raising.
    """
    try:
        await notification
    except Exception:
        logger.exception("Notification dispatch failed: %s", description)
        return False
    return True


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _e(value: object) -> str:
    return html.escape(str(value))


def _status_label(status: JobStatus) -> str:
    return status.value.replace("-", " ").upper()


def render_payment_confirmation(job: Job, payment_type: PaymentType) -> tuple[str, str]:
    subject = f"Payment Confirmed - {BRAND} Recovery Service"
    body = f"""
      <h2>Payment Confirmed!</h2>
      <p>Hi {_e(job.requester_name)},</p>
      <p>We've received your {_e(_PAYMENT_TYPE_LABELS[payment_type])} payment for the recovery of your {_e(job.item_type.value)}.</p>
      <p>Our team will be in touch shortly to schedule your recovery appointment.</p>
      <p><strong>What happens next?</strong></p>
      <ul>
        <li>We'll review your case details</li>
        <li>Assign a professional detectorist to your job</li>
        <li>Contact you to confirm the recovery time</li>
        <li>Search the location thoroughly with professional equipment</li>
      </ul>
      <p>Thank you for choosing {BRAND}!</p>
      <p>Best regards,<br>The {BRAND} Team</p>
    """
    return subject, body


def render_staff_alert(job: Job, app_url: str) -> tuple[str, str]:
    subject = f"New Recovery Job - {job.item_type.value}"
    body = f"""
      <h2>New Recovery Job Received</h2>
      <p><strong>Job ID:</strong> {job.id}</p>
      <p><strong>Item Type:</strong> {_e(job.item_type.value)}</p>
      <p><strong>Customer:</strong> {_e(job.requester_name)}</p>
      <p><strong>Contact:</strong> {_e(job.requester_email)} / {_e(job.requester_phone)}</p>
      <p><strong>Location:</strong> {_e(job.address)}</p>
      <p><strong>Date Lost:</strong> {job.date_lost.isoformat()}</p>
      <p><strong>Payment Status:</strong> {job.payment_status.value}</p>
      <p><a href="{app_url}/admin/jobs/{job.id}">View Job Details</a></p>
    """
    return subject, body


def render_status_update(job: Job) -> tuple[str, str]:
    subject = f"Update on Your Recovery - {job.item_type.value}"
    body = f"""
      <h2>Status Update</h2>
      <p>Hi {_e(job.requester_name)},</p>
      <p>There's an update on your {_e(job.item_type.value)} recovery:</p>
      <p><strong>New Status:</strong> {_status_label(job.status)}</p>
      {_STATUS_EXTRA.get(job.status, "")}
      <p>We will keep you updated on any progress.</p>
      <p>Best regards,<br>The {BRAND} Team</p>
    """
    return subject, body


# ---------------------------------------------------------------------------
# Production sender
# ---------------------------------------------------------------------------

class NotificationService:
    """Email and push delivery for booking lifecycle events."""

    def __init__(
        self,
        email: EmailClient,
        *,
        staff_email: str,
        app_url: str,
        firebase: Optional[pushService.FirebaseCredentials] = None,
        staff_topic: str = "staff_new_jobs",
    ) -> None:
        self._email = email
        self._staff_email = staff_email
        self._app_url = app_url.rstrip("/")
        self._firebase = firebase
        self._staff_topic = staff_topic

    async def send_payment_confirmation(self, job: Job, payment_type: PaymentType) -> None:
        subject, body = render_payment_confirmation(job, payment_type)
        await self._email.send(job.requester_email, subject, body)

    async def send_staff_new_job_alert(self, job: Job) -> None:
        subject, body = render_staff_alert(job, self._app_url)
        await self._email.send(self._staff_email, subject, body)

        if self._firebase is None or not pushService.is_configured(self._firebase):
            logger.debug("Firebase not configured, skipping staff push for job %s", job.id)
            return

        result = await pushService.send_to_topic(
            self._firebase,
            self._staff_topic,
            title=f"New recovery job: {job.item_type.value}",
            body=f"{job.requester_name} - {job.address}",
            data={"job_id": str(job.id), "type": "new_job"},
        )
        if not result.success:
            logger.warning("Staff push for job %s failed: %s", job.id, result.error)

    async def send_status_update(self, job: Job) -> None:
        subject, body = render_status_update(job)
        await self._email.send(job.requester_email, subject, body)
