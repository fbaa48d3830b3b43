"""
Booking Repository
==================

Async SQLAlchemy access to the ``jobs`` and ``payments`` tables with the
booking invariants enforced at the point of mutation:

- New jobs always start as ``(pending, unpaid)``; callers cannot override
  either field.
- Job status changes are validated by ``jobStateManager`` and written with a
  compare-and-set on the status the guard approved, so two racing staff
  requests cannot both win.
- Payment reconciliation writes are conditional updates on the payment's
  current status. The first caller flips the row, every later caller sees a
  zero row count and backs off. The job payment-status write shares the
  same transaction.
- The repository owns every timestamp, taken from an injected clock.

Each public method runs in its own short transaction bounded by
``timeout`` seconds. Timeouts and driver errors surface as
``PersistenceError``; nothing is retried here.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recovery.core.exceptions import (
    IllegalTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from recovery.events.jobEvents import (
    emit_job_created,
    emit_job_status_changed,
    emit_worker_assigned,
)
from recovery.models.job import ItemType, Job, JobStatus, PaymentStatus
from recovery.models.payment import Payment, PaymentRecordStatus, PaymentType
from recovery.services.jobStateManager import validate_transition

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]

# Columns only the repository may set on a job.
_SERVER_CONTROLLED_FIELDS = frozenset({
    "id",
    "status",
    "payment_status",
    "created_at",
    "updated_at",
    "recovered_at",
    "assigned_worker_id",
    "assigned_worker_name",
})

# A payment may be marked succeeded from either of these. A declined card
# can be retried inside the same Checkout Session.
_SUCCEEDABLE_FROM = (PaymentRecordStatus.PENDING, PaymentRecordStatus.FAILED)


# Reconciled payments only ever move a job's payment status forward.
_PAYMENT_PROGRESSION = (
    PaymentStatus.UNPAID,
    PaymentStatus.DEPOSIT_PAID,
    PaymentStatus.PAID,
)


def _upgradable_from(target: PaymentStatus) -> tuple[PaymentStatus, ...]:
    if target not in _PAYMENT_PROGRESSION:
        return ()
    return _PAYMENT_PROGRESSION[: _PAYMENT_PROGRESSION.index(target) + 1]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingRepository:
    """Persistence gateway for jobs and payments."""

    MAX_STATUS_CAS_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock = utc_now,
        timeout: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Transaction helper
    # ------------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``work`` inside one transaction with a bounded timeout."""

        async def _in_transaction() -> T:
            async with self._session_factory() as session:
                async with session.begin():
                    return await work(session)

        try:
            return await asyncio.wait_for(_in_transaction(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store operation %s timed out after %.1fs", operation, self._timeout)
            raise PersistenceError(
                f"{operation} timed out after {self._timeout}s"
            ) from exc
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", operation, exc)
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(self, data: Mapping[str, Any]) -> uuid.UUID:
        """Insert a new job in ``(pending, unpaid)`` and return its id.

        Raises:
            ValidationError: If ``data`` names a column that does not exist
                or one that only the repository may set.
        """
        columns = set(Job.__table__.columns.keys())
        forbidden = sorted(set(data) & _SERVER_CONTROLLED_FIELDS)
        if forbidden:
            raise ValidationError(
                f"Fields cannot be set on job creation: {', '.join(forbidden)}."
            )
        unknown = sorted(set(data) - columns)
        if unknown:
            raise ValidationError(f"Unknown job fields: {', '.join(unknown)}.")

        now = self._clock()

        async def _insert(session: AsyncSession) -> Job:
            job = Job(
                **data,
                id=uuid.uuid4(),
                status=JobStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            await session.flush()
            return job

        job = await self._run("create_job", _insert)
        emit_job_created(job.id, now, ItemType(job.item_type).value, job.estimated_cost_cents)
        return job.id

    async def get_job(self, job_id: uuid.UUID) -> Optional[Job]:
        """Return the job, or ``None`` if it does not exist."""

        async def _get(session: AsyncSession) -> Optional[Job]:
            return await session.get(Job, job_id)

        return await self._run("get_job", _get)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Job]:
        """List jobs newest first, optionally filtered by status."""

        async def _list(session: AsyncSession) -> list[Job]:
            stmt = select(Job).order_by(Job.created_at.desc(), Job.id)
            if status is not None:
                stmt = stmt.where(Job.status == status)
            result = await session.execute(stmt.limit(limit).offset(offset))
            return list(result.scalars().all())

        return await self._run("list_jobs", _list)

    async def list_jobs_for_user(self, user_id: str) -> list[Job]:
        """List a customer's own jobs, newest first."""

        async def _list(session: AsyncSession) -> list[Job]:
            result = await session.execute(
                select(Job)
                .where(Job.user_id == user_id)
                .order_by(Job.created_at.desc(), Job.id)
            )
            return list(result.scalars().all())

        return await self._run("list_jobs_for_user", _list)

    async def _guarded_status_write(
        self,
        session: AsyncSession,
        job_id: uuid.UUID,
        new_status: JobStatus,
        values: dict[str, Any],
    ) -> tuple[JobStatus, Job]:
        """Validate and apply a status change with compare-and-set.

        Returns the status observed before the write and the refreshed job.
        """
        for _ in range(self.MAX_STATUS_CAS_ATTEMPTS):
            current = await session.scalar(select(Job.status).where(Job.id == job_id))
            if current is None:
                raise NotFoundError("job", job_id)

            result = validate_transition(current, new_status)
            if not result.allowed:
                raise IllegalTransitionError(result.reason or "Illegal transition.")

            written = await session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == current)
                .values(status=new_status, **values)
                .execution_options(synchronize_session=False)
            )
            if written.rowcount == 1:
                job = await session.get(Job, job_id, populate_existing=True)
                return current, job

            logger.info(
                "Job %s status changed concurrently (expected %s), re-checking",
                job_id,
                current.value,
            )

        raise PersistenceError(
            f"Job {job_id} status kept changing; gave up after "
            f"{self.MAX_STATUS_CAS_ATTEMPTS} attempts."
        )

    async def update_job_status(self, job_id: uuid.UUID, new_status: JobStatus) -> Job:
        """Move a job to ``new_status`` if the state machine allows it.

        Entering ``recovered`` also stamps ``recovered_at``.

        Raises:
            NotFoundError: If the job does not exist.
            IllegalTransitionError: If the transition is not allowed.
        """
        now = self._clock()
        values: dict[str, Any] = {"updated_at": now}
        if new_status == JobStatus.RECOVERED:
            values["recovered_at"] = now

        async def _update(session: AsyncSession) -> tuple[JobStatus, Job]:
            return await self._guarded_status_write(session, job_id, new_status, values)

        old_status, job = await self._run("update_job_status", _update)
        emit_job_status_changed(job_id, now, old_status.value, new_status.value)
        return job

    async def assign_worker(
        self,
        job_id: uuid.UUID,
        worker_id: uuid.UUID,
        worker_name: str,
    ) -> Job:
        """Assign a detectorist and move the job to ``assigned``.

        A job that is already ``assigned`` can be handed to another worker
        without a status change.
        """
        now = self._clock()
        assignee = {
            "assigned_worker_id": worker_id,
            "assigned_worker_name": worker_name,
            "updated_at": now,
        }

        async def _assign(session: AsyncSession) -> tuple[JobStatus, Job]:
            reassigned = await session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status == JobStatus.ASSIGNED)
                .values(**assignee)
                .execution_options(synchronize_session=False)
            )
            if reassigned.rowcount == 1:
                job = await session.get(Job, job_id, populate_existing=True)
                return JobStatus.ASSIGNED, job
            return await self._guarded_status_write(
                session, job_id, JobStatus.ASSIGNED, assignee
            )

        old_status, job = await self._run("assign_worker", _assign)
        if old_status != JobStatus.ASSIGNED:
            emit_job_status_changed(job_id, now, old_status.value, JobStatus.ASSIGNED.value)
        emit_worker_assigned(job_id, now, worker_id, worker_name)
        return job

    async def update_job_payment_status(
        self,
        job_id: uuid.UUID,
        new_payment_status: PaymentStatus,
    ) -> None:
        """Overwrite a job's payment status.

        No legality gate applies. The reconciler does not call this; it
        writes payment status through ``mark_payment_succeeded`` so that the
        job and payment rows change together.
        """
        now = self._clock()

        async def _update(session: AsyncSession) -> None:
            written = await session.execute(
                update(Job)
                .where(Job.id == job_id)
                .values(payment_status=new_payment_status, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if written.rowcount == 0:
                raise NotFoundError("job", job_id)

        await self._run("update_job_payment_status", _update)

    async def _mutate_job(
        self,
        operation: str,
        job_id: uuid.UUID,
        mutate: Callable[[Job], None],
    ) -> Job:
        now = self._clock()

        async def _apply(session: AsyncSession) -> Job:
            result = await session.execute(
                select(Job).where(Job.id == job_id).with_for_update()
            )
            job = result.scalars().first()
            if job is None:
                raise NotFoundError("job", job_id)
            mutate(job)
            job.updated_at = now
            await session.flush()
            return job

        return await self._run(operation, _apply)

    async def add_photos(self, job_id: uuid.UUID, photo_urls: Iterable[str]) -> Job:
        """Append uploaded photo URLs to the job."""
        urls = list(photo_urls)

        def _append(job: Job) -> None:
            job.photos = [*(job.photos or []), *urls]

        return await self._mutate_job("add_photos", job_id, _append)

    async def update_admin_notes(self, job_id: uuid.UUID, admin_notes: str) -> Job:
        def _set(job: Job) -> None:
            job.admin_notes = admin_notes

        return await self._mutate_job("update_admin_notes", job_id, _set)

    async def add_recovery_details(
        self,
        job_id: uuid.UUID,
        recovery_notes: str,
        recovery_photos: Iterable[str] = (),
        final_cost_cents: Optional[int] = None,
    ) -> Job:
        """Record the detectorist's report. Status is left untouched."""
        photos = list(recovery_photos)

        def _set(job: Job) -> None:
            job.recovery_notes = recovery_notes
            job.recovery_photos = [*(job.recovery_photos or []), *photos]
            if final_cost_cents is not None:
                job.final_cost_cents = final_cost_cents

        return await self._mutate_job("add_recovery_details", job_id, _set)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def create_payment(
        self,
        job_id: uuid.UUID,
        session_id: str,
        amount_cents: int,
        currency: str,
        payment_type: PaymentType,
        payment_intent_id: Optional[str] = None,
    ) -> uuid.UUID:
        """Insert a pending payment linked to a gateway session."""
        now = self._clock()

        async def _insert(session: AsyncSession) -> uuid.UUID:
            payment = Payment(
                id=uuid.uuid4(),
                job_id=job_id,
                session_id=session_id,
                payment_intent_id=payment_intent_id,
                amount_cents=amount_cents,
                currency=currency,
                payment_type=payment_type,
                status=PaymentRecordStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            session.add(payment)
            await session.flush()
            return payment.id

        return await self._run("create_payment", _insert)

    async def get_payment(self, payment_id: uuid.UUID) -> Optional[Payment]:
        async def _get(session: AsyncSession) -> Optional[Payment]:
            return await session.get(Payment, payment_id)

        return await self._run("get_payment", _get)

    async def _find_payment(self, operation: str, criterion: Any) -> Optional[Payment]:
        async def _find(session: AsyncSession) -> Optional[Payment]:
            result = await session.execute(select(Payment).where(criterion).limit(1))
            return result.scalars().first()

        return await self._run(operation, _find)

    async def find_payment_by_session_id(self, session_id: str) -> Optional[Payment]:
        """Exact-match lookup by gateway session id. ``None`` when absent."""
        return await self._find_payment(
            "find_payment_by_session_id", Payment.session_id == session_id
        )

    async def find_payment_by_intent_id(self, intent_id: str) -> Optional[Payment]:
        """Exact-match lookup by gateway payment-intent id. ``None`` when absent."""
        return await self._find_payment(
            "find_payment_by_intent_id", Payment.payment_intent_id == intent_id
        )

    async def list_payments_for_job(self, job_id: uuid.UUID) -> list[Payment]:
        async def _list(session: AsyncSession) -> list[Payment]:
            result = await session.execute(
                select(Payment)
                .where(Payment.job_id == job_id)
                .order_by(Payment.created_at, Payment.id)
            )
            return list(result.scalars().all())

        return await self._run("list_payments_for_job", _list)

    async def mark_payment_succeeded(
        self,
        payment_id: uuid.UUID,
        intent_id: Optional[str],
        *,
        job_id: Optional[uuid.UUID] = None,
        job_payment_status: Optional[PaymentStatus] = None,
    ) -> bool:
        """Flip a payment to ``succeeded`` exactly once.

        When ``job_id`` and ``job_payment_status`` are given, the job's
        payment status is written in the same transaction, unless the job
        is already further along (``paid`` beats ``deposit-paid``) or
        refunded.

        Returns:
            True if this call performed the transition, False if the payment
            was already succeeded (or refunded) and nothing was written.
        """
        now = self._clock()

        async def _mark(session: AsyncSession) -> bool:
            written = await session.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status.in_(_SUCCEEDABLE_FROM),
                )
                .values(
                    status=PaymentRecordStatus.SUCCEEDED,
                    # A completed session can arrive without an intent id.
                    payment_intent_id=func.coalesce(intent_id, Payment.payment_intent_id),
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if written.rowcount == 0:
                return False

            if job_id is not None and job_payment_status is not None:
                job_written = await session.execute(
                    update(Job)
                    .where(
                        Job.id == job_id,
                        Job.payment_status.in_(_upgradable_from(job_payment_status)),
                    )
                    .values(payment_status=job_payment_status, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if job_written.rowcount == 0:
                    logger.warning(
                        "Job %s payment status left unchanged: a late %s payment "
                        "does not downgrade it",
                        job_id,
                        job_payment_status.value,
                    )
            return True

        return await self._run("mark_payment_succeeded", _mark)

    async def mark_payment_failed(self, payment_id: uuid.UUID) -> bool:
        """Flip a pending payment to ``failed``. Returns False if not pending."""
        now = self._clock()

        async def _mark(session: AsyncSession) -> bool:
            written = await session.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status == PaymentRecordStatus.PENDING,
                )
                .values(status=PaymentRecordStatus.FAILED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return written.rowcount == 1

        return await self._run("mark_payment_failed", _mark)
