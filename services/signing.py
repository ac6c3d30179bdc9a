"""
Signing orchestration.

Job lifecycle: pending -> processing -> completed | failed. A failed job is never
reset; retrying means creating a new job. At most one job per application may be
in flight (pending or processing); that is checked optimistically on creation.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from models import LoanApplication, SigningJob
from schemas.enums import ApplicationStatus, JobStatus
from schemas.signing import SignerInfo
from services.errors import ConflictError, ExternalServiceError, InvalidTransitionError, NotFoundError, ValidationError
from services.esign import ESignClient
from services.lifecycle import get_application, transition
from services.retry import Sleep, retry_async

logger = logging.getLogger(__name__)

IN_FLIGHT = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)

JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def move_job(job: SigningJob, target: JobStatus, error: Optional[str] = None, now: Optional[datetime] = None) -> SigningJob:
    current = JobStatus(job.status)
    if target not in JOB_TRANSITIONS[current]:
        raise InvalidTransitionError("SigningJob", current.value, target.value)
    now = now or datetime.now(timezone.utc)
    job.status = target.value
    if target == JobStatus.PROCESSING:
        job.started_at = now
    if target in (JobStatus.COMPLETED, JobStatus.FAILED):
        job.completed_at = now
    if error is not None:
        job.error_message = error
    job.updated_at = now
    logger.info("Signing job %s: %s -> %s", job.id, current.value, target.value)
    return job


async def get_job(session: AsyncSession, job_id: str) -> SigningJob:
    result = await session.execute(select(SigningJob).where(SigningJob.id == job_id))
    job = result.scalar_one_or_none()
    if not job:
        raise NotFoundError("Signing job not found")
    return job


async def list_jobs(session: AsyncSession, application_id: str) -> list[SigningJob]:
    result = await session.execute(
        select(SigningJob)
        .where(SigningJob.application_id == application_id)
        .order_by(SigningJob.created_at.desc(), SigningJob.id.desc())
    )
    return list(result.scalars().all())


async def initiate_signing(session: AsyncSession, application_id: str, signer: SignerInfo) -> SigningJob:
    app = await get_application(session, application_id)
    if app.status != ApplicationStatus.UNDER_REVIEW.value:
        raise ValidationError(
            f"Signing can only start for applications under review (status is '{app.status}')", field="status"
        )

    in_flight = await session.execute(
        select(SigningJob.id).where(SigningJob.application_id == application_id, SigningJob.status.in_(IN_FLIGHT))
    )
    existing = in_flight.scalars().first()
    if existing:
        raise ConflictError(f"Signing job {existing} is already in progress for this application")

    job = SigningJob(
        id=f"sign-{uuid.uuid4().hex[:12]}",
        application_id=application_id,
        status=JobStatus.PENDING.value,
        signer_name=signer.name,
        signer_email=signer.email,
        attempts=0,
        created_at=datetime.now(timezone.utc),
    )
    session.add(job)
    await session.flush()
    logger.info("Created signing job %s for %s", job.id, application_id)
    return job


async def process_signing_job(
    session: AsyncSession,
    job_id: str,
    client: ESignClient,
    settings: Settings,
    template_id: Optional[str] = None,
    sleep: Optional[Sleep] = None,
) -> SigningJob:
    """
    Run one pending job to a terminal state. Provider failures and overruns of
    signing_job_max_seconds end in `failed` with the reason in error_message.
    """
    job = await get_job(session, job_id)
    if job.status != JobStatus.PENDING.value:
        logger.warning("Signing job %s is %s, not pending; skipping", job.id, job.status)
        return job

    app = await get_application(session, job.application_id)
    move_job(job, JobStatus.PROCESSING)
    # Make `processing` visible to pollers before the provider call
    await session.commit()

    signer = SignerInfo(name=job.signer_name or job.signer_email, email=job.signer_email)
    template = template_id or settings.signnow_template_id

    async def call():
        job.attempts = (job.attempts or 0) + 1
        return await asyncio.wait_for(
            client.create_signing_request(template, signer), timeout=settings.esign_timeout_seconds
        )

    try:
        result = await asyncio.wait_for(
            retry_async(
                call,
                attempts=settings.external_max_attempts,
                base_delay=settings.external_backoff_seconds,
                sleep=sleep,
                label=f"e-sign for job {job.id}",
            ),
            timeout=settings.signing_job_max_seconds,
        )
    except ExternalServiceError as e:
        logger.error("Signing job %s failed: %s", job.id, e.message)
        move_job(job, JobStatus.FAILED, error=e.message)
        await session.flush()
        return job
    except asyncio.TimeoutError:
        logger.error("Signing job %s timed out", job.id)
        move_job(job, JobStatus.FAILED, error="E-sign provider did not respond in time")
        await session.flush()
        return job

    job.provider_document_id = result.provider_document_id
    job.signing_url = result.signing_url
    move_job(job, JobStatus.COMPLETED)
    app.signing_url = result.signing_url
    await session.flush()
    return job


async def expire_stale_jobs(session: AsyncSession, max_seconds: int, now: Optional[datetime] = None) -> list[SigningJob]:
    """Fail processing jobs that have run longer than max_seconds."""
    now = now or datetime.now(timezone.utc)
    result = await session.execute(select(SigningJob).where(SigningJob.status == JobStatus.PROCESSING.value))
    expired = []
    for job in result.scalars().all():
        started = _utc(job.started_at)
        if started is not None and (now - started).total_seconds() > max_seconds:
            move_job(job, JobStatus.FAILED, error=f"Exceeded maximum processing time of {max_seconds}s", now=now)
            expired.append(job)
    if expired:
        await session.flush()
    return expired


async def mark_signed(session: AsyncSession, provider_document_id: str) -> LoanApplication:
    """Provider callback: the signer finished. Repeated callbacks are no-ops."""
    result = await session.execute(
        select(SigningJob).where(
            SigningJob.provider_document_id == provider_document_id,
            SigningJob.status == JobStatus.COMPLETED.value,
        )
    )
    job = result.scalars().first()
    if not job:
        raise NotFoundError(f"No completed signing job for document {provider_document_id}")
    app = await get_application(session, job.application_id)
    if app.status in (ApplicationStatus.SIGNED.value, ApplicationStatus.FUNDED.value):
        return app
    transition(app, ApplicationStatus.SIGNED)
    await session.flush()
    logger.info("Application %s signed (document %s)", app.id, provider_document_id)
    return app
