from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import LoanApplication
from schemas.enums import ApplicationStatus
from services.errors import InvalidTransitionError, NotFoundError

ALLOWED_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.DRAFT: frozenset({ApplicationStatus.SUBMITTED}),
    ApplicationStatus.SUBMITTED: frozenset({ApplicationStatus.UNDER_REVIEW, ApplicationStatus.DECLINED}),
    ApplicationStatus.UNDER_REVIEW: frozenset({ApplicationStatus.SIGNED, ApplicationStatus.DECLINED}),
    ApplicationStatus.SIGNED: frozenset({ApplicationStatus.FUNDED, ApplicationStatus.DECLINED}),
    ApplicationStatus.FUNDED: frozenset(),
    ApplicationStatus.DECLINED: frozenset(),
}


def can_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(app: LoanApplication, target: ApplicationStatus) -> LoanApplication:
    """Move an application to `target`, or raise InvalidTransitionError."""
    current = ApplicationStatus(app.status)
    if not can_transition(current, target):
        raise InvalidTransitionError("Application", current.value, target.value)
    now = datetime.now(timezone.utc)
    app.status = target.value
    if target == ApplicationStatus.SUBMITTED:
        app.submitted_at = now
    app.updated_at = now
    return app


async def get_application(session: AsyncSession, application_id: str) -> LoanApplication:
    result = await session.execute(select(LoanApplication).where(LoanApplication.id == application_id))
    app = result.scalar_one_or_none()
    if not app:
        raise NotFoundError("Application not found")
    return app
