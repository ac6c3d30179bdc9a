from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import BankingAnalysisRecord, LoanApplication, MatchRun
from schemas.application import ApplicationCreate, ApplicationUpdate, TransitionRequest
from schemas.enums import ApplicationStatus, BankingStatus
from services.catalog import load_catalog
from services.errors import ValidationError
from services.lifecycle import get_application, transition
from services.matching_engine import match, summarize
from services.profile import normalize_profile
from utils.case import dict_keys_to_camel, iso

router = APIRouter(prefix="/api/applications", tags=["applications"])


def _app_to_response(app: LoanApplication) -> dict[str, Any]:
    """Serialize application to dict with camelCase for frontend."""
    return {
        "id": app.id,
        "status": app.status,
        "formData": app.form_data or {},
        "contactEmail": app.contact_email,
        "signingUrl": app.signing_url,
        # None means not computed yet; 0 is a real score
        "financialHealthScore": app.financial_health_score,
        "bankingStatus": app.banking_status,
        "createdAt": iso(app.created_at),
        "updatedAt": iso(app.updated_at),
        "submittedAt": iso(app.submitted_at),
    }


def _run_to_response(r: MatchRun) -> dict[str, Any]:
    return {
        "id": r.id,
        "applicationId": r.application_id,
        "profile": r.profile,
        "eligibleCount": r.eligible_count,
        "results": r.results,
        "createdAt": iso(r.created_at),
    }


@router.get("")
async def list_applications(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(LoanApplication).order_by(LoanApplication.updated_at.desc()))
    apps = result.scalars().all()
    return [_app_to_response(a) for a in apps]


@router.get("/{application_id}")
async def get_application_detail(application_id: str, db: AsyncSession = Depends(get_db)):
    return _app_to_response(await get_application(db, application_id))


@router.post("", status_code=201)
async def create_application(body: ApplicationCreate, db: AsyncSession = Depends(get_db)):
    app_id = f"app-{uuid.uuid4().hex[:12]}"
    now = datetime.now(timezone.utc)
    app = LoanApplication(
        id=app_id,
        status=ApplicationStatus.DRAFT.value,
        form_data=body.form_data,
        contact_email=body.contact_email,
        banking_status=BankingStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    db.add(app)
    await db.flush()
    return _app_to_response(app)


@router.patch("/{application_id}")
async def update_application(application_id: str, body: ApplicationUpdate, db: AsyncSession = Depends(get_db)):
    app = await get_application(db, application_id)
    if app.status != ApplicationStatus.DRAFT.value:
        raise ValidationError("Only draft applications can be edited", field="status")
    app.form_data = body.form_data
    app.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return _app_to_response(app)


@router.post("/{application_id}/submit")
async def submit_application(application_id: str, db: AsyncSession = Depends(get_db)):
    app = await get_application(db, application_id)
    transition(app, ApplicationStatus.SUBMITTED)
    await db.flush()
    return _app_to_response(app)


@router.post("/{application_id}/transition")
async def transition_application(application_id: str, body: TransitionRequest, db: AsyncSession = Depends(get_db)):
    app = await get_application(db, application_id)
    transition(app, body.status)
    await db.flush()
    return _app_to_response(app)


@router.get("/{application_id}/profile")
async def get_profile(application_id: str, db: AsyncSession = Depends(get_db)):
    app = await get_application(db, application_id)
    profile = normalize_profile(app.form_data or {})
    return dict_keys_to_camel(profile.model_dump(mode="json"))


@router.get("/{application_id}/matches")
async def get_matches(application_id: str, db: AsyncSession = Depends(get_db)):
    """Match the application against the whole catalog and keep a snapshot of the run."""
    app = await get_application(db, application_id)
    profile = normalize_profile(app.form_data or {})
    catalog = await load_catalog(db)
    results = match(profile, catalog)

    profile_out = dict_keys_to_camel(profile.model_dump(mode="json"))
    results_out = [dict_keys_to_camel(r.model_dump(mode="json")) for r in results]
    summary = summarize(results)
    run = MatchRun(
        id=f"run-{uuid.uuid4().hex[:12]}",
        application_id=app.id,
        profile=profile_out,
        eligible_count=summary["eligible"],
        results=results_out,
        created_at=datetime.now(timezone.utc),
    )
    db.add(run)
    await db.flush()
    return {
        "runId": run.id,
        "applicationId": app.id,
        "profile": profile_out,
        "summary": dict_keys_to_camel(summary),
        "results": results_out,
    }


@router.get("/{application_id}/runs", response_model=list[dict])
async def list_runs(application_id: str, db: AsyncSession = Depends(get_db)):
    await get_application(db, application_id)
    result = await db.execute(
        select(MatchRun)
        .where(MatchRun.application_id == application_id)
        .order_by(MatchRun.created_at.desc())
    )
    return [_run_to_response(r) for r in result.scalars().all()]


@router.get("/{application_id}/banking")
async def get_banking_summary(application_id: str, db: AsyncSession = Depends(get_db)):
    """
    Latest health score plus every stored analysis. Without a successful analysis the
    score is null and the status is `pending` or `unavailable`, never a fabricated 0.
    """
    app = await get_application(db, application_id)
    result = await db.execute(
        select(BankingAnalysisRecord)
        .where(BankingAnalysisRecord.application_id == application_id)
        .order_by(BankingAnalysisRecord.created_at.desc())
    )
    analyses = result.scalars().all()
    if app.financial_health_score is not None:
        status = BankingStatus.ANALYZED.value
    elif app.banking_status == BankingStatus.FAILED.value:
        status = "unavailable"
    else:
        status = BankingStatus.PENDING.value
    return {
        "applicationId": app.id,
        "financialHealthScore": app.financial_health_score,
        "status": status,
        "analyses": [
            {
                "id": a.id,
                "documentId": a.document_id,
                "ocrResultId": a.ocr_result_id,
                "createdAt": iso(a.created_at),
                **dict_keys_to_camel(a.payload or {}),
            }
            for a in analyses
        ],
    }
