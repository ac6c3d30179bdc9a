import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_esign_client
from config import settings
from database import get_db, session_scope
from models import SigningJob
from schemas.signing import SigningCallback, SigningJobSchema, SigningRequest
from services.esign import ESignClient
from services.lifecycle import get_application
from services.signing import expire_stale_jobs, get_job, initiate_signing, list_jobs, mark_signed, process_signing_job
from utils.case import dict_keys_to_camel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["signing"])

COMPLETION_EVENTS = {"document.complete", "document_complete"}


def _job_to_response(job: SigningJob) -> dict[str, Any]:
    return dict_keys_to_camel(SigningJobSchema.model_validate(job).model_dump(mode="json"))


async def run_signing_job(client: ESignClient, job_id: str, template_id: str | None) -> None:
    """Background entry point; owns its own session."""
    try:
        async with session_scope() as session:
            await process_signing_job(session, job_id, client, settings, template_id=template_id)
    except Exception:
        logger.exception("Signing job %s crashed", job_id)
        raise


@router.post("/applications/{application_id}/signing", status_code=202)
async def start_signing(
    application_id: str,
    body: SigningRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    client: ESignClient = Depends(get_esign_client),
):
    job = await initiate_signing(db, application_id, body.signer)
    background.add_task(run_signing_job, client, job.id, body.template_id)
    return _job_to_response(job)


@router.get("/applications/{application_id}/signing/jobs", response_model=list[dict])
async def list_signing_jobs(application_id: str, db: AsyncSession = Depends(get_db)):
    await get_application(db, application_id)
    return [_job_to_response(j) for j in await list_jobs(db, application_id)]


@router.get("/signing/jobs/{job_id}")
async def get_signing_job(job_id: str, db: AsyncSession = Depends(get_db)):
    return _job_to_response(await get_job(db, job_id))


@router.post("/signing/callback")
async def signing_callback(body: SigningCallback, db: AsyncSession = Depends(get_db)):
    """Provider webhook; a completed document moves its application to `signed`."""
    if body.event not in COMPLETION_EVENTS:
        logger.info("Ignoring signing event %s for document %s", body.event, body.document_id)
        return {"documentId": body.document_id, "ignored": True}
    app = await mark_signed(db, body.document_id)
    return {"applicationId": app.id, "status": app.status}


@router.post("/signing/expire")
async def expire_jobs(db: AsyncSession = Depends(get_db)):
    expired = await expire_stale_jobs(db, settings.signing_job_max_seconds)
    return {"expired": [j.id for j in expired]}
