import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_ocr_provider, get_storage
from config import settings
from database import get_db, session_scope
from models import Document, OcrResult
from schemas.enums import BANK_STATEMENT_CATEGORY
from services.documents import get_document, ingest_document, latest_ocr_result, run_ocr
from services.lifecycle import get_application
from services.ocr import OcrProvider
from services.storage import LocalObjectStorage, ObjectStorage
from utils.case import iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["documents"])


def _document_to_response(d: Document) -> dict[str, Any]:
    return {
        "id": d.id,
        "applicationId": d.application_id,
        "fileName": d.file_name,
        "fileSize": d.file_size,
        "mimeType": d.mime_type,
        "category": d.category,
        "checksum": d.checksum,
        "status": d.status,
        "bankingStatus": d.banking_status,
        "createdAt": iso(d.created_at),
    }


def _ocr_to_response(r: OcrResult) -> dict[str, Any]:
    return {
        "id": r.id,
        "documentId": r.document_id,
        "status": r.status,
        "provider": r.provider,
        "text": r.raw_text,
        "fields": r.fields or {},
        "confidence": r.confidence,
        "error": r.error_message,
        "durationMs": r.duration_ms,
        "createdAt": iso(r.created_at),
    }


async def run_ocr_job(storage: ObjectStorage, provider: OcrProvider, document_id: str) -> None:
    """Background entry point; owns its own session."""
    try:
        async with session_scope() as session:
            await run_ocr(session, storage, provider, document_id, settings)
    except Exception:
        logger.exception("OCR job for %s crashed", document_id)
        raise


@router.post("/applications/{application_id}/documents", status_code=201)
async def upload_document(
    application_id: str,
    background: BackgroundTasks,
    file: UploadFile = File(...),
    category: str = Form(BANK_STATEMENT_CATEGORY),
    run_ocr_now: bool = Form(True, alias="runOcr"),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    provider: OcrProvider = Depends(get_ocr_provider),
):
    content = await file.read()
    doc = await ingest_document(
        db, storage, application_id, file.filename or "document", content,
        file.content_type or "", category, settings,
    )
    if run_ocr_now:
        background.add_task(run_ocr_job, storage, provider, doc.id)
    return _document_to_response(doc)


@router.get("/applications/{application_id}/documents", response_model=list[dict])
async def list_documents(application_id: str, db: AsyncSession = Depends(get_db)):
    await get_application(db, application_id)
    result = await db.execute(
        select(Document).where(Document.application_id == application_id).order_by(Document.created_at)
    )
    return [_document_to_response(d) for d in result.scalars().all()]


@router.get("/documents/{document_id}")
async def get_document_detail(document_id: str, db: AsyncSession = Depends(get_db)):
    return _document_to_response(await get_document(db, document_id))


@router.post("/documents/{document_id}/ocr", status_code=202)
async def trigger_ocr(
    document_id: str,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    provider: OcrProvider = Depends(get_ocr_provider),
):
    doc = await get_document(db, document_id)
    background.add_task(run_ocr_job, storage, provider, doc.id)
    return {"documentId": doc.id, "status": "queued"}


@router.get("/documents/{document_id}/ocr")
async def get_ocr_result(document_id: str, db: AsyncSession = Depends(get_db)):
    await get_document(db, document_id)
    latest = await latest_ocr_result(db, document_id)
    if not latest:
        raise HTTPException(status_code=404, detail="No OCR result yet")
    return _ocr_to_response(latest)


@router.get("/documents/{document_id}/url")
async def get_document_url(
    document_id: str,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    doc = await get_document(db, document_id)
    signed = storage.presigned_url(doc.storage_key, settings.presigned_url_ttl_seconds)
    return {"url": signed.url, "expiresAt": signed.expires_at.isoformat()}


@router.get("/files/{key:path}")
async def serve_file(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    if not storage.verify(key, expires, signature):
        raise HTTPException(status_code=403, detail="Link is invalid or has expired")
    content = await storage.get(key)
    result = await db.execute(select(Document.mime_type).where(Document.storage_key == key))
    mime_type = result.scalar_one_or_none() or "application/octet-stream"
    return Response(content=content, media_type=mime_type)
