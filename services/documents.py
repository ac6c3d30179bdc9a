"""
Document pipeline: ingest -> OCR -> banking analysis.

run_ocr and analyze_document are job runners. They persist terminal failure state
(`ocr_failed`, banking `failed`) with a readable message instead of raising, so a
failed job is never dropped.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from models import BankingAnalysisRecord, Document, OcrResult
from schemas.banking import DocumentMeta
from schemas.enums import (
    BANK_STATEMENT_CATEGORY,
    DOCUMENT_CATEGORIES,
    BankingStatus,
    DocumentStatus,
    OcrStatus,
)
from services.banking_analyzer import ScoringConfig, analyze
from services.errors import (
    ExternalServiceError,
    InsufficientDataError,
    NotFoundError,
    StatementParseError,
    ValidationError,
)
from services.lifecycle import get_application
from services.ocr import OcrPayload, OcrProvider, extract_pdf_text_layer
from services.profile import normalize_profile
from services.retry import Sleep, retry_async
from services.storage import ObjectStorage

logger = logging.getLogger(__name__)

TEXT_LAYER_PROVIDER = "pdf_text_layer"


def safe_file_name(name: str) -> str:
    base = Path(name or "document").name
    return re.sub(r"[^A-Za-z0-9._-]", "_", base)[:200] or "document"


async def get_document(session: AsyncSession, document_id: str) -> Document:
    result = await session.execute(select(Document).where(Document.id == document_id))
    doc = result.scalar_one_or_none()
    if not doc:
        raise NotFoundError("Document not found")
    return doc


async def latest_ocr_result(session: AsyncSession, document_id: str) -> Optional[OcrResult]:
    result = await session.execute(
        select(OcrResult)
        .where(OcrResult.document_id == document_id)
        .order_by(OcrResult.created_at.desc(), OcrResult.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def ingest_document(
    session: AsyncSession,
    storage: ObjectStorage,
    application_id: str,
    file_name: str,
    content: bytes,
    mime_type: str,
    category: str,
    settings: Settings,
) -> Document:
    """Validate, store and register one uploaded file."""
    await get_application(session, application_id)

    if category not in DOCUMENT_CATEGORIES:
        raise ValidationError(f"Unknown document category '{category}'", field="category")
    if not content:
        raise ValidationError("File is empty", field="file")
    if len(content) > settings.max_upload_bytes:
        raise ValidationError(
            f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)} MB upload limit", field="file"
        )
    mime_type = (mime_type or "").split(";")[0].strip().lower()
    if mime_type not in settings.allowed_mime_type_set:
        raise ValidationError(f"Unsupported file type '{mime_type}'", field="file")

    doc_id = f"doc-{uuid.uuid4().hex[:12]}"
    key = f"applications/{application_id}/{uuid.uuid4().hex}-{safe_file_name(file_name)}"
    await storage.put(key, content, mime_type)

    doc = Document(
        id=doc_id,
        application_id=application_id,
        file_name=file_name or "document",
        file_size=len(content),
        mime_type=mime_type,
        category=category,
        storage_key=key,
        checksum=hashlib.sha256(content).hexdigest(),
        status=DocumentStatus.UPLOADED.value,
        banking_status=(
            BankingStatus.PENDING.value if category == BANK_STATEMENT_CATEGORY else BankingStatus.NOT_APPLICABLE.value
        ),
        created_at=datetime.now(timezone.utc),
    )
    session.add(doc)
    await session.flush()
    logger.info("Ingested document %s (%s, %d bytes) for %s", doc_id, category, len(content), application_id)
    return doc


async def _extract(
    storage: ObjectStorage,
    provider: OcrProvider,
    doc: Document,
    settings: Settings,
    sleep: Optional[Sleep],
) -> tuple[OcrPayload, str]:
    if doc.mime_type == "application/pdf":
        content = await storage.get(doc.storage_key)
        text = await asyncio.to_thread(extract_pdf_text_layer, content)
        if text:
            return OcrPayload(text=text, fields={}, confidence=1.0), TEXT_LAYER_PROVIDER

    async def call() -> OcrPayload:
        # Fresh URL per attempt; never reuse one past its validity window
        url = storage.presigned_url(doc.storage_key, settings.presigned_url_ttl_seconds).url
        return await asyncio.wait_for(provider.extract_text(url, doc.mime_type), timeout=settings.ocr_timeout_seconds)

    payload = await retry_async(
        call,
        attempts=settings.external_max_attempts,
        base_delay=settings.external_backoff_seconds,
        sleep=sleep,
        label=f"OCR for {doc.id}",
    )
    return payload, provider.name


async def run_ocr(
    session: AsyncSession,
    storage: ObjectStorage,
    provider: OcrProvider,
    document_id: str,
    settings: Settings,
    sleep: Optional[Sleep] = None,
) -> OcrResult:
    """OCR one document and, for bank statements, run banking analysis on the result."""
    doc = await get_document(session, document_id)
    doc.status = DocumentStatus.OCR_PENDING.value
    await session.flush()

    started = time.perf_counter()
    ocr = OcrResult(id=f"ocr-{uuid.uuid4().hex[:12]}", document_id=doc.id, created_at=datetime.now(timezone.utc))
    try:
        payload, provider_name = await _extract(storage, provider, doc, settings, sleep)
    except (ExternalServiceError, NotFoundError, asyncio.TimeoutError) as e:
        message = str(e) or "OCR provider timed out"
        logger.error("OCR failed for %s: %s", doc.id, message)
        ocr.status = OcrStatus.FAILED.value
        ocr.provider = provider.name
        ocr.error_message = message
        ocr.duration_ms = round((time.perf_counter() - started) * 1000, 3)
        doc.status = DocumentStatus.OCR_FAILED.value
        session.add(ocr)
        await session.flush()
        return ocr

    ocr.status = OcrStatus.COMPLETED.value
    ocr.provider = provider_name
    ocr.raw_text = payload.text
    ocr.fields = payload.fields
    ocr.confidence = payload.confidence
    ocr.duration_ms = round((time.perf_counter() - started) * 1000, 3)
    doc.status = DocumentStatus.OCR_COMPLETE.value
    session.add(ocr)
    await session.flush()
    logger.info("OCR complete for %s via %s (%d chars)", doc.id, provider_name, len(payload.text))

    if doc.category == BANK_STATEMENT_CATEGORY:
        await analyze_document(session, doc, ocr, ScoringConfig.from_settings(settings))
    return ocr


async def analyze_document(
    session: AsyncSession,
    doc: Document,
    ocr: OcrResult,
    config: ScoringConfig,
) -> Optional[BankingAnalysisRecord]:
    """
    Run banking analysis for a bank statement's OCR result.

    Runs only while banking_status is pending or failed, and only once per OCR result:
    a failed analysis is retried from a fresh OCR result, never by re-running the old one.
    Insufficient data marks the document failed and persists no analysis.
    """
    if doc.banking_status not in (BankingStatus.PENDING.value, BankingStatus.FAILED.value):
        return None
    if ocr.status != OcrStatus.COMPLETED.value or ocr.document_id != doc.id:
        return None
    if doc.banking_ocr_result_id == ocr.id:
        return None

    app = await get_application(session, doc.application_id)
    profile = normalize_profile(app.form_data or {})
    meta = DocumentMeta(
        document_id=doc.id,
        application_id=doc.application_id,
        ocr_result_id=ocr.id,
        file_name=doc.file_name,
        category=doc.category,
        declared_monthly_revenue=profile.monthly_revenue,
    )
    doc.banking_ocr_result_id = ocr.id

    try:
        analysis = analyze(ocr.raw_text or "", meta, config)
    except InsufficientDataError as e:
        logger.warning("Banking analysis failed for %s: %s", doc.id, e.message)
        doc.banking_status = BankingStatus.FAILED.value
        if isinstance(e, StatementParseError):
            doc.status = DocumentStatus.OCR_FAILED.value
        if app.financial_health_score is None:
            app.banking_status = BankingStatus.FAILED.value
        await session.flush()
        return None

    record = BankingAnalysisRecord(
        id=f"ba-{uuid.uuid4().hex[:12]}",
        application_id=doc.application_id,
        document_id=doc.id,
        ocr_result_id=ocr.id,
        bank_name=analysis.bank_name,
        account_type=analysis.account_type,
        opening_balance=analysis.opening_balance,
        closing_balance=analysis.closing_balance,
        average_balance=analysis.average_balance,
        total_deposits=analysis.total_deposits,
        total_withdrawals=analysis.total_withdrawals,
        net_cash_flow=analysis.net_cash_flow,
        cash_flow_trend=analysis.cash_flow_trend.value,
        financial_health_score=analysis.financial_health_score,
        nsf_count=analysis.nsf_count,
        overdraft_count=analysis.overdraft_count,
        processing_ms=analysis.processing_ms,
        payload=analysis.storage_payload(),
        created_at=datetime.now(timezone.utc),
    )
    session.add(record)
    doc.banking_status = BankingStatus.ANALYZED.value
    app.financial_health_score = analysis.financial_health_score
    app.banking_status = BankingStatus.ANALYZED.value
    await session.flush()
    logger.info("Banking analysis %s stored for %s (score %d)", record.id, doc.id, analysis.financial_health_score)
    return record
