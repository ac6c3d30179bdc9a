"""
Tests for the document pipeline: ingest, OCR and banking analysis persistence.
Run from project root: python -m pytest tests/test_documents.py -v
"""
import tempfile
import unittest

from sqlalchemy import func, select

from models import BankingAnalysisRecord
from schemas.enums import BankingStatus, DocumentStatus, OcrStatus
from services.banking_analyzer import ScoringConfig
from services.documents import analyze_document, ingest_document, latest_ocr_result, run_ocr, safe_file_name
from services.errors import ExternalServiceError, NotFoundError, ValidationError
from services.ocr import OcrPayload
from services.storage import LocalObjectStorage
from tests import statements
from tests.db import DatabaseTestCase, make_settings
from tests.test_retry import FakeSleep

PNG = b"\x89PNG\r\n\x1a\n fake image bytes"


class FakeOcrProvider:
    name = "fake"

    def __init__(self, text="", errors=()):
        self.text = text
        self.errors = list(errors)
        self.urls = []

    async def extract_text(self, url, mime_type):
        self.urls.append(url)
        if self.errors:
            raise self.errors.pop(0)
        return OcrPayload(text=self.text, fields={}, confidence=0.9)


class TestSafeFileName(unittest.TestCase):
    def test_strips_paths_and_odd_characters(self):
        self.assertEqual(safe_file_name("../../etc/passwd"), "passwd")
        self.assertEqual(safe_file_name("Jan statement (1).pdf"), "Jan_statement__1_.pdf")
        self.assertEqual(safe_file_name(""), "document")


class TestDocumentPipeline(DatabaseTestCase, unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.tmp = tempfile.TemporaryDirectory()
        self.settings = make_settings(storage_dir=self.tmp.name)
        self.storage = LocalObjectStorage(self.tmp.name, "test-secret", "http://files.test")
        self.app = await self.make_application(
            status="submitted", form_data={"requestedAmount": 50_000, "monthlyRevenue": 10_000}
        )

    async def asyncTearDown(self):
        await super().asyncTearDown()
        self.tmp.cleanup()

    async def _ingest(self, category="bank_statements"):
        return await ingest_document(
            self.session, self.storage, self.app.id, "statement.png", PNG, "image/png", category, self.settings
        )

    async def _analysis_count(self):
        result = await self.session.execute(select(func.count()).select_from(BankingAnalysisRecord))
        return result.scalar_one()

    async def test_ingest_stores_file_and_marks_banking_pending(self):
        doc = await self._ingest()
        self.assertEqual(doc.status, DocumentStatus.UPLOADED.value)
        self.assertEqual(doc.banking_status, BankingStatus.PENDING.value)
        self.assertEqual(doc.file_size, len(PNG))
        self.assertEqual(await self.storage.get(doc.storage_key), PNG)

        other = await self._ingest(category="tax_returns")
        self.assertEqual(other.banking_status, BankingStatus.NOT_APPLICABLE.value)

    async def test_ingest_validation(self):
        with self.assertRaises(ValidationError):
            await self._ingest(category="selfies")
        with self.assertRaises(ValidationError):
            await ingest_document(
                self.session, self.storage, self.app.id, "a.png", b"", "image/png", "bank_statements", self.settings
            )
        with self.assertRaises(ValidationError):
            await ingest_document(
                self.session, self.storage, self.app.id, "a.exe", b"MZ", "application/x-msdownload",
                "bank_statements", self.settings,
            )
        small = make_settings(max_upload_bytes=4)
        with self.assertRaises(ValidationError):
            await ingest_document(
                self.session, self.storage, self.app.id, "a.png", PNG, "image/png", "bank_statements", small
            )
        with self.assertRaises(NotFoundError):
            await ingest_document(
                self.session, self.storage, "app-missing", "a.png", PNG, "image/png", "bank_statements", self.settings
            )

    async def test_ocr_then_analysis_is_persisted_once(self):
        doc = await self._ingest()
        provider = FakeOcrProvider(text=statements.HEALTHY)
        ocr = await run_ocr(self.session, self.storage, provider, doc.id, self.settings, sleep=FakeSleep())

        self.assertEqual(ocr.status, OcrStatus.COMPLETED.value)
        self.assertEqual(ocr.provider, "fake")
        self.assertEqual(doc.status, DocumentStatus.OCR_COMPLETE.value)
        self.assertEqual(doc.banking_status, BankingStatus.ANALYZED.value)
        self.assertTrue(provider.urls[0].startswith("http://files.test/api/files/applications/"))
        self.assertEqual(await self._analysis_count(), 1)
        self.assertGreaterEqual(self.app.financial_health_score, 70)
        self.assertEqual(self.app.banking_status, BankingStatus.ANALYZED.value)

        record = (await self.session.execute(select(BankingAnalysisRecord))).scalar_one()
        self.assertEqual(record.ocr_result_id, ocr.id)
        self.assertIn("revenue_consistency", record.payload["score_breakdown"])

        again = await analyze_document(self.session, doc, ocr, ScoringConfig())
        self.assertIsNone(again)
        self.assertEqual(await self._analysis_count(), 1)

    async def test_provider_failure_is_recorded(self):
        doc = await self._ingest()
        sleep = FakeSleep()
        provider = FakeOcrProvider(
            errors=[ExternalServiceError("openai", "HTTP 500", retryable=True, status_code=500)] * 3
        )
        ocr = await run_ocr(self.session, self.storage, provider, doc.id, self.settings, sleep=sleep)

        self.assertEqual(ocr.status, OcrStatus.FAILED.value)
        self.assertIn("HTTP 500", ocr.error_message)
        self.assertEqual(doc.status, DocumentStatus.OCR_FAILED.value)
        self.assertEqual(doc.banking_status, BankingStatus.PENDING.value)
        self.assertEqual(len(provider.urls), 3)
        self.assertEqual(sleep.delays, [1.0, 2.0])
        self.assertEqual(await self._analysis_count(), 0)
        self.assertEqual((await latest_ocr_result(self.session, doc.id)).id, ocr.id)

    async def _ingest_pdf(self, content):
        return await ingest_document(
            self.session, self.storage, self.app.id, "statement.pdf", content, "application/pdf",
            "bank_statements", self.settings,
        )

    async def test_corrupt_pdf_falls_back_to_provider(self):
        doc = await self._ingest_pdf(b"%PDF-1.4 garbage not a pdf")
        provider = FakeOcrProvider(text=statements.HEALTHY)
        ocr = await run_ocr(self.session, self.storage, provider, doc.id, self.settings, sleep=FakeSleep())

        self.assertEqual(ocr.status, OcrStatus.COMPLETED.value)
        self.assertEqual(ocr.provider, "fake")
        self.assertEqual(len(provider.urls), 1)
        self.assertEqual(doc.status, DocumentStatus.OCR_COMPLETE.value)
        self.assertEqual(doc.banking_status, BankingStatus.ANALYZED.value)

    async def test_missing_stored_file_is_recorded_as_failure(self):
        doc = await self._ingest_pdf(b"%PDF-1.4 garbage not a pdf")
        self.storage._path(doc.storage_key).unlink()
        provider = FakeOcrProvider(text=statements.HEALTHY)
        ocr = await run_ocr(self.session, self.storage, provider, doc.id, self.settings, sleep=FakeSleep())

        self.assertEqual(ocr.status, OcrStatus.FAILED.value)
        self.assertIn("Stored object not found", ocr.error_message)
        self.assertEqual(doc.status, DocumentStatus.OCR_FAILED.value)
        self.assertEqual(provider.urls, [])
        self.assertEqual((await latest_ocr_result(self.session, doc.id)).id, ocr.id)

    async def test_failed_analysis_reruns_only_from_a_new_ocr_result(self):
        doc = await self._ingest()
        bad = await run_ocr(
            self.session, self.storage, FakeOcrProvider(text=statements.UNPARSEABLE), doc.id, self.settings
        )
        self.assertEqual(bad.status, OcrStatus.COMPLETED.value)
        self.assertEqual(doc.banking_status, BankingStatus.FAILED.value)
        self.assertEqual(doc.status, DocumentStatus.OCR_FAILED.value)
        self.assertEqual(self.app.banking_status, BankingStatus.FAILED.value)
        self.assertIsNone(self.app.financial_health_score)

        self.assertIsNone(await analyze_document(self.session, doc, bad, ScoringConfig()))
        self.assertEqual(doc.banking_status, BankingStatus.FAILED.value)

        good = await run_ocr(
            self.session, self.storage, FakeOcrProvider(text=statements.HEALTHY), doc.id, self.settings
        )
        self.assertEqual(doc.banking_status, BankingStatus.ANALYZED.value)
        self.assertEqual(doc.status, DocumentStatus.OCR_COMPLETE.value)
        self.assertEqual(await self._analysis_count(), 1)
        self.assertEqual((await latest_ocr_result(self.session, doc.id)).id, good.id)

    async def test_empty_ocr_text_fails_banking_without_analysis(self):
        doc = await self._ingest()
        await run_ocr(self.session, self.storage, FakeOcrProvider(text="   "), doc.id, self.settings)
        self.assertEqual(doc.banking_status, BankingStatus.FAILED.value)
        self.assertEqual(doc.status, DocumentStatus.OCR_COMPLETE.value)
        self.assertEqual(await self._analysis_count(), 0)

    async def test_other_categories_skip_banking_analysis(self):
        doc = await self._ingest(category="tax_returns")
        ocr = await run_ocr(
            self.session, self.storage, FakeOcrProvider(text=statements.HEALTHY), doc.id, self.settings
        )
        self.assertEqual(ocr.status, OcrStatus.COMPLETED.value)
        self.assertEqual(doc.banking_status, BankingStatus.NOT_APPLICABLE.value)
        self.assertEqual(await self._analysis_count(), 0)


if __name__ == "__main__":
    unittest.main()
