"""
OCR providers. Every provider satisfies OcrProvider; callers wrap calls with
services.retry.retry_async and own the retry policy.
"""
from __future__ import annotations

import base64
import io
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx
import openai
import pdfplumber
from pdfplumber.utils.exceptions import PdfminerException

from services.errors import ExternalServiceError

logger = logging.getLogger(__name__)

OCR_PROMPT = """Extract ALL text visible in this bank statement or business document.
Keep the original line layout: one transaction per line, columns separated by spaces,
amounts exactly as printed. Return a JSON object:
{"text": "<full text>", "fields": {"bank_name": ..., "account_number": ..., "statement_period": ...}, "confidence": <0.0-1.0>}
Only return the JSON object."""


@dataclass
class OcrPayload:
    text: str
    fields: dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0


class OcrProvider(Protocol):
    name: str

    async def extract_text(self, url: str, mime_type: str) -> OcrPayload: ...


def extract_pdf_text_layer(content: bytes) -> str:
    """Text already embedded in a PDF; empty string for scanned, unreadable or non-PDF input."""
    if not content.startswith(b"%PDF"):
        return ""
    parts: list[str] = []
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            for page in pdf.pages:
                text = page.extract_text()
                if text:
                    parts.append(text)
    except PdfminerException as e:
        logger.warning("PDF text layer unreadable, falling back to OCR: %s", e)
        return ""
    return "\n\n".join(parts).strip()


def _map_openai_error(exc: openai.OpenAIError) -> ExternalServiceError:
    if isinstance(exc, openai.APIConnectionError):  # includes APITimeoutError
        return ExternalServiceError("openai", str(exc) or "connection failed", retryable=True)
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        retryable = status == 429 or status >= 500
        return ExternalServiceError("openai", exc.message, retryable=retryable, status_code=status)
    return ExternalServiceError("openai", str(exc), retryable=False)


class OpenAIVisionOcrProvider:
    """
    OCR through an OpenAI vision model. The document is fetched from its short-lived
    URL and sent inline, since storage URLs are not reachable from the provider.
    """

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 60.0,
                 http: Optional[httpx.AsyncClient] = None):
        self.model = model
        self.timeout = timeout
        self._client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()
        await self._client.close()

    async def _download(self, url: str) -> bytes:
        try:
            response = await self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                "storage", f"download failed: HTTP {e.response.status_code}",
                retryable=e.response.status_code >= 500, status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError("storage", f"download failed: {e}", retryable=True) from e
        return response.content

    def _content_part(self, data: bytes, mime_type: str) -> dict[str, Any]:
        encoded = base64.b64encode(data).decode("utf-8")
        if mime_type == "application/pdf":
            return {
                "type": "file",
                "file": {"filename": "document.pdf", "file_data": f"data:application/pdf;base64,{encoded}"},
            }
        return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}}

    async def extract_text(self, url: str, mime_type: str) -> OcrPayload:
        data = await self._download(url)
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": "You are an OCR tool that extracts text from documents."},
                    {"role": "user", "content": [
                        {"type": "text", "text": OCR_PROMPT},
                        self._content_part(data, mime_type),
                    ]},
                ],
            )
        except openai.OpenAIError as e:
            raise _map_openai_error(e) from e

        content = (response.choices[0].message.content or "").strip()
        try:
            body = json.loads(content)
        except json.JSONDecodeError:
            # Model ignored the JSON instruction; keep the raw text
            return OcrPayload(text=content, fields={}, confidence=0.5)
        fields = body.get("fields") if isinstance(body.get("fields"), dict) else {}
        try:
            confidence = float(body.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        return OcrPayload(
            text=str(body.get("text") or ""),
            fields={k: v for k, v in fields.items() if v is not None},
            confidence=max(0.0, min(1.0, confidence)),
        )
