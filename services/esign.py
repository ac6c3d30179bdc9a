"""
E-sign provider clients. Only the signing orchestrator talks to them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from schemas.signing import SignerInfo
from services.errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SigningRequestResult:
    provider_document_id: str
    signing_url: str


class ESignClient(Protocol):
    async def create_signing_request(self, template_id: str, signer: SignerInfo) -> SigningRequestResult: ...


class SignNowClient:
    """
    SignNow REST client: copies a template into a document, then creates an
    embedded invite and a signing link for it.
    """

    LINK_EXPIRATION_MINUTES = 45

    def __init__(self, base_url: str, api_token: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._token = api_token
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._token}", "Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.post(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("SignNow %s failed with %d: %s", path, status, e.response.text[:500])
            raise ExternalServiceError(
                "signnow", f"{path} returned HTTP {status}",
                retryable=status == 429 or status >= 500, status_code=status,
            ) from e
        except httpx.TimeoutException as e:
            raise ExternalServiceError("signnow", f"{path} timed out", retryable=True) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError("signnow", f"{path} failed: {e}", retryable=True) from e
        return resp.json()

    async def create_signing_request(self, template_id: str, signer: SignerInfo) -> SigningRequestResult:
        if not template_id:
            raise ExternalServiceError("signnow", "no template configured", retryable=False)

        copy = await self._post(f"/template/{template_id}/copy", {"document_name": f"Application - {signer.name}"})
        document_id = copy.get("id")
        if not document_id:
            raise ExternalServiceError("signnow", "template copy returned no document id", retryable=False)

        invites = await self._post(
            f"/v2/documents/{document_id}/embedded-invites",
            {"invites": [{"email": signer.email, "role": signer.role, "order": 1, "auth_method": "none"}]},
        )
        try:
            invite_id = invites["data"][0]["id"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("signnow", "embedded invite response missing id", retryable=False) from e

        link = await self._post(
            f"/v2/documents/{document_id}/embedded-invites/{invite_id}/link",
            {"auth_method": "none", "link_expiration": self.LINK_EXPIRATION_MINUTES},
        )
        url = (link.get("data") or {}).get("link")
        if not url:
            raise ExternalServiceError("signnow", "signing link response missing link", retryable=False)

        logger.info("Created SignNow signing request for document %s", document_id)
        return SigningRequestResult(provider_document_id=document_id, signing_url=url)
