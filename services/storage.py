"""
Object storage for uploaded documents.

Consumers only ever see short-lived URLs. A URL is minted per external call and is
never held past `expires_at`.
"""
from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote, urlencode

from services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

FILES_ROUTE = "/api/files"


@dataclass(frozen=True)
class PresignedUrl:
    url: str
    expires_at: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at


class ObjectStorage(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    async def get(self, key: str) -> bytes: ...

    def presigned_url(self, key: str, ttl_seconds: int) -> PresignedUrl: ...


class LocalObjectStorage:
    """Filesystem backend. URLs are HMAC-signed and verified by the files route."""

    def __init__(self, root: str, secret: str, base_url: str, clock=time.time):
        self.root = Path(root).resolve()
        self._secret = secret.encode("utf-8")
        self.base_url = base_url.rstrip("/")
        self._clock = clock

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValidationError(f"Invalid storage key: {key}", field="key")
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(self._write, path, data)
        logger.info("Stored %s (%d bytes, %s)", key, len(data), content_type)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise NotFoundError(f"Stored object not found: {key}")
        return await asyncio.to_thread(path.read_bytes)

    def _signature(self, key: str, expires: int) -> str:
        return hmac.new(self._secret, f"{key}:{expires}".encode("utf-8"), hashlib.sha256).hexdigest()

    def presigned_url(self, key: str, ttl_seconds: int) -> PresignedUrl:
        expires = int(self._clock()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return PresignedUrl(
            url=f"{self.base_url}{FILES_ROUTE}/{quote(key)}?{query}",
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
        )

    def verify(self, key: str, expires: int, signature: str) -> bool:
        if expires < int(self._clock()):
            return False
        return hmac.compare_digest(self._signature(key, expires), signature)
