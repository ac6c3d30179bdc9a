import json
import unittest

import httpx

from schemas.signing import SignerInfo
from services.errors import ExternalServiceError
from services.esign import SignNowClient

SIGNER = SignerInfo(name="Dana Owner", email="dana@example.com")


def _signnow_handler(status_overrides=None):
    status_overrides = status_overrides or {}
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content or b"{}")))
        path = request.url.path
        if path in status_overrides:
            return httpx.Response(status_overrides[path], json={"error": "nope"})
        if path == "/template/tmpl-1/copy":
            return httpx.Response(200, json={"id": "doc-123"})
        if path == "/v2/documents/doc-123/embedded-invites":
            return httpx.Response(201, json={"data": [{"id": "inv-9"}]})
        if path == "/v2/documents/doc-123/embedded-invites/inv-9/link":
            return httpx.Response(201, json={"data": {"link": "https://app.signnow.com/s/xyz"}})
        return httpx.Response(404)

    return handler, seen


class TestSignNowClient(unittest.IsolatedAsyncioTestCase):
    async def test_template_copy_invite_and_link(self):
        handler, seen = _signnow_handler()
        client = SignNowClient("https://api.signnow.test", "token", transport=httpx.MockTransport(handler))
        try:
            result = await client.create_signing_request("tmpl-1", SIGNER)
        finally:
            await client.close()

        self.assertEqual(result.provider_document_id, "doc-123")
        self.assertEqual(result.signing_url, "https://app.signnow.com/s/xyz")
        self.assertEqual(
            [path for path, _ in seen],
            [
                "/template/tmpl-1/copy",
                "/v2/documents/doc-123/embedded-invites",
                "/v2/documents/doc-123/embedded-invites/inv-9/link",
            ],
        )
        invite = seen[1][1]["invites"][0]
        self.assertEqual(invite["email"], "dana@example.com")

    async def test_server_errors_are_retryable(self):
        handler, _ = _signnow_handler({"/template/tmpl-1/copy": 503})
        client = SignNowClient("https://api.signnow.test", "token", transport=httpx.MockTransport(handler))
        with self.assertRaises(ExternalServiceError) as ctx:
            await client.create_signing_request("tmpl-1", SIGNER)
        await client.close()
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_client_errors_are_permanent(self):
        handler, _ = _signnow_handler({"/v2/documents/doc-123/embedded-invites": 400})
        client = SignNowClient("https://api.signnow.test", "token", transport=httpx.MockTransport(handler))
        with self.assertRaises(ExternalServiceError) as ctx:
            await client.create_signing_request("tmpl-1", SIGNER)
        await client.close()
        self.assertFalse(ctx.exception.retryable)

    async def test_missing_template_fails_without_calling_provider(self):
        handler, seen = _signnow_handler()
        client = SignNowClient("https://api.signnow.test", "token", transport=httpx.MockTransport(handler))
        with self.assertRaises(ExternalServiceError) as ctx:
            await client.create_signing_request("", SIGNER)
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main()
