"""
HTTP-level tests for the lender catalog, applications and matching routes.
Run from project root: python -m pytest tests/test_api.py -v
"""
import unittest

import httpx

from database import get_db
from main import app, status_for
from services.errors import ConflictError, ExternalServiceError, InsufficientDataError, NotFoundError, ValidationError
from tests.db import DatabaseTestCase

LENDER = {
    "name": "Acme Capital",
    "slug": "acme-capital",
    "description": "Revolving credit for established SMBs",
    "products": [
        {
            "productName": "Acme Flex LOC",
            "category": "Business Line of Credit",
            "country": "US",
            "amountMin": 10_000,
            "amountMax": 50_000,
            "rateMin": 9.0,
            "termMin": 12,
            "minMonthlyRevenue": 5_000,
            "requiredDocuments": ["bank_statements", "bank_statements", "void_cheque"],
        }
    ],
}

FORM = {"requestedAmount": 30_000, "monthlyRevenue": 8_000, "country": "United States", "industry": "Retail"}


class TestStatusMapping(unittest.TestCase):
    def test_error_types_map_to_http_codes(self):
        self.assertEqual(status_for(ValidationError("bad")), 400)
        self.assertEqual(status_for(NotFoundError("gone")), 404)
        self.assertEqual(status_for(ConflictError("dup")), 409)
        self.assertEqual(status_for(InsufficientDataError("thin")), 422)
        self.assertEqual(status_for(ExternalServiceError("signnow", "down")), 502)


class TestApi(DatabaseTestCase, unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()

        async def override_get_db():
            async with self.sessionmaker() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = override_get_db
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self):
        await self.client.aclose()
        app.dependency_overrides.clear()
        await super().asyncTearDown()

    async def _create_lender(self):
        resp = await self.client.post("/api/lenders", json=LENDER)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    async def _create_application(self, form=FORM):
        resp = await self.client.post("/api/applications", json={"formData": form})
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    async def test_health(self):
        resp = await self.client.get("/health")
        self.assertEqual(resp.json(), {"status": "ok"})

    async def test_create_lender_normalizes_products(self):
        lender = await self._create_lender()
        self.assertEqual(lender["id"], "acme-capital")
        (product,) = lender["products"]
        self.assertEqual(product["category"], "line_of_credit")
        self.assertEqual(product["categoryDisplayName"], "Business Line of Credit")
        self.assertEqual(product["requiredDocuments"], ["bank_statements", "void_cheque"])
        self.assertTrue(product["active"])

    async def test_duplicate_slug_conflicts(self):
        await self._create_lender()
        resp = await self.client.post("/api/lenders", json={"name": "Other", "slug": "acme-capital"})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"], "ConflictError")

    async def test_unknown_lender_is_404(self):
        resp = await self.client.get("/api/lenders/nope")
        self.assertEqual(resp.status_code, 404)

    async def test_product_update_rejects_inverted_range(self):
        lender = await self._create_lender()
        product_id = lender["products"][0]["id"]
        resp = await self.client.patch(
            f"/api/lenders/{lender['id']}/products/{product_id}", json={"amountMin": 90_000}
        )
        self.assertEqual(resp.status_code, 400)

        resp = await self.client.patch(
            f"/api/lenders/{lender['id']}/products/{product_id}", json={"amountMax": 80_000}
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["amountMax"], 80_000)

    async def test_application_lifecycle(self):
        created = await self._create_application()
        self.assertEqual(created["status"], "draft")

        resp = await self.client.post(f"/api/applications/{created['id']}/submit")
        self.assertEqual(resp.json()["status"], "submitted")
        self.assertIsNotNone(resp.json()["submittedAt"])

        resp = await self.client.post(f"/api/applications/{created['id']}/submit")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["field"], "status")

        resp = await self.client.patch(f"/api/applications/{created['id']}", json={"formData": {}})
        self.assertEqual(resp.status_code, 400)

    async def test_profile_is_normalized(self):
        created = await self._create_application()
        resp = await self.client.get(f"/api/applications/{created['id']}/profile")
        body = resp.json()
        self.assertEqual(body["requestedAmount"], 30_000)
        self.assertEqual(body["country"], "US")
        self.assertIsNone(body["timeInBusinessMonths"])

    async def test_matches_are_ranked_and_snapshotted(self):
        lender = await self._create_lender()
        created = await self._create_application()

        resp = await self.client.get(f"/api/applications/{created['id']}/matches")
        self.assertEqual(resp.status_code, 200, resp.text)
        body = resp.json()
        self.assertEqual(body["summary"]["eligible"], 1)
        (result,) = body["results"]
        self.assertTrue(result["eligible"])
        self.assertEqual(result["score"], 1.0)
        self.assertEqual(result["rejectionReasons"], [])

        product_id = lender["products"][0]["id"]
        resp = await self.client.delete(f"/api/lenders/{lender['id']}/products/{product_id}")
        self.assertEqual(resp.status_code, 204)

        resp = await self.client.get(f"/api/applications/{created['id']}/matches")
        (result,) = resp.json()["results"]
        self.assertFalse(result["eligible"])
        self.assertEqual(result["rejectionReasons"], ["inactive_product"])

        runs = (await self.client.get(f"/api/applications/{created['id']}/runs")).json()
        self.assertEqual(len(runs), 2)

    async def test_matching_requires_requested_amount(self):
        created = await self._create_application(form={"monthlyRevenue": 8_000})
        resp = await self.client.get(f"/api/applications/{created['id']}/matches")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["field"], "requested_amount")

    async def test_banking_summary_without_analysis(self):
        created = await self._create_application()
        body = (await self.client.get(f"/api/applications/{created['id']}/banking")).json()
        self.assertIsNone(body["financialHealthScore"])
        self.assertEqual(body["status"], "pending")
        self.assertEqual(body["analyses"], [])


if __name__ == "__main__":
    unittest.main()
