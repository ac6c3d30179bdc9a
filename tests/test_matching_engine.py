"""
Tests for the matching engine: eligibility filters, amount-fit score, ranking, rejection reasons.
Run from project root: python -m pytest tests/test_matching_engine.py -v
Or: python -m unittest tests.test_matching_engine -v
"""
import unittest

from schemas.application import ApplicantProfile
from schemas.enums import Country, RejectionReason
from schemas.lender import LenderProductSchema
from services.errors import ValidationError
from services.matching_engine import amount_fit_score, match, summarize


def _product(**overrides):
    data = {
        "id": "p1",
        "lender_name": "Test Lender",
        "product_name": "Standard LOC",
        "category": "line_of_credit",
        "country": "US",
        "amount_min": 10_000,
        "amount_max": 50_000,
        "rate_min": 9.0,
        "term_min": 12,
        "min_monthly_revenue": 5_000,
    }
    data.update(overrides)
    return LenderProductSchema(**data)


def _profile(**overrides):
    data = {"requested_amount": 30_000, "monthly_revenue": 8_000, "country": Country.US}
    data.update(overrides)
    return ApplicantProfile(**data)


class TestMatchingEngine(unittest.TestCase):
    def test_eligible_midpoint_request_scores_one(self):
        """Requested amount at the midpoint of the range -> eligible with fit score 1.0."""
        results = match(_profile(), [_product()])
        self.assertEqual(len(results), 1)
        self.assertTrue(results[0].eligible)
        self.assertAlmostEqual(results[0].score, 1.0)
        self.assertEqual(results[0].rejection_reasons, [])

    def test_amount_above_range_is_ineligible(self):
        results = match(_profile(requested_amount=60_000), [_product()])
        self.assertFalse(results[0].eligible)
        self.assertEqual(results[0].rejection_reasons, [RejectionReason.AMOUNT_OUT_OF_RANGE])
        self.assertIsNone(results[0].score)

    def test_every_failed_filter_is_reported(self):
        product = _product(country="CA", active=False)
        results = match(_profile(requested_amount=1_000, monthly_revenue=100), [product])
        self.assertEqual(
            results[0].rejection_reasons,
            [
                RejectionReason.INACTIVE_PRODUCT,
                RejectionReason.COUNTRY_NOT_SERVED,
                RejectionReason.AMOUNT_OUT_OF_RANGE,
                RejectionReason.REVENUE_BELOW_MINIMUM,
            ],
        )
        failed = [c.name for c in results[0].criteria_results if not c.met]
        self.assertIn("Country", failed)

    def test_missing_revenue_never_satisfies_minimum(self):
        results = match(_profile(monthly_revenue=None), [_product()])
        self.assertFalse(results[0].eligible)
        self.assertIn(RejectionReason.REVENUE_BELOW_MINIMUM, results[0].rejection_reasons)

    def test_product_without_revenue_minimum_ignores_revenue(self):
        results = match(_profile(monthly_revenue=None), [_product(min_monthly_revenue=None)])
        self.assertTrue(results[0].eligible)

    def test_international_product_serves_any_country(self):
        results = match(_profile(country=Country.CA), [_product(country="INTL")])
        self.assertTrue(results[0].eligible)

    def test_unknown_country_is_not_served_by_national_product(self):
        results = match(_profile(country=None), [_product()])
        self.assertIn(RejectionReason.COUNTRY_NOT_SERVED, results[0].rejection_reasons)

    def test_excluded_industry_and_time_in_business(self):
        product = _product(excluded_industries=["Cannabis"], min_time_in_business_months=24)
        results = match(_profile(industry="cannabis", time_in_business_months=6), [product])
        self.assertEqual(
            results[0].rejection_reasons,
            [RejectionReason.INDUSTRY_EXCLUDED, RejectionReason.TIME_IN_BUSINESS_BELOW_MINIMUM],
        )

    def test_missing_requested_amount_raises(self):
        with self.assertRaises(ValidationError) as ctx:
            match(_profile(requested_amount=None), [_product()])
        self.assertEqual(ctx.exception.field, "requested_amount")

    def test_empty_catalog_returns_empty_list(self):
        self.assertEqual(match(_profile(), []), [])

    def test_ranking_fit_then_rate_then_term_then_id(self):
        catalog = [
            _product(id="d-far", amount_min=25_000, amount_max=200_000),  # lower fit
            _product(id="c-slow", rate_min=9.0, term_min=24),
            _product(id="b-cheap", rate_min=7.5, term_min=36),
            _product(id="a-fast", rate_min=9.0, term_min=12),
            _product(id="a-fast-twin", rate_min=9.0, term_min=12),
            _product(id="z-out", amount_max=20_000),
        ]
        ids = [r.product_id for r in match(_profile(), catalog)]
        self.assertEqual(ids, ["b-cheap", "a-fast", "a-fast-twin", "c-slow", "d-far", "z-out"])

    def test_missing_rate_sorts_after_present_rate(self):
        catalog = [_product(id="a-norate", rate_min=None), _product(id="b-rate", rate_min=20.0)]
        ids = [r.product_id for r in match(_profile(), catalog)]
        self.assertEqual(ids, ["b-rate", "a-norate"])

    def test_deterministic_and_no_fabrication(self):
        catalog = [_product(id=f"p{i}", amount_min=i * 5_000, amount_max=60_000) for i in range(8)]
        first = match(_profile(), catalog)
        second = match(_profile(), list(reversed(catalog)))
        self.assertEqual([r.model_dump() for r in first], [r.model_dump() for r in second])
        self.assertEqual({r.product_id for r in first}, {p.id for p in catalog})
        by_id = {p.id: p for p in catalog}
        for r in first:
            if r.eligible:
                p = by_id[r.product_id]
                self.assertTrue(p.amount_min <= 30_000 <= p.amount_max)

    def test_summarize(self):
        results = match(_profile(), [_product(id="a"), _product(id="b", amount_max=20_000)])
        summary = summarize(results)
        self.assertEqual(summary, {"total": 2, "eligible": 1, "ineligible": 1, "top_product_id": "a"})


class TestAmountFitScore(unittest.TestCase):
    def test_edges_and_degenerate_range(self):
        self.assertAlmostEqual(amount_fit_score(10_000, 10_000, 50_000), 0.5)
        self.assertAlmostEqual(amount_fit_score(30_000, 10_000, 50_000), 1.0)
        self.assertEqual(amount_fit_score(25_000, 25_000, 25_000), 1.0)
        self.assertEqual(amount_fit_score(0, 25_000, 25_000), 0.0)


if __name__ == "__main__":
    unittest.main()
