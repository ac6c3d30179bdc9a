"""
Tests for the bank statement analyzer: scoring, risk factors, reconciliation and error paths.
Run from project root: python -m pytest tests/test_banking_analyzer.py -v
"""
import unittest

from schemas.banking import DocumentMeta
from schemas.enums import CashFlowTrend, RiskSeverity
from services.banking_analyzer import ScoringConfig, analyze, is_nsf
from services.errors import InsufficientDataError, StatementParseError, ValidationError
from tests import statements

DECLINING = """Beginning Balance 10,000.00
01/05 Payroll 3,000.00 7,000.00
01/15 Rent 3,000.00 4,000.00
01/25 Supplier 3,000.00 1,000.00
"""


def _risk(analysis, code):
    return next(r for r in analysis.risk_factors if r.code == code)


class TestAnalyzeHealthyStatement(unittest.TestCase):
    def setUp(self):
        self.analysis = analyze(statements.HEALTHY)

    def test_totals_and_balances(self):
        a = self.analysis
        self.assertEqual(a.transaction_count, 10)
        self.assertEqual(a.deposit_count, 5)
        self.assertEqual(a.total_deposits, 10_000.0)
        self.assertEqual(a.total_withdrawals, 6_000.0)
        self.assertEqual(a.net_cash_flow, 4_000.0)
        self.assertEqual(a.opening_balance, 10_000.0)
        self.assertEqual(a.closing_balance, 14_000.0)
        self.assertEqual(a.min_balance, 10_000.0)
        self.assertEqual(a.max_balance, 15_200.0)
        self.assertEqual(a.bank_name, "JPMorgan Chase")
        self.assertEqual(a.parse_layout, "amount_balance")

    def test_strong_score_without_risks(self):
        self.assertGreaterEqual(self.analysis.financial_health_score, 70)
        self.assertEqual(self.analysis.risk_factors, [])
        self.assertEqual(self.analysis.nsf_count, 0)
        self.assertEqual(self.analysis.cash_flow_trend, CashFlowTrend.IMPROVING)
        self.assertIn(
            "Strong financial position supports loan approval consideration",
            self.analysis.recommendations,
        )

    def test_revenue_subscore_only_with_declared_revenue(self):
        self.assertNotIn("revenue_consistency", self.analysis.score_breakdown)
        with_revenue = analyze(statements.HEALTHY, DocumentMeta(declared_monthly_revenue=10_000))
        self.assertIn("revenue_consistency", with_revenue.score_breakdown)
        self.assertFalse(with_revenue.has_risk("revenue_mismatch"))

    def test_monthly_stats(self):
        (january,) = self.analysis.monthly_stats
        self.assertEqual(january.month, "2024-01")
        self.assertEqual(january.transaction_count, 10)
        self.assertEqual(january.closing_balance, 14_000.0)

    def test_idempotent(self):
        again = analyze(statements.HEALTHY)
        self.assertEqual(
            self.analysis.model_dump(exclude={"processing_ms"}),
            again.model_dump(exclude={"processing_ms"}),
        )


class TestAnalyzeRisks(unittest.TestCase):
    def test_two_nsf_items_lower_the_score(self):
        healthy = analyze(statements.HEALTHY)
        nsf = analyze(statements.TWO_NSF)
        self.assertEqual(nsf.nsf_count, 2)
        risk = _risk(nsf, "nsf_activity")
        self.assertEqual(risk.severity, RiskSeverity.MEDIUM)
        self.assertEqual(risk.occurrences, 2)
        self.assertLess(nsf.financial_health_score, healthy.financial_health_score)
        self.assertEqual(nsf.score_breakdown["nsf"], 50.0)
        self.assertEqual(nsf.nsf_fees, 2_400.0)
        self.assertEqual(nsf.monthly_stats[0].nsf_fees, 2_400.0)
        self.assertEqual(healthy.nsf_fees, 0.0)

    def test_nsf_penalty_is_configurable(self):
        nsf = analyze(statements.TWO_NSF, config=ScoringConfig(nsf_penalty=50.0))
        self.assertEqual(nsf.score_breakdown["nsf"], 0.0)

    def test_closing_balance_mismatch_is_flagged_not_fatal(self):
        a = analyze(statements.MISMATCHED_CLOSING)
        self.assertEqual(a.closing_balance, 20_000.0)
        self.assertTrue(a.has_risk("balance_reconciliation_mismatch"))

    def test_overdraft_and_low_balance(self):
        a = analyze(statements.OVERDRAWN, DocumentMeta(year_hint=2024))
        self.assertEqual(a.overdraft_count, 1)
        self.assertEqual(a.negative_balance_days, 2)
        self.assertEqual(a.min_balance, -300.0)
        self.assertTrue(a.has_risk("overdraft_activity"))
        self.assertEqual(_risk(a, "low_average_balance").severity, RiskSeverity.MEDIUM)

    def test_declining_balance(self):
        a = analyze(DECLINING, DocumentMeta(year_hint=2024))
        self.assertEqual(a.cash_flow_trend, CashFlowTrend.DECLINING)
        self.assertTrue(a.has_risk("declining_cash_flow"))
        self.assertTrue(a.has_risk("negative_net_cash_flow"))
        self.assertEqual(a.score_breakdown["cash_flow"], 0.0)

    def test_revenue_mismatch(self):
        a = analyze(statements.HEALTHY, DocumentMeta(declared_monthly_revenue=50_000))
        self.assertTrue(a.has_risk("revenue_mismatch"))

    def test_fees_and_estimated_opening(self):
        a = analyze(statements.AMOUNT_ONLY)
        self.assertEqual(a.total_fees, 15.0)
        self.assertFalse(a.has_risk("opening_balance_estimated"))

        no_opening = statements.AMOUNT_ONLY.replace("Beginning balance 1,000.00\n", "")
        estimated = analyze(no_opening)
        self.assertTrue(estimated.has_risk("opening_balance_estimated"))
        self.assertEqual(estimated.opening_balance, 0.0)
        self.assertEqual(estimated.closing_balance, 1_085.0)

    def test_score_is_bounded(self):
        for text in (statements.HEALTHY, statements.TWO_NSF, statements.OVERDRAWN, DECLINING):
            score = analyze(text).financial_health_score
            self.assertGreaterEqual(score, 0)
            self.assertLessEqual(score, 100)


class TestAnalyzeErrors(unittest.TestCase):
    def test_empty_text(self):
        for text in ("", "   \n  "):
            with self.assertRaises(InsufficientDataError):
                analyze(text)

    def test_no_transactions(self):
        with self.assertRaises(InsufficientDataError):
            analyze("Thank you for banking with us.")

    def test_wrong_category(self):
        with self.assertRaises(ValidationError) as ctx:
            analyze(statements.HEALTHY, DocumentMeta(category="tax_returns"))
        self.assertEqual(ctx.exception.field, "category")

    def test_unparseable_statement(self):
        with self.assertRaises(StatementParseError):
            analyze(statements.UNPARSEABLE)


class TestIsNsf(unittest.TestCase):
    def test_waived_fees_are_not_nsf(self):
        self.assertTrue(is_nsf("NSF Returned Item"))
        self.assertTrue(is_nsf("Returned check fee"))
        self.assertFalse(is_nsf("NSF fee waived"))
        self.assertFalse(is_nsf("Customer Deposit"))


if __name__ == "__main__":
    unittest.main()
