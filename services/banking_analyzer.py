"""
Bank statement analysis: extraction, balance reconciliation, aggregation,
health scoring and rule-based risk factors.

analyze() is a pure function of its inputs. It never touches storage and raises
typed errors to the caller, which owns persistence and retry policy.
"""
from __future__ import annotations

import logging
import math
import re
import statistics
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from schemas.banking import BankingAnalysis, DocumentMeta, MonthlyStats, RiskFactor, Transaction
from schemas.enums import BANK_STATEMENT_CATEGORY, CashFlowTrend, RiskSeverity
from services.errors import InsufficientDataError, ReconciliationWarning, ValidationError
from services.statement_parser import ParsedStatement, parse_statement

logger = logging.getLogger(__name__)

NSF_PATTERN = re.compile(
    r"\bNSF\b|non[\s-]?sufficient\s+funds|insufficient\s+funds|returned\s+(?:item|check|cheque|payment)|\bbounced\b",
    re.IGNORECASE,
)
WAIVER_PATTERN = re.compile(r"\b(?:waived?|reversal|reversed|refund(?:ed)?)\b", re.IGNORECASE)
FEE_PATTERN = re.compile(r"\b(?:fees?|service\s+charge|charge)\b", re.IGNORECASE)

# Longest period filled day by day; longer statements fall back to per-transaction points.
MAX_DAILY_SPAN = 400
TREND_THRESHOLD = 0.10
DAYS_PER_MONTH = 30.4375


@dataclass(frozen=True)
class ScoringConfig:
    weight_cash_flow: float = 0.35
    weight_balance_stability: float = 0.25
    weight_nsf: float = 0.25
    weight_revenue_consistency: float = 0.15
    nsf_penalty: float = 25.0
    average_balance_floor: float = 1_000.0
    min_coverage: float = 0.5
    reconciliation_pct: float = 0.01
    reconciliation_floor: float = 5.0

    @classmethod
    def from_settings(cls, settings) -> "ScoringConfig":
        return cls(
            weight_cash_flow=settings.weight_cash_flow,
            weight_balance_stability=settings.weight_balance_stability,
            weight_nsf=settings.weight_nsf,
            weight_revenue_consistency=settings.weight_revenue_consistency,
            nsf_penalty=settings.nsf_penalty,
            average_balance_floor=settings.average_balance_floor,
            min_coverage=settings.parse_min_coverage,
        )


@dataclass
class _Ledger:
    opening: float
    closing: float
    points: list[tuple[date, float]]  # balance after each transaction
    opening_estimated: bool


def analyze(ocr_text: str, meta: Optional[DocumentMeta] = None, config: Optional[ScoringConfig] = None) -> BankingAnalysis:
    """
    Analyze one bank statement's OCR text.

    Raises:
        ValidationError: the document is not a bank statement.
        InsufficientDataError: empty text or no transactions could be extracted.
        StatementParseError: no line layout reached the coverage threshold.
    """
    started = time.perf_counter()
    meta = meta or DocumentMeta()
    config = config or ScoringConfig()

    if meta.category != BANK_STATEMENT_CATEGORY:
        raise ValidationError(f"Document category '{meta.category}' is not a bank statement", field="category")
    if not ocr_text or not ocr_text.strip():
        raise InsufficientDataError("OCR text is empty")

    parsed = parse_statement(ocr_text, year_hint=meta.year_hint, min_coverage=config.min_coverage)
    transactions = parsed.transactions
    if not transactions:
        raise InsufficientDataError("No transactions could be extracted from the statement")

    ledger = _build_ledger(parsed)
    daily = _daily_balances(parsed, ledger)

    deposits = [t.amount for t in transactions if t.amount > 0]
    total_deposits = round(sum(deposits), 2)
    total_withdrawals = round(sum(-t.amount for t in transactions if t.amount < 0), 2)
    total_fees = round(sum(-t.amount for t in transactions if t.amount < 0 and FEE_PATTERN.search(t.description)), 2)
    net_cash_flow = round(total_deposits - total_withdrawals, 2)

    nsf_count = sum(1 for t in transactions if is_nsf(t.description))
    nsf_fees = _nsf_fees(transactions)
    overdraft_count = _overdraft_count(ledger)
    negative_days = sum(1 for b in daily if b < 0)
    average_balance = round(statistics.fmean(daily), 2)
    all_balances = [ledger.opening] + [b for _, b in ledger.points]
    trend = _trend(daily)

    warning = _reconcile(ledger, net_cash_flow, config)
    months = _months_covered(parsed, transactions)

    breakdown = {
        "cash_flow": _cash_flow_score(net_cash_flow, total_deposits),
        "balance_stability": _stability_score(daily),
        "nsf": max(0.0, 100.0 - config.nsf_penalty * (nsf_count + overdraft_count)),
    }
    weights = {
        "cash_flow": config.weight_cash_flow,
        "balance_stability": config.weight_balance_stability,
        "nsf": config.weight_nsf,
    }
    declared = meta.declared_monthly_revenue
    revenue_ratio = None
    if declared and declared > 0:
        revenue_ratio = (total_deposits / months) / declared
        breakdown["revenue_consistency"] = _revenue_score(revenue_ratio, len(deposits) / months)
        weights["revenue_consistency"] = config.weight_revenue_consistency

    score = _weighted_score(breakdown, weights)

    risk_factors = _risk_factors(
        nsf_count=nsf_count,
        nsf_fees=nsf_fees,
        overdraft_count=overdraft_count,
        negative_days=negative_days,
        average_balance=average_balance,
        net_cash_flow=net_cash_flow,
        trend=trend,
        warning=warning,
        opening_estimated=ledger.opening_estimated,
        revenue_ratio=revenue_ratio,
        config=config,
    )

    analysis = BankingAnalysis(
        application_id=meta.application_id,
        document_id=meta.document_id,
        ocr_result_id=meta.ocr_result_id,
        bank_name=parsed.bank_name,
        account_type=parsed.account_type,
        account_number=parsed.account_number,
        statement_period=parsed.period,
        opening_balance=round(ledger.opening, 2),
        closing_balance=round(ledger.closing, 2),
        average_balance=average_balance,
        min_balance=round(min(all_balances), 2),
        max_balance=round(max(all_balances), 2),
        total_deposits=total_deposits,
        total_withdrawals=total_withdrawals,
        total_fees=total_fees,
        transaction_count=len(transactions),
        deposit_count=len(deposits),
        net_cash_flow=net_cash_flow,
        cash_flow_trend=trend,
        financial_health_score=score,
        score_breakdown={k: round(v, 2) for k, v in breakdown.items()},
        nsf_count=nsf_count,
        nsf_fees=nsf_fees,
        overdraft_count=overdraft_count,
        negative_balance_days=negative_days,
        risk_factors=risk_factors,
        recommendations=_recommendations(score, nsf_count, overdraft_count, trend, breakdown, average_balance, config),
        insights=_insights(transactions, deposits, average_balance, trend, months),
        monthly_stats=_monthly_stats(transactions, ledger),
        parse_layout=parsed.layout,
        parse_coverage=parsed.coverage,
        processing_ms=round((time.perf_counter() - started) * 1000, 3),
    )
    logger.debug(
        "Analyzed statement: %d transactions, layout=%s, score=%d",
        analysis.transaction_count,
        analysis.parse_layout,
        analysis.financial_health_score,
    )
    return analysis


def is_nsf(description: str) -> bool:
    return bool(NSF_PATTERN.search(description)) and not WAIVER_PATTERN.search(description)


def _nsf_fees(transactions: list[Transaction]) -> float:
    """Debits charged for NSF or returned items; also counted in total_fees when labelled as fees."""
    return round(sum(-t.amount for t in transactions if t.amount < 0 and is_nsf(t.description)), 2)


def _build_ledger(parsed: ParsedStatement) -> _Ledger:
    txns = parsed.transactions
    if parsed.has_running_balance:
        first = txns[0]
        opening = parsed.opening_balance if parsed.opening_balance is not None else first.balance - first.amount
        closing = parsed.closing_balance if parsed.closing_balance is not None else txns[-1].balance
        return _Ledger(opening, closing, [(t.date, t.balance) for t in txns], False)

    net = sum(t.amount for t in txns)
    estimated = parsed.opening_balance is None
    if parsed.opening_balance is not None:
        opening = parsed.opening_balance
    elif parsed.closing_balance is not None:
        opening = parsed.closing_balance - net
    else:
        opening = 0.0

    points = []
    running = opening
    for t in txns:
        running = round(running + t.amount, 2)
        points.append((t.date, running))
    closing = parsed.closing_balance if parsed.closing_balance is not None else running
    return _Ledger(opening, closing, points, estimated)


def _daily_balances(parsed: ParsedStatement, ledger: _Ledger) -> list[float]:
    """End-of-day balances across the statement period, carried forward on quiet days."""
    end_of_day: "OrderedDict[date, float]" = OrderedDict()
    for when, balance in ledger.points:
        end_of_day[when] = balance

    first_day = min(end_of_day)
    last_day = max(end_of_day)
    start = min(parsed.period.start_date or first_day, first_day)
    end = max(parsed.period.end_date or last_day, last_day)
    if (end - start).days > MAX_DAILY_SPAN:
        return list(end_of_day.values())

    balances = []
    current = ledger.opening
    day = start
    while day <= end:
        current = end_of_day.get(day, current)
        balances.append(current)
        day += timedelta(days=1)
    return balances


def _overdraft_count(ledger: _Ledger) -> int:
    count = 0
    previous = ledger.opening
    for _, balance in ledger.points:
        if previous >= 0 > balance:
            count += 1
        previous = balance
    return count


def _trend(daily: list[float]) -> CashFlowTrend:
    if len(daily) < 2:
        return CashFlowTrend.STABLE
    xs = list(range(len(daily)))
    slope, _ = statistics.linear_regression(xs, daily)
    change = slope * (len(daily) - 1) / max(abs(statistics.fmean(daily)), 100.0)
    if change > TREND_THRESHOLD:
        return CashFlowTrend.IMPROVING
    if change < -TREND_THRESHOLD:
        return CashFlowTrend.DECLINING
    return CashFlowTrend.STABLE


def _reconcile(ledger: _Ledger, net_cash_flow: float, config: ScoringConfig) -> Optional[ReconciliationWarning]:
    expected = round(ledger.opening + net_cash_flow, 2)
    tolerance = max(config.reconciliation_pct * abs(ledger.closing), config.reconciliation_floor)
    if abs(ledger.closing - expected) <= tolerance:
        return None
    return ReconciliationWarning(expected_closing=expected, actual_closing=ledger.closing, tolerance=round(tolerance, 2))


def _months_covered(parsed: ParsedStatement, transactions: list[Transaction]) -> float:
    start = parsed.period.start_date or transactions[0].date
    end = parsed.period.end_date or transactions[-1].date
    days = abs((end - start).days) + 1
    return max(days / DAYS_PER_MONTH, 1.0)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _cash_flow_score(net: float, deposits: float) -> float:
    if deposits <= 0:
        return 0.0
    # Break-even scores 50; a 20% margin of deposits scores full marks.
    return _clamp(50.0 + 250.0 * net / deposits)


def _stability_score(daily: list[float]) -> float:
    mean = statistics.fmean(daily)
    if mean <= 0:
        return 0.0
    cv = statistics.pstdev(daily) / mean
    return _clamp(100.0 * (1.0 - cv))


def _revenue_score(ratio: float, deposits_per_month: float) -> float:
    amount_score = _clamp(100.0 * (1.0 - abs(1.0 - ratio)))
    count_score = _clamp(25.0 * deposits_per_month)
    return 0.7 * amount_score + 0.3 * count_score


def _weighted_score(breakdown: dict[str, float], weights: dict[str, float]) -> int:
    total_weight = sum(weights.values())
    if total_weight <= 0:
        return 0
    raw = sum(breakdown[k] * w for k, w in weights.items()) / total_weight
    return int(_clamp(math.floor(raw + 0.5)))


def _nsf_severity(count: int) -> RiskSeverity:
    if count >= 6:
        return RiskSeverity.CRITICAL
    if count >= 4:
        return RiskSeverity.HIGH
    if count >= 2:
        return RiskSeverity.MEDIUM
    return RiskSeverity.LOW


def _risk_factors(
    *,
    nsf_count: int,
    nsf_fees: float,
    overdraft_count: int,
    negative_days: int,
    average_balance: float,
    net_cash_flow: float,
    trend: CashFlowTrend,
    warning: Optional[ReconciliationWarning],
    opening_estimated: bool,
    revenue_ratio: Optional[float],
    config: ScoringConfig,
) -> list[RiskFactor]:
    risks: list[RiskFactor] = []
    if nsf_count:
        risks.append(RiskFactor(
            code="nsf_activity",
            severity=_nsf_severity(nsf_count),
            message=f"{nsf_count} NSF incident(s) totaling ${nsf_fees:,.2f} indicate potential cash flow issues",
            occurrences=nsf_count,
        ))
    if overdraft_count:
        risks.append(RiskFactor(
            code="overdraft_activity",
            severity=RiskSeverity.HIGH if overdraft_count >= 3 else RiskSeverity.MEDIUM,
            message=f"Account was overdrawn {overdraft_count} time(s), {negative_days} day(s) below zero",
            occurrences=overdraft_count,
        ))
    if average_balance < config.average_balance_floor:
        risks.append(RiskFactor(
            code="low_average_balance",
            severity=RiskSeverity.HIGH if average_balance < 0 else RiskSeverity.MEDIUM,
            message=f"Average daily balance ${average_balance:,.2f} is below ${config.average_balance_floor:,.2f}",
        ))
    if trend == CashFlowTrend.DECLINING:
        risks.append(RiskFactor(
            code="declining_cash_flow",
            severity=RiskSeverity.MEDIUM,
            message="Running balance declines over the statement period",
        ))
    if net_cash_flow < 0:
        risks.append(RiskFactor(
            code="negative_net_cash_flow",
            severity=RiskSeverity.HIGH,
            message=f"Withdrawals exceed deposits by ${-net_cash_flow:,.2f}",
        ))
    if warning is not None:
        risks.append(RiskFactor(
            code="balance_reconciliation_mismatch",
            severity=RiskSeverity.MEDIUM,
            message=(
                f"Closing balance ${warning.actual_closing:,.2f} differs from the computed "
                f"${warning.expected_closing:,.2f} by ${warning.discrepancy:,.2f} "
                f"(tolerance ${warning.tolerance:,.2f})"
            ),
        ))
    if opening_estimated:
        risks.append(RiskFactor(
            code="opening_balance_estimated",
            severity=RiskSeverity.LOW,
            message="Statement shows no opening balance or running balance; balances are estimated",
        ))
    if revenue_ratio is not None and revenue_ratio < 0.5:
        risks.append(RiskFactor(
            code="revenue_mismatch",
            severity=RiskSeverity.MEDIUM,
            message=f"Monthly deposits cover only {revenue_ratio:.0%} of the declared monthly revenue",
        ))
    return risks


def _recommendations(
    score: int,
    nsf_count: int,
    overdraft_count: int,
    trend: CashFlowTrend,
    breakdown: dict[str, float],
    average_balance: float,
    config: ScoringConfig,
) -> list[str]:
    recs: list[str] = []
    if score < 50:
        recs.append("Monitor cash flow regularly to ensure adequate liquidity")
        recs.append("Consider establishing credit line for emergency funding")
    if nsf_count or overdraft_count:
        recs.append("Implement financial controls and budgeting processes")
        recs.append("Review and optimize operational expenses")
    if breakdown["balance_stability"] < 50:
        recs.append("Work on stabilizing revenue streams and cash flow patterns")
    if trend == CashFlowTrend.DECLINING:
        recs.append("Investigate the declining balance trend before committing to new repayments")
    if average_balance < config.average_balance_floor:
        recs.append("Build cash reserves above the minimum balance floor")
    if score >= 70:
        recs.append("Strong financial position supports loan approval consideration")
        recs.append("Consider opportunities for business growth and expansion")
    return recs


def _insights(
    transactions: list[Transaction],
    deposits: list[float],
    average_balance: float,
    trend: CashFlowTrend,
    months: float,
) -> list[str]:
    insights = [
        f"{len(transactions)} transactions over {months:.1f} month(s)",
        f"Average daily balance ${average_balance:,.2f}",
        f"Balance trend is {trend.value}",
    ]
    if deposits:
        insights.append(f"{len(deposits)} deposits averaging ${statistics.fmean(deposits):,.2f}")
        largest = max(transactions, key=lambda t: t.amount)
        insights.append(f"Largest deposit ${largest.amount:,.2f} on {largest.date.isoformat()}")
    return insights


def _monthly_stats(transactions: list[Transaction], ledger: _Ledger) -> list[MonthlyStats]:
    buckets: "OrderedDict[str, list[tuple[Transaction, float]]]" = OrderedDict()
    for txn, (_, balance) in zip(transactions, ledger.points):
        buckets.setdefault(txn.date.strftime("%Y-%m"), []).append((txn, balance))

    stats = []
    for month, rows in sorted(buckets.items()):
        balances = [b for _, b in rows]
        stats.append(MonthlyStats(
            month=month,
            transaction_count=len(rows),
            total_deposits=round(sum(t.amount for t, _ in rows if t.amount > 0), 2),
            total_withdrawals=round(sum(-t.amount for t, _ in rows if t.amount < 0), 2),
            nsf_count=sum(1 for t, _ in rows if is_nsf(t.description)),
            nsf_fees=_nsf_fees([t for t, _ in rows]),
            min_balance=round(min(balances), 2),
            max_balance=round(max(balances), 2),
            closing_balance=round(balances[-1], 2),
        ))
    return stats
