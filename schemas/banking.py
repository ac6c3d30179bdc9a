from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field

from schemas.enums import BANK_STATEMENT_CATEGORY, CashFlowTrend, RiskSeverity


class Transaction(BaseModel):
    date: date
    description: str
    amount: float  # positive for credits, negative for debits
    balance: Optional[float] = None
    raw_line: str = ""


class StatementPeriod(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RiskFactor(BaseModel):
    code: str
    severity: RiskSeverity
    message: str
    occurrences: Optional[int] = None


class MonthlyStats(BaseModel):
    month: str  # YYYY-MM
    transaction_count: int
    total_deposits: float
    total_withdrawals: float
    nsf_count: int
    nsf_fees: float = 0.0
    min_balance: float
    max_balance: float
    closing_balance: float


class DocumentMeta(BaseModel):
    """What the analyzer knows about the source document besides its text."""
    document_id: Optional[str] = None
    application_id: Optional[str] = None
    ocr_result_id: Optional[str] = None
    file_name: Optional[str] = None
    category: str = BANK_STATEMENT_CATEGORY
    declared_monthly_revenue: Optional[float] = None
    year_hint: Optional[int] = None


class BankingAnalysis(BaseModel):
    application_id: Optional[str] = None
    document_id: Optional[str] = None
    ocr_result_id: Optional[str] = None

    bank_name: Optional[str] = None
    account_type: Optional[str] = None
    account_number: Optional[str] = None
    statement_period: StatementPeriod = Field(default_factory=StatementPeriod)

    opening_balance: float
    closing_balance: float
    average_balance: float
    min_balance: float
    max_balance: float

    total_deposits: float
    total_withdrawals: float
    total_fees: float
    transaction_count: int
    deposit_count: int
    net_cash_flow: float
    cash_flow_trend: CashFlowTrend

    financial_health_score: int = Field(..., ge=0, le=100)
    score_breakdown: dict[str, float] = Field(default_factory=dict)
    nsf_count: int
    nsf_fees: float = 0.0
    overdraft_count: int
    negative_balance_days: int

    risk_factors: list[RiskFactor] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    monthly_stats: list[MonthlyStats] = Field(default_factory=list)

    parse_layout: str
    parse_coverage: float
    processing_ms: float

    def has_risk(self, code: str) -> bool:
        return any(r.code == code for r in self.risk_factors)

    def storage_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
