"""
Closed enumerations for every status/category field, plus the display-name layer.
Enum values are the storage and matching keys; display names are for UI only.
"""
from __future__ import annotations

from enum import Enum


class ProductCategory(str, Enum):
    LINE_OF_CREDIT = "line_of_credit"
    TERM_LOAN = "term_loan"
    EQUIPMENT_FINANCING = "equipment_financing"
    INVOICE_FACTORING = "invoice_factoring"
    PURCHASE_ORDER_FINANCING = "purchase_order_financing"
    WORKING_CAPITAL = "working_capital"
    ASSET_BASED_LENDING = "asset_based_lending"
    SBA_LOAN = "sba_loan"


class Country(str, Enum):
    US = "US"
    CA = "CA"
    INTL = "INTL"


class RejectionReason(str, Enum):
    INACTIVE_PRODUCT = "inactive_product"
    COUNTRY_NOT_SERVED = "country_not_served"
    AMOUNT_OUT_OF_RANGE = "amount_out_of_range"
    REVENUE_BELOW_MINIMUM = "revenue_below_minimum"
    INDUSTRY_EXCLUDED = "industry_excluded"
    TIME_IN_BUSINESS_BELOW_MINIMUM = "time_in_business_below_minimum"


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    SIGNED = "signed"
    FUNDED = "funded"
    DECLINED = "declined"


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    OCR_PENDING = "ocr_pending"
    OCR_COMPLETE = "ocr_complete"
    OCR_FAILED = "ocr_failed"


class BankingStatus(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"
    ANALYZED = "analyzed"
    FAILED = "failed"


class OcrStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CashFlowTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RiskSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


BANK_STATEMENT_CATEGORY = "bank_statements"

DOCUMENT_CATEGORIES = (
    BANK_STATEMENT_CATEGORY,
    "tax_returns",
    "financial_statements",
    "business_license",
    "articles_of_incorporation",
    "drivers_license",
    "void_cheque",
    "accounts_receivable",
    "accounts_payable",
    "equipment_quote",
    "profit_and_loss",
    "balance_sheet",
    "other",
)

CATEGORY_DISPLAY_NAMES: dict[ProductCategory, str] = {
    ProductCategory.LINE_OF_CREDIT: "Business Line of Credit",
    ProductCategory.TERM_LOAN: "Term Loan",
    ProductCategory.EQUIPMENT_FINANCING: "Equipment Financing",
    ProductCategory.INVOICE_FACTORING: "Invoice Factoring",
    ProductCategory.PURCHASE_ORDER_FINANCING: "Purchase Order Financing",
    ProductCategory.WORKING_CAPITAL: "Working Capital",
    ProductCategory.ASSET_BASED_LENDING: "Asset-Based Lending",
    ProductCategory.SBA_LOAN: "SBA Loan",
}

COUNTRY_DISPLAY_NAMES: dict[Country, str] = {
    Country.US: "United States",
    Country.CA: "Canada",
    Country.INTL: "International",
}

_COUNTRY_ALIASES = {
    "us": Country.US,
    "usa": Country.US,
    "u.s.": Country.US,
    "u.s.a.": Country.US,
    "united states": Country.US,
    "united states of america": Country.US,
    "ca": Country.CA,
    "can": Country.CA,
    "canada": Country.CA,
    "intl": Country.INTL,
    "international": Country.INTL,
}


def _slug(value: str) -> str:
    return "_".join(value.strip().lower().replace("-", " ").replace("/", " ").split())


_CATEGORY_ALIASES: dict[str, ProductCategory] = {
    **{c.value: c for c in ProductCategory},
    **{_slug(name): c for c, name in CATEGORY_DISPLAY_NAMES.items()},
    "loc": ProductCategory.LINE_OF_CREDIT,
    "line_of_credit_(loc)": ProductCategory.LINE_OF_CREDIT,
    "factoring": ProductCategory.INVOICE_FACTORING,
    "po_financing": ProductCategory.PURCHASE_ORDER_FINANCING,
    "equipment_finance": ProductCategory.EQUIPMENT_FINANCING,
    "abl": ProductCategory.ASSET_BASED_LENDING,
    "sba": ProductCategory.SBA_LOAN,
}


def parse_category(value: str | ProductCategory) -> ProductCategory:
    """Accept enum values as well as legacy display strings ("Business Line of Credit")."""
    if isinstance(value, ProductCategory):
        return value
    found = _CATEGORY_ALIASES.get(_slug(str(value)))
    if found is None:
        raise ValueError(f"Unknown product category: {value!r}")
    return found


def parse_country(value: str | Country | None) -> Country | None:
    """Map free-text country names to the closed enum; None when unrecognised."""
    if value is None:
        return None
    if isinstance(value, Country):
        return value
    return _COUNTRY_ALIASES.get(str(value).strip().lower())


def category_display_name(category: ProductCategory) -> str:
    return CATEGORY_DISPLAY_NAMES[category]
