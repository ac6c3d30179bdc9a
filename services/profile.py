"""
Maps every known intake payload shape to one canonical ApplicantProfile.

Supported shapes:
  - flat camelCase ({"requestedAmount": 50000, ...})
  - flat snake_case ({"requested_amount": 50000, ...})
  - spaced form labels ({"Funding Amount": "$50,000", ...})
  - step-based wizard payloads ({"step1": {...}, "step3": {...}, ...}), merged in step order

Precedence for each canonical field is declared once in FIELD_SOURCES: the first
source key holding a usable value wins. Values that cannot be parsed become None;
nothing is ever defaulted to zero.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Optional

from dateutil import parser as date_parser

from schemas.application import ApplicantProfile
from schemas.enums import parse_country
from utils.case import to_snake_key

FIELD_SOURCES: dict[str, tuple[str, ...]] = {
    "requested_amount": ("requested_amount", "funding_amount", "loan_amount", "amount_requested"),
    "monthly_revenue": ("monthly_revenue", "average_monthly_revenue", "avg_monthly_revenue"),
    "annual_revenue": ("annual_revenue", "estimated_yearly_revenue", "revenue_last_year", "yearly_revenue"),
    "country": ("country", "business_location", "headquarters"),
    "industry": ("industry", "business_industry"),
    "time_in_business_months": ("time_in_business_months", "months_in_business"),
    "years_in_business": ("years_in_business", "time_in_business_years"),
    "business_start_date": ("business_start_date", "start_date"),
    "use_of_funds": ("use_of_funds", "funds_purpose", "funding_purpose", "purpose_of_funds"),
    "credit_score_band": ("credit_score_band", "credit_score", "credit_rating"),
    "business_name": ("business_name", "operating_name", "legal_business_name", "legal_name"),
}

_STEP_KEY = re.compile(r"^step_?(\d+)$")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _canonical_key(key: str) -> str:
    """'Funding Amount' / 'fundingAmount' / 'funding_amount' -> 'funding_amount'."""
    key = key.strip()
    if " " in key or "-" in key:
        return "_".join(re.split(r"[\s\-]+", key.lower()))
    return to_snake_key(key)


def flatten_payload(form_data: dict[str, Any]) -> dict[str, Any]:
    """Merge step-based sections in step order over the flat keys; later steps win."""
    flat: dict[str, Any] = {}
    steps: list[tuple[int, dict[str, Any]]] = []
    for key, value in (form_data or {}).items():
        m = _STEP_KEY.match(_canonical_key(key))
        if m and isinstance(value, dict):
            steps.append((int(m.group(1)), value))
            continue
        flat[_canonical_key(key)] = value
    for _, section in sorted(steps, key=lambda s: s[0]):
        for key, value in section.items():
            flat[_canonical_key(key)] = value
    return flat


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _pick(flat: dict[str, Any], field: str) -> Any:
    for source in FIELD_SOURCES[field]:
        value = flat.get(source)
        if not _is_blank(value):
            return value
    return None


def parse_number(value: Any) -> Optional[float]:
    """'$1,250.50' -> 1250.5; '50k' -> 50000; unparseable -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower().replace(",", "").replace("$", "")
    multiplier = 1.0
    if text.endswith("k"):
        multiplier, text = 1_000.0, text[:-1]
    elif text.endswith("m"):
        multiplier, text = 1_000_000.0, text[:-1]
    m = _NUMBER.search(text)
    if not m:
        return None
    return float(m.group(0)) * multiplier


def _as_int(value: Any) -> Optional[int]:
    number = parse_number(value)
    return None if number is None else int(round(number))


def _as_text(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    return str(value).strip()


def _months_since(value: Any, today: date) -> Optional[int]:
    if _is_blank(value):
        return None
    try:
        start = value if isinstance(value, date) else date_parser.parse(str(value)).date()
    except (ValueError, OverflowError):
        return None
    months = (today.year - start.year) * 12 + (today.month - start.month)
    return max(months, 0)


def normalize_profile(form_data: dict[str, Any], today: Optional[date] = None) -> ApplicantProfile:
    """
    Build the canonical profile.

    Defaulting rules:
      - monthly_revenue falls back to annual_revenue / 12, and vice versa
      - time_in_business_months falls back to years_in_business * 12, then to the
        months elapsed since business_start_date (relative to `today`)
      - country strings are mapped to the closed Country enum; unknown -> None
    """
    flat = flatten_payload(form_data)
    today = today or datetime.now().date()

    monthly = parse_number(_pick(flat, "monthly_revenue"))
    annual = parse_number(_pick(flat, "annual_revenue"))
    if monthly is None and annual is not None:
        monthly = round(annual / 12, 2)
    if annual is None and monthly is not None:
        annual = round(monthly * 12, 2)

    tib = _as_int(_pick(flat, "time_in_business_months"))
    if tib is None:
        years = parse_number(_pick(flat, "years_in_business"))
        if years is not None:
            tib = int(round(years * 12))
    if tib is None:
        tib = _months_since(_pick(flat, "business_start_date"), today)

    return ApplicantProfile(
        requested_amount=_as_int(_pick(flat, "requested_amount")),
        monthly_revenue=monthly,
        annual_revenue=annual,
        country=parse_country(_as_text(_pick(flat, "country"))),
        industry=_as_text(_pick(flat, "industry")),
        time_in_business_months=tib,
        use_of_funds=_as_text(_pick(flat, "use_of_funds")),
        credit_score_band=_as_text(_pick(flat, "credit_score_band")),
        business_name=_as_text(_pick(flat, "business_name")),
    )
