"""
Matches an applicant profile against the lender product catalog.
Every product yields one result: eligible products carry an amount-fit score and are
ranked first; ineligible products carry the reasons they failed, for UI transparency.
Pure function of its inputs: no storage access, no clock, no randomness.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Optional

from schemas.application import ApplicantProfile
from schemas.enums import Country, RejectionReason
from schemas.lender import CriterionResultSchema, LenderProductSchema, MatchResultSchema
from services.errors import ValidationError

logger = logging.getLogger(__name__)

REQUIRED_PROFILE_FIELDS = ("requested_amount",)


def match(profile: ApplicantProfile, catalog: Iterable[LenderProductSchema]) -> list[MatchResultSchema]:
    """
    Evaluate every catalog product against the profile.

    Ordering: eligible products by amount fit (desc), then rate_min, term_min and id
    (asc); ineligible products afterwards, by id.
    Raises ValidationError when a required profile field is missing.
    """
    _validate_profile(profile)

    eligible: list[tuple[tuple, MatchResultSchema]] = []
    ineligible: list[MatchResultSchema] = []
    for product in catalog:
        result = _evaluate_product(profile, product)
        if result.eligible:
            eligible.append((_rank_key(product, result.score), result))
        else:
            ineligible.append(result)

    eligible.sort(key=lambda pair: pair[0])
    ineligible.sort(key=lambda r: r.product_id)
    logger.debug("Matched %d eligible / %d ineligible products", len(eligible), len(ineligible))
    return [r for _, r in eligible] + ineligible


def amount_fit_score(requested: int, amount_min: int, amount_max: int) -> float:
    """1 - |requested - midpoint| / (max - min), clamped to [0, 1]."""
    span = amount_max - amount_min
    if span <= 0:
        return 1.0 if requested == amount_min else 0.0
    midpoint = (amount_min + amount_max) / 2
    score = 1 - abs(requested - midpoint) / span
    return round(min(1.0, max(0.0, score)), 6)


def summarize(results: list[MatchResultSchema]) -> dict[str, Any]:
    eligible = [r for r in results if r.eligible]
    return {
        "total": len(results),
        "eligible": len(eligible),
        "ineligible": len(results) - len(eligible),
        "top_product_id": eligible[0].product_id if eligible else None,
    }


def _validate_profile(profile: ApplicantProfile) -> None:
    for field in REQUIRED_PROFILE_FIELDS:
        if getattr(profile, field) is None:
            raise ValidationError(f"Applicant profile is missing required field '{field}'", field=field)
    if profile.requested_amount < 0:
        raise ValidationError("requested_amount must not be negative", field="requested_amount")


def _rank_key(product: LenderProductSchema, score: Optional[float]) -> tuple:
    rate = product.rate_min if product.rate_min is not None else math.inf
    term = product.term_min if product.term_min is not None else math.inf
    return (-(score or 0.0), rate, term, product.id)


def _evaluate_product(profile: ApplicantProfile, product: LenderProductSchema) -> MatchResultSchema:
    criteria_results: list[CriterionResultSchema] = []
    reasons: list[RejectionReason] = []

    def check(name: str, met: bool, reason: RejectionReason, why: str, expected: str, actual: str) -> None:
        criteria_results.append(
            CriterionResultSchema(
                name=name,
                met=met,
                reason=why if not met else f"Meets {name.lower()} requirement",
                expected=expected,
                actual=actual,
            )
        )
        if not met:
            reasons.append(reason)

    check(
        "Active",
        product.active,
        RejectionReason.INACTIVE_PRODUCT,
        "Product is no longer offered",
        "active",
        "active" if product.active else "inactive",
    )

    country = profile.country
    country_met = product.country == Country.INTL or (country is not None and country == product.country)
    check(
        "Country",
        country_met,
        RejectionReason.COUNTRY_NOT_SERVED,
        f"Lender does not serve {country.value if country else 'unknown country'}",
        product.country.value,
        country.value if country else "N/A",
    )

    amount = profile.requested_amount
    check(
        "Loan Amount",
        product.amount_min <= amount <= product.amount_max,
        RejectionReason.AMOUNT_OUT_OF_RANGE,
        f"Requested ${amount:,} outside ${product.amount_min:,}–${product.amount_max:,}",
        f"${product.amount_min:,} – ${product.amount_max:,}",
        f"${amount:,}",
    )

    if product.min_monthly_revenue is not None:
        revenue = profile.monthly_revenue
        # A missing revenue can never satisfy a stated minimum
        check(
            "Monthly Revenue",
            revenue is not None and revenue >= product.min_monthly_revenue,
            RejectionReason.REVENUE_BELOW_MINIMUM,
            f"Monthly revenue {_money(revenue)} below minimum ${product.min_monthly_revenue:,}",
            f"≥ ${product.min_monthly_revenue:,}",
            _money(revenue),
        )

    if product.excluded_industries:
        industry = (profile.industry or "").strip().lower()
        excluded = {i.strip().lower() for i in product.excluded_industries}
        check(
            "Industry",
            not industry or industry not in excluded,
            RejectionReason.INDUSTRY_EXCLUDED,
            f"Industry {profile.industry} is excluded",
            "Excludes: " + ", ".join(product.excluded_industries),
            profile.industry or "N/A",
        )

    if product.min_time_in_business_months is not None:
        tib = profile.time_in_business_months
        check(
            "Time in Business",
            tib is not None and tib >= product.min_time_in_business_months,
            RejectionReason.TIME_IN_BUSINESS_BELOW_MINIMUM,
            f"Minimum {product.min_time_in_business_months} months required; business has {tib if tib is not None else 'N/A'}",
            f"≥ {product.min_time_in_business_months} months",
            f"{tib} months" if tib is not None else "N/A",
        )

    eligible = not reasons
    return MatchResultSchema(
        product_id=product.id,
        lender_name=product.lender_name,
        product_name=product.product_name,
        category=product.category,
        eligible=eligible,
        score=amount_fit_score(amount, product.amount_min, product.amount_max) if eligible else None,
        rejection_reasons=reasons,
        criteria_results=criteria_results,
    )


def _money(value: Optional[float]) -> str:
    return "N/A" if value is None else f"${value:,.0f}"
