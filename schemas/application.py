from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from schemas.enums import ApplicationStatus, Country


class ApplicantProfile(BaseModel):
    """
    Canonical view of an application's business attributes, built by
    services.profile.normalize_profile. Missing values stay None (never 0).
    """
    requested_amount: Optional[int] = None
    monthly_revenue: Optional[float] = None
    annual_revenue: Optional[float] = None
    country: Optional[Country] = None
    industry: Optional[str] = None
    time_in_business_months: Optional[int] = None
    use_of_funds: Optional[str] = None
    credit_score_band: Optional[str] = None
    business_name: Optional[str] = None


class ApplicationCreate(BaseModel):
    """Raw intake payload; any known form shape is accepted and normalized on read."""
    form_data: dict[str, Any] = Field(..., alias="formData")
    contact_email: Optional[str] = Field(None, alias="contactEmail")

    model_config = {"populate_by_name": True}


class ApplicationUpdate(BaseModel):
    form_data: dict[str, Any] = Field(..., alias="formData")

    model_config = {"populate_by_name": True}


class TransitionRequest(BaseModel):
    status: ApplicationStatus
    note: Optional[str] = None

