from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.enums import Country, ProductCategory, RejectionReason, parse_category


class CriterionResultSchema(BaseModel):
    name: str
    met: bool
    reason: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class ProductBase(BaseModel):
    """Product terms shared by the stored product and the create body."""
    product_name: str = Field(..., alias="productName")
    category: ProductCategory
    country: Country
    amount_min: int = Field(..., ge=0, alias="amountMin")
    amount_max: int = Field(..., ge=0, alias="amountMax")
    rate_min: Optional[float] = Field(None, ge=0, alias="rateMin")
    rate_max: Optional[float] = Field(None, ge=0, alias="rateMax")
    term_min: Optional[int] = Field(None, ge=0, alias="termMin")
    term_max: Optional[int] = Field(None, ge=0, alias="termMax")
    min_monthly_revenue: Optional[int] = Field(None, ge=0, alias="minMonthlyRevenue")
    min_time_in_business_months: Optional[int] = Field(None, ge=0, alias="minTimeInBusinessMonths")
    excluded_industries: list[str] = Field(default_factory=list, alias="excludedIndustries")
    required_documents: list[str] = Field(default_factory=list, alias="requiredDocuments")
    description: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, v):
        return parse_category(v)

    @field_validator("required_documents")
    @classmethod
    def _dedupe_documents(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(d.strip() for d in v if d and d.strip()))

    @model_validator(mode="after")
    def _check_ranges(self):
        _check_range("amount", self.amount_min, self.amount_max)
        _check_range("rate", self.rate_min, self.rate_max)
        _check_range("term", self.term_min, self.term_max)
        return self


def _check_range(name: str, lo, hi) -> None:
    if lo is not None and hi is not None and lo > hi:
        raise ValueError(f"{name}_min ({lo}) must not exceed {name}_max ({hi})")


class LenderProductSchema(ProductBase):
    """Normalized lender product as consumed by the matcher."""
    id: str
    lender_name: str = Field(..., alias="lenderName")
    active: bool = True

    model_config = {"populate_by_name": True, "from_attributes": True}


class ProductCreate(ProductBase):
    """Create a product under a lender; the id is generated server-side."""


class ProductUpdate(BaseModel):
    product_name: Optional[str] = Field(None, alias="productName")
    category: Optional[ProductCategory] = None
    country: Optional[Country] = None
    amount_min: Optional[int] = Field(None, ge=0, alias="amountMin")
    amount_max: Optional[int] = Field(None, ge=0, alias="amountMax")
    rate_min: Optional[float] = Field(None, ge=0, alias="rateMin")
    rate_max: Optional[float] = Field(None, ge=0, alias="rateMax")
    term_min: Optional[int] = Field(None, ge=0, alias="termMin")
    term_max: Optional[int] = Field(None, ge=0, alias="termMax")
    min_monthly_revenue: Optional[int] = Field(None, ge=0, alias="minMonthlyRevenue")
    min_time_in_business_months: Optional[int] = Field(None, ge=0, alias="minTimeInBusinessMonths")
    excluded_industries: Optional[list[str]] = Field(None, alias="excludedIndustries")
    required_documents: Optional[list[str]] = Field(None, alias="requiredDocuments")
    description: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, v):
        return None if v is None else parse_category(v)


class LenderCreate(BaseModel):
    """Create a new lender (with optional products)."""
    name: str
    slug: str
    description: Optional[str] = None
    products: Optional[list[ProductCreate]] = Field(None, description="Optional initial products")

    model_config = {"populate_by_name": True}


class LenderUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None


class MatchResultSchema(BaseModel):
    product_id: str
    lender_name: str
    product_name: str
    category: ProductCategory
    eligible: bool
    score: Optional[float] = None
    rejection_reasons: list[RejectionReason] = Field(default_factory=list)
    criteria_results: list[CriterionResultSchema] = Field(default_factory=list)
