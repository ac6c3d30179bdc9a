"""
Lender product catalog: the read side the matcher consumes, plus soft delete/restore.
"""
from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import Lender, LenderProduct
from schemas.lender import LenderProductSchema, ProductCreate, ProductUpdate
from services.errors import NotFoundError, ValidationError


def product_to_schema(product: LenderProduct) -> LenderProductSchema:
    return LenderProductSchema(
        id=product.id,
        lender_name=product.lender_name,
        product_name=product.product_name,
        category=product.category,
        country=product.country,
        amount_min=product.amount_min,
        amount_max=product.amount_max,
        rate_min=product.rate_min,
        rate_max=product.rate_max,
        term_min=product.term_min,
        term_max=product.term_max,
        min_monthly_revenue=product.min_monthly_revenue,
        min_time_in_business_months=product.min_time_in_business_months,
        excluded_industries=list(product.excluded_industries or []),
        required_documents=list(product.required_documents or []),
        description=product.description,
        active=product.active,
    )


async def load_catalog(session: AsyncSession, include_inactive: bool = True) -> list[LenderProductSchema]:
    """
    Every product as the matcher sees it. Inactive products are included by default
    so the matcher can report them as `inactive_product` instead of hiding them.
    """
    stmt = select(LenderProduct).options(selectinload(LenderProduct.lender)).order_by(LenderProduct.id)
    if not include_inactive:
        stmt = stmt.where(LenderProduct.active.is_(True))
    result = await session.execute(stmt)
    return [product_to_schema(p) for p in result.scalars().all()]


def slug_to_id(slug: str) -> str:
    return re.sub(r"[^a-z0-9-]", "", slug.lower()) or f"lender-{uuid.uuid4().hex[:8]}"


async def get_lender(session: AsyncSession, lender_id: str) -> Lender:
    result = await session.execute(
        select(Lender).options(selectinload(Lender.products)).where(Lender.id == lender_id)
    )
    lender = result.scalar_one_or_none()
    if not lender:
        raise NotFoundError("Lender not found")
    return lender


async def get_product(session: AsyncSession, product_id: str) -> LenderProduct:
    result = await session.execute(
        select(LenderProduct).options(selectinload(LenderProduct.lender)).where(LenderProduct.id == product_id)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise NotFoundError("Product not found")
    return product


def new_product(lender: Lender, body: ProductCreate, product_id: str | None = None) -> LenderProduct:
    now = datetime.now(timezone.utc)
    data = body.model_dump(by_alias=False)
    data["category"] = body.category.value
    data["country"] = body.country.value
    return LenderProduct(
        id=product_id or f"{lender.id}-{uuid.uuid4().hex[:8]}",
        lender_id=lender.id,
        lender=lender,
        active=True,
        created_at=now,
        updated_at=now,
        **data,
    )


def apply_product_update(product: LenderProduct, body: ProductUpdate) -> LenderProduct:
    """Apply a partial update, then re-validate the merged product as a whole."""
    changes: dict[str, Any] = body.model_dump(by_alias=False, exclude_unset=True)
    merged = product_to_schema(product).model_dump(by_alias=False)
    merged.update({k: v for k, v in changes.items() if v is not None})
    try:
        validated = LenderProductSchema.model_validate(merged)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    for key in changes:
        value = getattr(validated, key)
        if hasattr(value, "value"):
            value = value.value
        setattr(product, key, value)
    product.updated_at = datetime.now(timezone.utc)
    return product


def soft_delete(product: LenderProduct) -> LenderProduct:
    product.active = False
    product.deleted_at = datetime.now(timezone.utc)
    return product


def restore(product: LenderProduct) -> LenderProduct:
    product.active = True
    product.deleted_at = None
    return product
