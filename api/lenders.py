import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import get_db
from models import Lender, LenderProduct
from schemas.enums import CATEGORY_DISPLAY_NAMES, COUNTRY_DISPLAY_NAMES, ProductCategory, category_display_name
from schemas.lender import LenderCreate, LenderUpdate, ProductCreate, ProductUpdate
from services.catalog import (
    apply_product_update,
    get_lender,
    get_product,
    new_product,
    product_to_schema,
    restore,
    slug_to_id,
    soft_delete,
)
from services.errors import ConflictError, NotFoundError
from utils.case import dict_keys_to_camel, iso

router = APIRouter(prefix="/api/lenders", tags=["lenders"])
products_router = APIRouter(prefix="/api/products", tags=["lenders"])

MSG_PRODUCT_NOT_FOUND = "Product not found"


def _product_to_response(p: LenderProduct) -> dict[str, Any]:
    body = dict_keys_to_camel(product_to_schema(p).model_dump(mode="json", by_alias=False))
    body["categoryDisplayName"] = category_display_name(ProductCategory(p.category))
    body["deletedAt"] = iso(p.deleted_at)
    return body


def _lender_to_response(l: Lender) -> dict[str, Any]:
    return {
        "id": l.id,
        "name": l.name,
        "slug": l.slug,
        "description": l.description,
        "products": [_product_to_response(p) for p in l.products],
        "createdAt": iso(l.created_at),
        "updatedAt": iso(l.updated_at),
    }


async def _lender_product(db: AsyncSession, lender_id: str, product_id: str) -> LenderProduct:
    product = await get_product(db, product_id)
    if product.lender_id != lender_id:
        raise NotFoundError(MSG_PRODUCT_NOT_FOUND)
    return product


@router.get("/categories", response_model=list[dict])
async def list_categories():
    """Enum values with their display names, for form dropdowns."""
    return [{"value": c.value, "displayName": name} for c, name in CATEGORY_DISPLAY_NAMES.items()]


@router.get("/countries", response_model=list[dict])
async def list_countries():
    return [{"value": c.value, "displayName": name} for c, name in COUNTRY_DISPLAY_NAMES.items()]


@router.get("", response_model=list[dict])
async def list_lenders(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Lender).options(selectinload(Lender.products)).order_by(Lender.name))
    lenders = result.scalars().all()
    return [_lender_to_response(l) for l in lenders]


@router.get("/{lender_id}", response_model=dict)
async def get_lender_detail(lender_id: str, db: AsyncSession = Depends(get_db)):
    return _lender_to_response(await get_lender(db, lender_id))


@router.post("", response_model=dict, status_code=201)
async def create_lender(body: LenderCreate, db: AsyncSession = Depends(get_db)):
    lender_id = slug_to_id(body.slug)
    existing = await db.execute(select(Lender).where(or_(Lender.id == lender_id, Lender.slug == body.slug)))
    found = existing.scalar_one_or_none()
    if found:
        if found.slug == body.slug:
            raise ConflictError("Slug already in use")
        lender_id = f"{lender_id}-{uuid.uuid4().hex[:6]}"
    now = datetime.now(timezone.utc)
    lender = Lender(
        id=lender_id, name=body.name, slug=body.slug, description=body.description, created_at=now, updated_at=now
    )
    db.add(lender)
    await db.flush()
    for prod_in in body.products or []:
        db.add(new_product(lender, prod_in))
    await db.flush()
    return _lender_to_response(await get_lender(db, lender.id))


@router.patch("/{lender_id}", response_model=dict)
async def update_lender(lender_id: str, body: LenderUpdate, db: AsyncSession = Depends(get_db)):
    lender = await get_lender(db, lender_id)
    if body.slug is not None and body.slug != lender.slug:
        clash = await db.execute(select(Lender.id).where(Lender.slug == body.slug))
        if clash.scalar_one_or_none():
            raise ConflictError("Slug already in use")
        lender.slug = body.slug
    if body.name is not None:
        lender.name = body.name
    if body.description is not None:
        lender.description = body.description
    lender.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return _lender_to_response(lender)


@router.post("/{lender_id}/products", response_model=dict, status_code=201)
async def create_product(lender_id: str, body: ProductCreate, db: AsyncSession = Depends(get_db)):
    lender = await get_lender(db, lender_id)
    product = new_product(lender, body)
    db.add(product)
    await db.flush()
    return _product_to_response(product)


@router.patch("/{lender_id}/products/{product_id}", response_model=dict)
async def update_product(lender_id: str, product_id: str, body: ProductUpdate, db: AsyncSession = Depends(get_db)):
    product = await _lender_product(db, lender_id, product_id)
    apply_product_update(product, body)
    await db.flush()
    return _product_to_response(product)


@router.delete("/{lender_id}/products/{product_id}", status_code=204)
async def delete_product(lender_id: str, product_id: str, db: AsyncSession = Depends(get_db)):
    """Soft delete: the product stays visible to matching as `inactive_product`."""
    product = await _lender_product(db, lender_id, product_id)
    soft_delete(product)
    await db.flush()
    return None


@router.post("/{lender_id}/products/{product_id}/restore", response_model=dict)
async def restore_product(lender_id: str, product_id: str, db: AsyncSession = Depends(get_db)):
    product = await _lender_product(db, lender_id, product_id)
    restore(product)
    await db.flush()
    return _product_to_response(product)


@products_router.get("", response_model=list[dict])
async def list_products(include_inactive: bool = True, db: AsyncSession = Depends(get_db)):
    stmt = select(LenderProduct).options(selectinload(LenderProduct.lender)).order_by(LenderProduct.id)
    if not include_inactive:
        stmt = stmt.where(LenderProduct.active.is_(True))
    result = await db.execute(stmt)
    return [_product_to_response(p) for p in result.scalars().all()]
