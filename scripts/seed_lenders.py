"""
Seed a representative lender product catalog. Safe to re-run: existing lenders and
products are left untouched.
Run: python -m scripts.seed_lenders (from project root).
"""
import asyncio
import os
import sys

# Add parent so we can import from the project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from database import AsyncSessionLocal, init_db
from models import Lender, LenderProduct
from schemas.lender import ProductCreate
from services.catalog import new_product


LENDERS_DATA = [
    {
        "id": "northgate",
        "name": "Northgate Capital",
        "slug": "northgate-capital",
        "description": "Revolving credit and term loans for established US businesses",
        "products": [
            {
                "id": "northgate-loc",
                "product_name": "Business Line of Credit",
                "category": "line_of_credit",
                "country": "US",
                "amount_min": 10_000,
                "amount_max": 250_000,
                "rate_min": 8.5,
                "rate_max": 24.0,
                "term_min": 6,
                "term_max": 24,
                "min_monthly_revenue": 15_000,
                "min_time_in_business_months": 12,
                "required_documents": ["bank_statements", "tax_returns"],
            },
            {
                "id": "northgate-term",
                "product_name": "Term Loan",
                "category": "term_loan",
                "country": "US",
                "amount_min": 25_000,
                "amount_max": 500_000,
                "rate_min": 7.0,
                "rate_max": 18.0,
                "term_min": 12,
                "term_max": 60,
                "min_monthly_revenue": 25_000,
                "min_time_in_business_months": 24,
                "excluded_industries": ["Cannabis", "Gambling"],
                "required_documents": ["bank_statements", "tax_returns", "financial_statements"],
            },
        ],
    },
    {
        "id": "maple-commercial",
        "name": "Maple Commercial Finance",
        "slug": "maple-commercial",
        "description": "Canadian working capital and equipment lender",
        "products": [
            {
                "id": "maple-wc",
                "product_name": "Working Capital Advance",
                "category": "working_capital",
                "country": "CA",
                "amount_min": 5_000,
                "amount_max": 150_000,
                "rate_min": 12.0,
                "rate_max": 30.0,
                "term_min": 3,
                "term_max": 18,
                "min_monthly_revenue": 8_000,
                "min_time_in_business_months": 6,
                "required_documents": ["bank_statements", "void_cheque"],
            },
            {
                "id": "maple-equipment",
                "product_name": "Equipment Financing",
                "category": "equipment_financing",
                "country": "CA",
                "amount_min": 10_000,
                "amount_max": 750_000,
                "rate_min": 6.5,
                "rate_max": 15.0,
                "term_min": 12,
                "term_max": 72,
                "required_documents": ["equipment_quote", "bank_statements"],
            },
        ],
    },
    {
        "id": "meridian-trade",
        "name": "Meridian Trade Capital",
        "slug": "meridian-trade",
        "description": "Receivables and purchase order finance, cross-border",
        "products": [
            {
                "id": "meridian-factoring",
                "product_name": "Invoice Factoring",
                "category": "invoice_factoring",
                "country": "INTL",
                "amount_min": 20_000,
                "amount_max": 2_000_000,
                "rate_min": 1.5,
                "rate_max": 4.0,
                "term_min": 1,
                "term_max": 4,
                "min_monthly_revenue": 30_000,
                "required_documents": ["accounts_receivable", "bank_statements"],
            },
            {
                "id": "meridian-po",
                "product_name": "Purchase Order Financing",
                "category": "purchase_order_financing",
                "country": "INTL",
                "amount_min": 50_000,
                "amount_max": 1_000_000,
                "rate_min": 2.0,
                "rate_max": 6.0,
                "term_min": 1,
                "term_max": 6,
                "required_documents": ["accounts_receivable", "financial_statements"],
            },
        ],
    },
    {
        "id": "liberty-sba",
        "name": "Liberty Community Bank",
        "slug": "liberty-community-bank",
        "description": "SBA 7(a) and asset-based lending",
        "products": [
            {
                "id": "liberty-sba-7a",
                "product_name": "SBA 7(a) Loan",
                "category": "sba_loan",
                "country": "US",
                "amount_min": 50_000,
                "amount_max": 5_000_000,
                "rate_min": 6.0,
                "rate_max": 11.0,
                "term_min": 60,
                "term_max": 300,
                "min_monthly_revenue": 20_000,
                "min_time_in_business_months": 24,
                "required_documents": ["bank_statements", "tax_returns", "financial_statements", "business_license"],
            },
            {
                "id": "liberty-abl",
                "product_name": "Asset-Based Revolver",
                "category": "asset_based_lending",
                "country": "US",
                "amount_min": 250_000,
                "amount_max": 10_000_000,
                "rate_min": 5.5,
                "rate_max": 12.0,
                "term_min": 12,
                "term_max": 36,
                "min_monthly_revenue": 100_000,
                "required_documents": ["accounts_receivable", "balance_sheet", "profit_and_loss"],
            },
        ],
    },
]


async def seed():
    await init_db()
    async with AsyncSessionLocal() as session:
        for data in LENDERS_DATA:
            existing = await session.execute(select(Lender).where(Lender.id == data["id"]))
            lender = existing.scalar_one_or_none()
            if lender:
                print(f"Lender {data['id']} already exists")
            else:
                lender = Lender(
                    id=data["id"],
                    name=data["name"],
                    slug=data["slug"],
                    description=data["description"],
                )
                session.add(lender)
                await session.flush()
                print(f"Seeded lender: {data['name']}")
            for p in data["products"]:
                found = await session.execute(select(LenderProduct.id).where(LenderProduct.id == p["id"]))
                if found.scalar_one_or_none():
                    continue
                fields = {k: v for k, v in p.items() if k != "id"}
                session.add(new_product(lender, ProductCreate(**fields), product_id=p["id"]))
                print(f"  + product {p['id']}")
        await session.commit()
    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
