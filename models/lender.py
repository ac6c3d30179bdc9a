from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text, func
from sqlalchemy.orm import relationship

from database import Base


class Lender(Base):
    __tablename__ = "lenders"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(256), nullable=False)
    slug = Column(String(128), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    products = relationship("LenderProduct", back_populates="lender", order_by="LenderProduct.id")


class LenderProduct(Base):
    __tablename__ = "lender_products"

    id = Column(String(64), primary_key=True, index=True)
    lender_id = Column(String(64), ForeignKey("lenders.id"), nullable=False, index=True)
    product_name = Column(String(256), nullable=False)
    category = Column(String(64), nullable=False, index=True)
    country = Column(String(8), nullable=False, index=True)
    amount_min = Column(Integer, nullable=False)
    amount_max = Column(Integer, nullable=False)
    rate_min = Column(Float, nullable=True)
    rate_max = Column(Float, nullable=True)
    term_min = Column(Integer, nullable=True)
    term_max = Column(Integer, nullable=True)
    min_monthly_revenue = Column(Integer, nullable=True)
    min_time_in_business_months = Column(Integer, nullable=True)
    excluded_industries = Column(JSON, nullable=False, default=list)
    # Ordered, de-duplicated document-type tags
    required_documents = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)
    # Soft delete: past match snapshots keep referencing the row
    active = Column(Boolean, nullable=False, default=True, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    lender = relationship("Lender", back_populates="products")

    @property
    def lender_name(self) -> str:
        return self.lender.name if self.lender else ""
