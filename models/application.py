from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlalchemy import JSON

from database import Base


class LoanApplication(Base):
    __tablename__ = "loan_applications"

    id = Column(String(64), primary_key=True, index=True)
    status = Column(String(32), nullable=False, default="draft", index=True)
    # Raw intake payload in whatever shape the form sent; normalized on read
    form_data = Column(JSON, nullable=False)
    contact_email = Column(String(256), nullable=True)
    signing_url = Column(Text, nullable=True)
    # NULL means "not computed"; 0 is a real score
    financial_health_score = Column(Integer, nullable=True)
    banking_status = Column(String(32), nullable=False, default="pending")
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
