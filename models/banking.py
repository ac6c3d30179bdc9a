from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, JSON, String, func

from database import Base


class BankingAnalysisRecord(Base):
    __tablename__ = "banking_analyses"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(String(64), ForeignKey("loan_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(String(64), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    ocr_result_id = Column(String(64), ForeignKey("ocr_results.id"), nullable=False, unique=True)
    bank_name = Column(String(256), nullable=True)
    account_type = Column(String(64), nullable=True)
    opening_balance = Column(Float, nullable=False)
    closing_balance = Column(Float, nullable=False)
    average_balance = Column(Float, nullable=False)
    total_deposits = Column(Float, nullable=False)
    total_withdrawals = Column(Float, nullable=False)
    net_cash_flow = Column(Float, nullable=False)
    cash_flow_trend = Column(String(16), nullable=False)
    financial_health_score = Column(Integer, nullable=False)
    nsf_count = Column(Integer, nullable=False, default=0)
    overdraft_count = Column(Integer, nullable=False, default=0)
    processing_ms = Column(Float, nullable=True)
    # Full BankingAnalysis payload (risk factors, recommendations, monthly stats, ...)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
