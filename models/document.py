from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text, func
from sqlalchemy.orm import relationship

from database import Base


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(String(64), ForeignKey("loan_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(512), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(128), nullable=False)
    category = Column(String(64), nullable=False, index=True)
    storage_key = Column(String(1024), nullable=False)
    checksum = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="uploaded", index=True)
    banking_status = Column(String(32), nullable=False, default="not_applicable")
    # OCR result the last banking analysis attempt ran on; a failed attempt is retried only from a newer one
    banking_ocr_result_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    ocr_results = relationship(
        "OcrResult",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="OcrResult.created_at",
    )


class OcrResult(Base):
    __tablename__ = "ocr_results"

    id = Column(String(64), primary_key=True, index=True)
    document_id = Column(String(64), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    provider = Column(String(64), nullable=True)
    raw_text = Column(Text, nullable=True)
    # bank name, account number, statement period, ... as returned by the provider
    fields = Column(JSON, nullable=True)
    confidence = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    document = relationship("Document", back_populates="ocr_results")
