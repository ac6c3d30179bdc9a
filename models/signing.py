from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from database import Base


class SigningJob(Base):
    __tablename__ = "signing_jobs"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(String(64), ForeignKey("loan_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    # pending -> processing -> completed | failed; failed jobs are never reset
    status = Column(String(32), nullable=False, default="pending", index=True)
    signer_name = Column(String(256), nullable=True)
    signer_email = Column(String(256), nullable=False)
    provider_document_id = Column(String(128), nullable=True, index=True)
    signing_url = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
