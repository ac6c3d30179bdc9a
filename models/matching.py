from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, func

from database import Base


class MatchRun(Base):
    """Snapshot of one matcher invocation, kept for staff history."""
    __tablename__ = "match_runs"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(String(64), ForeignKey("loan_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    profile = Column(JSON, nullable=False)
    eligible_count = Column(Integer, nullable=False, default=0)
    # Ordered list of MatchResult dicts (camelCase, as served)
    results = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
