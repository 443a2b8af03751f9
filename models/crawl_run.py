from sqlalchemy import Column, Integer, String, Boolean, Enum, DateTime, Float, Text, Index
from models.base import Base, CrawlStatus, utcnow
import uuid


class CrawlRun(Base):
    """
    Tracks metadata for each crawl pass over one reference period.

    Purpose:
    - Audit trail of all crawls
    - Per-phase success/failure counts
    - How much work was still pending when the pass ended
    """
    __tablename__ = "crawl_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False, index=True)

    reference_code = Column(Integer, nullable=False, index=True)

    # Run metadata
    status = Column(Enum(CrawlStatus), default=CrawlStatus.RUNNING, nullable=False, index=True)
    forced = Column(Boolean, default=False, nullable=False)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Phase statistics
    brands_linked = Column(Integer, default=0)
    brands_crawled = Column(Integer, default=0)
    brands_failed = Column(Integer, default=0)
    models_crawled = Column(Integer, default=0)
    models_failed = Column(Integer, default=0)
    prices_fetched = Column(Integer, default=0)
    prices_failed = Column(Integer, default=0)

    # Checkpoints still pending when the run ended
    pending_brands = Column(Integer, default=0)
    pending_models = Column(Integer, default=0)
    pending_model_years = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_crawl_run_reference_started", "reference_code", "started_at"),
    )
