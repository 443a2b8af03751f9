from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Index, UniqueConstraint
from models.base import Base, utcnow


class Price(Base):
    """
    Quoted price of one model-year in one reference period.

    Updated in place when a later fetch disagrees; `crawled_at` moves only
    when the amount changes.
    """
    __tablename__ = "prices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    model_year_id = Column(Integer, ForeignKey("model_years.id"), nullable=False)
    reference_table_id = Column(Integer, ForeignKey("reference_tables.id"), nullable=False)
    fipe_code = Column(String(20), nullable=False)
    price_brl = Column(Numeric(12, 2), nullable=False)
    crawled_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("model_year_id", "reference_table_id", name="uq_prices_model_year_reference"),
        Index("idx_prices_reference", "reference_table_id"),
        Index("idx_prices_fipe_code", "fipe_code"),
    )
