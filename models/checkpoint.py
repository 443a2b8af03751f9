from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from models.base import Base


class ReferenceBrand(Base):
    """
    Checkpoint: all models of a brand fetched for a reference period.

    Created pending (models_crawled_at NULL) when the brand is first linked
    to the period; phase 2 sets the timestamp after a full, unfiltered fetch.
    """
    __tablename__ = "reference_brands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference_table_id = Column(Integer, ForeignKey("reference_tables.id"), nullable=False)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False)
    models_crawled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("reference_table_id", "brand_id", name="uq_reference_brands"),
    )


class ReferenceModel(Base):
    """Checkpoint: all model-years of a model fetched for a reference period."""
    __tablename__ = "reference_models"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference_table_id = Column(Integer, ForeignKey("reference_tables.id"), nullable=False)
    model_id = Column(Integer, ForeignKey("models.id"), nullable=False)
    years_crawled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("reference_table_id", "model_id", name="uq_reference_models"),
    )


class ReferenceModelYear(Base):
    """Checkpoint: price of a model-year fetched for a reference period."""
    __tablename__ = "reference_model_years"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference_table_id = Column(Integer, ForeignKey("reference_tables.id"), nullable=False)
    model_year_id = Column(Integer, ForeignKey("model_years.id"), nullable=False)
    price_crawled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("reference_table_id", "model_year_id", name="uq_reference_model_years"),
    )
