from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base


class ReferenceTable(Base):
    """
    One monthly snapshot of the FIPE price table (a reference period).

    `code` is FIPE's own table code; `crawled_at` is set once a pass over
    all four crawl phases has finished for this period.
    """
    __tablename__ = "reference_tables"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(Integer, nullable=False, unique=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    crawled_at = Column(DateTime, nullable=True)


class Brand(Base):
    """Vehicle brand, shared across all reference periods."""
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fipe_code = Column(String(10), nullable=False, unique=True)
    name = Column(String(100), nullable=False)

    models = relationship("VehicleModel", back_populates="brand")


class VehicleModel(Base):
    """
    Vehicle model under a brand.

    `segment` is never written by the crawl phases themselves; it is set by
    the classifier (source "ai") or by hand (source "manual").
    """
    __tablename__ = "models"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False)
    fipe_code = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    segment = Column(String(20), nullable=True)
    segment_source = Column(String(10), nullable=True)

    brand = relationship("Brand", back_populates="models")

    __table_args__ = (
        UniqueConstraint("brand_id", "fipe_code", name="uq_models_brand_fipe_code"),
        Index("idx_models_segment", "segment"),
    )


class ModelYear(Base):
    """A model's year/fuel combination (e.g. 2020 Gasolina)."""
    __tablename__ = "model_years"

    id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Integer, ForeignKey("models.id"), nullable=False)
    year = Column(Integer, nullable=False)
    fuel_code = Column(Integer, nullable=False)
    fuel_name = Column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint("model_id", "year", "fuel_code", name="uq_model_years_model_year_fuel"),
    )
