"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, shared enums (CrawlStatus, SegmentSource), SEGMENTS
    catalog: ReferenceTable, Brand, VehicleModel, ModelYear
    price: Price quoted for a model-year in a reference period
    checkpoint: Per-period crawl checkpoints (brand, model, model-year)
    crawl_run: Audit trail of crawl passes

Relationships:
    - Brand → VehicleModel → ModelYear (global catalogue, shared by all periods)
    - ReferenceTable × ModelYear → Price
    - ReferenceTable × (Brand | VehicleModel | ModelYear) → checkpoint rows
"""

from models.base import Base, CrawlStatus, SegmentSource, SEGMENTS
from models.catalog import ReferenceTable, Brand, VehicleModel, ModelYear
from models.price import Price
from models.checkpoint import ReferenceBrand, ReferenceModel, ReferenceModelYear
from models.crawl_run import CrawlRun

__all__ = [
    "Base",
    "CrawlStatus",
    "SegmentSource",
    "SEGMENTS",
    "ReferenceTable",
    "Brand",
    "VehicleModel",
    "ModelYear",
    "Price",
    "ReferenceBrand",
    "ReferenceModel",
    "ReferenceModelYear",
    "CrawlRun",
]
