"""
Sync repository: idempotent storage operations for the crawl engine.

Every write commits on its own, so an interrupted crawl keeps everything
written before the interruption and the next run resumes from the
checkpoints.

Upserts look a row up by its natural key and insert it only when absent;
existing rows are returned unchanged. The exceptions are Price (amount
updated in place when it changes) and the checkpoint mark operations.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import CrawlStatus, SegmentSource, SEGMENTS, utcnow
from models.catalog import ReferenceTable, Brand, VehicleModel, ModelYear
from models.price import Price
from models.checkpoint import ReferenceBrand, ReferenceModel, ReferenceModelYear
from models.crawl_run import CrawlRun
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# Query rows
# ============================================================================

@dataclass
class PendingBrand:
    """Reference-brand checkpoint whose models are not fetched yet"""
    checkpoint_id: int
    brand_id: int
    fipe_code: str
    name: str


@dataclass
class PendingModel:
    """Reference-model checkpoint whose model-years are not fetched yet"""
    checkpoint_id: int
    model_id: int
    fipe_code: str
    name: str
    brand_fipe_code: str
    brand_name: str


@dataclass
class PendingModelYear:
    """Reference-model-year checkpoint whose price is not fetched yet"""
    checkpoint_id: int
    model_year_id: int
    year: int
    fuel_code: int
    model_fipe_code: str
    model_name: str
    brand_fipe_code: str


@dataclass
class PendingCounts:
    brands: int = 0
    models: int = 0
    model_years: int = 0

    @property
    def total(self) -> int:
        return self.brands + self.models + self.model_years


@dataclass
class UnclassifiedModel:
    id: int
    brand_name: str
    model_name: str


class SyncRepository:
    """
    Storage operations used by the crawl orchestrator.

    Responsibilities:
    - Create-or-fetch for periods, brands, models, model-years and prices
    - Create-if-absent for the three checkpoint levels
    - Queries returning only pending checkpoints of a period
    - Checkpoint marking and force-mode reset
    - Aggregate counts, segment updates and the crawl run audit trail
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def rollback(self):
        await self.db.rollback()

    async def _get_or_create(self, entity, defaults: Optional[Dict[str, Any]] = None, **lookup) -> Tuple[Any, bool]:
        """Return (row, created) for the row matching `lookup`, inserting it if absent"""
        result = await self.db.execute(select(entity).filter_by(**lookup))
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing, False

        row = entity(**lookup, **(defaults or {}))
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another writer inserted the same natural key first
            await self.db.rollback()
            result = await self.db.execute(select(entity).filter_by(**lookup))
            return result.scalar_one(), False

        return row, True

    # ------------------------------------------------------------------
    # Reference periods
    # ------------------------------------------------------------------

    async def upsert_reference_period(self, code: int, month: int, year: int) -> ReferenceTable:
        period, _ = await self._get_or_create(ReferenceTable, defaults={"month": month, "year": year}, code=code)
        return period

    async def get_period_by_code(self, code: int) -> Optional[ReferenceTable]:
        result = await self.db.execute(select(ReferenceTable).where(ReferenceTable.code == code))
        return result.scalar_one_or_none()

    async def mark_period_crawled(self, period_id: int):
        await self.db.execute(
            update(ReferenceTable)
            .where(ReferenceTable.id == period_id)
            .values(crawled_at=utcnow())
        )
        await self.db.commit()

    # ------------------------------------------------------------------
    # Catalogue entities
    # ------------------------------------------------------------------

    async def upsert_brand(self, fipe_code: str, name: str) -> Brand:
        brand, _ = await self._get_or_create(Brand, defaults={"name": name}, fipe_code=fipe_code)
        return brand

    async def upsert_model(self, brand_id: int, fipe_code: str, name: str) -> Tuple[VehicleModel, bool]:
        """Returns (model, is_new); is_new is True only on the first sighting ever"""
        return await self._get_or_create(
            VehicleModel, defaults={"name": name}, brand_id=brand_id, fipe_code=fipe_code
        )

    async def upsert_model_year(self, model_id: int, year: int, fuel_code: int, fuel_name: str) -> ModelYear:
        model_year, _ = await self._get_or_create(
            ModelYear, defaults={"fuel_name": fuel_name}, model_id=model_id, year=year, fuel_code=fuel_code
        )
        return model_year

    async def upsert_price(
        self,
        model_year_id: int,
        reference_table_id: int,
        fipe_code: str,
        amount: str
    ) -> Tuple[Price, bool]:
        """
        Insert or update the price of a model-year in a period.

        Returns:
            (price, changed) where changed is True on insert or when the
            stored amount differed; crawled_at only moves when changed.
        """
        value = Decimal(amount)
        result = await self.db.execute(
            select(Price).where(
                Price.model_year_id == model_year_id,
                Price.reference_table_id == reference_table_id
            )
        )
        existing = result.scalar_one_or_none()

        if existing is not None:
            if Decimal(str(existing.price_brl)) == value:
                return existing, False
            logger.debug(
                f"Price changed for model_year_id={model_year_id}: "
                f"{existing.price_brl} -> {value}"
            )
            existing.price_brl = value
            existing.crawled_at = utcnow()
            await self.db.commit()
            return existing, True

        price, created = await self._get_or_create(
            Price,
            defaults={"fipe_code": fipe_code, "price_brl": value, "crawled_at": utcnow()},
            model_year_id=model_year_id,
            reference_table_id=reference_table_id,
        )
        return price, created

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def upsert_reference_brand(self, period_id: int, brand_id: int) -> ReferenceBrand:
        checkpoint, _ = await self._get_or_create(ReferenceBrand, reference_table_id=period_id, brand_id=brand_id)
        return checkpoint

    async def upsert_reference_model(self, period_id: int, model_id: int) -> ReferenceModel:
        checkpoint, _ = await self._get_or_create(ReferenceModel, reference_table_id=period_id, model_id=model_id)
        return checkpoint

    async def upsert_reference_model_year(self, period_id: int, model_year_id: int) -> ReferenceModelYear:
        checkpoint, _ = await self._get_or_create(
            ReferenceModelYear, reference_table_id=period_id, model_year_id=model_year_id
        )
        return checkpoint

    async def get_uncrawled_reference_brands(self, period_id: int) -> List[PendingBrand]:
        result = await self.db.execute(
            select(ReferenceBrand.id, Brand.id, Brand.fipe_code, Brand.name)
            .join(Brand, Brand.id == ReferenceBrand.brand_id)
            .where(
                ReferenceBrand.reference_table_id == period_id,
                ReferenceBrand.models_crawled_at.is_(None)
            )
            .order_by(ReferenceBrand.id)
        )
        return [PendingBrand(*row) for row in result.all()]

    async def get_uncrawled_reference_models(self, period_id: int) -> List[PendingModel]:
        result = await self.db.execute(
            select(
                ReferenceModel.id,
                VehicleModel.id,
                VehicleModel.fipe_code,
                VehicleModel.name,
                Brand.fipe_code,
                Brand.name,
            )
            .join(VehicleModel, VehicleModel.id == ReferenceModel.model_id)
            .join(Brand, Brand.id == VehicleModel.brand_id)
            .where(
                ReferenceModel.reference_table_id == period_id,
                ReferenceModel.years_crawled_at.is_(None)
            )
            .order_by(ReferenceModel.id)
        )
        return [PendingModel(*row) for row in result.all()]

    async def get_uncrawled_reference_model_years(self, period_id: int) -> List[PendingModelYear]:
        result = await self.db.execute(
            select(
                ReferenceModelYear.id,
                ModelYear.id,
                ModelYear.year,
                ModelYear.fuel_code,
                VehicleModel.fipe_code,
                VehicleModel.name,
                Brand.fipe_code,
            )
            .join(ModelYear, ModelYear.id == ReferenceModelYear.model_year_id)
            .join(VehicleModel, VehicleModel.id == ModelYear.model_id)
            .join(Brand, Brand.id == VehicleModel.brand_id)
            .where(
                ReferenceModelYear.reference_table_id == period_id,
                ReferenceModelYear.price_crawled_at.is_(None)
            )
            .order_by(ReferenceModelYear.id)
        )
        return [PendingModelYear(*row) for row in result.all()]

    async def _mark(self, entity, column, checkpoint_id: int):
        # Only pending rows are touched: an existing timestamp is never moved
        await self.db.execute(
            update(entity)
            .where(entity.id == checkpoint_id, column.is_(None))
            .values({column.key: utcnow()})
        )
        await self.db.commit()

    async def mark_reference_brand_crawled(self, checkpoint_id: int):
        await self._mark(ReferenceBrand, ReferenceBrand.models_crawled_at, checkpoint_id)

    async def mark_reference_model_crawled(self, checkpoint_id: int):
        await self._mark(ReferenceModel, ReferenceModel.years_crawled_at, checkpoint_id)

    async def mark_reference_model_year_crawled(self, checkpoint_id: int):
        await self._mark(ReferenceModelYear, ReferenceModelYear.price_crawled_at, checkpoint_id)

    async def clear_crawl_status(self, period_id: int):
        """Delete every checkpoint of a period; catalogue entities and prices stay"""
        for entity in (ReferenceModelYear, ReferenceModel, ReferenceBrand):
            await self.db.execute(delete(entity).where(entity.reference_table_id == period_id))
        await self.db.commit()
        logger.info(f"Cleared crawl status for reference_table_id={period_id}")

    async def count_pending(self, period_id: int) -> PendingCounts:
        async def _count(entity, column) -> int:
            result = await self.db.execute(
                select(func.count()).select_from(entity).where(
                    entity.reference_table_id == period_id,
                    column.is_(None)
                )
            )
            return result.scalar() or 0

        return PendingCounts(
            brands=await _count(ReferenceBrand, ReferenceBrand.models_crawled_at),
            models=await _count(ReferenceModel, ReferenceModel.years_crawled_at),
            model_years=await _count(ReferenceModelYear, ReferenceModelYear.price_crawled_at),
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def get_stats(self) -> Dict[str, int]:
        counts = {}
        for key, entity in (
            ("references", ReferenceTable),
            ("brands", Brand),
            ("models", VehicleModel),
            ("model_years", ModelYear),
            ("prices", Price),
        ):
            result = await self.db.execute(select(func.count()).select_from(entity))
            counts[key] = result.scalar() or 0
        return counts

    # ------------------------------------------------------------------
    # Segment classification
    # ------------------------------------------------------------------

    async def get_models_without_segment(self) -> List[UnclassifiedModel]:
        result = await self.db.execute(
            select(VehicleModel.id, Brand.name, VehicleModel.name)
            .join(Brand, Brand.id == VehicleModel.brand_id)
            .where(VehicleModel.segment.is_(None))
            .order_by(VehicleModel.id)
        )
        return [UnclassifiedModel(*row) for row in result.all()]

    async def update_model_segment(self, model_id: int, segment: str, source: SegmentSource):
        if segment not in SEGMENTS:
            raise ValueError(f"Unknown segment: {segment!r}")
        await self.db.execute(
            update(VehicleModel)
            .where(VehicleModel.id == model_id)
            .values(segment=segment, segment_source=SegmentSource(source).value)
        )
        await self.db.commit()

    # ------------------------------------------------------------------
    # Crawl runs
    # ------------------------------------------------------------------

    async def start_crawl_run(self, reference_code: int, forced: bool = False) -> CrawlRun:
        run = CrawlRun(
            reference_code=reference_code,
            status=CrawlStatus.RUNNING,
            forced=forced,
            started_at=utcnow(),
        )
        self.db.add(run)
        await self.db.commit()
        return run

    async def complete_crawl_run(
        self,
        run: CrawlRun,
        status: CrawlStatus,
        counters: Optional[Dict[str, int]] = None,
        error_message: Optional[str] = None
    ):
        # Attributes are expired after a rollback; reload before touching them
        await self.db.refresh(run)
        run.status = status
        run.completed_at = utcnow()
        run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
        for key, value in (counters or {}).items():
            setattr(run, key, value)
        run.error_message = error_message
        await self.db.commit()

    async def get_recent_crawl_runs(self, limit: int = 10) -> List[CrawlRun]:
        result = await self.db.execute(
            select(CrawlRun)
            .order_by(CrawlRun.started_at.desc(), CrawlRun.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
