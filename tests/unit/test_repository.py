"""
Unit tests for the sync repository
"""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select, func
from models import Price, ReferenceBrand, ReferenceModel, ReferenceModelYear, VehicleModel
from models.base import CrawlStatus, SegmentSource


async def _seed_catalogue(repository):
    """One period with a brand, a model and a model-year"""
    period = await repository.upsert_reference_period(328, 12, 2025)
    brand = await repository.upsert_brand("21", "Fiat")
    model, _ = await repository.upsert_model(brand.id, "4828", "Uno Mille 1.0 Fire")
    model_year = await repository.upsert_model_year(model.id, 2020, 1, "2020 Gasolina")
    return period, brand, model, model_year


async def _count(session, entity) -> int:
    result = await session.execute(select(func.count()).select_from(entity))
    return result.scalar()


class TestUpserts:
    """Test natural-key upserts"""

    @pytest.mark.asyncio
    async def test_upsert_returns_existing_row_unchanged(self, repository):
        first = await repository.upsert_brand("21", "Fiat")
        second = await repository.upsert_brand("21", "Renamed")

        assert second.id == first.id
        assert second.name == "Fiat"

    @pytest.mark.asyncio
    async def test_upsert_model_reports_new_only_once(self, repository):
        brand = await repository.upsert_brand("21", "Fiat")

        _, is_new = await repository.upsert_model(brand.id, "4828", "Uno")
        _, is_new_again = await repository.upsert_model(brand.id, "4828", "Uno")

        assert is_new is True
        assert is_new_again is False

    @pytest.mark.asyncio
    async def test_same_model_code_under_other_brand_is_distinct(self, repository, db_session):
        fiat = await repository.upsert_brand("21", "Fiat")
        vw = await repository.upsert_brand("59", "VW")

        await repository.upsert_model(fiat.id, "100", "A")
        await repository.upsert_model(vw.id, "100", "B")

        assert await _count(db_session, VehicleModel) == 2

    @pytest.mark.asyncio
    async def test_period_lookup(self, repository):
        period = await repository.upsert_reference_period(328, 12, 2025)

        assert (await repository.get_period_by_code(328)).id == period.id
        assert await repository.get_period_by_code(999) is None

    @pytest.mark.asyncio
    async def test_price_insert_then_unchanged(self, repository, db_session):
        period, _, _, model_year = await _seed_catalogue(repository)

        price, changed = await repository.upsert_price(model_year.id, period.id, "001004-9", "40000.00")
        crawled_at = price.crawled_at
        _, changed_again = await repository.upsert_price(model_year.id, period.id, "001004-9", "40000.00")

        assert changed is True
        assert changed_again is False
        assert price.crawled_at == crawled_at
        assert await _count(db_session, Price) == 1

    @pytest.mark.asyncio
    async def test_price_updated_in_place(self, repository, db_session):
        period, _, _, model_year = await _seed_catalogue(repository)

        first, _ = await repository.upsert_price(model_year.id, period.id, "001004-9", "40000.00")
        stale = datetime(2020, 1, 1)
        first.crawled_at = stale
        await db_session.commit()

        second, changed = await repository.upsert_price(model_year.id, period.id, "001004-9", "41500.50")

        assert changed is True
        assert second.id == first.id
        assert Decimal(str(second.price_brl)) == Decimal("41500.50")
        assert second.crawled_at > stale
        assert await _count(db_session, Price) == 1


class TestCheckpoints:
    """Test checkpoint queries, marking and reset"""

    @pytest.mark.asyncio
    async def test_pending_queries_join_parent_codes(self, repository):
        period, brand, model, model_year = await _seed_catalogue(repository)
        await repository.upsert_reference_brand(period.id, brand.id)
        await repository.upsert_reference_model(period.id, model.id)
        await repository.upsert_reference_model_year(period.id, model_year.id)

        [pending_brand] = await repository.get_uncrawled_reference_brands(period.id)
        [pending_model] = await repository.get_uncrawled_reference_models(period.id)
        [pending_year] = await repository.get_uncrawled_reference_model_years(period.id)

        assert (pending_brand.fipe_code, pending_brand.name) == ("21", "Fiat")
        assert (pending_model.fipe_code, pending_model.brand_fipe_code) == ("4828", "21")
        assert pending_year.model_fipe_code == "4828"
        assert pending_year.brand_fipe_code == "21"
        assert (pending_year.year, pending_year.fuel_code) == (2020, 1)

    @pytest.mark.asyncio
    async def test_checkpoint_upsert_is_idempotent(self, repository, db_session):
        period, brand, _, _ = await _seed_catalogue(repository)

        first = await repository.upsert_reference_brand(period.id, brand.id)
        second = await repository.upsert_reference_brand(period.id, brand.id)

        assert first.id == second.id
        assert await _count(db_session, ReferenceBrand) == 1

    @pytest.mark.asyncio
    async def test_mark_removes_from_pending(self, repository):
        period, brand, _, _ = await _seed_catalogue(repository)
        checkpoint = await repository.upsert_reference_brand(period.id, brand.id)

        await repository.mark_reference_brand_crawled(checkpoint.id)

        assert await repository.get_uncrawled_reference_brands(period.id) == []

    @pytest.mark.asyncio
    async def test_mark_is_monotonic(self, repository, session_maker):
        period, _, model, _ = await _seed_catalogue(repository)
        checkpoint = await repository.upsert_reference_model(period.id, model.id)

        await repository.mark_reference_model_crawled(checkpoint.id)
        async with session_maker() as session:
            first = (await session.get(ReferenceModel, checkpoint.id)).years_crawled_at

        await repository.mark_reference_model_crawled(checkpoint.id)
        async with session_maker() as session:
            second = (await session.get(ReferenceModel, checkpoint.id)).years_crawled_at

        assert first is not None
        assert second == first

    @pytest.mark.asyncio
    async def test_clear_crawl_status_keeps_entities(self, repository, db_session):
        period, brand, model, model_year = await _seed_catalogue(repository)
        await repository.upsert_reference_brand(period.id, brand.id)
        await repository.upsert_reference_model(period.id, model.id)
        await repository.upsert_reference_model_year(period.id, model_year.id)
        await repository.upsert_price(model_year.id, period.id, "001004-9", "40000.00")

        await repository.clear_crawl_status(period.id)

        assert await _count(db_session, ReferenceBrand) == 0
        assert await _count(db_session, ReferenceModel) == 0
        assert await _count(db_session, ReferenceModelYear) == 0
        stats = await repository.get_stats()
        assert stats == {"references": 1, "brands": 1, "models": 1, "model_years": 1, "prices": 1}

    @pytest.mark.asyncio
    async def test_clear_only_touches_its_period(self, repository):
        period, brand, _, _ = await _seed_catalogue(repository)
        other = await repository.upsert_reference_period(327, 11, 2025)
        await repository.upsert_reference_brand(period.id, brand.id)
        await repository.upsert_reference_brand(other.id, brand.id)

        await repository.clear_crawl_status(period.id)

        assert len(await repository.get_uncrawled_reference_brands(other.id)) == 1

    @pytest.mark.asyncio
    async def test_count_pending(self, repository):
        period, brand, model, model_year = await _seed_catalogue(repository)
        brand_cp = await repository.upsert_reference_brand(period.id, brand.id)
        await repository.upsert_reference_model(period.id, model.id)
        await repository.upsert_reference_model_year(period.id, model_year.id)
        await repository.mark_reference_brand_crawled(brand_cp.id)

        pending = await repository.count_pending(period.id)

        assert (pending.brands, pending.models, pending.model_years) == (0, 1, 1)
        assert pending.total == 2


class TestSegmentsAndRuns:
    """Test classification storage and crawl run audit rows"""

    @pytest.mark.asyncio
    async def test_models_without_segment(self, repository, session_maker):
        _, _, model, _ = await _seed_catalogue(repository)

        [pending] = await repository.get_models_without_segment()
        assert (pending.id, pending.brand_name, pending.model_name) == (model.id, "Fiat", "Uno Mille 1.0 Fire")

        await repository.update_model_segment(model.id, "Hatch", SegmentSource.AI)

        assert await repository.get_models_without_segment() == []
        async with session_maker() as session:
            stored = await session.get(VehicleModel, model.id)
        assert stored.segment == "Hatch"
        assert stored.segment_source == "ai"

    @pytest.mark.asyncio
    async def test_unknown_segment_rejected(self, repository):
        _, _, model, _ = await _seed_catalogue(repository)

        with pytest.raises(ValueError):
            await repository.update_model_segment(model.id, "Spaceship", SegmentSource.MANUAL)

    @pytest.mark.asyncio
    async def test_crawl_run_lifecycle(self, repository):
        run = await repository.start_crawl_run(328, forced=True)
        assert run.status == CrawlStatus.RUNNING

        await repository.complete_crawl_run(
            run, CrawlStatus.PARTIAL, {"prices_fetched": 10, "prices_failed": 2}
        )

        [latest] = await repository.get_recent_crawl_runs(limit=5)
        assert latest.run_id == run.run_id
        assert latest.status == CrawlStatus.PARTIAL
        assert latest.forced is True
        assert latest.prices_fetched == 10
        assert latest.prices_failed == 2
        assert latest.completed_at is not None
        assert latest.duration_seconds >= 0
