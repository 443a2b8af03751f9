"""
Crawl orchestrator - checkpointed traversal of the FIPE price tree.

Per reference period:

    upsert period -> [force reset] -> Phase 1: brands -> Phase 2: models
        -> Phase 3: model-years -> Phase 4: prices -> completion policy

Phases 2-4 only act on checkpoints whose crawled timestamp is still null,
so rerunning after a crash or a partial failure skips finished work and
retries only what is pending or newly discovered.

Error boundaries:
- Upstream failures for one item (UpstreamError family) become an error
  outcome, are logged, and leave that item's checkpoint pending
- Failing to list periods or brands, and any persistence error, ends the
  period: its CrawlRun is marked failed and the exception propagates
"""

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, NamedTuple, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from classifier.segment_classifier import SegmentClassifier
from core.database import get_session_maker
from core.exceptions import CrawlError, UpstreamError
from crawler.parsing import parse_price, parse_reference_month, parse_year_value
from crawler.repository import PendingCounts, SyncRepository
from fipe.client import FipeClient
from models.base import CrawlStatus, SegmentSource
from schemas.fipe import ReferenceTablePayload
import logging

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]


class PeriodRef(NamedTuple):
    """Identifiers of the period being crawled, detached from the session"""
    id: int
    code: int


# ============================================================================
# Run configuration and results
# ============================================================================

@dataclass
class CrawlOptions:
    """
    Attributes:
        reference_code: Crawl exactly this period (wins over years/months)
        years: Period years to crawl (default: current calendar year)
        months: Optional month filter applied with years
        brand_codes: Only link these brands in phase 1
        model_codes: Only process these models in phase 2 (leaves brands pending)
        classify: Classify brand-new models during phase 2
        force: Delete the period's checkpoints before crawling
        require_complete: Mark the period crawled only with nothing pending
    """
    reference_code: Optional[int] = None
    years: Optional[List[int]] = None
    months: Optional[List[int]] = None
    brand_codes: Optional[List[str]] = None
    model_codes: Optional[List[str]] = None
    classify: bool = False
    force: bool = False
    require_complete: bool = False


@dataclass
class ItemOutcome:
    """Result of processing one item of a phase"""
    key: str
    ok: bool
    error: Optional[CrawlError] = None

    @classmethod
    def success(cls, key: str) -> "ItemOutcome":
        return cls(key=key, ok=True)

    @classmethod
    def failure(cls, key: str, error: CrawlError) -> "ItemOutcome":
        return cls(key=key, ok=False, error=error)


@dataclass
class PeriodResult:
    reference_code: int
    label: str
    brands_linked: int = 0
    brands_crawled: int = 0
    brands_failed: int = 0
    models_discovered: int = 0
    models_classified: int = 0
    models_crawled: int = 0
    models_failed: int = 0
    prices_fetched: int = 0
    prices_changed: int = 0
    prices_failed: int = 0
    pending: PendingCounts = field(default_factory=PendingCounts)
    marked_crawled: bool = False
    duration_seconds: float = 0.0

    @property
    def failures(self) -> int:
        return self.brands_failed + self.models_failed + self.prices_failed

    def counters(self) -> dict:
        """Columns persisted on the period's CrawlRun"""
        return {
            "brands_linked": self.brands_linked,
            "brands_crawled": self.brands_crawled,
            "brands_failed": self.brands_failed,
            "models_crawled": self.models_crawled,
            "models_failed": self.models_failed,
            "prices_fetched": self.prices_fetched,
            "prices_failed": self.prices_failed,
            "pending_brands": self.pending.brands,
            "pending_models": self.pending.models,
            "pending_model_years": self.pending.model_years,
        }


@dataclass
class CrawlSummary:
    periods: List[PeriodResult] = field(default_factory=list)

    @property
    def prices_fetched(self) -> int:
        return sum(p.prices_fetched for p in self.periods)

    @property
    def failures(self) -> int:
        return sum(p.failures for p in self.periods)


# ============================================================================
# Orchestrator
# ============================================================================

class CrawlOrchestrator:
    """
    Drives the four-phase crawl of each selected reference period.

    Responsibilities:
    - Select periods from the upstream catalogue
    - Run the phases in order, each over pending checkpoints only
    - Keep per-item failures local to the item
    - Apply the period completion policy
    - Record a CrawlRun per period
    """

    def __init__(
        self,
        client: FipeClient,
        repository: SyncRepository,
        classifier: Optional[SegmentClassifier] = None,
        progress: Optional[ProgressSink] = None,
        today: Optional[date] = None,
    ):
        self.client = client
        self.repository = repository
        self.classifier = classifier
        self.progress = progress or logger.info
        self.today = today

    # ------------------------------------------------------------------
    # Period selection
    # ------------------------------------------------------------------

    async def select_periods(self, options: CrawlOptions) -> List[ReferenceTablePayload]:
        """
        Fetch the period catalogue and keep the periods this run should crawl.

        Raises:
            UpstreamError: The catalogue could not be fetched
            PeriodLabelError: An explicitly requested period has a bad label
        """
        catalogue = await self.client.list_periods()

        if options.reference_code is not None:
            selected = [p for p in catalogue if p.code == options.reference_code]
            for period in selected:
                # Fails loudly: the period row cannot be stored without a month
                parse_reference_month(period.label)
            return selected

        years = set(options.years or [(self.today or date.today()).year])
        months = set(options.months or [])

        selected = []
        for period in catalogue:
            try:
                month, year = parse_reference_month(period.label)
            except CrawlError as e:
                logger.warning(f"Skipping period {period.code}: {e.message}")
                continue
            if year not in years:
                continue
            if months and month not in months:
                continue
            selected.append(period)
        return selected

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, options: Optional[CrawlOptions] = None) -> CrawlSummary:
        options = options or CrawlOptions()
        summary = CrawlSummary()

        periods = await self.select_periods(options)
        if not periods:
            self.progress("No reference periods match the selection")
            return summary

        self.progress(f"Crawling {len(periods)} reference period(s)")
        for period in periods:
            summary.periods.append(await self.crawl_period(period, options))

        self.progress(
            f"Crawl finished: {len(summary.periods)} period(s), "
            f"{summary.prices_fetched} prices, {summary.failures} failures"
        )
        return summary

    async def crawl_period(self, payload: ReferenceTablePayload, options: CrawlOptions) -> PeriodResult:
        """Run the four phases for one period and record its CrawlRun"""
        label = payload.label.strip()
        result = PeriodResult(reference_code=payload.code, label=label)
        started = time.monotonic()

        run = await self.repository.start_crawl_run(payload.code, forced=options.force)
        run_id = run.run_id
        self.progress(f"Reference {label} (code {payload.code})")

        try:
            month, year = parse_reference_month(payload.label)
            row = await self.repository.upsert_reference_period(payload.code, month, year)
            period = PeriodRef(id=row.id, code=row.code)

            if options.force:
                self.progress("  Force mode: clearing checkpoints")
                await self.repository.clear_crawl_status(period.id)

            await self._crawl_brands(period, options, result)
            await self._crawl_models(period, options, result)
            await self._crawl_model_years(period, result)
            await self._crawl_prices(period, result)

            result.pending = await self.repository.count_pending(period.id)
            if options.require_complete and result.pending.total > 0:
                self.progress(
                    f"  {result.pending.total} checkpoint(s) still pending, "
                    f"period left open"
                )
            else:
                await self.repository.mark_period_crawled(period.id)
                result.marked_crawled = True

        except Exception as e:
            result.duration_seconds = time.monotonic() - started
            logger.error(f"Crawl of reference {payload.code} failed: {e}")
            try:
                # The session may hold a failed transaction
                await self.repository.rollback()
                await self.repository.complete_crawl_run(
                    run, CrawlStatus.FAILED, result.counters(), error_message=str(e)[:1000]
                )
            except Exception as audit_error:
                logger.error(f"Could not record failed crawl run {run_id}: {audit_error}")
            raise

        result.duration_seconds = time.monotonic() - started
        status = CrawlStatus.PARTIAL if result.failures else CrawlStatus.SUCCESS
        await self.repository.complete_crawl_run(run, status, result.counters())

        self.progress(
            f"  Done in {result.duration_seconds:.1f}s: {result.brands_crawled} brands, "
            f"{result.models_crawled} models, {result.prices_fetched} prices "
            f"({result.failures} failures)"
        )
        return result

    # ------------------------------------------------------------------
    # Phase 1: brands
    # ------------------------------------------------------------------

    async def _crawl_brands(self, period: PeriodRef, options: CrawlOptions, result: PeriodResult):
        self.progress("  Phase 1: brands")
        brands = await self.client.list_brands(period.code)

        if options.brand_codes:
            allowed = set(options.brand_codes)
            brands = [b for b in brands if b.code in allowed]

        for payload in brands:
            brand = await self.repository.upsert_brand(payload.code, payload.label)
            await self.repository.upsert_reference_brand(period.id, brand.id)
            result.brands_linked += 1

        self.progress(f"    Linked {result.brands_linked} brands")

    # ------------------------------------------------------------------
    # Phase 2: models
    # ------------------------------------------------------------------

    async def _crawl_models(self, period: PeriodRef, options: CrawlOptions, result: PeriodResult):
        pending = await self.repository.get_uncrawled_reference_brands(period.id)
        if not pending:
            return
        self.progress(f"  Phase 2: models for {len(pending)} brands")

        model_filter = set(options.model_codes or [])
        classifier = self.classifier if options.classify else None

        for brand in pending:
            outcome = await self._crawl_brand_models(period, brand, model_filter, classifier, result)
            if outcome.ok:
                result.brands_crawled += 1
            else:
                result.brands_failed += 1
                logger.warning(f"Models of brand {brand.name} ({brand.fipe_code}) failed: {outcome.error}")
                self.progress(f"    Error crawling models for {brand.name}")

    async def _crawl_brand_models(self, period, brand, model_filter, classifier, result) -> ItemOutcome:
        try:
            response = await self.client.list_models(period.code, brand.fipe_code)
        except UpstreamError as e:
            return ItemOutcome.failure(brand.fipe_code, e)

        models = response.models
        if model_filter:
            models = [m for m in models if m.code in model_filter]

        for payload in models:
            model, is_new = await self.repository.upsert_model(brand.brand_id, payload.code, payload.label)
            await self.repository.upsert_reference_model(period.id, model.id)
            if is_new:
                result.models_discovered += 1
                if classifier is not None:
                    segment = await classifier.classify(brand.name, payload.label)
                    if segment is not None:
                        await self.repository.update_model_segment(model.id, segment, SegmentSource.AI)
                        result.models_classified += 1

        # A filtered fetch is partial, the brand stays eligible for a full one
        if not model_filter:
            await self.repository.mark_reference_brand_crawled(brand.checkpoint_id)

        self.progress(f"    {brand.name}: {len(models)} models")
        return ItemOutcome.success(brand.fipe_code)

    # ------------------------------------------------------------------
    # Phase 3: model-years
    # ------------------------------------------------------------------

    async def _crawl_model_years(self, period: PeriodRef, result: PeriodResult):
        pending = await self.repository.get_uncrawled_reference_models(period.id)
        if not pending:
            return
        self.progress(f"  Phase 3: model-years for {len(pending)} models")

        for model in pending:
            outcome = await self._crawl_model_model_years(period, model)
            if outcome.ok:
                result.models_crawled += 1
            else:
                result.models_failed += 1
                logger.warning(f"Years of model {model.name} ({model.fipe_code}) failed: {outcome.error}")

        self.progress(f"    Crawled years for {result.models_crawled} models ({result.models_failed} failed)")

    async def _crawl_model_model_years(self, period, model) -> ItemOutcome:
        key = f"{model.brand_fipe_code}/{model.fipe_code}"
        try:
            years = await self.client.list_model_years(period.code, model.brand_fipe_code, model.fipe_code)
            parsed = [(parse_year_value(y.value), y.label) for y in years]
        except UpstreamError as e:
            return ItemOutcome.failure(key, e)

        for year_fuel, label in parsed:
            model_year = await self.repository.upsert_model_year(
                model.model_id, year_fuel.year, year_fuel.fuel_code, label
            )
            await self.repository.upsert_reference_model_year(period.id, model_year.id)

        await self.repository.mark_reference_model_crawled(model.checkpoint_id)
        return ItemOutcome.success(key)

    # ------------------------------------------------------------------
    # Phase 4: prices
    # ------------------------------------------------------------------

    async def _crawl_prices(self, period: PeriodRef, result: PeriodResult):
        pending = await self.repository.get_uncrawled_reference_model_years(period.id)
        if not pending:
            return
        self.progress(f"  Phase 4: prices for {len(pending)} model-years")

        for index, model_year in enumerate(pending, start=1):
            outcome = await self._crawl_price(period, model_year, result)
            if outcome.ok:
                result.prices_fetched += 1
            else:
                result.prices_failed += 1
                logger.warning(f"Price of {outcome.key} failed: {outcome.error}")

            if index % 100 == 0:
                self.progress(f"    Progress: {index}/{len(pending)} ({result.prices_failed} failed)")

        self.progress(f"    Fetched {result.prices_fetched} prices ({result.prices_failed} failed)")

    async def _crawl_price(self, period, model_year, result: PeriodResult) -> ItemOutcome:
        key = f"{model_year.brand_fipe_code}/{model_year.model_fipe_code}/{model_year.year}-{model_year.fuel_code}"
        try:
            payload = await self.client.get_price(
                period.code,
                model_year.brand_fipe_code,
                model_year.model_fipe_code,
                model_year.year,
                model_year.fuel_code,
            )
            amount = parse_price(payload.amount)
        except UpstreamError as e:
            return ItemOutcome.failure(key, e)

        _, changed = await self.repository.upsert_price(
            model_year.model_year_id, period.id, payload.fipe_code, amount
        )
        if changed:
            result.prices_changed += 1

        await self.repository.mark_reference_model_year_crawled(model_year.checkpoint_id)
        return ItemOutcome.success(key)


# ============================================================================
# Entry point shared by the CLI and the scheduler
# ============================================================================

async def run_crawl(
    options: CrawlOptions,
    session_maker: Optional[async_sessionmaker] = None,
    client: Optional[FipeClient] = None,
    classifier: Optional[SegmentClassifier] = None,
    progress: Optional[ProgressSink] = None,
) -> CrawlSummary:
    """Open a session and a FIPE client, then run one crawl"""
    session_maker = session_maker or get_session_maker()
    owns_client = client is None
    client = client or FipeClient()
    if classifier is None and options.classify:
        classifier = SegmentClassifier()

    try:
        async with session_maker() as session:
            orchestrator = CrawlOrchestrator(
                client, SyncRepository(session), classifier=classifier, progress=progress
            )
            return await orchestrator.run(options)
    finally:
        if owns_client:
            await client.aclose()
