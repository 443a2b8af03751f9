"""
fipe-sync command line interface.

Commands:
    crawl     Crawl reference periods (default: current year)
    status    Print aggregate counts and recent crawl runs
    classify  Assign segments to models that have none
    init-db   Create the database tables

Examples:
    fipe-sync crawl -y 2020-2023 -M 1,6
    fipe-sync crawl -r 328 -b 59 -m 5940 --classify
    fipe-sync classify --dry-run
"""

import argparse
import asyncio
import sys
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from classifier.segment_classifier import SegmentClassifier
from classifier.sweep import classify_pending_models
from core.config import settings
from core.database import get_engine, get_session_maker, init_models
from core.exceptions import PersistenceError
from core.logging import setup_logging
from crawler.orchestrator import CrawlOptions, run_crawl
from crawler.repository import SyncRepository
import logging

logger = logging.getLogger(__name__)


def parse_number_list(value: str) -> List[int]:
    """
    Parse "2023", "2020-2023" or "1,3,6" (parts may be combined) into a
    sorted list without duplicates.
    """
    numbers = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                start, end = (int(p) for p in part.split("-", 1))
                if start > end:
                    raise argparse.ArgumentTypeError(f"Invalid range: {part!r}")
                numbers.update(range(start, end + 1))
            else:
                numbers.add(int(part))
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid number list: {value!r}")
    if not numbers:
        raise argparse.ArgumentTypeError(f"Invalid number list: {value!r}")
    return sorted(numbers)


def parse_code_list(value: str) -> List[str]:
    codes = [c.strip() for c in value.split(",") if c.strip()]
    if not codes:
        raise argparse.ArgumentTypeError(f"Invalid code list: {value!r}")
    return codes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fipe-sync", description="FIPE vehicle price sync")
    commands = parser.add_subparsers(dest="command", required=True)

    crawl = commands.add_parser("crawl", help="Crawl reference periods")
    crawl.add_argument("-r", "--reference", type=int, help="Reference table code")
    crawl.add_argument("-y", "--years", type=parse_number_list, help="Years: 2023, 2020-2023 or 2021,2023")
    crawl.add_argument("-M", "--months", type=parse_number_list, help="Months: 1-6 or 1,3,6")
    crawl.add_argument("-b", "--brand", type=parse_code_list, help="Brand code(s), comma separated")
    crawl.add_argument("-m", "--model", type=parse_code_list, help="Model code(s), requires --brand")
    crawl.add_argument("-c", "--classify", action="store_true", help="Classify new models")
    crawl.add_argument("-f", "--force", action="store_true", help="Reset checkpoints before crawling")
    crawl.add_argument(
        "--require-complete",
        action="store_true",
        help="Mark a period crawled only when nothing is pending",
    )

    commands.add_parser("status", help="Show database statistics")

    classify = commands.add_parser("classify", help="Classify models without a segment")
    classify.add_argument("-n", "--dry-run", action="store_true", help="Do not save results")

    commands.add_parser("init-db", help="Create database tables")
    return parser


def build_options(args: argparse.Namespace) -> CrawlOptions:
    return CrawlOptions(
        reference_code=args.reference,
        years=args.years,
        months=args.months,
        brand_codes=args.brand or settings.brand_allowlist or None,
        model_codes=args.model,
        classify=args.classify,
        force=args.force,
        require_complete=args.require_complete or settings.REQUIRE_COMPLETE_PERIOD,
    )


# ============================================================================
# Commands
# ============================================================================

async def crawl_command(args: argparse.Namespace, session_maker: async_sessionmaker):
    summary = await run_crawl(build_options(args), session_maker=session_maker, progress=print)
    for period in summary.periods:
        state = "crawled" if period.marked_crawled else f"{period.pending.total} pending"
        print(
            f"{period.label}: {period.prices_fetched} prices, "
            f"{period.failures} failures ({state})"
        )


async def status_command(args: argparse.Namespace, session_maker: async_sessionmaker):
    async with session_maker() as session:
        repository = SyncRepository(session)
        stats = await repository.get_stats()
        runs = await repository.get_recent_crawl_runs(limit=5)

    print("Database statistics:")
    print(f"  References: {stats['references']}")
    print(f"  Brands: {stats['brands']}")
    print(f"  Models: {stats['models']}")
    print(f"  Model years: {stats['model_years']}")
    print(f"  Prices: {stats['prices']}")

    if runs:
        print("Recent crawl runs:")
        for run in runs:
            print(
                f"  {run.started_at:%Y-%m-%d %H:%M} ref={run.reference_code} "
                f"status={run.status.value} prices={run.prices_fetched} failed={run.prices_failed}"
            )


async def classify_command(args: argparse.Namespace, session_maker: async_sessionmaker):
    async with session_maker() as session:
        sweep = await classify_pending_models(SyncRepository(session), SegmentClassifier(), dry_run=args.dry_run)

    if args.dry_run:
        for result in sweep.results:
            print(f"  model {result.id}: {result.segment or '-'}")
    print(f"Classified {sweep.classified}/{sweep.total} models")


async def init_db_command(args: argparse.Namespace, session_maker: async_sessionmaker):
    await init_models(session_maker.kw.get("bind"))


COMMANDS = {
    "crawl": crawl_command,
    "status": status_command,
    "classify": classify_command,
    "init-db": init_db_command,
}


async def dispatch(args: argparse.Namespace, session_maker: Optional[async_sessionmaker] = None) -> int:
    """Run a parsed command; returns the process exit status"""
    owns_engine = session_maker is None
    session_maker = session_maker or get_session_maker()
    try:
        await COMMANDS[args.command](args, session_maker)
        return 0
    except SQLAlchemyError as e:
        error = PersistenceError("Database operation failed", original_exception=e)
        logger.error(f"{args.command} failed: {error}")
        return 1
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        if owns_engine:
            await get_engine().dispose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "model", None) and not args.brand:
        parser.error("--model requires --brand")

    setup_logging()
    return asyncio.run(dispatch(args))


if __name__ == "__main__":
    sys.exit(main())
