"""
Out-of-band classification of models the crawl left without a segment
"""

from dataclasses import dataclass, field
from typing import List

from classifier.segment_classifier import ClassificationResult, SegmentClassifier
from crawler.repository import SyncRepository
from models.base import SegmentSource
import logging

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    total: int = 0
    classified: int = 0
    unresolved: int = 0
    results: List[ClassificationResult] = field(default_factory=list)


async def classify_pending_models(
    repository: SyncRepository,
    classifier: SegmentClassifier,
    dry_run: bool = False
) -> SweepResult:
    """
    Classify every model without a segment.

    With dry_run the classifications are returned but not persisted.
    """
    pending = await repository.get_models_without_segment()
    sweep = SweepResult(total=len(pending))
    if not pending:
        logger.info("All models already have a segment")
        return sweep

    logger.info(f"Classifying {len(pending)} models{' (dry run)' if dry_run else ''}")
    sweep.results = await classifier.classify_batch(pending)

    for result in sweep.results:
        if result.segment is None:
            sweep.unresolved += 1
            continue
        sweep.classified += 1
        if not dry_run:
            await repository.update_model_segment(result.id, result.segment, SegmentSource.AI)

    logger.info(f"Classified {sweep.classified}/{sweep.total} models ({sweep.unresolved} unresolved)")
    return sweep
