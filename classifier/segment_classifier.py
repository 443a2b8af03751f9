"""
Segment classifier - assigns a market segment to a vehicle model via Claude.

Best-effort enrichment: every public method returns None (per item) instead
of raising, so a crawl never fails because classification did.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import anthropic

from core.config import settings
from core.exceptions import ClassificationFailure
from models.base import SEGMENTS
import logging

logger = logging.getLogger(__name__)

BATCH_PAUSE_SECONDS = 0.5

SYSTEM_PROMPT = """You are a Brazilian vehicle classification expert. Your task is to classify car models into segments based on their brand and model name.

Available segments (use EXACTLY these values):
{segments}

Rules:
- Respond with ONLY the segment name, nothing else
- If uncertain, make your best guess based on the model name
- "Perua" is the Brazilian term for station wagon
- "Caminhão Leve" is for light commercial trucks/vans with cargo bed
- "Van/Utilitário" is for passenger vans and utility vehicles""".format(
    segments="\n".join(f"- {s}" for s in SEGMENTS)
)

_NUMBER_PREFIX = re.compile(r"^\s*\d+[.)]\s*")


@dataclass
class ClassificationResult:
    id: int
    segment: Optional[str]


def match_segment(text: str) -> Optional[str]:
    """Map a model reply to a known segment, case-insensitively"""
    candidate = _NUMBER_PREFIX.sub("", text or "").strip().lower()
    for segment in SEGMENTS:
        if segment.lower() == candidate:
            return segment
    return None


class SegmentClassifier:
    """
    Classifies vehicle models into SEGMENTS using the Anthropic Messages API.

    Without an API key the classifier is disabled and returns None for
    every item.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        client: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        self.model = model or settings.CLASSIFIER_MODEL
        self.batch_size = batch_size or settings.CLASSIFIER_BATCH_SIZE
        self._client = client
        self._sleep = sleep
        self._warned = False

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(self.api_key)

    @property
    def client(self):
        """Lazy-load the Anthropic client"""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    def _warn_disabled(self):
        if not self._warned:
            logger.warning("ANTHROPIC_API_KEY not set, skipping classification")
            self._warned = True

    async def _complete(self, content: str, max_tokens: int) -> str:
        """
        Send one prompt and return the text reply.

        Raises:
            ClassificationFailure: API error or non-text reply
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIError as e:
            raise ClassificationFailure(
                "Anthropic API call failed",
                context={"model": self.model},
                original_exception=e,
            )

        if not response.content or getattr(response.content[0], "type", None) != "text":
            raise ClassificationFailure("Unexpected response type", context={"model": self.model})
        return response.content[0].text

    async def classify(self, brand_name: str, model_name: str) -> Optional[str]:
        """Classify one model; None when disabled, failed or unparseable"""
        if not self.enabled:
            self._warn_disabled()
            return None

        try:
            text = await self._complete(f"Classify: Brand: {brand_name}, Model: {model_name}", max_tokens=50)
        except ClassificationFailure as e:
            logger.error(f"Error classifying {brand_name} {model_name}: {e}")
            return None

        segment = match_segment(text)
        if segment is None:
            logger.warning(f"Could not parse segment for {brand_name} {model_name}: {text.strip()!r}")
        return segment

    async def classify_batch(self, items: Sequence[Any]) -> List[ClassificationResult]:
        """
        Classify many models, one request per batch.

        Args:
            items: Objects with id, brand_name and model_name attributes

        Returns:
            One ClassificationResult per item, in input order. A failed
            batch yields None for its own items only.
        """
        if not self.enabled:
            self._warn_disabled()
            return [ClassificationResult(id=item.id, segment=None) for item in items]

        results: List[ClassificationResult] = []
        for start in range(0, len(items), self.batch_size):
            batch = items[start:start + self.batch_size]
            prompt = "\n".join(
                f"{i + 1}. Brand: {item.brand_name}, Model: {item.model_name}"
                for i, item in enumerate(batch)
            )

            try:
                text = await self._complete(
                    "Classify each vehicle. Respond with one segment per line, "
                    f"numbered to match:\n\n{prompt}",
                    max_tokens=1024,
                )
            except ClassificationFailure as e:
                logger.error(f"Error classifying batch starting at {start}: {e}")
                results.extend(ClassificationResult(id=item.id, segment=None) for item in batch)
                continue

            lines = [line for line in text.strip().splitlines() if line.strip()]
            for i, item in enumerate(batch):
                line = lines[i] if i < len(lines) else ""
                segment = match_segment(line)
                if segment is None:
                    logger.warning(
                        f"Could not parse segment for {item.brand_name} {item.model_name}: {line.strip()!r}"
                    )
                results.append(ClassificationResult(id=item.id, segment=segment))

            if start + self.batch_size < len(items):
                await self._sleep(BATCH_PAUSE_SECONDS)

        return results
