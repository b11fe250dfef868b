# directory_pipeline/agents/extract.py
"""
Source extractor: raw review-platform scrape records -> ReviewObservation per vendor.

Each review platform gets a SourceAdapter describing where its dump keeps the
product URL, the rating and the review count, and how to pull the external
product slug out of the URL. Anything that does not survive the adapter is
dropped here (logged and counted) and never reaches the aggregator.

Primary API:
    extract_reviews(items, source, registry) -> ExtractionResult

Drop rules (absence of evidence is not failure):
- item is not an object, or has no recognizable product URL
- no vendor in the registry maps to the external slug
- score is not a finite number in [0, 5]
- count is not a non-negative integer, or is zero

Several items resolving to the same vendor collapse to the last one processed.
"""
from __future__ import annotations
import math
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from directory_pipeline.agents.registry import MappingRegistry
from directory_pipeline.models import ReviewObservation
from directory_pipeline.services.store import DocumentError

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def round_score(value: float) -> float:
    """Round half away from zero to one decimal."""
    return math.floor(value * 10 + 0.5) / 10


@dataclass
class SourceAdapter:
    source: str
    url_fields: Sequence[str]
    slug_pattern: re.Pattern
    score_fields: Sequence[str]
    count_fields: Sequence[str]
    fallback_url: Callable[[str, str], str]
    lowercase_slug: bool = False

    def product_url(self, item: Dict[str, Any]) -> str:
        value = _first_present(item, self.url_fields)
        return value if isinstance(value, str) else ""

    def external_slug(self, url: str) -> Optional[str]:
        match = self.slug_pattern.search(url)
        if not match:
            return None
        slug = match.group(1)
        return slug.lower() if self.lowercase_slug else slug


ADAPTERS: Dict[str, SourceAdapter] = {
    "g2": SourceAdapter(
        source="g2",
        url_fields=("productUrl", "url"),
        slug_pattern=re.compile(r"g2\.com/products/([^/?#]+)"),
        score_fields=("rating", "overallRating"),
        count_fields=("reviewCount", "totalReviews"),
        fallback_url=lambda slug, raw_url: f"https://www.g2.com/products/{slug}/reviews",
    ),
    "capterra": SourceAdapter(
        source="capterra",
        url_fields=("url", "productUrl"),
        slug_pattern=re.compile(r"capterra\.com/p/\d+/([^/?#]+)"),
        score_fields=("overallRating", "rating"),
        count_fields=("reviewCount", "totalReviews"),
        fallback_url=lambda slug, raw_url: raw_url,
        lowercase_slug=True,
    ),
}


@dataclass
class ExtractionResult:
    source: str
    observations: Dict[str, ReviewObservation] = field(default_factory=dict)
    seen: int = 0
    dropped: int = 0


def _first_present(item: Dict[str, Any], keys: Sequence[str]) -> Any:
    for k in keys:
        v = item.get(k)
        if v is not None:
            return v
    return None


def _as_score(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    score = float(value)
    if not math.isfinite(score) or score < 0 or score > 5:
        return None
    return score


def _as_count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
        return None
    count = int(value)
    return count if count >= 0 else None


def extract_reviews(items: Any, source: str, registry: MappingRegistry) -> ExtractionResult:
    adapter = ADAPTERS.get(source)
    if adapter is None:
        raise ValueError(f"Unknown review source: {source}")
    if not isinstance(items, list):
        raise DocumentError(f"{source} dump must be a JSON array")

    result = ExtractionResult(source=source)
    for item in items:
        result.seen += 1
        if not isinstance(item, dict):
            result.dropped += 1
            logger.debug("[%s] dropping non-object item", source)
            continue

        raw_url = adapter.product_url(item)
        external_slug = adapter.external_slug(raw_url)
        if not external_slug:
            result.dropped += 1
            logger.debug("[%s] no product slug in url=%r", source, raw_url)
            continue

        vendor_slug = registry.resolve(source, external_slug)
        if not vendor_slug:
            result.dropped += 1
            logger.debug("[%s] no vendor mapped to %s", source, external_slug)
            continue

        score = _as_score(_first_present(item, adapter.score_fields))
        count = _as_count(_first_present(item, adapter.count_fields))
        if score is None or count is None or count == 0:
            result.dropped += 1
            logger.debug("[%s] unusable score/count for %s", source, vendor_slug)
            continue

        mapping = registry.lookup(vendor_slug, source)
        review_url = mapping.url if mapping and mapping.url else adapter.fallback_url(external_slug, raw_url)

        if vendor_slug in result.observations:
            logger.debug("[%s] %s seen again; keeping the later record", source, vendor_slug)
        result.observations[vendor_slug] = ReviewObservation(
            source=source,
            score=round_score(score),
            count=count,
            url=review_url,
        )

    logger.info("[%s] processed %d entries: matched %d vendors, dropped %d",
                source, result.seen, len(result.observations), result.dropped)
    return result


def extract_all(dumps: Dict[str, Optional[List[Any]]], registry: MappingRegistry) -> List[ExtractionResult]:
    """Run extract_reviews for every source whose dump is present (None means missing)."""
    results: List[ExtractionResult] = []
    for source in sorted(dumps):
        items = dumps[source]
        if items is None:
            logger.info("SKIP: no %s dump found", source)
            continue
        results.append(extract_reviews(items, source, registry))
    return results
