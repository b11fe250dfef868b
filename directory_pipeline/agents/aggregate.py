# directory_pipeline/agents/aggregate.py
"""
Review aggregator.

Purpose:
Merge the current run's per-source observations with the previous run's
aggregated-reviews snapshot into one AggregatedReview per registry vendor.

Stamps:
- ReviewSource.lastUpdated is carried forward unless (score, count, url) changed.
- AggregatedReview.lastAggregated advances to the run date only when a source
  was added, removed, or changed score/count. First-ever records get the run date.

The output is total over the registry (vendors without any data get a
null/zero record) and ordered deterministically, so identical inputs produce
byte-identical documents.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from directory_pipeline.agents.extract import ExtractionResult, round_score
from directory_pipeline.agents.registry import MappingRegistry
from directory_pipeline.models import AggregatedReview, ReviewChange, ReviewObservation, ReviewSource

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class InvariantError(RuntimeError):
    """A produced review record violates its own invariants."""


@dataclass
class AggregationResult:
    reviews: Dict[str, AggregatedReview] = field(default_factory=dict)
    changes: List[ReviewChange] = field(default_factory=list)

    def to_document(self) -> Dict[str, dict]:
        return {slug: r.model_dump(by_alias=True) for slug, r in self.reviews.items()}


def compute_aggregate_score(sources: Sequence[ReviewSource]) -> Optional[float]:
    total = sum(s.count for s in sources)
    if total == 0:
        return None
    weighted = sum(s.score * s.count for s in sources)
    return round_score(weighted / total)


def _make_source(obs: ReviewObservation, prev: Optional[ReviewSource], run_date: str) -> ReviewSource:
    unchanged = (
        prev is not None
        and prev.score == obs.score
        and prev.count == obs.count
        and prev.url == obs.url
    )
    return ReviewSource(
        source=obs.source,
        score=obs.score,
        count=obs.count,
        url=obs.url,
        last_updated=prev.last_updated if unchanged else run_date,
    )


def _diff_sources(prev_sources: Sequence[ReviewSource], curr_sources: Sequence[ReviewSource]) -> List[str]:
    prev_by = {s.source: s for s in prev_sources}
    curr_by = {s.source: s for s in curr_sources}
    details: List[str] = []
    for source in sorted(set(prev_by) | set(curr_by)):
        p = prev_by.get(source)
        c = curr_by.get(source)
        if p is None and c is not None:
            details.append(f"+{source}")
        elif p is not None and c is None:
            details.append(f"-{source}")
        elif p is not None and c is not None and (p.score != c.score or p.count != c.count):
            details.append(f"{source}: {p.score}({p.count}) → {c.score}({c.count})")
    return details


def check_review_invariants(slug: str, review: AggregatedReview) -> None:
    total = sum(s.count for s in review.sources)
    if review.total_count != total:
        raise InvariantError(f"{slug}: totalCount {review.total_count} != sum of source counts {total}")
    expected = compute_aggregate_score(review.sources)
    if review.aggregate_score != expected:
        raise InvariantError(f"{slug}: aggregateScore {review.aggregate_score} != {expected}")
    names = [s.source for s in review.sources]
    if names != sorted(names) or len(set(names)) != len(names):
        raise InvariantError(f"{slug}: sources must be unique and sorted by name, got {names}")


def aggregate_reviews(registry: MappingRegistry,
                      extractions: Sequence[ExtractionResult],
                      previous: Dict[str, AggregatedReview],
                      run_date: str) -> AggregationResult:
    """
    Build the aggregated-reviews collection for every vendor in the registry.

    Args:
      registry: vendor mappings (defines which vendors are emitted, and in what order)
      extractions: one ExtractionResult per processed source
      previous: previous run's output keyed by vendor slug (read-only snapshot)
      run_date: YYYY-MM-DD stamp for this run
    """
    result = AggregationResult()

    for slug in registry.vendor_slugs():
        prev = previous.get(slug)
        prev_sources = {s.source: s for s in prev.sources} if prev else {}

        sources: List[ReviewSource] = []
        for extraction in extractions:
            obs = extraction.observations.get(slug)
            if obs is None:
                continue
            sources.append(_make_source(obs, prev_sources.get(obs.source), run_date))
        sources.sort(key=lambda s: s.source)

        details = _diff_sources(prev.sources if prev else [], sources)
        if details or prev is None:
            last_aggregated = run_date
        else:
            last_aggregated = prev.last_aggregated

        review = AggregatedReview(
            vendor_slug=slug,
            aggregate_score=compute_aggregate_score(sources),
            total_count=sum(s.count for s in sources),
            sources=sources,
            last_aggregated=last_aggregated,
        )
        check_review_invariants(slug, review)
        result.reviews[slug] = review
        if details:
            result.changes.append(ReviewChange(slug=slug, details=details))

    dropped = sorted(set(previous) - set(result.reviews))
    if dropped:
        logger.info("Dropping %d vendors no longer in mappings: %s", len(dropped), ", ".join(dropped))

    with_reviews = sum(1 for r in result.reviews.values() if r.total_count > 0)
    logger.info("Vendors with reviews: %d/%d", with_reviews, len(result.reviews))
    if result.changes:
        logger.info("Changes detected (%d):", len(result.changes))
        for change in result.changes:
            logger.info("  - %s: %s", change.slug, ", ".join(change.details))
    else:
        logger.info("No changes detected.")
    return result
