# directory_pipeline/agents/write.py
"""
directory_pipeline/agents/write.py

Responsible for writing pipeline artifacts:
- aggregated-reviews.json (review aggregation)
- new-vendors.json + summary.md (acquisition: candidate entries for human review)
- verification-report.json + classification-report.json (verification-only run)

Every artifact is written with write_json_atomic / write_text_atomic, once, at the
end of a run. Nothing here is called before all inputs have been processed.
"""

from __future__ import annotations
import os
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from directory_pipeline.agents.aggregate import AggregationResult, check_review_invariants
from directory_pipeline.agents.classify import FEATURE_SIGNALS
from directory_pipeline.agents.dedupe import generate_slug
from directory_pipeline.models import (
    Classification,
    DedupDecision,
    DiscoveredVendor,
    VerificationReport,
)
from directory_pipeline.services.store import write_json_atomic, write_text_atomic

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def build_candidate_entry(vendor: DiscoveredVendor,
                          report: VerificationReport,
                          classification: Classification,
                          run_date: str) -> Dict[str, Any]:
    """
    Shape a discovered vendor into a Content Store software entry. The entry is
    always stamped needs_review; a human approves it before it is published.
    """
    slug = generate_slug(vendor.name)
    features = classification.inferred_features or {name: False for name in FEATURE_SIGNALS}
    pricing_notes = "Contact for pricing"
    if report.pricing_found:
        pricing_notes = f"Seen on website: {'; '.join(report.pricing_found[:3])}"

    return {
        "name": vendor.name,
        "slug": slug,
        "website": vendor.website,
        "logo": f"/images/software/{slug}-logo.png",
        "software_type": classification.category,
        "description": vendor.description or f"{vendor.name} - awaiting verification",
        "pricing": {
            "model": "custom",
            "starting_price": None,
            "currency": "USD",
            "has_free_trial": False,
            "billing_cycle": "monthly",
            "notes": pricing_notes,
        },
        "verification": {
            "status": "needs_review",
            "last_verified": run_date,
            "verified_by": "agent",
            "source_urls": [vendor.website],
            "confidence": classification.confidence,
            "notes": f"Auto-discovered. {classification.reason}",
        },
        "ketamine_features": dict(features),
        "general_features": [],
        "integrations": [],
        "pros": [],
        "cons": ["Auto-discovered - requires manual verification"],
        "ideal_for": "Awaiting verification",
        "last_verified": run_date,
        "data_source": vendor.source or "G2/Capterra discovery",
    }


def build_summary_md(entries: Sequence[Dict[str, Any]], decisions: Sequence[DedupDecision]) -> str:
    lines: List[str] = ["## New Vendors Discovered", ""]
    if entries:
        for e in entries:
            lines.append(f"- {e['name']} ({e['software_type']}, confidence: {e['verification']['confidence']})")
    else:
        lines.append("No new vendors to add.")

    skipped = [d for d in decisions if not d.accepted]
    if skipped:
        lines.append("")
        lines.append("## Skipped (already known)")
        lines.append("")
        for d in skipped:
            where = " (duplicate in discovered list)" if d.in_batch else ""
            lines.append(f"- {d.candidate.name}: {d.reason} `{d.matched}`{where}")
    lines.append("")
    return "\n".join(lines)


def write_aggregated_reviews(result: AggregationResult, path: str) -> str:
    for slug, review in result.reviews.items():
        check_review_invariants(slug, review)
    write_json_atomic(path, result.to_document())
    logger.info("OK: Aggregated reviews for %d vendors saved to %s", len(result.reviews), path)
    return path


def write_candidates(acquire_dir: str,
                     entries: Sequence[Dict[str, Any]],
                     decisions: Sequence[DedupDecision]) -> Dict[str, str]:
    artifacts: Dict[str, str] = {}

    entries_path = os.path.join(acquire_dir, "new-vendors.json")
    write_json_atomic(entries_path, list(entries))
    artifacts["new_vendors"] = entries_path

    summary_path = os.path.join(acquire_dir, "summary.md")
    write_text_atomic(summary_path, build_summary_md(entries, decisions))
    artifacts["summary_md"] = summary_path

    logger.info("%d new vendor entries saved to %s", len(entries), entries_path)
    return artifacts


def write_verification_reports(data_dir: str,
                               classified: Sequence[Tuple[VerificationReport, Classification]],
                               ) -> Dict[str, str]:
    artifacts: Dict[str, str] = {}

    reports_path = os.path.join(data_dir, "verification-report.json")
    write_json_atomic(reports_path, [r.model_dump() for r, _ in classified])
    artifacts["verification_report"] = reports_path

    classifications: List[Dict[str, Any]] = []
    for report, c in classified:
        row: Dict[str, Any] = {"vendor": report.vendor, "name": report.name}
        row.update(c.model_dump())
        classifications.append(row)
    classification_path = os.path.join(data_dir, "classification-report.json")
    write_json_atomic(classification_path, classifications)
    artifacts["classification_report"] = classification_path

    unverified = [r for r, _ in classified if r.status == "unverified"]
    if unverified:
        logger.warning("Some vendors have website issues:")
        for r in unverified:
            logger.warning("  - %s: %s", r.name, r.website_error)
    logger.info("Wrote %d artifacts to %s", len(artifacts), data_dir)
    return artifacts


def summarize_classifications(classified: Sequence[Tuple[VerificationReport, Classification]],
                              ) -> Dict[str, List[str]]:
    by_category: Dict[str, List[str]] = {"specific": [], "compatible": [], "general": [], "unknown": []}
    for report, c in classified:
        by_category.setdefault(c.category, []).append(report.name)
    return by_category


def describe_acquisition(entries: Sequence[Dict[str, Any]], decisions: Optional[Sequence[DedupDecision]] = None) -> str:
    skipped = sum(1 for d in (decisions or []) if not d.accepted)
    return f"{len(entries)} new candidate(s), {skipped} duplicate(s) skipped"
