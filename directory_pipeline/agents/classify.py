# directory_pipeline/agents/classify.py
"""
Vendor classification from website evidence.

Pure functions of a VerificationReport:
- classify_vendor(report) -> Classification
- infer_features(report) -> {capability: bool}
- assign_status(report) -> VerificationReport with status verified / needs_review / unverified
"""

from __future__ import annotations
import logging
from typing import Dict, List, Sequence, Tuple

from directory_pipeline.models import Classification, VerificationReport

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Tunable thresholds
SPECIFIC_MIN_KETAMINE = 5
COMPATIBLE_MIN_KETAMINE = 1
COMPATIBLE_MIN_PSYCHIATRY = 3

# A "specific" call needs at least one of these among the ketamine matches
STRONG_SIGNAL_KEYWORDS = ("ketamine", "spravato", "esketamine")

# capability -> substrings; a capability is inferred when any matched ketamine keyword contains one
FEATURE_SIGNALS: Dict[str, Tuple[str, ...]] = {
    "iv_protocols": ("iv infusion", "infusion protocol", "infusion clinic"),
    "im_protocols": ("im injection", "intramuscular"),
    "spravato_workflows": ("spravato", "rems", "esketamine"),
    "outcome_tracking": ("outcome tracking", "outcome measure", "phq-9", "gad-7"),
    "patient_rating_scales": ("rating scale", "phq", "gad", "questionnaire"),
    "ketamine_consent_forms": ("consent form", "informed consent"),
    "treatment_series_tracking": ("treatment series", "session tracking", "infusion series"),
}


def _has_keyword(keywords: Sequence[str], needles: Sequence[str]) -> bool:
    return any(n in k.lower() for k in keywords for n in needles)


def infer_features(report: VerificationReport) -> Dict[str, bool]:
    if not report.website_live:
        return {name: False for name in FEATURE_SIGNALS}
    # narrow vocabulary only
    matched: List[str] = report.ketamine_evidence.keywords()
    return {name: _has_keyword(matched, needles) for name, needles in FEATURE_SIGNALS.items()}


def classify_vendor(report: VerificationReport) -> Classification:
    ketamine_count = report.ketamine_evidence.count
    psychiatry_count = report.psychiatry_evidence.count
    features = infer_features(report)

    if not report.website_live:
        return Classification(
            category="unknown",
            reason="Website unavailable for verification",
            confidence="low",
            inferred_features=features,
            ketamine_mentions=ketamine_count,
            psychiatry_mentions=psychiatry_count,
        )

    has_strong = any(k in STRONG_SIGNAL_KEYWORDS for k in report.ketamine_evidence.keywords())

    if ketamine_count >= SPECIFIC_MIN_KETAMINE and has_strong:
        return Classification(
            category="specific",
            reason=f"Found {ketamine_count} ketamine-related mentions with specific keywords",
            confidence="high",
            inferred_features=features,
            ketamine_mentions=ketamine_count,
            psychiatry_mentions=psychiatry_count,
        )

    if ketamine_count >= COMPATIBLE_MIN_KETAMINE or psychiatry_count >= COMPATIBLE_MIN_PSYCHIATRY:
        if ketamine_count > 0:
            reason = f"Found {ketamine_count} ketamine mention(s) - may support ketamine workflows"
        else:
            reason = (f"Found {psychiatry_count} psychiatry/behavioral health mentions"
                      " - compatible with mental health practices")
        return Classification(
            category="compatible",
            reason=reason,
            confidence="medium" if ketamine_count > 0 else "low",
            inferred_features=features,
            ketamine_mentions=ketamine_count,
            psychiatry_mentions=psychiatry_count,
        )

    return Classification(
        category="general",
        reason="No ketamine or psychiatry-specific evidence found",
        confidence="high",
        inferred_features=features,
        ketamine_mentions=ketamine_count,
        psychiatry_mentions=psychiatry_count,
    )


def assign_status(report: VerificationReport) -> VerificationReport:
    """Stamp verified / needs_review on live reports; unreachable ones stay unverified."""
    if not report.website_live:
        status = "unverified"
    elif (report.ketamine_evidence.count >= SPECIFIC_MIN_KETAMINE
          or report.psychiatry_evidence.count >= COMPATIBLE_MIN_PSYCHIATRY):
        status = "verified"
    else:
        status = "needs_review"
    return report.model_copy(update={"status": status})


def classify_all(reports: Sequence[VerificationReport]) -> List[Tuple[VerificationReport, Classification]]:
    out = []
    counts: Dict[str, int] = {}
    for report in reports:
        stamped = assign_status(report)
        classification = classify_vendor(stamped)
        counts[classification.category] = counts.get(classification.category, 0) + 1
        out.append((stamped, classification))
    logger.info("Classified %d vendors: %s", len(out),
                ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "none")
    return out
