import pytest

from directory_pipeline.agents.classify import assign_status, classify_all, classify_vendor, infer_features
from directory_pipeline.models import KeywordEvidence, KeywordMatch, VerificationReport


def make_report(live=True, ketamine=None, psychiatry=None):
    """ketamine / psychiatry: dict keyword -> count"""
    def evidence(d):
        d = d or {}
        return KeywordEvidence(count=sum(d.values()),
                               matches=[KeywordMatch(keyword=k, count=v) for k, v in d.items()])
    return VerificationReport(
        vendor="acme",
        name="Acme",
        website="https://acme.io",
        website_live=live,
        website_error=None if live else "ConnectError",
        ketamine_evidence=evidence(ketamine),
        psychiatry_evidence=evidence(psychiatry),
        verification_date="2025-01-31",
    )


class TestClassifyVendor:
    """Category / confidence decision table"""

    def test_specific_with_strong_keyword(self):
        c = classify_vendor(make_report(ketamine={"ketamine": 4, "iv infusion": 1}))
        assert (c.category, c.confidence) == ("specific", "high")
        assert c.ketamine_mentions == 5

    def test_many_mentions_without_strong_keyword_is_compatible(self):
        c = classify_vendor(make_report(ketamine={"iv infusion": 3, "treatment series": 3}))
        assert (c.category, c.confidence) == ("compatible", "medium")

    def test_psychiatry_only_is_compatible_low(self):
        c = classify_vendor(make_report(psychiatry={"psychiatry": 2, "mental health": 1}))
        assert (c.category, c.confidence) == ("compatible", "low")
        assert "psychiatry/behavioral health" in c.reason

    def test_single_ketamine_mention_is_compatible_medium(self):
        c = classify_vendor(make_report(ketamine={"ketamine": 1}))
        assert (c.category, c.confidence) == ("compatible", "medium")

    def test_no_evidence_is_general(self):
        c = classify_vendor(make_report())
        assert (c.category, c.confidence) == ("general", "high")

    def test_unreachable_is_unknown(self):
        c = classify_vendor(make_report(live=False))
        assert (c.category, c.confidence) == ("unknown", "low")
        assert c.reason == "Website unavailable for verification"

    def test_unreachable_ignores_counts(self):
        c = classify_vendor(make_report(live=False, ketamine={"ketamine": 9}, psychiatry={"psychiatry": 9}))
        assert (c.category, c.confidence) == ("unknown", "low")
        assert c.ketamine_mentions == 9


class TestInferFeatures:
    """Capability flags from matched keywords"""

    def test_features_from_ketamine_keywords(self):
        features = infer_features(make_report(ketamine={"spravato": 2, "iv infusion": 1},
                                              psychiatry={"phq-9": 1}))
        assert features["spravato_workflows"] is True
        assert features["iv_protocols"] is True
        assert features["outcome_tracking"] is False
        assert features["patient_rating_scales"] is False
        assert features["im_protocols"] is False

    def test_psychiatry_matches_infer_nothing(self):
        """A general EHR mentioning PHQ-9 and rating scales gets no ketamine capabilities."""
        features = infer_features(make_report(psychiatry={"phq-9": 1, "rating scales": 1, "gad-7": 2}))
        assert features["outcome_tracking"] is False
        assert features["patient_rating_scales"] is False
        assert not any(features.values())

    def test_unreachable_has_no_features(self):
        features = infer_features(make_report(live=False, ketamine={"ketamine": 9}))
        assert not any(features.values())


class TestStatus:
    """verified / needs_review / unverified stamping"""

    @pytest.mark.parametrize("ketamine,psychiatry,expected", [
        ({"ketamine": 5}, None, "verified"),
        (None, {"psychiatry": 3}, "verified"),
        ({"ketamine": 2}, {"psychiatry": 2}, "needs_review"),
        (None, None, "needs_review"),
    ])
    def test_live_reports(self, ketamine, psychiatry, expected):
        assert assign_status(make_report(ketamine=ketamine, psychiatry=psychiatry)).status == expected

    def test_unreachable_stays_unverified(self):
        assert assign_status(make_report(live=False)).status == "unverified"

    def test_classify_all_keeps_order_and_stamps(self):
        reports = [make_report(ketamine={"ketamine": 6}), make_report(live=False)]
        out = classify_all(reports)
        assert [r.status for r, _ in out] == ["verified", "unverified"]
        assert [c.category for _, c in out] == ["specific", "unknown"]
        # input reports are not mutated
        assert reports[0].status is None
