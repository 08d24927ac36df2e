"""Tests for confidence-weighted risk aggregation."""

import pytest

from phishlens.analyzer.aggregation import (
    RiskThresholds,
    aggregate,
    calculate_total_risk,
    classify_risk,
    round_half_up,
)
from phishlens.analyzer.detector_models import DetectorFinding, EscalationOutcome
from phishlens.constants import RiskLevel


def make_finding(risk, confidence, weight=1.0, name="Fake"):
    return DetectorFinding(
        detector_name=name,
        weight=weight,
        risk=risk,
        confidence=confidence,
        reason="test",
    )


class TestCalculateTotalRisk:
    """Test the aggregation formula."""

    def test_high_risk_override(self):
        """One confident high-risk finding floors the total at 70."""
        findings = [make_finding(95, 0.9), make_finding(5, 0.9)]
        assert calculate_total_risk(findings) == 70

    def test_override_needs_confidence(self):
        findings = [make_finding(95, 0.4), make_finding(5, 0.9)]
        assert calculate_total_risk(findings) < 70

    def test_zero_confidence_findings_ignored(self):
        findings = [make_finding(100, 0.0), make_finding(20, 0.5)]
        assert calculate_total_risk(findings) == 20

    def test_all_unavailable(self):
        findings = [make_finding(100, 0.0), make_finding(50, 0.0)]
        assert calculate_total_risk(findings) == 0

    def test_no_findings(self):
        assert calculate_total_risk([]) == 0

    def test_weighted_mean(self):
        findings = [
            make_finding(80, 1.0, weight=0.4),
            make_finding(20, 1.0, weight=0.2),
        ]
        assert calculate_total_risk(findings) == 60

    def test_half_rounds_up(self):
        """x.5 rounds away from zero, unlike Python's round()."""
        findings = [make_finding(41, 1.0), make_finding(40, 1.0)]
        assert calculate_total_risk(findings) == 41

    def test_zero_weight_only(self):
        assert calculate_total_risk([make_finding(60, 1.0, weight=0.0)]) == 0

    def test_zero_weight_high_risk_still_floors(self):
        """The 70 floor applies even when no finding carries weight."""
        assert calculate_total_risk([make_finding(95, 0.9, weight=0.0)]) == 70

    @pytest.mark.parametrize(
        "value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (-0.5, 0)]
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestClassifyRisk:
    """Test risk level thresholds."""

    @pytest.mark.parametrize(
        "total,level",
        [
            (0, RiskLevel.SAFE),
            (39, RiskLevel.SAFE),
            (40, RiskLevel.WARNING),
            (69, RiskLevel.WARNING),
            (70, RiskLevel.DANGER),
            (100, RiskLevel.DANGER),
        ],
    )
    def test_default_thresholds(self, total, level):
        assert classify_risk(total) == level

    def test_custom_thresholds(self):
        thresholds = RiskThresholds(warning=20, danger=50)
        assert classify_risk(25, thresholds) == RiskLevel.WARNING
        assert classify_risk(50, thresholds) == RiskLevel.DANGER


class TestAggregate:
    """Test AggregatedResult construction."""

    def test_all_unavailable_is_safe(self):
        result = aggregate([make_finding(80, 0.0)], "example.com")
        assert result.total_risk == 0
        assert result.risk_level == RiskLevel.SAFE
        assert len(result.findings) == 1

    def test_result_fields(self):
        result = aggregate(
            [make_finding(95, 0.9, name="A"), make_finding(5, 0.9, name="B")],
            "naverr.com",
            preliminary_risk=70,
            escalation=EscalationOutcome(attempted=False, skipped_reason="disabled"),
        )
        assert result.hostname == "naverr.com"
        assert result.total_risk == 70
        assert result.risk_level == RiskLevel.DANGER
        assert result.finding("A").risk == 95
        assert result.finding("missing") is None
        assert result.analyzed_at.tzinfo is not None

    def test_to_dict(self):
        result = aggregate([make_finding(50, 1.0)], "example.com", allowlisted=False)
        data = result.to_dict()
        assert data["hostname"] == "example.com"
        assert data["risk_level"] == "warning"
        assert data["escalation"] == {"attempted": False, "skipped_reason": None}
        assert data["findings"][0]["risk"] == 50


class TestDetectorFinding:
    """Test finding normalization."""

    def test_values_are_clamped(self):
        finding = make_finding(150, 1.7, weight=-1)
        assert finding.risk == 100
        assert finding.confidence == 1.0
        assert finding.weight == 0.0

    def test_unavailable(self):
        finding = DetectorFinding.unavailable("X", 0.2, "no data", error="timeout")
        assert finding.confidence == 0.0
        assert not finding.evaluated
        assert finding.details == {"error": "timeout"}
