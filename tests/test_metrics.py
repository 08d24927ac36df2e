"""Tests for detection metrics."""

from phishlens.analyzer.metrics import DetectionMetrics, metrics


class TestDetectionMetrics:
    def test_singleton(self):
        assert DetectionMetrics() is metrics

    def test_summary_counts(self):
        metrics.record_detector_run("ProtocolDetector", evaluated=True)
        metrics.record_detector_run("DomainAgeDetector", evaluated=False)
        metrics.record_detector_failure("DomainAgeDetector", "timeout")
        metrics.record_escalation("attempted")
        metrics.record_escalation("below_band")
        metrics.record_risk_level("danger")
        metrics.record_cache_hit()

        summary = metrics.summary()

        assert summary["total_analyses"] == 1
        assert summary["cache_hits"] == 1
        assert summary["risk_levels"] == {"danger": 1}
        assert summary["escalations"] == {"attempted": 1, "below_band": 1}
        age = summary["detectors"]["DomainAgeDetector"]
        assert age["runs"] == 1
        assert age["unavailable"] == 1
        assert age["failures"] == 1
        assert age["last_error"] == "timeout"
        assert age["last_failure"] is not None
        assert summary["detectors"]["ProtocolDetector"]["last_failure"] is None

    def test_reset(self):
        metrics.record_risk_level("safe")
        metrics.reset()
        summary = metrics.summary()
        assert summary["total_analyses"] == 0
        assert summary["detectors"] == {}
