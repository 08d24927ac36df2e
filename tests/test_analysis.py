"""Tests for the analysis engine (allowlist, result cache, page re-analysis)."""

import json

import pytest

from phishlens.analyzer.detector_base import BaseDetector
from phishlens.analyzer.detector_engine import DetectorEnsemble
from phishlens.analyzer.detector_escalation import EscalationDetector
from phishlens.analyzer.known_domains import KnownDomainEntry, KnownDomainRegistry
from phishlens.analyzer.metrics import metrics
from phishlens.config import Config
from phishlens.constants import RiskLevel
from phishlens.pipeline.analysis import AnalysisEngine, build_detectors


class RecordingDetector(BaseDetector):
    """Returns a fixed risk and remembers every context it saw."""

    name = "RecordingDetector"
    key = "recording"
    weight = 0.5

    def __init__(self, risk=50, page_risk=None):
        self.risk = risk
        self.page_risk = page_risk
        self.contexts = []

    async def analyze(self, context):
        self.contexts.append(context)
        if context.page is not None and self.page_risk is not None:
            return self.finding(self.page_risk, 1.0, "page signals")
        return self.finding(self.risk, 1.0, "url signals")


class FakeClient:
    def __init__(self):
        self.calls = 0

    async def analyze(self, prompt, system_prompt):
        self.calls += 1
        return json.dumps({"verdict": "phishing", "confidence": 0.9, "risk_score": 90})


def make_registry():
    registry = KnownDomainRegistry()
    registry.set_entries([KnownDomainEntry("Naver", "naver.com")])
    return registry


def make_engine(tmp_path, detector, **config_kwargs):
    config = Config(config_dir=tmp_path, **config_kwargs)
    ensemble = DetectorEnsemble([detector], escalation_detector=EscalationDetector())
    return AnalysisEngine(config=config, ensemble=ensemble, registry=make_registry())


class TestAnalyzeUrl:
    """Test entry-point filtering and caching."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "",
            "http://192.168.0.1/admin",
            "http://localhost:8080/",
            "ftp://files.example.com/",
            "mailto:user@example.com",
        ],
    )
    async def test_not_analyzable(self, tmp_path, url):
        detector = RecordingDetector()
        engine = make_engine(tmp_path, detector)
        assert await engine.analyze_url(url) is None
        assert detector.contexts == []

    @pytest.mark.asyncio
    async def test_known_domain_is_allowlisted(self, tmp_path):
        detector = RecordingDetector(risk=100)
        engine = make_engine(tmp_path, detector)

        result = await engine.analyze_url("https://m.naver.com/login")

        assert result.allowlisted is True
        assert result.total_risk == 0
        assert result.risk_level == RiskLevel.SAFE
        assert detector.contexts == []

    @pytest.mark.asyncio
    async def test_user_allowlist(self, tmp_path):
        (tmp_path / "allowlist.txt").write_text("intranet.example\n", encoding="utf-8")
        engine = make_engine(tmp_path, RecordingDetector())
        result = await engine.analyze_url("intranet.example/path")
        assert result.allowlisted is True

    @pytest.mark.asyncio
    async def test_results_are_cached_per_hostname(self, tmp_path):
        detector = RecordingDetector(risk=50)
        engine = make_engine(tmp_path, detector)

        first = await engine.analyze_url("https://naverr.com/a")
        second = await engine.analyze_url("https://naverr.com/b?x=1")

        assert second is first
        assert len(detector.contexts) == 1
        assert detector.contexts[0].path == "/a"
        assert metrics.summary()["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_page_dict_is_converted(self, tmp_path):
        detector = RecordingDetector()
        engine = make_engine(tmp_path, detector)

        await engine.analyze_url(
            "http://naverr.com/",
            page={"title": "Login", "forms": [{"method": "POST", "inputs": [{"type": "Password"}]}]},
        )

        page = detector.contexts[0].page
        assert page.title == "Login"
        assert page.forms[0].method == "post"
        assert page.forms[0].inputs[0].type == "password"

    @pytest.mark.asyncio
    async def test_escalation_uses_config(self, tmp_path):
        client = FakeClient()
        engine = make_engine(tmp_path, RecordingDetector(risk=50), escalation_enabled=True)

        result = await engine.analyze_url("https://naverr.com/", escalation_client=client)

        assert client.calls == 1
        assert result.escalation.attempted is True
        assert result.total_risk == 70

    @pytest.mark.asyncio
    async def test_set_escalation_enabled_clears_cache(self, tmp_path):
        detector = RecordingDetector()
        engine = make_engine(tmp_path, detector)
        await engine.analyze_url("https://naverr.com/")

        engine.set_escalation_enabled(False)
        assert len(engine.cache) == 1

        engine.set_escalation_enabled(True)
        assert len(engine.cache) == 0
        assert engine.config.escalation_enabled is True


class TestReanalyzeWithPage:
    """Test the page follow-up pass."""

    @pytest.mark.asyncio
    async def test_page_result_replaces_cached_result(self, tmp_path):
        detector = RecordingDetector(risk=20, page_risk=60)
        engine = make_engine(tmp_path, detector)
        first = await engine.analyze_url("https://naverr.com/")

        second = await engine.reanalyze_with_page(
            "https://naverr.com/", {"title": "Verify your account"}
        )

        assert first.risk_level == RiskLevel.SAFE
        assert second.total_risk == 60
        assert second.risk_level == RiskLevel.WARNING
        assert engine.cache.get("naverr.com") is second

    @pytest.mark.asyncio
    async def test_escalation_finding_is_carried_over(self, tmp_path):
        client = FakeClient()
        detector = RecordingDetector(risk=50, page_risk=40)
        engine = make_engine(tmp_path, detector, escalation_enabled=True)
        await engine.analyze_url("https://naverr.com/", escalation_client=client)

        result = await engine.reanalyze_with_page("https://naverr.com/", {"text": "hello"})

        assert client.calls == 1
        carried = result.finding("EscalationDetector")
        assert carried.risk == 90
        assert result.escalation.attempted is True
        # Confident 90 keeps the 70 floor in place.
        assert result.total_risk == 70

    @pytest.mark.asyncio
    async def test_without_previous_result(self, tmp_path):
        detector = RecordingDetector(risk=10, page_risk=30)
        engine = make_engine(tmp_path, detector)
        result = await engine.reanalyze_with_page("https://naverr.com/", None)
        assert result.total_risk == 10
        assert result.escalation.skipped_reason == "disabled"

    @pytest.mark.asyncio
    async def test_not_analyzable(self, tmp_path):
        engine = make_engine(tmp_path, RecordingDetector())
        assert await engine.reanalyze_with_page("http://127.0.0.1/", {}) is None


class TestBuildDetectors:
    def test_standard_detector_set(self, tmp_path):
        detectors = build_detectors(Config(config_dir=tmp_path), make_registry())
        assert [d.key for d in detectors] == [
            "typosquat",
            "protocol",
            "domain_age",
            "content_analysis",
            "blacklist",
        ]
