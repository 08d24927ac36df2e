"""Tests for the command-line entry point."""

import json

import pytest

from phishlens import main as cli
from phishlens.analyzer.aggregation import aggregate
from phishlens.analyzer.detector_models import DetectorFinding
from phishlens.config import Config


def make_result(hostname, risk, allowlisted=False):
    findings = () if allowlisted else (
        DetectorFinding(detector_name="ProtocolDetector", weight=0.15, risk=risk, confidence=1.0),
    )
    return aggregate(findings, hostname, allowlisted=allowlisted)


class FakeEngine:
    instances = []

    def __init__(self, config):
        self.config = config
        self.urls = []
        FakeEngine.instances.append(self)

    async def analyze_url(self, url):
        self.urls.append(url)
        if "naver.com" in url:
            return make_result("naver.com", 0, allowlisted=True)
        if url.startswith("ftp"):
            return None
        return make_result("naverr.com", 80)


@pytest.fixture
def patched(monkeypatch, tmp_path):
    FakeEngine.instances = []
    config = Config(config_dir=tmp_path, escalation_enabled=True)
    monkeypatch.setattr(cli, "load_config", lambda: config)
    monkeypatch.setattr(cli, "AnalysisEngine", FakeEngine)
    return config


class TestParser:
    def test_flags(self):
        args = cli.build_parser().parse_args(
            ["http://a.com", "b.com", "--disable", "domain_age", "--disable", "blacklist", "--json"]
        )
        assert args.urls == ["http://a.com", "b.com"]
        assert args.disable == ["domain_age", "blacklist"]
        assert args.json is True
        assert args.no_escalation is False

    def test_unknown_detector_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["a.com", "--disable", "teleport"])


class TestFormatVerdict:
    def test_lines(self):
        assert cli.format_verdict("ftp://x", None).endswith("skipped (not an analyzable web address)")
        assert cli.format_verdict("https://naver.com", make_result("naver.com", 0, True)) == (
            "https://naver.com: safe (allowlisted)"
        )
        assert cli.format_verdict("http://naverr.com", make_result("naverr.com", 80)) == (
            "http://naverr.com: danger (risk 80/100)"
        )


class TestMain:
    """Test end-to-end CLI runs against a fake engine."""

    def test_text_output(self, patched, capsys):
        code = cli.main(["http://naverr.com", "https://naver.com", "ftp://files.example"])

        assert code == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert lines == [
            "http://naverr.com: danger (risk 80/100)",
            "https://naver.com: safe (allowlisted)",
            "ftp://files.example: skipped (not an analyzable web address)",
        ]

    def test_json_output(self, patched, capsys):
        code = cli.main(["http://naverr.com", "ftp://files.example", "--json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data[0]["url"] == "http://naverr.com"
        assert data[0]["result"]["total_risk"] == 80
        assert data[0]["result"]["risk_level"] == "danger"
        assert data[1]["result"] is None

    def test_flags_update_config(self, patched):
        cli.main(["http://naverr.com", "--no-escalation", "--disable", "domain_age"])

        config = FakeEngine.instances[0].config
        assert config.escalation_enabled is False
        assert config.enabled_detectors["domain_age"] is False

    def test_invalid_config(self, patched):
        patched.escalation_band = (90, 10)
        assert cli.main(["http://naverr.com"]) == 1
        assert FakeEngine.instances == []
