"""Tests for escalation reply parsing and the escalation detector."""

import json

import pytest

from phishlens.analyzer.detector_escalation import (
    DefaultPrompts,
    EscalationDetector,
    PromptData,
    average_prior_risk,
)
from phishlens.analyzer.detector_models import (
    DetectionContext,
    DetectorFinding,
    FormInfo,
    FormInput,
    PageContent,
)
from phishlens.analyzer.escalation_parser import parse_escalation_response


def finding(risk, confidence=1.0):
    return DetectorFinding(detector_name="X", weight=0.5, risk=risk, confidence=confidence)


def make_context():
    page = PageContent(
        title="Sign in",
        text="Enter your password to continue",
        forms=(FormInfo(method="post", inputs=(FormInput(type="password"),)),),
    )
    return DetectionContext(
        url="http://naverr.com/login",
        hostname="naverr.com",
        protocol="http:",
        path="/login",
        page=page,
    )


class FakeClient:
    def __init__(self, reply='{"verdict": "suspicious", "confidence": 0.7, "risk_score": 60}'):
        self.reply = reply
        self.calls = []

    async def analyze(self, prompt, system_prompt):
        self.calls.append((prompt, system_prompt))
        return self.reply


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestParseEscalationResponse:
    """Test reply parsing."""

    def test_plain_json(self):
        verdict = parse_escalation_response(json.dumps({
            "verdict": "phishing",
            "confidence": 0.92,
            "risk_score": 88,
            "reasons": ["brand look-alike", "password form"],
            "recommendation": "Leave",
        }))
        assert verdict.verdict == "phishing"
        assert verdict.confidence == 0.92
        assert verdict.risk_score == 88
        assert verdict.reasons == ["brand look-alike", "password form"]
        assert verdict.recommendation == "Leave"
        assert not verdict.inferred

    def test_fenced_json(self):
        reply = 'Here you go:\n```json\n{"verdict": "safe", "confidence": 0.8, "risk_score": 5}\n```'
        verdict = parse_escalation_response(reply)
        assert verdict.verdict == "safe"
        assert verdict.risk_score == 5
        assert verdict.suggested_action == "Safe"

    def test_json_embedded_in_prose(self):
        reply = 'Result: {"verdict": "phishing", "risk_score": 95} end'
        verdict = parse_escalation_response(reply)
        assert verdict.verdict == "phishing"
        assert verdict.confidence == 0.5

    def test_values_are_normalized(self):
        verdict = parse_escalation_response(
            '{"verdict": "malicious", "confidence": 7, "risk_score": -20, "reasons": "x"}'
        )
        assert verdict.verdict == "suspicious"
        assert verdict.confidence == 1.0
        assert verdict.risk_score == 0
        assert verdict.reasons == []
        assert verdict.recommendation

    def test_zero_values_are_kept(self):
        verdict = parse_escalation_response('{"verdict": "safe", "confidence": 0, "risk_score": 0}')
        assert verdict.confidence == 0.0
        assert verdict.risk_score == 0

    @pytest.mark.parametrize(
        "reply,expected,risk",
        [
            ("This is clearly a phishing page.", "phishing", 80),
            ("The site looks safe to me.", "safe", 15),
            ("I am not sure.", "suspicious", 50),
        ],
    )
    def test_keyword_fallback(self, reply, expected, risk):
        verdict = parse_escalation_response(reply)
        assert verdict.verdict == expected
        assert verdict.risk_score == risk
        assert verdict.confidence == 0.3
        assert verdict.inferred

    def test_empty_reply(self):
        verdict = parse_escalation_response("   ")
        assert verdict.verdict == "suspicious"
        assert verdict.confidence == 0.1

    def test_non_object_json(self):
        verdict = parse_escalation_response("[1, 2, 3]")
        assert verdict.inferred


class TestPrompts:
    """Test the default prompt builder."""

    def test_prompt_contains_context(self):
        context = make_context()
        prompt = DefaultPrompts().build_analysis_prompt(
            PromptData(
                url=context.url,
                hostname=context.hostname,
                protocol=context.protocol,
                path=context.path,
                page=context.page,
                previous_findings=(finding(93),),
                rag_context="Known kit: fake naver login",
            )
        )
        assert "naverr.com" in prompt
        assert "risk 93/100" in prompt
        assert "Known kit: fake naver login" in prompt
        assert "input types [password]" in prompt

    def test_average_prior_risk(self):
        assert average_prior_risk([]) == 50
        assert average_prior_risk(None) == 50
        assert average_prior_risk([finding(20), finding(60), finding(100, 0.0)]) == 40


class TestEscalationDetector:
    """Test gating, rate limiting and client handling."""

    @pytest.mark.asyncio
    async def test_successful_escalation(self):
        client = FakeClient()
        detector = EscalationDetector(client=client)

        result = await detector.analyze(make_context(), previous_findings=[finding(50)])

        assert result.detector_name == "EscalationDetector"
        assert result.weight == 0.3
        assert (result.risk, result.confidence) == (60, 0.7)
        assert result.details["verdict"] == "suspicious"
        assert result.details["suggested_action"] == "Be careful"
        prompt, system_prompt = client.calls[0]
        assert "naverr.com" in prompt
        assert "JSON" in system_prompt

    @pytest.mark.asyncio
    @pytest.mark.parametrize("risk,reason", [(10, "low_risk"), (95, "high_risk")])
    async def test_own_band(self, risk, reason):
        client = FakeClient()
        detector = EscalationDetector(client=client)

        result = await detector.analyze(make_context(), previous_findings=[finding(risk)])

        assert result.confidence == 0.0
        assert result.details["skipped_reason"] == reason
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_no_prior_findings_uses_neutral_average(self):
        client = FakeClient()
        result = await EscalationDetector(client=client).analyze(
            make_context(), previous_findings=[]
        )
        assert result.confidence == 0.7
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_window(self):
        clock = FakeClock()
        client = FakeClient()
        detector = EscalationDetector(client=client, max_requests_per_minute=5, clock=clock)

        for _ in range(5):
            result = await detector.analyze(make_context())
            assert result.confidence > 0

        limited = await detector.analyze(make_context())
        assert limited.details["skipped_reason"] == "rate_limited"

        clock.now += 61
        result = await detector.analyze(make_context())
        assert result.confidence > 0
        assert len(client.calls) == 6

    @pytest.mark.asyncio
    async def test_no_client(self):
        result = await EscalationDetector().analyze(make_context())
        assert result.details["skipped_reason"] == "no_client"

    @pytest.mark.asyncio
    async def test_client_error(self):
        class BrokenClient:
            async def analyze(self, prompt, system_prompt):
                raise ConnectionError("upstream unavailable")

        result = await EscalationDetector(client=BrokenClient()).analyze(make_context())
        assert result.confidence == 0.0
        assert result.details["skipped_reason"] == "api_error"
        assert "upstream unavailable" in result.details["error"]

    @pytest.mark.asyncio
    async def test_custom_prompt_builder(self):
        class Prompts:
            def system_prompt(self):
                return "system"

            def build_analysis_prompt(self, data):
                return f"check {data.hostname} with {data.rag_context}"

        client = FakeClient()
        await EscalationDetector().analyze(
            make_context(), client=client, prompts=Prompts(), rag_context="hints"
        )
        assert client.calls == [("check naverr.com with hints", "system")]
