"""Escalation detector: asks an LLM for a verdict on ambiguous cases.

The detector only spends a request when the plain average risk of the
confident prior findings sits inside its band, and never more than
``max_requests_per_minute`` times in a sliding one-minute window.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence

from ..constants import DETECTOR_ESCALATION_BAND, DETECTOR_WEIGHTS, LLM_ANALYSIS
from .detector_base import BaseDetector
from .detector_models import DetectionContext, DetectorFinding, PageContent
from .escalation_parser import parse_escalation_response

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 60.0
DEFAULT_REQUESTS_PER_MINUTE = 5
NEUTRAL_AVERAGE_RISK = 50.0

SYSTEM_PROMPT = """You are a cybersecurity analyst deciding whether a website is a phishing or scam site.
Base your decision on the information provided and reply ONLY with JSON in this format:

{
  "verdict": "phishing" | "suspicious" | "safe",
  "confidence": 0.0-1.0,
  "risk_score": 0-100,
  "reasons": ["reason 1", "reason 2"],
  "recommendation": "advice shown to the user"
}

Guidelines:
- A domain that resembles a well-known site without matching it exactly is likely phishing.
- Requests for sensitive information over plain HTTP are dangerous.
- Heavy use of urgency or fear language suggests phishing.
- Asking for many personal details at once is suspicious.
- Several risk signals together should raise the overall risk."""


class EscalationClient(Protocol):
    async def analyze(self, prompt: str, system_prompt: str) -> str:  # pragma: no cover - interface
        ...


@dataclass
class PromptData:
    url: str
    hostname: str
    protocol: str
    path: str
    page: Optional[PageContent] = None
    previous_findings: Sequence[DetectorFinding] = field(default_factory=tuple)
    rag_context: Optional[str] = None


class PromptBuilder(Protocol):
    def system_prompt(self) -> str:  # pragma: no cover - interface
        ...

    def build_analysis_prompt(self, data: PromptData) -> str:  # pragma: no cover - interface
        ...


class DefaultPrompts:
    """Plain-text prompt template used when the caller supplies none."""

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_analysis_prompt(self, data: PromptData) -> str:
        url = data.url or f"{data.protocol}//{data.hostname}{data.path or ''}"
        lines = [
            "## Website under review",
            "",
            f"- URL: {url}",
            f"- Domain: {data.hostname}",
            f"- Protocol: {data.protocol}",
            f"- Path: {data.path or '/'}",
            "",
        ]

        if data.previous_findings:
            lines.append("## Automated detector results")
            for finding in data.previous_findings:
                lines.append(
                    f"- {finding.detector_name}: risk {finding.risk}/100 "
                    f"(confidence {finding.confidence * 100:.0f}%) - {finding.reason}"
                )
            lines.append("")

        if data.rag_context:
            lines.extend(["## Related phishing patterns", data.rag_context, ""])

        page = data.page
        lines.append("## Page")
        lines.append(f"- Title: {(page.title if page else '') or '(none)'}")
        if page is not None:
            if page.meta_description:
                lines.append(f"- Meta description: {page.meta_description}")
            if page.forms:
                lines.append(f"- {len(page.forms)} input form(s)")
                for form in page.forms[:3]:
                    types = ", ".join(i.type for i in form.inputs)
                    lines.append(f"  - form ({form.method}): input types [{types}]")
            if page.text:
                preview = " ".join(page.text[:300].split())
                lines.append(f'- Text excerpt: "{preview}"')

        lines.extend([
            "",
            "Decide whether this website is a phishing or scam site.",
            "Reply ONLY in the JSON format specified.",
        ])
        return "\n".join(lines)


def average_prior_risk(findings: Optional[Sequence[DetectorFinding]]) -> float:
    """Plain mean risk of confident findings; neutral 50 when there are none."""
    valid = [f for f in findings or () if f.confidence > 0]
    if not valid:
        return NEUTRAL_AVERAGE_RISK
    return sum(f.risk for f in valid) / len(valid)


class EscalationDetector(BaseDetector):
    name = "EscalationDetector"
    key = LLM_ANALYSIS
    weight = DETECTOR_WEIGHTS[LLM_ANALYSIS]

    def __init__(
        self,
        client: Optional[EscalationClient] = None,
        prompts: Optional[PromptBuilder] = None,
        max_requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        band: tuple[float, float] = DETECTOR_ESCALATION_BAND,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.prompts = prompts or DefaultPrompts()
        self.max_requests_per_minute = max_requests_per_minute
        self.band = band
        self._clock = clock
        self._requests: deque[float] = deque()

    def _rate_limit_ok(self) -> bool:
        cutoff = self._clock() - RATE_LIMIT_WINDOW_SECONDS
        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()
        return len(self._requests) < self.max_requests_per_minute

    def _record_request(self) -> None:
        self._requests.append(self._clock())

    async def analyze(
        self,
        context: DetectionContext,
        previous_findings: Optional[Sequence[DetectorFinding]] = None,
        client: Optional[EscalationClient] = None,
        prompts: Optional[PromptBuilder] = None,
        rag_context: Optional[str] = None,
    ) -> DetectorFinding:
        if previous_findings is not None:
            avg_risk = average_prior_risk(previous_findings)
            low, high = self.band
            if avg_risk < low:
                logger.debug(
                    "Escalation skipped for %s: risk too low (%.1f)", context.hostname, avg_risk
                )
                return self.unavailable(
                    "Other detectors consider this site safe; escalation skipped",
                    skipped=True,
                    skipped_reason="low_risk",
                    avg_risk=avg_risk,
                )
            if avg_risk > high:
                logger.debug(
                    "Escalation skipped for %s: risk too high (%.1f)", context.hostname, avg_risk
                )
                return self.unavailable(
                    "Other detectors already report high risk; escalation skipped",
                    skipped=True,
                    skipped_reason="high_risk",
                    avg_risk=avg_risk,
                )

        if not self._rate_limit_ok():
            logger.warning("Escalation rate limit reached")
            return self.unavailable(
                "Escalation rate limit reached; try again shortly",
                skipped=True,
                skipped_reason="rate_limited",
            )

        active_client = client or self.client
        if active_client is None:
            logger.warning("Escalation requested without a client")
            return self.unavailable(
                "No escalation client configured",
                skipped=True,
                skipped_reason="no_client",
            )

        builder = prompts or self.prompts
        data = PromptData(
            url=context.url,
            hostname=context.hostname,
            protocol=context.protocol,
            path=context.path,
            page=context.page,
            previous_findings=tuple(previous_findings or ()),
            rag_context=rag_context,
        )

        try:
            prompt = builder.build_analysis_prompt(data)
            self._record_request()
            reply = await active_client.analyze(prompt, builder.system_prompt())
        except Exception as e:
            logger.error(f"Escalation request failed for {context.hostname}: {e}")
            return self.unavailable(
                "Escalation failed; verdict based on the other detectors only",
                skipped=True,
                skipped_reason="api_error",
                error=str(e),
            )

        verdict = parse_escalation_response(reply)
        return self.finding(
            verdict.risk_score,
            verdict.confidence,
            verdict.recommendation or "Escalation analysis complete",
            verdict=verdict.verdict,
            explanation=". ".join(verdict.reasons),
            suggested_action=verdict.suggested_action,
            raw_response=verdict.to_dict(),
        )
