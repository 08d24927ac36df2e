"""Parsing of free-form escalation (LLM) replies into a structured verdict."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

VALID_VERDICTS = ("phishing", "suspicious", "safe")

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

PHISHING_KEYWORDS = ("phishing", "피싱", "위험")
SAFE_KEYWORDS = ("safe", "안전", "정상")

RECOMMENDATIONS = {
    "phishing": "This looks like a phishing site. Do not enter any personal information and leave now.",
    "suspicious": "Suspicious elements were found on this site. Proceed with caution.",
    "safe": "This site appears to be safe.",
}

SUGGESTED_ACTIONS = {
    "phishing": "Leave this site",
    "suspicious": "Be careful",
    "safe": "Safe",
}


@dataclass(frozen=True)
class EscalationVerdict:
    verdict: str = "suspicious"
    confidence: float = 0.5
    risk_score: int = 50
    reasons: list[str] = field(default_factory=list)
    recommendation: str = ""
    inferred: bool = False

    @property
    def suggested_action(self) -> str:
        return SUGGESTED_ACTIONS.get(self.verdict, SUGGESTED_ACTIONS["suspicious"])

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict,
            "confidence": self.confidence,
            "risk_score": self.risk_score,
            "reasons": list(self.reasons),
            "recommendation": self.recommendation,
            "inferred": self.inferred,
        }


def default_recommendation(verdict: str) -> str:
    return RECOMMENDATIONS.get(verdict, RECOMMENDATIONS["suspicious"])


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _extract_json(text: str) -> str:
    block = _CODE_BLOCK_RE.search(text)
    if block:
        return block.group(1).strip()
    obj = _JSON_OBJECT_RE.search(text)
    if obj:
        return obj.group(0)
    return text


def validate(parsed: dict[str, Any]) -> EscalationVerdict:
    """Normalize a decoded reply: unknown verdicts become suspicious, numbers are clamped."""
    verdict = parsed.get("verdict")
    if verdict not in VALID_VERDICTS:
        verdict = "suspicious"

    confidence = min(1.0, max(0.0, _number(parsed.get("confidence"), 0.5)))
    risk_score = int(round(min(100.0, max(0.0, _number(parsed.get("risk_score"), 50)))))
    reasons = parsed.get("reasons")
    reasons = [str(r) for r in reasons] if isinstance(reasons, list) else []
    recommendation = str(parsed.get("recommendation") or default_recommendation(verdict))

    return EscalationVerdict(
        verdict=verdict,
        confidence=confidence,
        risk_score=risk_score,
        reasons=reasons,
        recommendation=recommendation,
    )


def infer_from_text(text: str) -> EscalationVerdict:
    """Keyword fallback when the reply is not valid JSON."""
    lower = text.lower()
    verdict, risk_score = "suspicious", 50
    if any(word in lower for word in PHISHING_KEYWORDS):
        verdict, risk_score = "phishing", 80
    elif any(word in lower for word in SAFE_KEYWORDS):
        verdict, risk_score = "safe", 15

    return EscalationVerdict(
        verdict=verdict,
        confidence=0.3,
        risk_score=risk_score,
        reasons=["Reply could not be parsed as JSON; verdict inferred from text"],
        recommendation=default_recommendation(verdict),
        inferred=True,
    )


def parse_escalation_response(text: str | None) -> EscalationVerdict:
    if not text or not text.strip():
        return EscalationVerdict(
            verdict="suspicious",
            confidence=0.1,
            risk_score=50,
            reasons=["Empty reply"],
            recommendation="The analysis result could not be confirmed. Proceed with caution.",
            inferred=True,
        )

    try:
        parsed = json.loads(_extract_json(text))
    except ValueError as e:
        logger.warning("Escalation reply is not JSON: %s", e)
        return infer_from_text(text)

    if not isinstance(parsed, dict):
        logger.warning("Escalation reply JSON is not an object")
        return infer_from_text(text)
    return validate(parsed)
