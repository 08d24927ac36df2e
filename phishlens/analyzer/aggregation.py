"""Confidence-weighted risk aggregation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from ..constants import (
    HIGH_RISK_OVERRIDE_CONFIDENCE,
    HIGH_RISK_OVERRIDE_FLOOR,
    HIGH_RISK_OVERRIDE_RISK,
    RISK_DANGER_THRESHOLD,
    RISK_WARNING_THRESHOLD,
    RiskLevel,
)
from .detector_models import AggregatedResult, DetectorFinding, EscalationOutcome


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class RiskThresholds:
    warning: int = RISK_WARNING_THRESHOLD
    danger: int = RISK_DANGER_THRESHOLD

    def classify(self, total_risk: int) -> RiskLevel:
        if total_risk >= self.danger:
            return RiskLevel.DANGER
        if total_risk >= self.warning:
            return RiskLevel.WARNING
        return RiskLevel.SAFE


DEFAULT_THRESHOLDS = RiskThresholds()


def calculate_total_risk(findings: Iterable[DetectorFinding]) -> int:
    """Confidence-weighted mean of finding risks, 0..100.

    Findings with zero confidence are ignored. A single confident
    high-risk finding (risk >= 90, confidence >= 0.5) floors the result at 70
    so it cannot be averaged away by benign signals.
    """
    valid = [f for f in findings if f.confidence > 0]
    if not valid:
        return 0

    weighted_sum = sum(f.risk * f.weight * f.confidence for f in valid)
    total_weight = sum(f.weight * f.confidence for f in valid)
    total = round_half_up(weighted_sum / total_weight) if total_weight > 0 else 0

    if any(
        f.risk >= HIGH_RISK_OVERRIDE_RISK and f.confidence >= HIGH_RISK_OVERRIDE_CONFIDENCE
        for f in valid
    ):
        total = max(total, HIGH_RISK_OVERRIDE_FLOOR)

    return max(0, min(100, total))


def classify_risk(total_risk: int, thresholds: RiskThresholds = DEFAULT_THRESHOLDS) -> RiskLevel:
    return thresholds.classify(total_risk)


def aggregate(
    findings: Iterable[DetectorFinding],
    hostname: str,
    *,
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS,
    preliminary_risk: Optional[int] = None,
    escalation: Optional[EscalationOutcome] = None,
    allowlisted: bool = False,
    analyzed_at: Optional[datetime] = None,
) -> AggregatedResult:
    items = tuple(findings)
    total = calculate_total_risk(items)
    return AggregatedResult(
        total_risk=total,
        risk_level=classify_risk(total, thresholds),
        findings=items,
        hostname=hostname,
        analyzed_at=analyzed_at or datetime.now(timezone.utc),
        preliminary_risk=preliminary_risk,
        escalation=escalation or EscalationOutcome(),
        allowlisted=allowlisted,
    )
