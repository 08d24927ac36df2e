"""Detector data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..constants import RiskLevel
from ..utils.domains import ParsedURL


@dataclass(frozen=True)
class FormInput:
    type: str = "text"
    name: str = ""
    placeholder: str = ""


@dataclass(frozen=True)
class FormInfo:
    action: str = ""
    method: str = "get"
    inputs: tuple[FormInput, ...] = ()


@dataclass(frozen=True)
class PageContent:
    """Page metadata extracted by the caller (the engine never fetches pages)."""

    title: str = ""
    text: str = ""
    meta_description: str = ""
    favicon: str = ""
    forms: tuple[FormInfo, ...] = ()
    external_resources: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageContent":
        forms = []
        for form in data.get("forms") or []:
            inputs = tuple(
                FormInput(
                    type=str(item.get("type") or "text").lower(),
                    name=str(item.get("name") or ""),
                    placeholder=str(item.get("placeholder") or ""),
                )
                for item in form.get("inputs") or []
            )
            forms.append(
                FormInfo(
                    action=str(form.get("action") or ""),
                    method=str(form.get("method") or "get").lower(),
                    inputs=inputs,
                )
            )
        return cls(
            title=str(data.get("title") or ""),
            text=str(data.get("text") or data.get("body_text") or ""),
            meta_description=str(data.get("meta_description") or ""),
            favicon=str(data.get("favicon") or ""),
            forms=tuple(forms),
            external_resources=tuple(str(r) for r in data.get("external_resources") or []),
        )


@dataclass(frozen=True)
class DetectionContext:
    """Shared context passed to each detector."""

    url: str
    hostname: str
    protocol: str = "https:"
    path: str = "/"
    page: Optional[PageContent] = None

    @classmethod
    def from_parsed(
        cls,
        url: str,
        parsed: ParsedURL,
        page: Optional[PageContent] = None,
    ) -> "DetectionContext":
        return cls(
            url=url,
            hostname=parsed.hostname,
            protocol=parsed.protocol,
            path=parsed.path,
            page=page,
        )


@dataclass(frozen=True)
class DetectorFinding:
    """Outcome of a single detector.

    ``confidence == 0`` means the detector could not evaluate the target; the
    aggregator drops such findings.
    """

    detector_name: str
    weight: float
    risk: int = 0
    confidence: float = 0.0
    reason: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "risk", int(max(0, min(100, self.risk))))
        object.__setattr__(self, "confidence", float(max(0.0, min(1.0, self.confidence))))
        object.__setattr__(self, "weight", float(max(0.0, min(1.0, self.weight))))

    @classmethod
    def unavailable(
        cls,
        detector_name: str,
        weight: float,
        reason: str,
        **details: Any,
    ) -> "DetectorFinding":
        return cls(
            detector_name=detector_name,
            weight=weight,
            risk=0,
            confidence=0.0,
            reason=reason,
            details=dict(details),
        )

    @property
    def evaluated(self) -> bool:
        return self.confidence > 0

    @property
    def failed(self) -> bool:
        """True for findings built from a detector crash."""
        return not self.evaluated and "error_type" in self.details

    def to_dict(self) -> dict[str, Any]:
        return {
            "detector_name": self.detector_name,
            "weight": self.weight,
            "risk": self.risk,
            "confidence": round(self.confidence, 4),
            "reason": self.reason,
            "details": _json_safe(self.details),
        }


@dataclass(frozen=True)
class EscalationOutcome:
    attempted: bool = False
    skipped_reason: Optional[str] = None


@dataclass(frozen=True)
class AggregatedResult:
    """Final, confidence-weighted verdict for one hostname."""

    total_risk: int
    risk_level: RiskLevel
    findings: tuple[DetectorFinding, ...]
    hostname: str
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    preliminary_risk: Optional[int] = None
    escalation: EscalationOutcome = field(default_factory=EscalationOutcome)
    allowlisted: bool = False

    def finding(self, detector_name: str) -> Optional[DetectorFinding]:
        for item in self.findings:
            if item.detector_name == detector_name:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hostname": self.hostname,
            "total_risk": self.total_risk,
            "risk_level": self.risk_level.value,
            "preliminary_risk": self.preliminary_risk,
            "analyzed_at": self.analyzed_at.isoformat(),
            "allowlisted": self.allowlisted,
            "escalation": {
                "attempted": self.escalation.attempted,
                "skipped_reason": self.escalation.skipped_reason,
            },
            "findings": [f.to_dict() for f in self.findings],
        }


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
