"""Detector interface and registry."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, Protocol, runtime_checkable

from .detector_models import DetectionContext, DetectorFinding

logger = logging.getLogger(__name__)


@runtime_checkable
class Detector(Protocol):
    """Interface for ensemble detectors."""

    name: str
    key: str
    weight: float

    async def analyze(self, context: DetectionContext) -> DetectorFinding:  # pragma: no cover - interface
        ...


def failure_finding(detector: Detector, exc: BaseException) -> DetectorFinding:
    """Zero-confidence finding describing a detector crash."""
    name = getattr(detector, "name", type(detector).__name__)
    return DetectorFinding.unavailable(
        name,
        getattr(detector, "weight", 0.0),
        f"{name} failed: {exc}",
        error=str(exc),
        error_type=type(exc).__name__,
    )


class BaseDetector:
    """Common plumbing for concrete detectors."""

    name: str = "BaseDetector"
    key: str = ""
    weight: float = 0.0

    async def analyze(self, context: DetectionContext) -> DetectorFinding:  # pragma: no cover - interface
        raise NotImplementedError

    async def run(self, context: DetectionContext) -> DetectorFinding:
        """Run ``analyze`` and turn any exception into a zero-confidence finding."""
        try:
            return await self.analyze(context)
        except Exception as exc:
            logger.warning("%s failed for %s: %s", self.name, context.hostname, exc)
            return failure_finding(self, exc)

    def finding(
        self,
        risk: int,
        confidence: float,
        reason: str,
        **details,
    ) -> DetectorFinding:
        return DetectorFinding(
            detector_name=self.name,
            weight=self.weight,
            risk=risk,
            confidence=confidence,
            reason=reason,
            details=details,
        )

    def unavailable(self, reason: str, **details) -> DetectorFinding:
        return DetectorFinding.unavailable(self.name, self.weight, reason, **details)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, weight={self.weight})"


class DetectorRegistry:
    """Ordered collection of detectors addressable by key."""

    def __init__(self, detectors: Optional[Iterable[Detector]] = None):
        self._detectors: dict[str, Detector] = {}
        for detector in detectors or ():
            self.register(detector)

    def register(self, detector: Detector) -> None:
        name = getattr(detector, "name", None)
        analyze = getattr(detector, "analyze", None)
        if not name or not callable(analyze):
            raise TypeError(f"Not a detector: {detector!r}")
        key = getattr(detector, "key", "") or name
        if key in self._detectors:
            logger.debug("Replacing detector registered under %s", key)
        self._detectors[key] = detector

    def unregister(self, key: str) -> Optional[Detector]:
        return self._detectors.pop(key, None)

    def get(self, key: str) -> Optional[Detector]:
        return self._detectors.get(key)

    def keys(self) -> list[str]:
        return list(self._detectors)

    def enabled(self, enabled_detectors: Optional[dict[str, bool]] = None) -> list[Detector]:
        """Detectors whose key is not explicitly disabled, in registration order."""
        flags = enabled_detectors or {}
        return [d for key, d in self._detectors.items() if flags.get(key, True) is not False]

    def __iter__(self) -> Iterator[Detector]:
        return iter(list(self._detectors.values()))

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, key: str) -> bool:
        return key in self._detectors
