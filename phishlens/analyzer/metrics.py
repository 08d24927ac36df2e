"""Detection metrics.

Counts analyses per risk level, detector runs and failures, escalation
outcomes and result-cache hits, so weights and thresholds can be tuned
against real traffic.
"""

import logging
import threading
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 200


@dataclass
class DetectorStats:
    """Counters for one detector."""

    runs: int = 0
    failures: int = 0
    unavailable: int = 0
    last_failure: Optional[datetime] = None
    last_error: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "runs": self.runs,
            "failures": self.failures,
            "unavailable": self.unavailable,
            "last_failure": self.last_failure.isoformat() if self.last_failure else None,
            "last_error": self.last_error[:MAX_ERROR_LENGTH],
        }


class DetectionMetrics:
    """Process-wide, thread-safe counters. Every instantiation returns the same object."""

    _instance: Optional["DetectionMetrics"] = None
    _create_lock = threading.Lock()

    def __new__(cls) -> "DetectionMetrics":
        with cls._create_lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._lock = threading.Lock()
                instance._clear()
                cls._instance = instance
        return cls._instance

    def _clear(self) -> None:
        self._detectors: defaultdict[str, DetectorStats] = defaultdict(DetectorStats)
        self._risk_levels: Counter[str] = Counter()
        self._escalations: Counter[str] = Counter()
        self._cache_hits = 0
        self._since = datetime.now()

    def record_detector_run(self, detector: str, evaluated: bool) -> None:
        with self._lock:
            stats = self._detectors[detector]
            stats.runs += 1
            if not evaluated:
                stats.unavailable += 1

    def record_detector_failure(self, detector: str, error: str) -> None:
        with self._lock:
            stats = self._detectors[detector]
            stats.failures += 1
            stats.last_failure = datetime.now()
            stats.last_error = error

    def record_escalation(self, outcome: str) -> None:
        """Count an escalation outcome: "completed" or the reason it was skipped."""
        with self._lock:
            self._escalations[outcome] += 1

    def record_risk_level(self, risk_level: str) -> None:
        with self._lock:
            self._risk_levels[str(risk_level)] += 1

    def record_cache_hit(self) -> None:
        with self._lock:
            self._cache_hits += 1

    def summary(self) -> dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": int((datetime.now() - self._since).total_seconds()),
                "total_analyses": sum(self._risk_levels.values()),
                "cache_hits": self._cache_hits,
                "risk_levels": dict(self._risk_levels),
                "escalations": dict(self._escalations),
                "detectors": {name: s.as_dict() for name, s in self._detectors.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._clear()
        logger.debug("Detection metrics reset")


metrics = DetectionMetrics()
