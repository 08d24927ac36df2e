"""Detector ensemble: runs detectors concurrently and aggregates their findings."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..constants import ENSEMBLE_ESCALATION_BAND, LLM_ANALYSIS
from .aggregation import DEFAULT_THRESHOLDS, RiskThresholds, aggregate, calculate_total_risk
from .detector_base import Detector, DetectorRegistry, failure_finding
from .detector_blacklist import BlacklistDetector
from .detector_content import ContentAnalysisDetector
from .detector_domain_age import DomainAgeDetector
from .detector_escalation import EscalationClient, EscalationDetector, PromptBuilder
from .detector_models import AggregatedResult, DetectionContext, DetectorFinding, EscalationOutcome
from .detector_protocol import ProtocolDetector
from .metrics import DetectionMetrics, metrics as default_metrics
from .typosquat import TyposquatDetector

logger = logging.getLogger(__name__)

SKIP_DISABLED = "disabled"
SKIP_NO_CLIENT = "no_client"
SKIP_BELOW_BAND = "below_band"
SKIP_ABOVE_BAND = "above_band"
SKIP_ERROR = "error"


@dataclass
class EnsembleOptions:
    """Per-call switches for :meth:`DetectorEnsemble.analyze`."""

    enabled_detectors: dict[str, bool] = field(default_factory=dict)
    enable_escalation: bool = False
    escalation_client: Optional[EscalationClient] = None
    escalation_band: tuple[float, float] = ENSEMBLE_ESCALATION_BAND
    rag_context: Optional[str] = None
    prompts: Optional[PromptBuilder] = None
    thresholds: RiskThresholds = DEFAULT_THRESHOLDS


def default_detectors() -> list[Detector]:
    """Standard detector set, in reporting order."""
    return [
        TyposquatDetector(),
        ProtocolDetector(),
        DomainAgeDetector(),
        ContentAnalysisDetector(),
        BlacklistDetector(),
    ]


class DetectorEnsemble:
    """Runs every enabled detector, then optionally escalates ambiguous cases."""

    def __init__(
        self,
        detectors: Optional[Iterable[Detector]] = None,
        escalation_detector: Optional[EscalationDetector] = None,
        metrics: Optional[DetectionMetrics] = None,
    ):
        self.registry = DetectorRegistry(
            detectors if detectors is not None else default_detectors()
        )
        self.escalation_detector = escalation_detector or EscalationDetector()
        self.metrics = metrics or default_metrics

    def register(self, detector: Detector) -> None:
        self.registry.register(detector)
        logger.info("Registered detector: %s", detector.name)

    @property
    def detectors(self) -> list[Detector]:
        return list(self.registry)

    async def analyze(
        self,
        context: DetectionContext,
        options: Optional[EnsembleOptions] = None,
    ) -> AggregatedResult:
        options = options or EnsembleOptions()
        active = self.registry.enabled(options.enabled_detectors)
        logger.info("Starting analysis for %s (%d detectors)", context.hostname, len(active))

        findings = await self._run_detectors(active, context)
        preliminary = calculate_total_risk(findings)

        outcome, escalation_finding = await self._maybe_escalate(
            context, findings, preliminary, options
        )
        if escalation_finding is not None:
            findings.append(escalation_finding)

        result = aggregate(
            findings,
            context.hostname,
            thresholds=options.thresholds,
            preliminary_risk=preliminary,
            escalation=outcome,
        )
        self.metrics.record_risk_level(result.risk_level.value)
        logger.info(
            "Analysis complete for %s: risk=%d level=%s",
            context.hostname,
            result.total_risk,
            result.risk_level.value,
        )
        return result

    async def _run_detectors(
        self, detectors: list[Detector], context: DetectionContext
    ) -> list[DetectorFinding]:
        tasks = [asyncio.create_task(self._dispatch(detector, context)) for detector in detectors]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        findings: list[DetectorFinding] = []
        for detector, result in zip(detectors, results):
            if isinstance(result, BaseException):
                logger.warning("%s failed for %s: %s", detector.name, context.hostname, result)
                self.metrics.record_detector_failure(detector.name, str(result))
                findings.append(failure_finding(detector, result))
                continue
            if not isinstance(result, DetectorFinding):
                error = TypeError(f"unexpected result type {type(result).__name__}")
                logger.warning("%s returned no finding for %s", detector.name, context.hostname)
                self.metrics.record_detector_failure(detector.name, str(error))
                findings.append(failure_finding(detector, error))
                continue
            if result.failed:
                self.metrics.record_detector_failure(detector.name, str(result.details.get("error", "")))
            else:
                self.metrics.record_detector_run(detector.name, result.evaluated)
            findings.append(result)
        return findings

    @staticmethod
    async def _dispatch(detector: Detector, context: DetectionContext) -> DetectorFinding:
        # BaseDetector.run turns its own exceptions into failure findings;
        # anything else raised here is caught by the gather in _run_detectors.
        run = getattr(detector, "run", None)
        if callable(run):
            return await run(context)
        return await detector.analyze(context)

    def _skip_reason(self, preliminary: int, options: EnsembleOptions) -> Optional[str]:
        if not options.enable_escalation or options.enabled_detectors.get(LLM_ANALYSIS) is False:
            return SKIP_DISABLED
        if options.escalation_client is None:
            return SKIP_NO_CLIENT
        low, high = options.escalation_band
        if preliminary < low:
            return SKIP_BELOW_BAND
        if preliminary > high:
            return SKIP_ABOVE_BAND
        return None

    async def _maybe_escalate(
        self,
        context: DetectionContext,
        findings: list[DetectorFinding],
        preliminary: int,
        options: EnsembleOptions,
    ) -> tuple[EscalationOutcome, Optional[DetectorFinding]]:
        skip = self._skip_reason(preliminary, options)
        if skip is not None:
            logger.debug(
                "Escalation skipped for %s (%s, preliminary=%d)", context.hostname, skip, preliminary
            )
            self.metrics.record_escalation(skip)
            return EscalationOutcome(attempted=False, skipped_reason=skip), None

        detector = self.escalation_detector
        try:
            finding = await detector.analyze(
                context,
                previous_findings=tuple(findings),
                client=options.escalation_client,
                prompts=options.prompts,
                rag_context=options.rag_context,
            )
        except Exception as e:
            logger.warning("Escalation failed for %s: %s", context.hostname, e)
            self.metrics.record_escalation(SKIP_ERROR)
            return (
                EscalationOutcome(attempted=True, skipped_reason=SKIP_ERROR),
                failure_finding(detector, e),
            )

        reason = None
        if not finding.evaluated:
            reason = finding.details.get("skipped_reason") or SKIP_ERROR
        self.metrics.record_escalation(reason or "completed")
        return EscalationOutcome(attempted=True, skipped_reason=reason), finding
