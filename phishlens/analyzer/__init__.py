"""Analyzer modules for PhishLens."""

from .aggregation import RiskThresholds, aggregate, calculate_total_risk, classify_risk
from .detector_base import BaseDetector, Detector, DetectorRegistry
from .detector_engine import DetectorEnsemble, EnsembleOptions
from .detector_models import AggregatedResult, DetectionContext, DetectorFinding, PageContent
from .known_domains import KnownDomainEntry, KnownDomainRegistry, get_registry
from .typosquat import TyposquatDetector, TyposquatMatcher

__all__ = [
    "AggregatedResult",
    "BaseDetector",
    "DetectionContext",
    "Detector",
    "DetectorEnsemble",
    "DetectorFinding",
    "DetectorRegistry",
    "EnsembleOptions",
    "KnownDomainEntry",
    "KnownDomainRegistry",
    "PageContent",
    "RiskThresholds",
    "TyposquatDetector",
    "TyposquatMatcher",
    "aggregate",
    "calculate_total_risk",
    "classify_risk",
    "get_registry",
]
