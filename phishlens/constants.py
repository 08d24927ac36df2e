"""Centralized constants for PhishLens.

This module contains enums and constants used across multiple modules
to ensure consistency and reduce duplication.
"""

from __future__ import annotations

from enum import Enum


class RiskLevel(str, Enum):
    """Three-tier classification of an aggregated risk score."""

    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"

    @classmethod
    def from_string(cls, value: str | None) -> "RiskLevel":
        """Convert a string level to the enum, defaulting to SAFE."""
        if not value:
            return cls.SAFE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.SAFE

    @property
    def rank(self) -> int:
        return RISK_LEVEL_RANK[self.value]

    def __str__(self) -> str:
        return self.value


class Technique(str, Enum):
    """Typosquatting technique labels."""

    NONE = "none"
    CHARACTER_REPETITION = "character_repetition"
    CHARACTER_SUBSTITUTION = "character_substitution"
    CHARACTER_INSERTION = "character_insertion"
    CHARACTER_DELETION = "character_deletion"
    HOMOGLYPH = "homoglyph"
    TLD_CHANGE = "tld_change"
    HYPHEN_INSERTION = "hyphen_insertion"
    SUBDOMAIN_IMPERSONATION = "subdomain_impersonation"

    def __str__(self) -> str:
        return self.value


RISK_LEVEL_RANK = {
    "safe": 0,
    "warning": 1,
    "danger": 2,
}


# Detector keys as used in enable/disable maps.
TYPOSQUAT = "typosquat"
PROTOCOL = "protocol"
DOMAIN_AGE = "domain_age"
CONTENT_ANALYSIS = "content_analysis"
BLACKLIST = "blacklist"
LLM_ANALYSIS = "llm_analysis"

DETECTOR_KEYS = (
    TYPOSQUAT,
    PROTOCOL,
    DOMAIN_AGE,
    CONTENT_ANALYSIS,
    BLACKLIST,
    LLM_ANALYSIS,
)

# Fixed per-detector weights used by the aggregator.
DETECTOR_WEIGHTS = {
    TYPOSQUAT: 0.4,
    PROTOCOL: 0.15,
    DOMAIN_AGE: 0.15,
    CONTENT_ANALYSIS: 0.2,
    BLACKLIST: 0.25,
    LLM_ANALYSIS: 0.3,
}

# Aggregation policy
RISK_WARNING_THRESHOLD = 40
RISK_DANGER_THRESHOLD = 70
HIGH_RISK_OVERRIDE_RISK = 90
HIGH_RISK_OVERRIDE_CONFIDENCE = 0.5
HIGH_RISK_OVERRIDE_FLOOR = 70

# Escalation gates: the ensemble band and the detector's own band.
ENSEMBLE_ESCALATION_BAND = (20, 80)
DETECTOR_ESCALATION_BAND = (30, 80)

# Result cache defaults
RESULT_CACHE_TTL_SECONDS = 3600
RESULT_CACHE_MAX_ENTRIES = 200
DOMAIN_AGE_CACHE_TTL_SECONDS = 86400

ANALYZABLE_PROTOCOLS = ("http:", "https:")


def risk_escalated(current: str | None, previous: str | None) -> bool:
    """Check if a risk level got worse between two analyses."""
    return RiskLevel.from_string(current).rank > RiskLevel.from_string(previous).rank
