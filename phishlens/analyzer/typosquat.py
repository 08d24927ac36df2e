"""Typosquatting detection against the known-domain corpus."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..constants import DETECTOR_WEIGHTS, TYPOSQUAT, Technique
from ..utils.domain_similarity import (
    classify_technique,
    combined_similarity,
    normalize_homoglyphs,
)
from ..utils.domains import (
    decode_internationalized,
    is_known_suffix,
    registrable_domain,
    split_suffix,
)
from .aggregation import round_half_up
from .detector_base import BaseDetector
from .detector_models import DetectionContext, DetectorFinding
from .known_domains import KnownDomainEntry, KnownDomainRegistry, get_registry

logger = logging.getLogger(__name__)

DETECTOR_NAME = "TyposquatDetector"

# Brand names that double as ordinary subdomain labels are not treated as
# impersonation when they lead a hostname.
GENERIC_SUBDOMAINS = frozenset({
    "www", "m", "mail", "blog", "shop", "store", "pay", "login",
    "auth", "api", "app", "web", "map", "maps", "news", "search",
    "tv", "music", "open", "dev", "story", "cafe", "card", "order",
    "my", "id", "help", "support", "about", "admin", "portal",
    "cloud", "drive", "docs", "meet", "teams", "chat",
})

TECHNIQUE_BONUS = {
    Technique.HOMOGLYPH: 5,
    Technique.SUBDOMAIN_IMPERSONATION: 5,
    Technique.TLD_CHANGE: 4,
    Technique.CHARACTER_SUBSTITUTION: 3,
    Technique.CHARACTER_DELETION: 3,
    Technique.CHARACTER_INSERTION: 2,
    Technique.CHARACTER_REPETITION: 2,
    Technique.HYPHEN_INSERTION: 2,
}


@dataclass(frozen=True)
class _BestMatch:
    entry: KnownDomainEntry
    similarity: float


def _base_label(domain: str) -> str:
    return domain.split(".")[0]


def _is_tld_change(current: str, known: str) -> bool:
    """Same name moved to a different, real public suffix."""
    _, current_suffix = split_suffix(current)
    _, known_suffix = split_suffix(known)
    return current_suffix != known_suffix and is_known_suffix(current_suffix)


class TyposquatMatcher:
    """Scores how closely a hostname imitates a legitimate domain.

    Checks run in order and the first hit wins: exact/alias ownership,
    subdomain impersonation, homoglyph substitution, general similarity,
    hyphen insertion.
    """

    def __init__(
        self,
        threshold: float = 0.85,
        hyphen_threshold: float = 0.7,
        generic_subdomains: Optional[Iterable[str]] = None,
        weight: float = DETECTOR_WEIGHTS[TYPOSQUAT],
    ):
        self.threshold = threshold
        self.hyphen_threshold = hyphen_threshold
        self.generic_subdomains = (
            frozenset(s.lower() for s in generic_subdomains)
            if generic_subdomains is not None
            else GENERIC_SUBDOMAINS
        )
        self.weight = weight

    def _finding(self, risk: int, confidence: float, reason: str, **details) -> DetectorFinding:
        return DetectorFinding(
            detector_name=DETECTOR_NAME,
            weight=self.weight,
            risk=risk,
            confidence=confidence,
            reason=reason,
            details=details,
        )

    def analyze(
        self,
        hostname: str,
        corpus: Optional[Sequence[KnownDomainEntry]] = None,
    ) -> DetectorFinding:
        entries = tuple(corpus or ())
        host = decode_internationalized((hostname or "").strip().lower().rstrip("."))
        current = registrable_domain(host)

        exact = self._find_exact_match(host, entries)
        if exact is not None:
            return self._finding(
                0,
                1.0,
                f"{host} is an official domain of {exact.display_name} ({exact.primary_domain})",
                match_type="exact",
                matched_domain=exact.primary_domain,
                display_name=exact.display_name,
            )

        impersonation = self._check_subdomain_impersonation(host, entries)
        if impersonation is not None:
            return impersonation

        normalized = normalize_homoglyphs(current)
        if normalized != current:
            match = self._find_best_match(normalized, entries)
            if match is not None and match.similarity >= self.threshold:
                return self._finding(
                    95,
                    0.95,
                    f"{current} uses look-alike characters to imitate "
                    f"{match.entry.primary_domain}",
                    match_type="homoglyph",
                    matched_domain=match.entry.primary_domain,
                    technique=Technique.HOMOGLYPH.value,
                    similarity=round(match.similarity, 4),
                    display_name=match.entry.display_name,
                    original_domain=current,
                    normalized_domain=normalized,
                )

        best = self._find_best_match(current, entries)
        if best is not None and best.similarity >= self.threshold:
            known = best.entry.primary_domain
            current_base = _base_label(current)
            technique = classify_technique(best.entry.base_name, current_base)
            if current_base == best.entry.base_name and _is_tld_change(current, known):
                technique = Technique.TLD_CHANGE
            bonus = TECHNIQUE_BONUS.get(technique, 0)
            risk = min(100, round_half_up(best.similarity * 100) + bonus)
            return self._finding(
                risk,
                min(0.95, best.similarity),
                f"{current} is very similar to {known}; likely typosquatting",
                match_type="similarity",
                matched_domain=known,
                technique=technique.value,
                similarity=round(best.similarity, 2),
                display_name=best.entry.display_name,
            )

        hyphenated = self._check_hyphen_insertion(current, entries)
        if hyphenated is not None:
            return hyphenated

        return self._finding(
            0,
            0.8,
            "No similarity to known domains detected",
            match_type="none",
            best_match=(
                {
                    "domain": best.entry.primary_domain,
                    "similarity": round(best.similarity, 2),
                }
                if best is not None
                else None
            ),
        )

    def _find_exact_match(
        self, host: str, entries: Sequence[KnownDomainEntry]
    ) -> Optional[KnownDomainEntry]:
        for entry in entries:
            if entry.owns(host):
                return entry
        return None

    def _check_subdomain_impersonation(
        self, host: str, entries: Sequence[KnownDomainEntry]
    ) -> Optional[DetectorFinding]:
        labels = host.split(".")
        for entry in entries:
            brand_domain = entry.primary_domain
            if brand_domain in host and not host.endswith(brand_domain):
                return self._finding(
                    95,
                    0.95,
                    f"{host} embeds {brand_domain} to pose as a subdomain of it",
                    match_type="subdomain_impersonation",
                    matched_domain=brand_domain,
                    technique=Technique.SUBDOMAIN_IMPERSONATION.value,
                    similarity=0.95,
                    display_name=entry.display_name,
                )

            brand_name = entry.base_name
            if (
                len(labels) > 2
                and labels[0] == brand_name
                and not host.endswith(brand_domain)
                and brand_name not in self.generic_subdomains
            ):
                return self._finding(
                    90,
                    0.9,
                    f"{host} uses '{brand_name}' as a subdomain to impersonate "
                    f"{entry.display_name}",
                    match_type="subdomain_impersonation",
                    matched_domain=brand_domain,
                    technique=Technique.SUBDOMAIN_IMPERSONATION.value,
                    similarity=0.9,
                    display_name=entry.display_name,
                )
        return None

    def _find_best_match(
        self, domain: str, entries: Sequence[KnownDomainEntry]
    ) -> Optional[_BestMatch]:
        base = _base_label(domain)
        best: Optional[_BestMatch] = None
        for entry in entries:
            similarity = combined_similarity(base, entry.base_name)
            if best is None or similarity > best.similarity:
                best = _BestMatch(entry=entry, similarity=similarity)
        return best

    def _check_hyphen_insertion(
        self, current: str, entries: Sequence[KnownDomainEntry]
    ) -> Optional[DetectorFinding]:
        if "-" not in current:
            return None

        stripped = _base_label(current).replace("-", "")
        if not stripped:
            return None
        for entry in entries:
            brand_base = entry.base_name
            if brand_base in stripped or stripped in brand_base:
                similarity = combined_similarity(stripped, brand_base)
                if similarity >= self.hyphen_threshold:
                    return self._finding(
                        85,
                        0.85,
                        f"{current} inserts hyphens around {entry.primary_domain}",
                        match_type="hyphen_insertion",
                        matched_domain=entry.primary_domain,
                        technique=Technique.HYPHEN_INSERTION.value,
                        similarity=round(similarity, 2),
                        display_name=entry.display_name,
                    )
        return None


class TyposquatDetector(BaseDetector):
    """Ensemble adapter around :class:`TyposquatMatcher`."""

    name = DETECTOR_NAME
    key = TYPOSQUAT
    weight = DETECTOR_WEIGHTS[TYPOSQUAT]

    def __init__(
        self,
        registry: Optional[KnownDomainRegistry] = None,
        matcher: Optional[TyposquatMatcher] = None,
    ):
        self.registry = registry or get_registry()
        self.matcher = matcher or TyposquatMatcher(weight=self.weight)

    async def analyze(self, context: DetectionContext) -> DetectorFinding:
        logger.debug("Typosquat check for %s", context.hostname)
        corpus = await self.registry.get()
        return self.matcher.analyze(context.hostname, corpus)
