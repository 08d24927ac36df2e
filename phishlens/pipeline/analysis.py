"""Analysis engine for PhishLens."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from ..analyzer.aggregation import RiskThresholds, aggregate
from ..analyzer.detector_blacklist import BlacklistDetector, FileHostnameStore
from ..analyzer.detector_content import ContentAnalysisDetector
from ..analyzer.detector_domain_age import DEFAULT_WHOIS_API_URL, DomainAgeDetector
from ..analyzer.detector_engine import DetectorEnsemble, EnsembleOptions
from ..analyzer.detector_escalation import EscalationClient, EscalationDetector, PromptBuilder
from ..analyzer.detector_models import AggregatedResult, DetectionContext, PageContent
from ..analyzer.detector_protocol import ProtocolDetector
from ..analyzer.known_domains import KnownDomainRegistry, get_registry, is_allowlisted
from ..analyzer.metrics import metrics
from ..analyzer.typosquat import TyposquatDetector, TyposquatMatcher
from ..cache import CacheManager, create_result_cache
from ..config import Config
from ..constants import ANALYZABLE_PROTOCOLS, risk_escalated
from ..utils.domains import parse_url

logger = logging.getLogger(__name__)

PageInput = Union[PageContent, Mapping[str, Any], None]


def build_detectors(config: Config, registry: KnownDomainRegistry) -> list:
    """Standard detector set wired to the configured collaborators."""
    matcher = TyposquatMatcher(
        threshold=config.similarity_threshold,
        generic_subdomains=config.generic_subdomains,
    )
    return [
        TyposquatDetector(registry=registry, matcher=matcher),
        ProtocolDetector(),
        DomainAgeDetector(
            whois_api_url=config.whois_api_url or DEFAULT_WHOIS_API_URL,
            timeout=config.domain_age_timeout,
        ),
        ContentAnalysisDetector(),
        BlacklistDetector(FileHostnameStore(config.blacklist_path)),
    ]


def _coerce_page(page: PageInput) -> Optional[PageContent]:
    if page is None or isinstance(page, PageContent):
        return page
    return PageContent.from_dict(dict(page))


class AnalysisEngine:
    """Encapsulates URL analysis: allowlist, cache and the detector ensemble."""

    def __init__(
        self,
        config: Optional[Config] = None,
        ensemble: Optional[DetectorEnsemble] = None,
        cache: Optional[CacheManager] = None,
        registry: Optional[KnownDomainRegistry] = None,
    ):
        self.config = config or Config()
        if registry is None:
            registry = (
                KnownDomainRegistry(self.config.known_domains_path)
                if self.config.known_domains_path
                else get_registry()
            )
        self.registry = registry
        self.ensemble = ensemble or DetectorEnsemble(
            build_detectors(self.config, self.registry),
            escalation_detector=EscalationDetector(),
        )
        self.cache = cache if cache is not None else create_result_cache(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
        )
        self.thresholds = RiskThresholds(
            warning=self.config.risk_warning,
            danger=self.config.risk_danger,
        )

    async def analyze_url(
        self,
        url: str,
        page: PageInput = None,
        *,
        escalation_client: Optional[EscalationClient] = None,
        rag_context: Optional[str] = None,
        prompts: Optional[PromptBuilder] = None,
    ) -> Optional[AggregatedResult]:
        """Analyze a URL; None when the destination is not an analyzable web host."""
        parsed = parse_url(url)
        if not parsed.analyzable or parsed.protocol not in ANALYZABLE_PROTOCOLS:
            logger.debug("Skipping non-analyzable URL: %s", url)
            return None

        hostname = parsed.hostname
        allowlisted = await self._allowlisted_result(hostname)
        if allowlisted is not None:
            return allowlisted

        cached = self.cache.get(hostname)
        if cached is not None:
            logger.debug("Result cache hit for %s", hostname)
            metrics.record_cache_hit()
            return cached

        context = DetectionContext.from_parsed(url, parsed, _coerce_page(page))
        result = await self.ensemble.analyze(
            context,
            self._options(
                enable_escalation=self.config.escalation_enabled,
                escalation_client=escalation_client,
                rag_context=rag_context,
                prompts=prompts,
            ),
        )
        self.cache.set(hostname, result)
        return result

    async def reanalyze_with_page(
        self, url: str, page: PageInput
    ) -> Optional[AggregatedResult]:
        """Re-run the detectors once page content is available.

        Escalation is not repeated; a confident escalation finding from the
        previous result is carried over and the score recomputed with it.
        """
        parsed = parse_url(url)
        if not parsed.analyzable or parsed.protocol not in ANALYZABLE_PROTOCOLS:
            return None

        hostname = parsed.hostname
        allowlisted = await self._allowlisted_result(hostname)
        if allowlisted is not None:
            return allowlisted

        previous: Optional[AggregatedResult] = self.cache.get(hostname)
        self.cache.delete(hostname)

        context = DetectionContext.from_parsed(url, parsed, _coerce_page(page))
        result = await self.ensemble.analyze(
            context, self._options(enable_escalation=False)
        )

        escalation_name = self.ensemble.escalation_detector.name
        prior = previous.finding(escalation_name) if previous is not None else None
        if prior is not None and prior.evaluated:
            findings = [f for f in result.findings if f.detector_name != escalation_name]
            findings.append(prior)
            result = aggregate(
                findings,
                hostname,
                thresholds=self.thresholds,
                preliminary_risk=result.preliminary_risk,
                escalation=previous.escalation,
            )
            logger.debug("Carried escalation finding over for %s", hostname)

        if previous is not None and risk_escalated(result.risk_level.value, previous.risk_level.value):
            logger.warning(
                "Risk for %s escalated from %s to %s after page analysis",
                hostname,
                previous.risk_level.value,
                result.risk_level.value,
            )

        self.cache.set(hostname, result)
        return result

    def clear_cache(self) -> None:
        """Drop cached results, e.g. after escalation settings change."""
        self.cache.clear()
        logger.info("Result cache cleared")

    def set_escalation_enabled(self, enabled: bool) -> None:
        if enabled == self.config.escalation_enabled:
            return
        self.config.escalation_enabled = enabled
        logger.info("Escalation %s", "enabled" if enabled else "disabled")
        self.clear_cache()

    async def _allowlisted_result(self, hostname: str) -> Optional[AggregatedResult]:
        corpus = await self.registry.get()
        if not is_allowlisted(hostname, corpus, self.config.allowlist):
            return None
        logger.debug("Allowlisted host: %s", hostname)
        return aggregate((), hostname, thresholds=self.thresholds, allowlisted=True)

    def _options(
        self,
        *,
        enable_escalation: bool,
        escalation_client: Optional[EscalationClient] = None,
        rag_context: Optional[str] = None,
        prompts: Optional[PromptBuilder] = None,
    ) -> EnsembleOptions:
        return EnsembleOptions(
            enabled_detectors=self.config.enabled_detectors,
            enable_escalation=enable_escalation,
            escalation_client=escalation_client,
            escalation_band=self.config.escalation_band,
            rag_context=rag_context,
            prompts=prompts,
            thresholds=self.thresholds,
        )
