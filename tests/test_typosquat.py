"""Tests for typosquat detection."""

import pytest

from phishlens.analyzer.detector_models import DetectionContext
from phishlens.analyzer.known_domains import (
    KnownDomainEntry,
    KnownDomainRegistry,
    load_known_domains,
)
from phishlens.analyzer.typosquat import TyposquatDetector, TyposquatMatcher

CORPUS = (
    KnownDomainEntry("Naver", "naver.com", ("naver.net", "naver.me"), "portal"),
    KnownDomainEntry("Google", "google.com", ("gmail.com",), "portal"),
    KnownDomainEntry("PayPal", "paypal.com", (), "finance"),
)


@pytest.fixture
def matcher():
    return TyposquatMatcher()


class TestTyposquatMatcher:
    """Test the ordered typosquat checks."""

    @pytest.mark.parametrize("entry", load_known_domains())
    def test_bundled_primary_domains_are_exact(self, matcher, entry):
        """Every official domain in the bundled corpus scores zero."""
        finding = matcher.analyze(entry.primary_domain, load_known_domains())
        assert finding.risk == 0
        assert finding.details["match_type"] == "exact"

    def test_alias_and_subdomain_of_official_domain(self, matcher):
        """Aliases and real subdomains are owned by the brand."""
        for host in ("naver.me", "mail.naver.com", "accounts.google.com"):
            finding = matcher.analyze(host, CORPUS)
            assert finding.risk == 0
            assert finding.confidence == 1.0
            assert finding.details["match_type"] == "exact"

    def test_embedded_brand_domain(self, matcher):
        """naver.com.evil.com poses as a subdomain of naver.com."""
        finding = matcher.analyze("naver.com.evil.com", CORPUS)
        assert finding.risk >= 90
        assert finding.details["technique"] == "subdomain_impersonation"
        assert finding.details["matched_domain"] == "naver.com"

    def test_brand_as_leading_label(self, matcher):
        """A brand name as the first label of a foreign domain scores 90."""
        finding = matcher.analyze("paypal.secure-login.net", CORPUS)
        assert finding.risk == 90
        assert finding.confidence == 0.9
        assert finding.details["matched_domain"] == "paypal.com"

    def test_generic_brand_label_is_ignored(self):
        """Brands that are generic words are not flagged as leading labels."""
        corpus = (KnownDomainEntry("Card Co", "card.com"),)
        lenient = TyposquatMatcher()
        strict = TyposquatMatcher(generic_subdomains=[])

        assert lenient.analyze("card.evil-site.com", corpus).risk == 0
        assert strict.analyze("card.evil-site.com", corpus).risk == 90

    def test_repeated_character(self, matcher):
        finding = matcher.analyze("naverr.com", CORPUS)
        assert finding.risk >= 85
        assert finding.details["matched_domain"] == "naver.com"
        assert finding.details["technique"] == "character_repetition"
        assert finding.details["similarity"] == pytest.approx(0.91)

    def test_digit_homoglyph(self, matcher):
        finding = matcher.analyze("g00gle.com", CORPUS)
        assert finding.risk > 0
        assert finding.details["technique"] in {"homoglyph", "character_substitution"}
        assert finding.details["matched_domain"] == "google.com"

    def test_cyrillic_homoglyph(self, matcher):
        finding = matcher.analyze("nаver.com", CORPUS)
        assert finding.risk == 95
        assert finding.details["match_type"] == "homoglyph"
        assert finding.details["normalized_domain"] == "naver.com"

    def test_punycode_homoglyph(self, matcher):
        """IDN hosts are decoded before comparison."""
        host = "nаver.com".encode("idna").decode("ascii")
        assert host.startswith("xn--")
        finding = matcher.analyze(host, CORPUS)
        assert finding.risk == 95
        assert finding.details["match_type"] == "homoglyph"

    def test_tld_change(self, matcher):
        finding = matcher.analyze("paypal.xyz", CORPUS)
        assert finding.details["technique"] == "tld_change"
        assert finding.risk == 100

    def test_unlisted_suffix_is_not_a_tld_change(self, matcher):
        """Only a real public suffix counts as a TLD swap."""
        finding = matcher.analyze("paypal.notarealtld", CORPUS)
        assert finding.details["match_type"] == "similarity"
        assert finding.details["technique"] != "tld_change"

    def test_hyphen_insertion_similarity(self, matcher):
        finding = matcher.analyze("nav-er.com", CORPUS)
        assert finding.details["match_type"] == "similarity"
        assert finding.details["technique"] == "hyphen_insertion"

    def test_hyphenated_brand_phrase(self, matcher):
        """Brand plus extra words joined by hyphens falls through to the hyphen check."""
        finding = matcher.analyze("naver-login.com", CORPUS)
        assert finding.risk == 85
        assert finding.details["match_type"] == "hyphen_insertion"
        assert finding.details["matched_domain"] == "naver.com"

    def test_unrelated_domain(self, matcher):
        finding = matcher.analyze("wikipedia.org", CORPUS)
        assert finding.risk == 0
        assert finding.confidence == 0.8
        assert finding.details["match_type"] == "none"
        assert finding.details["best_match"]["domain"] in {"naver.com", "google.com", "paypal.com"}

    def test_empty_corpus(self, matcher):
        """Without a corpus nothing can match."""
        finding = matcher.analyze("naverr.com", ())
        assert finding.risk == 0
        assert finding.details["best_match"] is None

    def test_threshold_is_configurable(self):
        finding = TyposquatMatcher(threshold=0.95).analyze("naverr.com", CORPUS)
        assert finding.risk == 0


class TestTyposquatDetector:
    """Test the ensemble adapter."""

    @pytest.mark.asyncio
    async def test_reads_corpus_from_registry(self):
        registry = KnownDomainRegistry()
        registry.set_entries(CORPUS)
        detector = TyposquatDetector(registry=registry)

        finding = await detector.analyze(
            DetectionContext(url="http://naverr.com/", hostname="naverr.com")
        )

        assert finding.detector_name == "TyposquatDetector"
        assert finding.weight == 0.4
        assert finding.risk >= 85
        assert registry.load_count == 0
