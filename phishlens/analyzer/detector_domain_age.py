"""Domain registration age detector.

Looks up the creation date of the registrable domain through a WHOIS JSON
API first and RDAP (rdap.org) second. Successful results are cached per
hostname for 24 hours.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from ..cache import CacheManager, create_domain_age_cache
from ..constants import DETECTOR_WEIGHTS, DOMAIN_AGE
from ..utils.domains import registrable_domain
from .detector_base import BaseDetector
from .detector_models import DetectionContext, DetectorFinding

logger = logging.getLogger(__name__)

DEFAULT_WHOIS_API_URL = "https://www.ip2whois.com/api/v1"
DEFAULT_RDAP_URL = "https://rdap.org/domain/"
USER_AGENT = "PhishLens/1.0"

SOURCE_CONFIDENCE = {
    "whois": 0.8,
    "rdap": 0.6,
}

_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


@dataclass(frozen=True)
class DomainRegistration:
    domain: str
    creation_date: Optional[str] = None
    registrar: str = "unknown"
    source: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.creation_date)


def parse_registration_date(value: object) -> Optional[datetime]:
    """Parse the assorted ISO-8601 shapes registries return; naive means UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _OFFSET_RE.sub(r"\1:\2", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text[:10], "%Y-%m-%d")
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _extract_first_vcard_value(vcard_array: object, field: str) -> Optional[str]:
    """Extract first vCard value for a given field (e.g., 'fn')."""
    if not isinstance(vcard_array, list) or len(vcard_array) < 2:
        return None
    entries = vcard_array[1]
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if not isinstance(entry, list) or len(entry) < 4:
            continue
        if str(entry[0]).lower() != field.lower():
            continue
        value = entry[3]
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_rdap_registration(data: object) -> tuple[Optional[str], Optional[str]]:
    """Return (registration_date, registrar_name) from RDAP JSON (best-effort)."""
    if not isinstance(data, dict):
        return (None, None)

    creation_date = None
    for event in data.get("events") or []:
        if isinstance(event, dict) and event.get("eventAction") == "registration":
            creation_date = event.get("eventDate")
            break

    registrar = None
    for entity in data.get("entities") or []:
        if not isinstance(entity, dict):
            continue
        roles = entity.get("roles") or []
        name = _extract_first_vcard_value(entity.get("vcardArray"), "fn")
        if name and ("registrar" in roles or registrar is None):
            registrar = name
            if "registrar" in roles:
                break

    return (creation_date, registrar)


def classify_age(age_days: int) -> tuple[int, str]:
    if age_days < 30:
        return 70, f"Domain was registered {age_days} days ago; new domains are common in phishing"
    if age_days < 90:
        return 50, f"Domain was registered about {age_days // 7} weeks ago"
    if age_days < 365:
        return 30, f"Domain was registered about {age_days // 30} months ago"
    return 5, f"Domain was registered about {age_days // 365} years ago"


class DomainAgeDetector(BaseDetector):
    """Scores how recently the registrable domain was created."""

    name = "DomainAgeDetector"
    key = DOMAIN_AGE
    weight = DETECTOR_WEIGHTS[DOMAIN_AGE]

    def __init__(
        self,
        whois_api_url: str = DEFAULT_WHOIS_API_URL,
        rdap_url: str = DEFAULT_RDAP_URL,
        timeout: float = 10.0,
        cache: Optional[CacheManager] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.whois_api_url = whois_api_url
        self.rdap_url = rdap_url if rdap_url.endswith("/") else f"{rdap_url}/"
        self.timeout = timeout
        self.cache = cache if cache is not None else create_domain_age_cache()
        self._transport = transport
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
        )

    async def analyze(self, context: DetectionContext) -> DetectorFinding:
        hostname = (context.hostname or "").lower()
        cached = self.cache.get(hostname)
        if cached is not None:
            logger.debug("Domain age cache hit for %s", hostname)
            return cached

        registration = await self.lookup(registrable_domain(hostname))
        if not registration.ok:
            logger.warning(
                "Could not retrieve domain age for %s: %s", hostname, registration.error
            )
            return self.unavailable(
                "Domain registration date unavailable",
                error="lookup_failed",
                hostname=hostname,
            )

        created = parse_registration_date(registration.creation_date)
        if created is None:
            return self.unavailable(
                "Domain registration date could not be parsed",
                error="bad_date",
                hostname=hostname,
                creation_date=registration.creation_date,
            )

        age_days = max(0, (self._now() - created).days)
        risk, reason = classify_age(age_days)
        finding = self.finding(
            risk,
            SOURCE_CONFIDENCE.get(registration.source, 0.6),
            reason,
            hostname=hostname,
            creation_date=registration.creation_date,
            age_days=age_days,
            registrar=registration.registrar,
            source=registration.source,
        )
        self.cache.set(hostname, finding)
        return finding

    async def lookup(self, domain: str) -> DomainRegistration:
        """Creation date via the WHOIS API, falling back to RDAP."""
        if not domain:
            return DomainRegistration(domain=domain, error="empty domain")

        async with self._client() as client:
            primary = await self._query_whois(client, domain)
            if primary.ok:
                return primary
            logger.info("WHOIS lookup failed for %s (%s); trying RDAP", domain, primary.error)
            fallback = await self._query_rdap(client, domain)
            if fallback.ok:
                return fallback
            return DomainRegistration(
                domain=domain,
                error=f"{primary.error}; {fallback.error}",
            )

    async def _query_whois(self, client: httpx.AsyncClient, domain: str) -> DomainRegistration:
        try:
            resp = await client.get(self.whois_api_url, params={"domain": domain})
        except httpx.HTTPError as e:
            return DomainRegistration(domain=domain, source="whois", error=f"WHOIS request failed: {e}")

        if resp.status_code != 200:
            return DomainRegistration(
                domain=domain,
                source="whois",
                error=f"WHOIS lookup failed ({resp.status_code})",
            )
        try:
            data = resp.json()
        except ValueError:
            return DomainRegistration(domain=domain, source="whois", error="WHOIS returned invalid JSON")

        created = data.get("create_date") if isinstance(data, dict) else None
        if not created:
            return DomainRegistration(domain=domain, source="whois", error="WHOIS has no create_date")
        return DomainRegistration(
            domain=domain,
            creation_date=str(created),
            registrar=_registrar_name(data.get("registrar")),
            source="whois",
        )

    async def _query_rdap(self, client: httpx.AsyncClient, domain: str) -> DomainRegistration:
        url = f"{self.rdap_url}{quote(domain)}"
        try:
            resp = await client.get(url, headers={"Accept": "application/rdap+json"})
        except httpx.HTTPError as e:
            return DomainRegistration(domain=domain, source="rdap", error=f"RDAP request failed: {e}")

        if resp.status_code != 200:
            return DomainRegistration(
                domain=domain,
                source="rdap",
                error=f"RDAP lookup failed ({resp.status_code})",
            )
        try:
            data = resp.json()
        except ValueError:
            return DomainRegistration(domain=domain, source="rdap", error="RDAP returned invalid JSON")

        created, registrar = parse_rdap_registration(data)
        if not created:
            return DomainRegistration(domain=domain, source="rdap", error="RDAP has no registration event")
        return DomainRegistration(
            domain=domain,
            creation_date=str(created),
            registrar=registrar or "unknown",
            source="rdap",
        )


def _registrar_name(value: object) -> str:
    # ip2whois nests the registrar as {"name": ..., "url": ...}.
    if isinstance(value, dict):
        return str(value.get("name") or "unknown")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return "unknown"
