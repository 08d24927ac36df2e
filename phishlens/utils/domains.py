"""Domain normalization utilities.

Everything in this module is pure and fails soft: malformed input produces
empty values instead of exceptions, so callers can treat an empty hostname as
"not analyzable".
"""

from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlsplit

import idna
import tldextract

logger = logging.getLogger(__name__)

# Second-level public suffixes that must be kept together with their TLD.
MULTI_LABEL_SUFFIXES: frozenset[str] = frozenset({
    # Korea
    "co.kr", "or.kr", "ne.kr", "go.kr", "ac.kr", "pe.kr", "re.kr", "ms.kr",
    # Japan
    "co.jp", "or.jp", "ne.jp", "ac.jp", "go.jp", "ad.jp",
    # United Kingdom
    "co.uk", "org.uk", "ac.uk", "gov.uk", "me.uk", "net.uk", "sch.uk",
    # Australia / New Zealand
    "com.au", "net.au", "org.au", "edu.au", "gov.au", "id.au",
    "co.nz", "net.nz", "org.nz", "ac.nz", "govt.nz",
    # China / Taiwan / Hong Kong / Singapore
    "com.cn", "net.cn", "org.cn", "gov.cn", "edu.cn", "ac.cn",
    "com.tw", "net.tw", "org.tw", "edu.tw", "gov.tw",
    "com.hk", "net.hk", "org.hk", "edu.hk", "gov.hk",
    "com.sg", "net.sg", "org.sg", "edu.sg", "gov.sg",
    # India / Brazil / South Africa
    "co.in", "net.in", "org.in", "ac.in", "gov.in",
    "com.br", "net.br", "org.br", "edu.br", "gov.br",
    "co.za", "net.za", "org.za", "ac.za", "gov.za",
    # South-east Asia
    "co.th", "or.th", "ac.th", "go.th", "in.th",
    "com.vn", "net.vn", "org.vn", "edu.vn", "gov.vn",
    "com.my", "net.my", "org.my", "edu.my", "gov.my",
    "co.id", "or.id", "ac.id", "go.id", "web.id",
    "com.ph", "net.ph", "org.ph", "edu.ph", "gov.ph",
    # Africa / Americas / Europe
    "com.ng", "net.ng", "org.ng", "edu.ng", "gov.ng",
    "com.mx", "net.mx", "org.mx", "edu.mx", "gob.mx",
    "com.ar", "net.ar", "org.ar", "edu.ar", "gov.ar",
    "com.tr", "net.tr", "org.tr", "edu.tr", "gov.tr",
    "com.ru", "co.at", "co.il", "co.ke",
})

LOCALHOST_NAMES: frozenset[str] = frozenset({
    "localhost",
    "127.0.0.1",
    "::1",
    "[::1]",
    "0.0.0.0",
})

_IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
_BARE_IPV6_RE = re.compile(r"^[0-9a-f:]+$", re.I)
# A leading "scheme:" that is not really "host:port".
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:(?!\d)")

_suffix_extractor: Optional[tldextract.TLDExtract] = None


@dataclass(frozen=True)
class ParsedURL:
    """Structural breakdown of a URL, derived once per input."""

    protocol: str = ""
    hostname: str = ""
    port: str = ""
    path: str = ""
    # Read-only view; last value wins for repeated keys.
    query_params: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    fragment: str = ""
    registrable_domain: str = ""
    subdomain: str = ""
    top_level_suffix: str = ""
    is_ip_literal: bool = False
    is_localhost: bool = False

    @classmethod
    def empty(cls) -> "ParsedURL":
        return cls()

    @property
    def analyzable(self) -> bool:
        """Whether downstream detectors should run for this host at all."""
        return bool(self.hostname) and not self.is_ip_literal and not self.is_localhost


def canonicalize_domain(value: str) -> str:
    """
    Normalize a domain/URL to a canonical host key.

    - Lowercase
    - Strip leading "www."
    - Ignore port/path/query/fragment
    """
    raw = (value or "").strip()
    if not raw:
        return ""

    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        host = urlsplit(candidate).hostname or ""
    except ValueError:
        host = ""
    host = (host or raw.split("/")[0]).strip().lower().strip(".")
    host = _strip_port(host)

    if host.startswith("www.") and len(host) > 4:
        host = host[4:]
    return host


def _strip_port(host: str) -> str:
    if not host:
        return ""
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


def is_ip_literal(host: str) -> bool:
    """Heuristic IPv4/IPv6 literal detection (dotted quad, brackets, bare colons)."""
    value = (host or "").strip()
    if not value:
        return False
    if value.startswith("["):
        return True
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        pass
    if _IPV4_RE.match(value):
        return True
    return ":" in value and bool(_BARE_IPV6_RE.match(value))


def is_localhost(host: str) -> bool:
    return (host or "").strip().lower() in LOCALHOST_NAMES


def registrable_domain(hostname: str) -> str:
    """Return the registrable domain (eTLD+1) for a hostname.

    Multi-label suffixes (``co.kr``, ``co.uk``...) are checked against the last
    two labels first; otherwise the last two labels are returned. Single-label
    hosts such as ``localhost`` come back unchanged.
    """
    if not hostname:
        return ""

    parts = hostname.lower().rstrip(".").split(".")
    if len(parts) <= 1:
        return hostname

    if len(parts) >= 3 and ".".join(parts[-2:]) in MULTI_LABEL_SUFFIXES:
        return ".".join(parts[-3:])

    return ".".join(parts[-2:])


def split_suffix(hostname: str) -> tuple[str, str]:
    """Split a hostname into (name, suffix) honoring multi-label suffixes."""
    host = (hostname or "").lower().rstrip(".")
    parts = host.split(".")
    if len(parts) < 2:
        return host, ""
    suffix_labels = 1
    if len(parts) >= 3 and ".".join(parts[-2:]) in MULTI_LABEL_SUFFIXES:
        suffix_labels = 2
    return ".".join(parts[:-suffix_labels]), ".".join(parts[-suffix_labels:])


def _get_suffix_extractor() -> tldextract.TLDExtract:
    global _suffix_extractor
    if _suffix_extractor is None:
        # Bundled public-suffix snapshot only; never hit the network.
        _suffix_extractor = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())
    return _suffix_extractor


def is_known_suffix(suffix: str) -> bool:
    """Check whether a (possibly multi-label) suffix is a known public suffix."""
    value = (suffix or "").strip().lower().strip(".")
    if not value:
        return False
    if value in MULTI_LABEL_SUFFIXES:
        return True
    try:
        extracted = _get_suffix_extractor()(f"example.{value}")
    except Exception as exc:
        logger.debug("Suffix lookup failed for %s: %s", value, exc)
        return False
    return extracted.suffix == value


def _decode_label(label: str) -> str:
    if not label.lower().startswith("xn--"):
        return label
    try:
        return idna.decode(label)
    except (idna.IDNAError, UnicodeError, ValueError):
        pass
    # Strict IDNA rejects some confusables (fullwidth letters etc.); decode
    # the raw Punycode payload so they can still be inspected.
    try:
        return label[4:].encode("ascii").decode("punycode")
    except (UnicodeError, ValueError):
        return label


def decode_internationalized(hostname: str) -> str:
    """Decode every ``xn--`` label of a hostname; undecodable labels pass through."""
    if not hostname or not isinstance(hostname, str):
        return hostname or ""
    return ".".join(_decode_label(label) for label in hostname.split("."))


def _split_url(candidate: str):
    try:
        parts = urlsplit(candidate)
        # Accessing .port validates it; invalid ports raise ValueError.
        port = parts.port
    except ValueError:
        return None
    return parts, port


def parse_url(url_string: str) -> ParsedURL:
    """Parse a URL into its components plus phishing-relevant classification.

    Input without a scheme is read as ``https://``. Anything that cannot be
    parsed produces ``ParsedURL.empty()``.
    """
    if not isinstance(url_string, str) or not url_string.strip():
        return ParsedURL.empty()

    raw = url_string.strip()
    if _SCHEME_RE.match(raw):
        result = _split_url(raw)
    else:
        result = _split_url(f"https://{raw}")
    if result is None:
        return ParsedURL.empty()

    parts, port = result
    protocol = f"{parts.scheme.lower()}:" if parts.scheme else ""
    hostname = (parts.hostname or "").strip().lower().rstrip(".")
    if ":" in hostname and not hostname.startswith("["):
        hostname = f"[{hostname}]"

    path = parts.path or ("/" if parts.netloc else "")
    query_params = MappingProxyType(dict(parse_qsl(parts.query, keep_blank_values=True)))
    fragment = f"#{parts.fragment}" if parts.fragment else ""

    ip_literal = is_ip_literal(hostname)
    localhost = is_localhost(hostname)

    domain = ""
    subdomain = ""
    suffix = ""
    if hostname and not ip_literal:
        labels = hostname.split(".")
        if len(labels) == 1:
            domain = hostname
        else:
            _, suffix = split_suffix(hostname)
            domain = registrable_domain(hostname)
            if len(hostname) > len(domain):
                subdomain = hostname[: -len(domain)].rstrip(".")

    return ParsedURL(
        protocol=protocol,
        hostname=hostname,
        port=str(port) if port is not None else "",
        path=path,
        query_params=query_params,
        fragment=fragment,
        registrable_domain=domain,
        subdomain=subdomain,
        top_level_suffix=suffix,
        is_ip_literal=ip_literal,
        is_localhost=localhost,
    )
