"""Known-domain corpus loader and process-wide registry."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import yaml

from ..utils.domains import canonicalize_domain

logger = logging.getLogger(__name__)

BUNDLED_CORPUS = Path(__file__).resolve().parent.parent / "data" / "known_domains.yaml"


@dataclass(frozen=True)
class KnownDomainEntry:
    """A legitimate brand and the domains it owns."""

    display_name: str
    primary_domain: str
    aliases: tuple[str, ...] = ()
    category: str = ""

    @property
    def base_name(self) -> str:
        """First label of the primary domain ("naver" for naver.com)."""
        return self.primary_domain.split(".")[0]

    @property
    def all_domains(self) -> tuple[str, ...]:
        return (self.primary_domain, *self.aliases)

    def owns(self, hostname: str) -> bool:
        """True when hostname equals, or is a subdomain of, one of our domains."""
        host = (hostname or "").lower()
        return any(host == d or host.endswith(f".{d}") for d in self.all_domains)


def _parse_entry(item: object) -> Optional[KnownDomainEntry]:
    if not isinstance(item, dict):
        return None
    primary = str(item.get("primary") or "").strip().lower().strip(".")
    if not primary or "." not in primary:
        return None
    aliases_raw = item.get("aliases") or []
    if isinstance(aliases_raw, str):
        aliases_raw = [aliases_raw]
    aliases = tuple(
        a for a in (str(v).strip().lower().strip(".") for v in aliases_raw) if a and a != primary
    )
    return KnownDomainEntry(
        display_name=str(item.get("name") or primary),
        primary_domain=primary,
        aliases=aliases,
        category=str(item.get("category") or ""),
    )


def load_known_domains(path: Optional[Path] = None) -> tuple[KnownDomainEntry, ...]:
    """Load the corpus from YAML (JSON works too). Returns () when unreadable."""
    corpus_file = Path(path) if path else BUNDLED_CORPUS
    if not corpus_file.exists():
        logger.warning(f"Known domains file not found: {corpus_file}")
        return ()

    try:
        with open(corpus_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load known domains from {corpus_file}: {e}")
        return ()

    items = data.get("domains", []) if isinstance(data, dict) else []
    entries: list[KnownDomainEntry] = []
    seen: set[str] = set()
    skipped = 0
    for item in items or []:
        entry = _parse_entry(item)
        if entry is None:
            skipped += 1
            continue
        if entry.primary_domain in seen:
            continue
        seen.add(entry.primary_domain)
        entries.append(entry)

    if skipped:
        logger.warning("Skipped %d malformed known-domain entries in %s", skipped, corpus_file)
    logger.info("Loaded %d known domains from %s", len(entries), corpus_file)
    return tuple(entries)


def is_allowlisted(
    hostname: str,
    corpus: Iterable[KnownDomainEntry] = (),
    extra: Iterable[str] = (),
) -> bool:
    """True for hosts owned by a corpus entry or listed in the user allowlist."""
    host = canonicalize_domain(hostname)
    if not host:
        return False
    for entry in corpus:
        if entry.owns(host):
            return True
    for allowed in extra:
        allowed_host = canonicalize_domain(allowed)
        if allowed_host and (host == allowed_host or host.endswith(f".{allowed_host}")):
            return True
    return False


class KnownDomainRegistry:
    """Lazily loaded, process-scoped corpus holder.

    Concurrent first callers of ``get()`` share a single load. ``reload()``
    builds the replacement tuple before swapping it in, so readers never see a
    partially loaded corpus.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else BUNDLED_CORPUS
        self._entries: Optional[tuple[KnownDomainEntry, ...]] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self.load_count = 0

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @property
    def loaded(self) -> bool:
        return self._entries is not None

    def peek(self) -> tuple[KnownDomainEntry, ...]:
        """Current corpus without triggering a load (empty when not loaded)."""
        return self._entries or ()

    async def get(self) -> tuple[KnownDomainEntry, ...]:
        if self._entries is not None:
            return self._entries
        async with self._get_lock():
            if self._entries is None:
                self._entries = await asyncio.to_thread(self._load)
        return self._entries

    def _load(self) -> tuple[KnownDomainEntry, ...]:
        self.load_count += 1
        return load_known_domains(self.path)

    async def reload(self, path: Optional[Path] = None) -> tuple[KnownDomainEntry, ...]:
        if path:
            self.path = Path(path)
        async with self._get_lock():
            entries = await asyncio.to_thread(self._load)
            self._entries = entries
        logger.info("Known domains reloaded: %d entries", len(entries))
        return entries

    def set_entries(self, entries: Iterable[KnownDomainEntry]) -> None:
        self._entries = tuple(entries)

    def invalidate(self) -> None:
        self._entries = None


_registry: Optional[KnownDomainRegistry] = None


def get_registry() -> KnownDomainRegistry:
    """Process-wide registry backed by the bundled corpus."""
    global _registry
    if _registry is None:
        _registry = KnownDomainRegistry()
    return _registry
