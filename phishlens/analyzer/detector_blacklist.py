"""Phishing blacklist detector backed by a locally synchronized hostname set."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

import yaml

from ..constants import BLACKLIST, DETECTOR_WEIGHTS
from .detector_base import BaseDetector
from .detector_models import DetectionContext, DetectorFinding

logger = logging.getLogger(__name__)

SYNC_STATUS_SYNCING = "syncing"


class HostnameStore(Protocol):
    """Source of blacklisted hostnames, filled by an external sync job."""

    enabled: bool

    def load_hostnames(self) -> Iterable[str]:  # pragma: no cover - interface
        ...

    def sync_status(self) -> Optional[str]:  # pragma: no cover - interface
        ...

    def last_sync(self) -> Optional[str]:  # pragma: no cover - interface
        ...


class FileHostnameStore:
    """Hostname store read from disk.

    ``.yaml``/``.yml``/``.json`` files hold a mapping with ``hostnames``,
    ``last_sync`` and ``status`` keys; any other file is a plain list with one
    hostname per line (``#`` comments allowed).
    """

    def __init__(self, path: Optional[Path]):
        self.path = Path(path) if path else None

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def _read_mapping(self) -> dict:
        if not self.path or not self.path.exists():
            return {}
        if self.path.suffix.lower() not in (".yaml", ".yml", ".json"):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read blacklist {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load_hostnames(self) -> Iterable[str]:
        if not self.path or not self.path.exists():
            return []
        if self.path.suffix.lower() in (".yaml", ".yml", ".json"):
            return [str(h) for h in self._read_mapping().get("hostnames") or []]
        entries = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            value = line.strip()
            if value and not value.startswith("#"):
                entries.append(value)
        return entries

    def sync_status(self) -> Optional[str]:
        status = self._read_mapping().get("status")
        return str(status) if status else None

    def last_sync(self) -> Optional[str]:
        value = self._read_mapping().get("last_sync")
        return str(value) if value else None


def _normalize(hostname: str) -> str:
    return (hostname or "").strip().lower().rstrip(".")


class BlacklistDetector(BaseDetector):
    """Exact hostname match against the synchronized blacklist."""

    name = "BlacklistDetector"
    key = BLACKLIST
    weight = DETECTOR_WEIGHTS[BLACKLIST]

    def __init__(self, store: Optional[HostnameStore] = None, source: str = "blacklist"):
        self.store = store
        self.source = source
        self._hostnames: Optional[frozenset[str]] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self.load_count = 0

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def analyze(self, context: DetectionContext) -> DetectorFinding:
        if self.store is None or not getattr(self.store, "enabled", False):
            return self.unavailable("Blacklist is not configured", skipped=True)

        hostnames = await self.load()
        if not hostnames:
            status = await asyncio.to_thread(self.store.sync_status)
            if status == SYNC_STATUS_SYNCING:
                return self.unavailable("Blacklist synchronization in progress", syncing=True)
            return self.unavailable("Blacklist has no entries yet", empty=True)

        hostname = _normalize(context.hostname)
        candidates = [hostname]
        if hostname.startswith("www."):
            candidates.append(hostname[4:])

        for candidate in candidates:
            if candidate in hostnames:
                logger.warning("Blacklist match: %s", candidate)
                return self.finding(
                    100,
                    1.0,
                    "Hostname is listed on the phishing blacklist",
                    source=self.source,
                    match_type="hostname",
                    matched_entry=candidate,
                    blacklist_size=len(hostnames),
                )

        return self.finding(
            0,
            0.9,
            "Hostname is not on the phishing blacklist",
            blacklist_size=len(hostnames),
            last_sync=await asyncio.to_thread(self.store.last_sync),
        )

    async def load(self) -> frozenset[str]:
        """Load the hostname set once; concurrent first callers share the load."""
        if self._hostnames is not None:
            return self._hostnames
        async with self._get_lock():
            if self._hostnames is None:
                self._hostnames = await self._read_store()
        return self._hostnames

    async def _read_store(self) -> frozenset[str]:
        self.load_count += 1
        try:
            raw = await asyncio.to_thread(self.store.load_hostnames)
            hostnames = frozenset(h for h in (_normalize(v) for v in raw) if h)
        except Exception as e:
            logger.error(f"Blacklist load failed: {e}")
            return frozenset()
        logger.info("Loaded %d blacklisted hostnames", len(hostnames))
        return hostnames

    def invalidate(self) -> None:
        """Drop the in-memory set so the next lookup reloads it (after a sync)."""
        self._hostnames = None
        logger.debug("Blacklist cache invalidated")
