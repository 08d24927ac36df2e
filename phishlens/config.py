"""Configuration management for PhishLens."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

import yaml
from dotenv import load_dotenv

from .constants import (
    DETECTOR_KEYS,
    ENSEMBLE_ESCALATION_BAND,
    RESULT_CACHE_MAX_ENTRIES,
    RESULT_CACHE_TTL_SECONDS,
    RISK_DANGER_THRESHOLD,
    RISK_WARNING_THRESHOLD,
)
from .utils.domains import canonicalize_domain

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "phishlens.yaml"
ALLOWLIST_FILE_NAME = "allowlist.txt"


class PhishLensError(Exception):
    """Base class for PhishLens errors."""


class ConfigError(PhishLensError):
    """Raised when configuration is invalid."""


@dataclass
class Config:
    """Application configuration."""

    log_level: str = "INFO"
    config_dir: Path = Path("./config")
    data_dir: Path = Path("./data")
    known_domains_path: Optional[Path] = None
    blacklist_path: Optional[Path] = None

    # Result cache
    cache_ttl_seconds: int = RESULT_CACHE_TTL_SECONDS
    cache_max_entries: int = RESULT_CACHE_MAX_ENTRIES

    # Escalation
    escalation_enabled: bool = False
    escalation_band: tuple[float, float] = ENSEMBLE_ESCALATION_BAND

    # Detectors
    detectors: dict[str, bool] = field(default_factory=dict)
    domain_age_timeout: float = 10.0
    whois_api_url: str = ""
    similarity_threshold: float = 0.85
    generic_subdomains: Optional[list[str]] = None

    # Risk levels
    risk_warning: int = RISK_WARNING_THRESHOLD
    risk_danger: int = RISK_DANGER_THRESHOLD

    allowlist: Set[str] = field(default_factory=set)

    def __post_init__(self):
        """Normalize paths and load the user allowlist."""
        self.config_dir = Path(self.config_dir)
        self.data_dir = Path(self.data_dir)
        if self.known_domains_path:
            self.known_domains_path = Path(self.known_domains_path)
        if self.blacklist_path:
            self.blacklist_path = Path(self.blacklist_path)

        self._load_lists()

    def _load_lists(self):
        """Load the allowlist from the config directory."""
        allowlist_path = self.config_dir / ALLOWLIST_FILE_NAME
        if allowlist_path.exists():
            raw_allowlist = self._load_list_file(allowlist_path)
            self.allowlist |= {
                canonicalize_domain(item) or item for item in raw_allowlist
            }

    @staticmethod
    def _load_list_file(path: Path) -> Set[str]:
        """Load a list file, ignoring comments and empty lines."""
        items = set()
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    items.add(line.lower())
        return items

    @property
    def enabled_detectors(self) -> dict[str, bool]:
        """Enable map for every known detector key (missing keys default to on)."""
        return {key: self.detectors.get(key, True) for key in DETECTOR_KEYS}


def parse_band(value: object, default: tuple[float, float] = ENSEMBLE_ESCALATION_BAND) -> tuple[float, float]:
    """Parse "low,high" (or a two-item list) into a band; fall back to default."""
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",") if p.strip()]
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        return default

    if len(parts) != 2:
        logger.warning("Invalid escalation band %r; using %s", value, default)
        return default
    try:
        return (float(parts[0]), float(parts[1]))
    except (TypeError, ValueError):
        logger.warning("Invalid escalation band %r; using %s", value, default)
        return default


def _parse_disabled(value: str) -> dict[str, bool]:
    return {key.strip().lower(): False for key in value.split(",") if key.strip()}


def _load_overrides(config_dir: Path) -> dict:
    """Load overrides from config/phishlens.yaml (optional)."""
    path = Path(config_dir or ".") / CONFIG_FILE_NAME
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to parse %s: %s", CONFIG_FILE_NAME, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top level is not a mapping", CONFIG_FILE_NAME)
        return {}

    def _coerce_detectors(raw):
        flags: dict[str, bool] = {}
        if not isinstance(raw, dict):
            return flags
        for key, enabled in raw.items():
            if isinstance(enabled, bool):
                flags[str(key).strip().lower()] = enabled
            elif isinstance(enabled, str):
                flags[str(key).strip().lower()] = enabled.strip().lower() == "true"
        return flags

    def _coerce_thresholds(raw):
        thresholds: dict[str, int] = {}
        if not isinstance(raw, dict):
            return thresholds
        for name in ("warning", "danger"):
            if name not in raw:
                continue
            try:
                thresholds[name] = int(raw[name])
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric risk threshold %s=%r", name, raw[name])
        return thresholds

    def _coerce_subdomains(raw):
        if not isinstance(raw, list):
            return None
        items = [str(s).strip().lower() for s in raw if str(s).strip()]
        return items or None

    overrides: dict = {
        "detectors": _coerce_detectors(data.get("detectors")),
        "risk_thresholds": _coerce_thresholds(data.get("risk_thresholds")),
        "generic_subdomains": _coerce_subdomains(data.get("generic_subdomains")),
    }
    if "escalation_band" in data:
        overrides["escalation_band"] = parse_band(data.get("escalation_band"))
    return overrides


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    overrides = _load_overrides(config_dir)

    detectors = _parse_disabled(os.getenv("DETECTORS_DISABLED", ""))
    # YAML wins over the env list so a single file can re-enable a detector.
    detectors.update(overrides.get("detectors") or {})

    thresholds = overrides.get("risk_thresholds") or {}
    escalation_band = overrides.get("escalation_band") or parse_band(
        os.getenv("ESCALATION_BAND", "20,80")
    )

    known_domains_path = os.getenv("KNOWN_DOMAINS_PATH", "").strip()
    blacklist_path = os.getenv("BLACKLIST_PATH", "").strip()

    return Config(
        log_level=os.getenv("PHISHLENS_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        config_dir=config_dir,
        data_dir=Path(os.getenv("DATA_DIR", "./data")),
        known_domains_path=Path(known_domains_path) if known_domains_path else None,
        blacklist_path=Path(blacklist_path) if blacklist_path else None,
        cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", str(RESULT_CACHE_TTL_SECONDS))),
        cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", str(RESULT_CACHE_MAX_ENTRIES))),
        escalation_enabled=os.getenv("ESCALATION_ENABLED", "false").lower() == "true",
        escalation_band=escalation_band,
        detectors=detectors,
        domain_age_timeout=float(os.getenv("DOMAIN_AGE_TIMEOUT", "10")),
        whois_api_url=os.getenv("WHOIS_API_URL", ""),
        similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", "0.85")),
        generic_subdomains=overrides.get("generic_subdomains"),
        risk_warning=thresholds.get(
            "warning", int(os.getenv("RISK_WARNING", str(RISK_WARNING_THRESHOLD)))
        ),
        risk_danger=thresholds.get(
            "danger", int(os.getenv("RISK_DANGER", str(RISK_DANGER_THRESHOLD)))
        ),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []

    low, high = config.escalation_band
    if not (0 <= low <= 100 and 0 <= high <= 100):
        errors.append(f"ESCALATION_BAND must lie within 0-100 (got {low:g},{high:g})")
    if low > high:
        errors.append(f"ESCALATION_BAND is inverted ({low:g} > {high:g})")

    if not (0 <= config.risk_warning <= 100) or not (0 <= config.risk_danger <= 100):
        errors.append("RISK_WARNING and RISK_DANGER must lie within 0-100")
    if config.risk_warning > config.risk_danger:
        errors.append(
            f"RISK_WARNING ({config.risk_warning}) must not exceed RISK_DANGER ({config.risk_danger})"
        )

    if not (0.0 < config.similarity_threshold <= 1.0):
        errors.append(f"SIMILARITY_THRESHOLD must be in (0, 1] (got {config.similarity_threshold})")
    if config.cache_ttl_seconds <= 0:
        errors.append("CACHE_TTL_SECONDS must be positive")
    if config.cache_max_entries <= 0:
        errors.append("CACHE_MAX_ENTRIES must be positive")
    if config.domain_age_timeout <= 0:
        errors.append("DOMAIN_AGE_TIMEOUT must be positive")

    unknown = sorted(set(config.detectors) - set(DETECTOR_KEYS))
    if unknown:
        errors.append(f"Unknown detector keys: {', '.join(unknown)}")

    if config.known_domains_path and not config.known_domains_path.exists():
        errors.append(f"KNOWN_DOMAINS_PATH does not exist: {config.known_domains_path}")

    if config.blacklist_path is None:
        logger.info("No BLACKLIST_PATH configured; blacklist detector will be skipped")

    return errors


def ensure_valid(config: Config) -> Config:
    """Raise ConfigError listing every problem found by validate_config."""
    errors = validate_config(config)
    if errors:
        raise ConfigError("; ".join(errors))
    return config
