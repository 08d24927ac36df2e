"""Command-line entry point for PhishLens."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from .config import Config, load_config, validate_config
from .constants import DETECTOR_KEYS
from .pipeline.analysis import AnalysisEngine

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the CLI."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phishlens",
        description="Score URLs for phishing risk.",
    )
    parser.add_argument("urls", metavar="URL", nargs="+", help="URL(s) to analyze")
    parser.add_argument(
        "--no-escalation",
        action="store_true",
        help="Never escalate ambiguous results",
    )
    parser.add_argument(
        "--disable",
        metavar="KEY",
        action="append",
        default=[],
        choices=DETECTOR_KEYS,
        help="Disable a detector (repeatable)",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--log-level", default=None, help="Logging level (default: from config)")
    return parser


def format_verdict(url: str, result) -> str:
    if result is None:
        return f"{url}: skipped (not an analyzable web address)"
    if result.allowlisted:
        return f"{url}: {result.risk_level.value} (allowlisted)"
    return f"{url}: {result.risk_level.value} (risk {result.total_risk}/100)"


async def run(config: Config, urls: Sequence[str], as_json: bool = False) -> int:
    engine = AnalysisEngine(config)
    outputs = []
    for url in urls:
        result = await engine.analyze_url(url)
        if as_json:
            outputs.append({"url": url, "result": result.to_dict() if result else None})
        else:
            print(format_verdict(url, result))

    if as_json:
        print(json.dumps(outputs, indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    config = load_config()
    configure_logging(args.log_level or config.log_level)

    if args.no_escalation:
        config.escalation_enabled = False
    for key in args.disable:
        config.detectors[key] = False

    validation_errors = validate_config(config)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        return 1

    return asyncio.run(run(config, args.urls, as_json=args.json))


if __name__ == "__main__":
    sys.exit(main())
