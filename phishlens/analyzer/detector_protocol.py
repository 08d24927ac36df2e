"""Transport-security detector."""

from __future__ import annotations

import logging
from typing import Optional

from ..constants import DETECTOR_WEIGHTS, PROTOCOL
from .detector_base import BaseDetector
from .detector_models import DetectionContext, DetectorFinding, PageContent

logger = logging.getLogger(__name__)

MAX_REPORTED_MIXED_RESOURCES = 10


def sensitive_form_types(page: Optional[PageContent]) -> list[str]:
    """Kinds of sensitive inputs present on the page, in first-seen order."""
    if page is None:
        return []

    found: list[str] = []

    def add(kind: str) -> None:
        if kind not in found:
            found.append(kind)

    for form in page.forms:
        for field in form.inputs:
            input_type = (field.type or "").lower()
            name = (field.name or "").lower()
            placeholder = (field.placeholder or "").lower()

            if input_type == "password":
                add("password")
            if "card" in name or "카드" in name or "card" in placeholder or "카드" in placeholder:
                add("credit_card")
            if (
                "ssn" in name
                or "jumin" in name
                or "주민" in name
                or "주민등록" in placeholder
            ):
                add("national_id")
            if "account" in name or "계좌" in name or "계좌" in placeholder:
                add("bank_account")
    return found


def mixed_content_resources(page: Optional[PageContent]) -> list[str]:
    if page is None:
        return []
    return [url for url in page.external_resources if url.startswith("http://")]


class ProtocolDetector(BaseDetector):
    """Flags plain-HTTP pages, sensitive forms over HTTP, and mixed content."""

    name = "ProtocolDetector"
    key = PROTOCOL
    weight = DETECTOR_WEIGHTS[PROTOCOL]

    async def analyze(self, context: DetectionContext) -> DetectorFinding:
        protocol = (context.protocol or "").lower()

        if protocol == "https:":
            mixed = mixed_content_resources(context.page)
            if mixed:
                return self.finding(
                    30,
                    0.7,
                    "HTTPS page loads unencrypted HTTP resources (mixed content)",
                    protocol="https",
                    issue="mixed_content",
                    mixed_resources=mixed[:MAX_REPORTED_MIXED_RESOURCES],
                )
            return self.finding(
                0,
                1.0,
                "Connection uses HTTPS",
                protocol="https",
                issue="none",
            )

        if protocol == "http:":
            form_types = sensitive_form_types(context.page)
            if form_types:
                return self.finding(
                    80,
                    0.9,
                    "Unencrypted HTTP page asks for login or personal details",
                    protocol="http",
                    issue="sensitive_form_on_http",
                    form_types=form_types,
                )
            return self.finding(
                40,
                0.8,
                "Connection is not encrypted (HTTP)",
                protocol="http",
                issue="no_encryption",
            )

        return self.finding(
            20,
            0.5,
            f"Unusual protocol: {protocol or 'unknown'}",
            protocol=protocol,
            issue="unusual_protocol",
        )
