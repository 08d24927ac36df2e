"""Page content heuristics: pressure language, risky forms, brand misuse."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from ..constants import CONTENT_ANALYSIS, DETECTOR_WEIGHTS
from .aggregation import round_half_up
from .detector_base import BaseDetector
from .detector_models import DetectionContext, DetectorFinding, PageContent

logger = logging.getLogger(__name__)

URGENCY_PATTERNS = [
    # Korean
    (r"계정이?\s*정지", 0.8),
    (r"즉시\s*확인", 0.7),
    (r"24시간\s*내", 0.6),
    (r"보안\s*위협", 0.7),
    (r"비밀번호\s*변경\s*필요", 0.6),
    (r"본인\s*확인", 0.5),
    (r"계정이?\s*잠겼", 0.8),
    (r"접속이?\s*제한", 0.7),
    (r"이상\s*거래", 0.8),
    (r"긴급\s*조치", 0.7),
    (r"보안\s*업데이트", 0.5),
    (r"개인\s*정보.*유출", 0.8),
    (r"법적\s*조치", 0.7),
    (r"48시간\s*이내", 0.6),
    # English
    (r"account\s*suspended", 0.8),
    (r"verify\s*immediately", 0.7),
    (r"urgent\s*action\s*required", 0.8),
    (r"your\s*account\s*has\s*been", 0.6),
    (r"unauthorized\s*access", 0.7),
    (r"security\s*alert", 0.6),
    (r"confirm\s*your\s*identity", 0.6),
    (r"unusual\s*activity", 0.6),
    (r"immediate\s*action", 0.7),
    (r"will\s*be\s*(locked|closed|suspended)", 0.8),
]

REWARD_PATTERNS = [
    (r"당첨", 0.8),
    (r"무료\s*제공", 0.6),
    (r"이벤트\s*당선", 0.8),
    (r"상금", 0.7),
    (r"경품", 0.6),
    (r"축하합니다", 0.7),
    (r"선정되었습니다", 0.7),
    (r"수령하세요", 0.6),
    (r"지급\s*대기", 0.7),
    (r"congratulations.*won", 0.8),
    (r"free\s*gift", 0.7),
    (r"claim\s*your\s*prize", 0.8),
    (r"you\s*(have\s*)?won", 0.7),
    (r"selected\s*winner", 0.8),
]

KNOWN_BRANDS = [
    "naver", "kakao", "google", "apple", "samsung", "microsoft",
    "facebook", "instagram", "amazon", "paypal", "netflix",
    "네이버", "카카오", "구글", "삼성", "애플", "국민은행", "신한은행",
    "우리은행", "하나은행", "농협", "토스", "쿠팡",
]

_IMAGE_RE = re.compile(r"\.(png|jpg|jpeg|gif|svg|ico)", re.I)
_LOGO_RE = re.compile(r"(logo|brand|icon)", re.I)


@dataclass
class ContentSignal:
    """One category of suspicious content and its contribution."""

    type: str
    description: str
    weight: float
    matches: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "description": self.description,
            "weight": round(self.weight, 4),
            "matches": list(self.matches),
        }


def _compile(patterns: list[tuple[str, float]]) -> list[tuple[re.Pattern, float]]:
    return [(re.compile(p, re.I), w) for p, w in patterns]


class ContentAnalysisDetector(BaseDetector):
    """Scores page metadata supplied by the caller."""

    name = "ContentAnalysisDetector"
    key = CONTENT_ANALYSIS
    weight = DETECTOR_WEIGHTS[CONTENT_ANALYSIS]

    def __init__(
        self,
        urgency_patterns: Optional[list[tuple[str, float]]] = None,
        reward_patterns: Optional[list[tuple[str, float]]] = None,
        known_brands: Optional[list[str]] = None,
    ):
        self.urgency_patterns = _compile(urgency_patterns or URGENCY_PATTERNS)
        self.reward_patterns = _compile(reward_patterns or REWARD_PATTERNS)
        self.known_brands = [b.lower() for b in (known_brands or KNOWN_BRANDS)]

    async def analyze(self, context: DetectionContext) -> DetectorFinding:
        page = context.page
        if page is None:
            return self.unavailable("No page content available", error="no_content")

        hostname = (context.hostname or "").lower()
        signals = [
            signal
            for signal in (
                self._check_phrases(
                    page.text, self.urgency_patterns, 0.8, "urgency", "Urgency or fear language"
                ),
                self._check_phrases(
                    page.text, self.reward_patterns, 0.7, "reward", "Prize or reward bait"
                ),
                self._check_forms(page, hostname),
                self._check_brand_impersonation(page, hostname),
                self._check_external_resources(page, hostname),
            )
            if signal is not None
        ]

        if not signals:
            return self.finding(0, 0.8, "No suspicious content patterns found", signals=[])

        total = sum(s.weight for s in signals)
        risk = min(100, round_half_up(total * 100))
        confidence = min(0.95, 0.5 + 0.1 * len(signals))
        descriptions = ", ".join(s.description for s in signals)
        logger.debug("Content signals for %s: %s", hostname, descriptions)
        return self.finding(
            risk,
            confidence,
            f"Suspicious page content: {descriptions}",
            signals=[s.to_dict() for s in signals],
            total_patterns=len(signals),
        )

    def _check_phrases(
        self,
        text: str,
        patterns: list[tuple[re.Pattern, float]],
        scale: float,
        signal_type: str,
        description: str,
    ) -> Optional[ContentSignal]:
        matches: list[str] = []
        weight = 0.0
        for pattern, pattern_weight in patterns:
            match = pattern.search(text or "")
            if match:
                if match.group(0) not in matches:
                    matches.append(match.group(0))
                weight += pattern_weight
        if not matches:
            return None
        return ContentSignal(signal_type, description, min(weight, 1.0) * scale, matches)

    def _check_forms(self, page: PageContent, hostname: str) -> Optional[ContentSignal]:
        details: list[str] = []
        weight = 0.0

        for form in page.forms:
            if not form.inputs:
                continue
            types = [(i.type or "").lower() for i in form.inputs]
            words = [(i.name or "").lower() for i in form.inputs]
            words += [(i.placeholder or "").lower() for i in form.inputs]
            text = " ".join(words)

            if "password" in types and not any(b in hostname for b in self.known_brands):
                details.append("Password requested on an unrecognized site")
                weight += 0.3
            if "주민" in text or "ssn" in text or "resident" in text:
                details.append("National ID number requested")
                weight += 0.4
            if "카드" in text or "card number" in text or "cvv" in text or "cvc" in text:
                details.append("Card number requested")
                weight += 0.3

            personal_fields = sum([
                "이름" in text or "name" in text,
                "생년월일" in text or "birth" in text,
                "전화" in text or "phone" in text,
                "주소" in text or "address" in text,
            ])
            if personal_fields >= 3:
                details.append("Excessive personal details requested together")
                weight += 0.4

        if not details:
            return None
        return ContentSignal(
            "suspicious_form", "Suspicious input form", min(weight, 1.0) * 0.8, details
        )

    def _check_brand_impersonation(
        self, page: PageContent, hostname: str
    ) -> Optional[ContentSignal]:
        details: list[str] = []
        weight = 0.0

        text = f"{page.title} {page.meta_description}".lower()
        for brand in self.known_brands:
            if brand in text and brand not in hostname:
                details.append(f"Page mentions '{brand}' but is served from {hostname}")
                weight += 0.4
                break

        favicon = (page.favicon or "").lower()
        if favicon:
            for brand in self.known_brands:
                if brand in favicon and brand not in hostname:
                    details.append(f"Uses the {brand} favicon on a different domain")
                    weight += 0.3
                    break

        if not details:
            return None
        return ContentSignal(
            "brand_impersonation", "Brand impersonation", min(weight, 1.0) * 0.9, details
        )

    def _check_external_resources(
        self, page: PageContent, hostname: str
    ) -> Optional[ContentSignal]:
        details: list[str] = []
        weight = 0.0

        for resource in page.external_resources:
            lowered = resource.lower()
            for brand in self.known_brands:
                if brand in lowered and brand not in hostname:
                    if _IMAGE_RE.search(resource) and _LOGO_RE.search(resource):
                        details.append(f"Loads the {brand} logo from {resource}")
                        weight += 0.3

        if not details:
            return None
        return ContentSignal(
            "external_resource", "Borrowed brand assets", min(weight, 0.5), details
        )
