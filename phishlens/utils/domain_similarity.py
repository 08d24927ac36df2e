"""String similarity helpers used by the typosquat matcher.

The prefix-aware score is plain Jaro-Winkler without the usual 0.7 boost
threshold: the prefix bonus applies to every pair, which keeps short brand
names comparable with their look-alikes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..constants import Technique
from .homoglyphs import HOMOGLYPH_TRANSLATION

MAX_PREFIX_LENGTH = 4
MAX_PREFIX_SCALE = 0.25

_REPEATS_RE = re.compile(r"(.)\1+")


@dataclass(frozen=True)
class SimilarityResult:
    score: float
    technique: Technique = Technique.NONE


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance using two rolling rows sized to the shorter string."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    if len(a) > len(b):
        a, b = b, a

    previous = list(range(len(a) + 1))
    current = [0] * (len(a) + 1)

    for j, b_char in enumerate(b, start=1):
        current[0] = j
        for i, a_char in enumerate(a, start=1):
            cost = 0 if a_char == b_char else 1
            current[i] = min(
                current[i - 1] + 1,
                previous[i] + 1,
                previous[i - 1] + cost,
            )
        previous, current = current, previous

    return previous[len(a)]


def prefix_similarity(a: str, b: str, prefix_scale: float = 0.1) -> float:
    """Jaro-Winkler similarity in [0, 1]."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    a_len, b_len = len(a), len(b)
    window = max(0, max(a_len, b_len) // 2 - 1)

    a_matched = [False] * a_len
    b_matched = [False] * b_len
    matches = 0

    for i, a_char in enumerate(a):
        start = max(0, i - window)
        end = min(b_len - 1, i + window)
        for j in range(start, end + 1):
            if b_matched[j] or b[j] != a_char:
                continue
            a_matched[i] = True
            b_matched[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i, a_char in enumerate(a):
        if not a_matched[i]:
            continue
        while not b_matched[k]:
            k += 1
        if a_char != b[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / a_len
        + matches / b_len
        + (matches - transpositions / 2) / matches
    ) / 3

    prefix = 0
    for a_char, b_char in zip(a[:MAX_PREFIX_LENGTH], b[:MAX_PREFIX_LENGTH]):
        if a_char != b_char:
            break
        prefix += 1

    scale = min(prefix_scale, MAX_PREFIX_SCALE)
    return jaro + prefix * scale * (1 - jaro)


def combined_similarity(a: str, b: str, prefix_weight: float = 0.6) -> float:
    """Weighted blend of normalized edit-distance similarity and Jaro-Winkler."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    # Greedy Jaro matching depends on argument order.
    first, second = (a, b) if a <= b else (b, a)

    max_len = max(len(a), len(b))
    edit_score = 1 - edit_distance(a, b) / max_len
    prefix_score = prefix_similarity(first, second)

    return (1 - prefix_weight) * edit_score + prefix_weight * prefix_score


def normalize_homoglyphs(value: str) -> str:
    return value.translate(HOMOGLYPH_TRANSLATION)


def _split_domain(domain: str) -> tuple[str, str]:
    parts = domain.split(".")
    if len(parts) < 2:
        return domain, ""
    return ".".join(parts[:-1]), parts[-1]


def _collapse_repeats(value: str) -> str:
    return _REPEATS_RE.sub(r"\1", value)


def classify_technique(original: str, suspect: str) -> Technique:
    """Best-guess typosquatting technique that turns ``original`` into ``suspect``.

    Checks run in a fixed order and the first hit wins: subdomain
    impersonation, TLD change, homoglyph, hyphen insertion, character
    repetition, then insertion/deletion/substitution by length difference.
    """
    orig_name, orig_tld = _split_domain(original)
    susp_name, susp_tld = _split_domain(suspect)

    orig_labels = original.split(".")
    susp_labels = suspect.split(".")
    if len(susp_labels) > len(orig_labels) and len(susp_labels) >= 3:
        orig_base = orig_name.replace(".", "")
        if any(label in orig_base or orig_base in label for label in susp_labels[:-1]):
            return Technique.SUBDOMAIN_IMPERSONATION

    if orig_name == susp_name and orig_tld and susp_tld and orig_tld != susp_tld:
        return Technique.TLD_CHANGE

    if orig_name != susp_name:
        if normalize_homoglyphs(orig_name).lower() == normalize_homoglyphs(susp_name).lower():
            return Technique.HOMOGLYPH

    if susp_name.count("-") > orig_name.count("-") and (
        susp_name.replace("-", "") == orig_name.replace("-", "")
    ):
        return Technique.HYPHEN_INSERTION

    if (
        orig_name != susp_name
        and len(susp_name) > len(orig_name)
        and _collapse_repeats(orig_name) == _collapse_repeats(susp_name)
    ):
        return Technique.CHARACTER_REPETITION

    length_delta = len(susp_name) - len(orig_name)
    if length_delta > 0:
        return Technique.CHARACTER_INSERTION
    if length_delta < 0:
        return Technique.CHARACTER_DELETION
    return Technique.CHARACTER_SUBSTITUTION


def compare(original: str, suspect: str) -> SimilarityResult:
    """Combined similarity plus the technique label (``none`` when identical)."""
    if original == suspect:
        return SimilarityResult(score=1.0, technique=Technique.NONE)
    return SimilarityResult(
        score=combined_similarity(original, suspect),
        technique=classify_technique(original, suspect),
    )
