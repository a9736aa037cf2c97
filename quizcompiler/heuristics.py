"""
Heuristics
==========
Fuzzy tag matching and OCR correction for the lexer and parser.

Tag names in scanned exam dumps are frequently corrupted ("EXPLANATON",
"S0URCE"). Matching is done against a closed set of known tags using
Levenshtein edit distance with a length-dependent threshold.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class KnownTag(str, Enum):
    """Metadata tag names the parser understands."""
    EXPLANATION = "EXPLANATION"
    SOURCE = "SOURCE"
    SOURCES = "SOURCES"
    GODFATHER_INSIGHT = "GODFATHER INSIGHT"
    HEATMAP = "HEATMAP"
    TOPIC = "TOPIC"
    TYPE = "TYPE"
    CORRECT_ANSWER = "CORRECT ANSWER"
    ANSWER = "ANSWER"
    TIME_LIMIT = "TIME LIMIT"


KNOWN_TAGS: tuple[str, ...] = tuple(tag.value for tag in KnownTag)

# Tags of this length or shorter tolerate fewer edits
SHORT_TAG_LENGTH = 6
SHORT_TAG_MAX_EDITS = 2
LONG_TAG_MAX_EDITS = 3


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(
                    previous[j - 1],   # substitution
                    previous[j],       # deletion
                    current[j - 1],    # insertion
                ))
        previous = current
    return previous[-1]


def fuzzy_match_tag(
    candidate: str,
    known_tags: Iterable[str] = KNOWN_TAGS,
    max_distance: Optional[int] = None,
) -> Optional[str]:
    """
    Match a possibly corrupted tag name against known tags.

    Args:
        candidate: Raw tag text, any case.
        known_tags: Tags to match against (uppercase).
        max_distance: Override for the length-dependent edit threshold.

    Returns:
        The closest known tag, or None if nothing is close enough.
    """
    clean = candidate.upper().strip()
    best_match: Optional[str] = None
    min_distance = None

    for tag in known_tags:
        distance = levenshtein_distance(clean, tag)
        if min_distance is None or distance < min_distance:
            min_distance = distance
            best_match = tag

    if best_match is None:
        return None
    if min_distance == 0:
        return best_match

    if max_distance is None:
        max_distance = (
            SHORT_TAG_MAX_EDITS
            if len(best_match) <= SHORT_TAG_LENGTH
            else LONG_TAG_MAX_EDITS
        )

    if min_distance <= max_distance:
        logger.debug(
            f"Fuzzy tag match: {candidate!r} -> {best_match} "
            f"(distance {min_distance})"
        )
        return best_match
    return None


# ─── OCR Fixups ───────────────────────────────────────────────────────────────

# (pattern, replacement) applied in order
OCR_SUBSTITUTIONS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\(@\)"), "(A)"),
    (re.compile(r"\[@\]"), "[A]"),
    (re.compile(r"\b0ption\b", re.IGNORECASE), "Option"),
    (re.compile(r"\bQueston\b", re.IGNORECASE), "Question"),
    (re.compile(r"\bAns(?:wcr|vver)\b", re.IGNORECASE), "Answer"),
    (re.compile(r"\bC0rrect\b", re.IGNORECASE), "Correct"),
    # "Q12l What..." -> "Q12. What..."
    (re.compile(r"\bQ(\d+)[lI](?=\s)"), r"Q\1."),
]

_LOWERCASE_OPTION = re.compile(r"\(([a-e])\)")


def fix_ocr_artifacts(text: str) -> str:
    """Apply deterministic substitutions for known scanner confusions."""
    for pattern, replacement in OCR_SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    return _LOWERCASE_OPTION.sub(lambda m: f"({m.group(1).upper()})", text)
