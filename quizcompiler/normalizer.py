"""
Text Normalizer
===============
Canonicalizes raw pasted or extracted text before tokenization.
"""

from __future__ import annotations

import re

_LINE_ENDINGS = re.compile(r"\r\n?")

_PUNCTUATION = str.maketrans({
    "\u00a0": " ",
    "\u201c": '"',
    "\u201d": '"',
    "\u201e": '"',
    "\u2018": "'",
    "\u2019": "'",
    "\u201a": "'",
})


def normalize_text(text: str) -> str:
    """
    Normalize line endings and unicode punctuation, then trim.

    Idempotent: normalize_text(normalize_text(x)) == normalize_text(x).
    """
    text = _LINE_ENDINGS.sub("\n", text)
    return text.translate(_PUNCTUATION).strip()
