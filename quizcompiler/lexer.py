"""
Lexer
=====
Converts raw exam text into a flat stream of Tokens.

Each non-blank line is matched against an ordered line grammar. The first
rule that matches wins:

    1. SEPARATOR        ``---``, ``###``, ``***`` or a batch marker
    2. QUESTION_NUMBER  ``Q1.``, ``Question 2:``, ``3)`` at line start,
                        remainder re-scanned by rule 5
    3. ANSWER_LABEL     ``Correct Answer: B``, ``[Answer: C]``; the rest of
                        the line is dropped
    4. TAG_LABEL        ``Explanation:``, ``**[HEATMAP]:**``, remainder
                        emitted as TEXT
    5. OPTION_LABEL / TEXT
                        embedded ``(A)``, ``A)``, ``[A]``, ``A.`` labels
                        split the line into options and text

The stream always ends with an END_OF_STREAM token.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from .heuristics import KnownTag, fix_ocr_artifacts, fuzzy_match_tag
from .models import Token, TokenKind

logger = logging.getLogger(__name__)

# ─── Line Grammar ─────────────────────────────────────────────────────────────

SEPARATOR_PATTERN = re.compile(r"^[-#*]{3,}")

BATCH_MARKER_PATTERN = re.compile(r"^#{0,3}\s*⚡\s*BATCH\b", re.IGNORECASE)

QUESTION_KEYWORDS = (
    "Question", "Que", "Q", "Prashna", "प्रश्न", "Sawal",
    "Problema", "Aufgabe", "Parte", "Step", "Task",
)

# "1.", "Q1.", "Q.1)", "Question 1:", "प्रश्न 1."
QUESTION_PATTERN = re.compile(
    r"^(?:(" + "|".join(QUESTION_KEYWORDS) + r")\s*\.?\s*)?(\d+)\s*[.):]",
    re.IGNORECASE,
)

# Keyword spellings that belong to the same numbering style
KEYWORD_STYLES = {
    "question": "q",
    "que": "q",
    "q": "q",
    "प्रश्न": "prashna",
}

# "Correct Answer: B", "[CORRECT ANSWER]: A) ...", "Ans: c"
ANSWER_PATTERN = re.compile(
    r"(?:\bCorrect\s+)?\b(?:Answer|Ans|Uttar|Respuesta|Antwort|Jawab)"
    r"\]?\s*:\s*[\[(]?([A-E])(?![A-Za-z0-9])",
    re.IGNORECASE,
)

_METADATA_LABELS = (
    r"Explanation|Sources?|Godfather\s+Insight|Heatmap|Type|Topic|Time\s+Limit"
)

# "Explanation:", "[Topic]:", "**[GODFATHER INSIGHT]:**"
METADATA_PATTERN = re.compile(
    r"^(?:\*\*)?(?:\[(" + _METADATA_LABELS + r")\]|(" + _METADATA_LABELS + r"))"
    r"(?:\*\*)?\s*:\s*(?:\*\*)?",
    re.IGNORECASE,
)

# Candidate label for fuzzy recognition: "Explanaton:", "[Heatmpa]:"
LABEL_CANDIDATE_PATTERN = re.compile(
    r"^(?:\*\*)?(?:\[([A-Za-z][A-Za-z ]{6,29})\]|([A-Za-z][A-Za-z ]{6,29}))"
    r"(?:\*\*)?\s*:\s*(?:\*\*)?"
)

# Answer-like tags are left to the answer rule
FUZZY_LABEL_TAGS = tuple(
    tag.value for tag in KnownTag
    if tag not in (KnownTag.ANSWER, KnownTag.CORRECT_ANSWER)
)
FUZZY_LABEL_MAX_EDITS = 1

# "(A)", "A)", "[A]" after start or whitespace; "A." after start, tab or
# two+ spaces. Must be followed by whitespace, quote, ")" or end of line.
OPTION_PATTERN = re.compile(
    r"(?:(^|\s)(\(?[A-E]\)|\[[A-E]\])|(^|\t|\s{2,})([A-E]\.))"
    r"(?=[\s\"')]|$)",
    re.IGNORECASE,
)


class Lexer:
    """
    Single-pass line scanner producing a token stream.

    A Lexer holds per-call state only; create one per parse.
    """

    def __init__(self):
        self.tokens: list[Token] = []
        self.current_line = 0
        self._rules: list[Callable[[str, str], bool]] = [
            self._match_separator,
            self._match_question,
            self._match_answer,
            self._match_metadata,
            self._match_body,
        ]

    def tokenize(self, text: str) -> list[Token]:
        """
        Tokenize the entire input.

        Args:
            text: Raw (ideally normalized) exam text.

        Returns:
            Ordered tokens, terminated by END_OF_STREAM.
        """
        clean = fix_ocr_artifacts(text).replace("\r\n", "\n")
        self.tokens = []
        self.current_line = 0

        for line in clean.split("\n"):
            self.current_line += 1
            trimmed = line.strip()
            if not trimmed:
                continue

            for rule in self._rules:
                if rule(trimmed, line):
                    break

        self.tokens.append(Token(
            kind=TokenKind.END_OF_STREAM,
            value=str(self.current_line),
            line_number=self.current_line,
        ))
        logger.debug(
            f"Tokenized {self.current_line} lines into "
            f"{len(self.tokens)} tokens"
        )
        return self.tokens

    # ─── Grammar Rules ────────────────────────────────────────────────────

    def _match_separator(self, text: str, raw_line: str) -> bool:
        if BATCH_MARKER_PATTERN.match(text) or SEPARATOR_PATTERN.match(text):
            self._emit(TokenKind.SEPARATOR, text, raw_line)
            return True
        return False

    def _match_question(self, text: str, raw_line: str) -> bool:
        match = QUESTION_PATTERN.match(text)
        if not match:
            return False
        self._emit(TokenKind.QUESTION_NUMBER, match.group(2), raw_line)
        remainder = text[match.end():].strip()
        if remainder:
            self._match_body(remainder, raw_line)
        return True

    def _match_answer(self, text: str, raw_line: str) -> bool:
        match = ANSWER_PATTERN.search(text)
        if not match:
            return False
        self._emit(TokenKind.ANSWER_LABEL, match.group(1).upper(), raw_line)
        return True

    def _match_metadata(self, text: str, raw_line: str) -> bool:
        label: Optional[str] = None
        match = METADATA_PATTERN.match(text)
        if match:
            label = match.group(1) or match.group(2)
        else:
            match = LABEL_CANDIDATE_PATTERN.match(text)
            if match:
                candidate = (match.group(1) or match.group(2)).strip()
                if len(candidate) > 6 and fuzzy_match_tag(
                    candidate,
                    FUZZY_LABEL_TAGS,
                    max_distance=FUZZY_LABEL_MAX_EDITS,
                ):
                    label = candidate

        if label is None:
            return False

        self._emit(TokenKind.TAG_LABEL, label, raw_line)
        remainder = text[match.end():].strip()
        if remainder:
            self._emit(TokenKind.TEXT, remainder, raw_line)
        return True

    def _match_body(self, text: str, raw_line: str) -> bool:
        """Split a line on embedded option labels like "(A) x (B) y"."""
        last_index = 0
        for match in OPTION_PATTERN.finditer(text):
            label = match.group(2) or match.group(4)
            label_start = match.start(2) if match.group(2) else match.start(4)

            before = text[last_index:label_start].strip()
            if before:
                self._emit(TokenKind.TEXT, before, raw_line)

            letter = label.strip("()[].").upper()
            self._emit(TokenKind.OPTION_LABEL, letter, raw_line)
            last_index = match.end()

        after = text[last_index:].strip()
        if after:
            self._emit(TokenKind.TEXT, after, raw_line)
        return True

    def _emit(self, kind: TokenKind, value: str, raw_line: str):
        self.tokens.append(Token(
            kind=kind,
            value=value.strip(),
            line_number=self.current_line,
            raw_line=raw_line,
        ))


def marker_style(raw_line: str) -> Optional[str]:
    """
    Numbering style of a question marker line.

    Returns "" for a bare number ("1."), a normalized keyword for keyword
    markers ("Q1." and "Question 1:" are both "q"), or None if the line does
    not start with a question marker.
    """
    match = QUESTION_PATTERN.match(raw_line.strip())
    if not match:
        return None
    keyword = (match.group(1) or "").lower()
    return KEYWORD_STYLES.get(keyword, keyword)
