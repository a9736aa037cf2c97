"""
Question Finalization
=====================
Turns an in-progress QuestionDraft into a ParsedQuestion, or rejects it.

Finalization steps, in order:
    1. Linear format        "fact -> answer" becomes a one-option question
    2. Inline brackets      [Time: ...], [TOPIC: ...], [TAG: ...]
    3. Slash options        error-detection segments become (A), (B), ...
    4. Validation           drop anything structurally incomplete

Also houses the sub-parsers for time limits, heatmaps and sources.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Optional

from .models import Heatmap, ParsedQuestion, SourceRef

logger = logging.getLogger(__name__)

LINEAR_MARKER = "->"
DEFAULT_TOPIC = "General"

TIME_TAG_PATTERN = re.compile(r"\[Time:\s*([^\]]+)\]", re.IGNORECASE)
TOPIC_TAG_PATTERN = re.compile(r"\[TOPIC:\s*([^\]]+)\]", re.IGNORECASE)
GENERIC_TAG_PATTERN = re.compile(r"\[TAG:\s*([^\]]+)\]", re.IGNORECASE)

MINUTE_PATTERN = re.compile(r"\d\s*m(?:in(?:ute)?s?)?\b", re.IGNORECASE)

HEATMAP_DIFF_PATTERN = re.compile(r"\[Diff:\s*([^\]]+)\]", re.IGNORECASE)
HEATMAP_TIME_PATTERN = re.compile(r"\[Avg\s*Time:\s*([^\]]+)\]", re.IGNORECASE)
HEATMAP_TYPE_PATTERN = re.compile(r"\[Type:\s*([^\]]+)\]", re.IGNORECASE)

SOURCE_KEYED_PATTERN = re.compile(r"^\[(.*?):\s*(.*?)\]")
YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")


@dataclass(frozen=True)
class QuestionDraft:
    """
    A question under construction.

    `number` is the literal id from the question marker (if any) and
    `style` the numbering style of that marker ("" for a bare number).
    """
    id: int
    number: Optional[int] = None
    style: Optional[str] = None
    question: str = ""
    options: tuple[str, ...] = ()
    correct_answer: int = -1
    explanation: str = ""
    topic: str = DEFAULT_TOPIC
    group_instruction: Optional[str] = None
    godfather_insight: Optional[str] = None
    heatmap: Optional[Heatmap] = None
    source: Optional[SourceRef] = None
    time_limit: Optional[int] = None

    @property
    def has_content(self) -> bool:
        return bool(self.question.strip() or self.options)


def join_text(existing: Optional[str], addition: str, separator: str) -> str:
    """Append text, inserting the separator only between non-empty parts."""
    if not existing:
        return addition
    return existing + separator + addition


# ─── Finalization ─────────────────────────────────────────────────────────────


def finalize_draft(draft: QuestionDraft) -> Optional[ParsedQuestion]:
    """
    Apply finalization rules and validate.

    Returns:
        The finished question, or None if the draft is rejected.
    """
    draft = detect_linear_format(draft)
    draft = extract_inline_tags(draft)
    draft = reconstruct_slash_options(draft)

    question = draft.question.strip()
    options = [opt.strip() for opt in draft.options if opt.strip()]
    explanation = draft.explanation.strip()

    reason = _rejection_reason(question, options, draft.correct_answer)
    if reason:
        if draft.has_content:
            logger.debug(f"Discarding question draft {draft.id}: {reason}")
        return None

    return ParsedQuestion(
        id=draft.id,
        question=question,
        options=options,
        correct_answer=draft.correct_answer,
        explanation=explanation or None,
        topic=draft.topic,
        group_instruction=draft.group_instruction,
        godfather_insight=draft.godfather_insight,
        heatmap=draft.heatmap,
        source=draft.source,
        time_limit=draft.time_limit,
    )


def _rejection_reason(
    question: str, options: list[str], correct_answer: int
) -> Optional[str]:
    if not question:
        return "no question text"
    if len(options) < 2 and not (
        len(options) == 1 and LINEAR_MARKER in question
    ):
        return f"{len(options)} option(s)"
    if correct_answer < 0:
        return "no answer key"
    if correct_answer >= len(options):
        return f"answer index {correct_answer} out of range"
    return None


def detect_linear_format(draft: QuestionDraft) -> QuestionDraft:
    """Split "fact -> answer" into a question with a single correct option."""
    if LINEAR_MARKER not in draft.question or draft.options:
        return draft
    left, right = draft.question.split(LINEAR_MARKER, 1)
    answer = right.strip()
    return replace(
        draft,
        question=f"{left.strip()} {LINEAR_MARKER} {answer}",
        options=(answer,),
        correct_answer=0,
    )


def extract_inline_tags(draft: QuestionDraft) -> QuestionDraft:
    """Move [Time: ...], [TOPIC: ...] and [TAG: ...] out of the question."""
    question = draft.question
    topic = draft.topic
    time_limit = draft.time_limit

    match = TIME_TAG_PATTERN.search(question)
    if match:
        parsed = parse_time_limit(match.group(1))
        if parsed is not None:
            time_limit = parsed
        question = question.replace(match.group(0), "", 1)

    match = TOPIC_TAG_PATTERN.search(question)
    if match:
        topic = match.group(1).strip()
        question = question.replace(match.group(0), "", 1)

    match = GENERIC_TAG_PATTERN.search(question)
    if match:
        topic = join_text(topic, match.group(1).strip(), ", ")
        question = question.replace(match.group(0), "", 1)

    return replace(draft, question=question, topic=topic, time_limit=time_limit)


def reconstruct_slash_options(draft: QuestionDraft) -> QuestionDraft:
    """
    Error-detection format: "She orders (A) / as if she (B) / ..."

    The options are segments of one sentence, so they are folded back
    into the question and replaced with the bare labels.
    """
    if not any(opt.strip().startswith("/") for opt in draft.options):
        return draft

    labels = [f"({chr(ord('A') + i)})" for i in range(len(draft.options))]
    question = draft.question
    for label, segment in zip(labels, draft.options):
        question += f" {label} {segment.strip()}"

    return replace(draft, question=question, options=tuple(labels))


# ─── Sub-parsers ──────────────────────────────────────────────────────────────


def parse_time_limit(content: str) -> Optional[int]:
    """Parse "45", "45s", "2 min" into seconds."""
    clean = content.replace("[", "").replace("]", "").strip()
    match = re.search(r"\d+", clean)
    if not match:
        return None
    seconds = int(match.group(0))
    if MINUTE_PATTERN.search(clean):
        seconds *= 60
    return seconds


def parse_heatmap(content: str) -> Heatmap:
    """Parse "[Diff: 6/10] | [Avg Time: 25s] | [Type: MATCH]"."""
    diff = HEATMAP_DIFF_PATTERN.search(content)
    avg_time = HEATMAP_TIME_PATTERN.search(content)
    kind = HEATMAP_TYPE_PATTERN.search(content)
    return Heatmap(
        difficulty=diff.group(1).strip() if diff else "N/A",
        avg_time=avg_time.group(1).strip() if avg_time else "N/A",
        type=kind.group(1).strip() if kind else "Standard",
    )


def parse_source(content: str) -> SourceRef:
    """Parse "[Exam: SSC CGL Mains 2022]" or "[NCERT Class 11]"."""
    content = content.strip()
    source_type = "Source"
    text = content

    keyed = SOURCE_KEYED_PATTERN.match(content)
    if keyed:
        source_type = keyed.group(1).strip()
        text = keyed.group(2).strip()
    elif content.startswith("[") and content.endswith("]"):
        text = content[1:-1].strip()

    years = YEAR_PATTERN.findall(text)
    return SourceRef(
        type=source_type,
        text=text,
        year=years[-1] if years else None,
    )
