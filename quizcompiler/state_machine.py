"""
State Machine Parser
====================
Deterministic state machine that turns the token stream into questions.

Every transition is a pure function ``(ParseState, Token) -> (ParseState,
emitted questions)``. The parser runs the strict transitions first; if they
recover nothing at all it re-runs the same stream with the loose ones.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from .finalizer import (
    QuestionDraft,
    finalize_draft,
    join_text,
    parse_heatmap,
    parse_source,
    parse_time_limit,
)
from .heuristics import KNOWN_TAGS, KnownTag, fuzzy_match_tag
from .lexer import marker_style
from .models import (
    MetadataTarget,
    ParsedQuestion,
    ParseMode,
    ParseResult,
    Section,
    Token,
    TokenKind,
)

logger = logging.getLogger(__name__)

# ─── Patterns ─────────────────────────────────────────────────────────────────

# "Directions (Q1-5):", "Directions (Q. 101–105)", "Directions (Questions 6 to 10)"
DIRECTIONS_PATTERN = re.compile(
    r"Directions\s*\(?\s*(?:Q(?:uestions?|s)?\.?\s*)?(\d+)\s*(?:[-–—]+|to)\s*(\d+)\s*\)?",
    re.IGNORECASE,
)

# "[TAG]: content", "[TAG: content"
INNER_TAG_PATTERN = re.compile(r"^\[([^\]:]+)(?:\]:|:|\])\s*(.*)", re.DOTALL)

# Loose mode question starts that the lexer classified as text
LOOSE_QUESTION_PATTERN = re.compile(
    r"^(?:\d+[.):]|(?:\*\*)?(?:Question|Q)\s*\.?\s*\d+)", re.IGNORECASE
)
LOOSE_PREFIX_PATTERN = re.compile(
    r"^(?:\*\*)?(?:(?:Question|Q)\s*\.?\s*)?(\d+)(?:\*\*)?\s*[.):]?\s*(?:\*\*)?",
    re.IGNORECASE,
)
LOOSE_ANSWER_PATTERN = re.compile(r"\bAnswer\s*:", re.IGNORECASE)
LOOSE_ANSWER_LETTER_PATTERN = re.compile(
    r"\bAnswer\s*:\s*[\[(]?([A-E])(?![A-Za-z0-9])", re.IGNORECASE
)

ANSWER_LETTERS = re.compile(r"[^A-E]")

TAG_TARGETS: dict[KnownTag, MetadataTarget] = {
    KnownTag.GODFATHER_INSIGHT: MetadataTarget.GODFATHER_INSIGHT,
    KnownTag.HEATMAP: MetadataTarget.HEATMAP,
    KnownTag.SOURCE: MetadataTarget.SOURCE,
    KnownTag.SOURCES: MetadataTarget.SOURCE,
    KnownTag.TOPIC: MetadataTarget.TOPIC,
    KnownTag.TYPE: MetadataTarget.TOPIC,
    KnownTag.TIME_LIMIT: MetadataTarget.TIME_LIMIT,
}


# ─── State ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Directions:
    """Shared instruction for an inclusive range of question numbers."""
    text: str
    start: int
    end: int

    def covers(self, number: int) -> bool:
        return self.start <= number <= self.end


@dataclass(frozen=True)
class ParseState:
    """Immutable parse context threaded through the transitions."""
    draft: Optional[QuestionDraft] = None
    section: Section = Section.QUESTION
    option_index: int = -1
    metadata_target: Optional[MetadataTarget] = None
    directions: Optional[Directions] = None
    collecting_directions: bool = False
    skip_line: Optional[int] = None
    emitted: int = 0
    discarded: int = 0


Transition = tuple[ParseState, list[ParsedQuestion]]
StepFunction = Callable[[ParseState, Token], Transition]


# ─── Shared Transitions ───────────────────────────────────────────────────────


def close_draft(state: ParseState) -> Transition:
    """Finalize the in-progress draft, emitting it if valid."""
    if state.draft is None:
        return state, []

    question = finalize_draft(state.draft)
    if question is None:
        discarded = state.discarded + (1 if state.draft.has_content else 0)
        return replace(state, draft=None, discarded=discarded), []

    logger.debug(f"Emitted question {question.id}")
    return replace(state, draft=None, emitted=state.emitted + 1), [question]


def open_question(
    state: ParseState,
    number: Optional[int] = None,
    style: Optional[str] = None,
) -> Transition:
    """Close the current draft and start a fresh one."""
    state, emitted = close_draft(state)
    draft = QuestionDraft(id=state.emitted + 1, number=number, style=style)

    directions = state.directions
    if directions is not None and number is not None:
        if directions.covers(number):
            draft = replace(draft, group_instruction=directions.text)
        elif number > directions.end:
            directions = None

    state = replace(
        state,
        draft=draft,
        section=Section.QUESTION,
        option_index=-1,
        metadata_target=None,
        directions=directions,
        collecting_directions=False,
        skip_line=None,
    )
    return state, emitted


def ensure_draft(state: ParseState) -> ParseState:
    if state.draft is not None:
        return state
    state, _ = open_question(state)
    return state


def apply_answer(state: ParseState, value: str) -> ParseState:
    """Record the answer key; following free text is explanation."""
    letters = ANSWER_LETTERS.sub("", value.upper())
    draft = state.draft
    if letters:
        draft = replace(draft, correct_answer=ord(letters[-1]) - ord("A"))
    return replace(
        state,
        draft=draft,
        section=Section.EXPLANATION,
        metadata_target=None,
        collecting_directions=False,
    )


def start_option(state: ParseState) -> ParseState:
    draft = replace(state.draft, options=state.draft.options + ("",))
    return replace(
        state,
        draft=draft,
        section=Section.OPTION,
        option_index=len(draft.options) - 1,
        collecting_directions=False,
    )


def apply_tag(state: ParseState, label: str) -> ParseState:
    """Switch the text destination according to a metadata label."""
    key = fuzzy_match_tag(label) or label.upper().strip()
    tag = KnownTag(key) if key in KNOWN_TAGS else None
    state = replace(state, collecting_directions=False)

    if tag is KnownTag.EXPLANATION:
        return replace(state, section=Section.EXPLANATION, metadata_target=None)

    target = TAG_TARGETS.get(tag)
    if target is not None:
        return replace(state, section=Section.METADATA, metadata_target=target)

    draft = state.draft
    prefix = f"**{label.strip()}**: "
    draft = replace(draft, explanation=join_text(draft.explanation, prefix, "\n"))
    return replace(
        state,
        draft=draft,
        section=Section.EXPLANATION,
        metadata_target=MetadataTarget.GENERIC,
    )


def route_text(state: ParseState, text: str) -> Transition:
    """Append free text to whatever the current section points at."""
    # Outside question text only a line opening with directions counts
    if state.section is Section.QUESTION:
        match = DIRECTIONS_PATTERN.search(text)
    else:
        match = DIRECTIONS_PATTERN.match(text)
    if match:
        return _capture_directions(state, text, match)

    draft = state.draft
    section = state.section

    if section is Section.QUESTION:
        if state.collecting_directions and state.directions is not None:
            directions = replace(
                state.directions,
                text=join_text(state.directions.text, text, "\n"),
            )
            return replace(state, directions=directions), []
        draft = replace(draft, question=join_text(draft.question, text, "\n"))

    elif section is Section.OPTION:
        if 0 <= state.option_index < len(draft.options):
            options = list(draft.options)
            options[state.option_index] = join_text(
                options[state.option_index], text, " "
            )
            draft = replace(draft, options=tuple(options))

    elif section is Section.EXPLANATION:
        draft = replace(
            draft, explanation=_append_explanation(draft.explanation, text)
        )

    elif section is Section.METADATA:
        draft = _apply_metadata(draft, state.metadata_target, text)

    return replace(state, draft=draft), []


def _capture_directions(
    state: ParseState, text: str, match: re.Match
) -> Transition:
    directions = Directions(
        text=text,
        start=int(match.group(1)),
        end=int(match.group(2)),
    )
    logger.debug(
        f"Captured directions for questions {directions.start}-{directions.end}"
    )

    emitted: list[ParsedQuestion] = []
    if state.draft is not None and state.draft.has_content:
        state, emitted = open_question(state)
    state = ensure_draft(state)
    state = replace(state, directions=directions, collecting_directions=True)
    return state, emitted


def _append_explanation(existing: str, text: str) -> str:
    inner = INNER_TAG_PATTERN.match(text)
    if inner:
        raw_name = inner.group(1).upper().strip()
        name = fuzzy_match_tag(raw_name) or raw_name
        text = f"**{name}**: {inner.group(2).strip()}"

    # Directly after a "**TAG**: " prefix the text continues the same line
    if existing.endswith("**: "):
        return existing + text
    return join_text(existing, text, "\n")


def _apply_metadata(
    draft: QuestionDraft, target: Optional[MetadataTarget], text: str
) -> QuestionDraft:
    if target is MetadataTarget.GODFATHER_INSIGHT:
        return replace(
            draft,
            godfather_insight=join_text(draft.godfather_insight, text, "\n"),
        )
    if target is MetadataTarget.SOURCE:
        return replace(
            draft,
            source=parse_source(text),
            explanation=join_text(draft.explanation, f"**SOURCES**: {text}", "\n"),
        )
    if target is MetadataTarget.HEATMAP:
        return replace(draft, heatmap=parse_heatmap(text))
    if target is MetadataTarget.TOPIC:
        return replace(draft, topic=text)
    if target is MetadataTarget.TIME_LIMIT:
        time_limit = parse_time_limit(text)
        if time_limit is None:
            return draft
        return replace(draft, time_limit=time_limit)
    return replace(
        draft, explanation=_append_explanation(draft.explanation, text)
    )


def _is_list_item(state: ParseState, token: Token) -> bool:
    """
    A numbered line in a different numbering style from the keyword marker
    that opened the current question ("1." inside "Q20.", "Step 1:" inside
    "Q3.") is question content while the question has no options yet.
    """
    draft = state.draft
    if draft is None or not draft.style or draft.options:
        return False

    style = marker_style(token.raw_line)
    return style is not None and style != draft.style


def _absorb_line(state: ParseState, token: Token) -> Transition:
    state, emitted = route_text(state, token.raw_line.strip())
    return replace(state, skip_line=token.line_number), emitted


def _skipped(state: ParseState, token: Token) -> bool:
    return (
        state.skip_line is not None
        and token.line_number == state.skip_line
        and token.kind in (TokenKind.TEXT, TokenKind.OPTION_LABEL)
    )


# ─── Strict Mode ──────────────────────────────────────────────────────────────


def strict_step(state: ParseState, token: Token) -> Transition:
    """One strict-mode transition."""
    if _skipped(state, token):
        return state, []

    kind = token.kind

    if kind is TokenKind.QUESTION_NUMBER:
        if _is_list_item(state, token):
            return _absorb_line(state, token)
        return open_question(
            state,
            number=int(token.value),
            style=marker_style(token.raw_line),
        )

    if kind is TokenKind.SEPARATOR:
        return open_question(state)

    if kind is TokenKind.ANSWER_LABEL:
        return apply_answer(ensure_draft(state), token.value), []

    if kind is TokenKind.OPTION_LABEL:
        return start_option(ensure_draft(state)), []

    if kind is TokenKind.TAG_LABEL:
        return apply_tag(ensure_draft(state), token.value), []

    if kind is TokenKind.TEXT:
        return route_text(ensure_draft(state), token.value)

    if kind is TokenKind.END_OF_STREAM:
        return close_draft(state)

    raise ValueError(f"Unhandled token kind: {kind}")


# ─── Loose Mode ───────────────────────────────────────────────────────────────


def loose_step(state: ParseState, token: Token) -> Transition:
    """
    One loose-mode transition.

    Text that merely looks like a question start opens a question, and
    once an answer is known further text is treated as explanation.
    """
    if _skipped(state, token):
        return state, []

    if token.kind is not TokenKind.TEXT:
        return strict_step(state, token)

    text = token.value

    if LOOSE_QUESTION_PATTERN.match(text):
        prefix = LOOSE_PREFIX_PATTERN.match(text)
        number = int(prefix.group(1)) if prefix else None
        body = text[prefix.end():].strip() if prefix else text
        state, emitted = open_question(state, number=number)
        draft = replace(state.draft, question=body)
        return replace(state, draft=draft), emitted

    if LOOSE_ANSWER_PATTERN.search(text):
        letter = LOOSE_ANSWER_LETTER_PATTERN.search(text)
        value = letter.group(1) if letter else ""
        return apply_answer(ensure_draft(state), value), []

    state = ensure_draft(state)
    if state.section is not Section.OPTION and state.draft.correct_answer != -1:
        state = replace(state, section=Section.EXPLANATION)
    return route_text(state, text)


# ─── Parser ───────────────────────────────────────────────────────────────────


def run_transitions(
    tokens: Iterable[Token], step: StepFunction
) -> tuple[list[ParsedQuestion], ParseState]:
    """Feed every token through `step`, collecting emitted questions."""
    state = ParseState()
    questions: list[ParsedQuestion] = []

    for token in tokens:
        state, emitted = step(state, token)
        questions.extend(emitted)

    # Streams built by hand may lack END_OF_STREAM
    state, emitted = close_draft(state)
    questions.extend(emitted)
    return questions, state


class StateMachineParser:
    """
    Two-stage parser: strict grammar first, loose recovery only if the
    strict pass produced no questions at all.
    """

    def __init__(self, loose_fallback: bool = True):
        self.loose_fallback = loose_fallback

    def parse(self, tokens: list[Token]) -> ParseResult:
        """Parse a token stream into a tagged ParseResult."""
        questions, state = run_transitions(tokens, strict_step)
        mode = ParseMode.STRICT

        if not questions and self.loose_fallback:
            logger.warning(
                "Strict parsing found no questions. "
                "Engaging loose recovery mode."
            )
            questions, state = run_transitions(tokens, loose_step)
            mode = ParseMode.RECOVERED

        logger.info(
            f"{mode.value.capitalize()} parse: {len(questions)} questions, "
            f"{state.discarded} discarded"
        )
        return ParseResult(
            mode=mode,
            questions=questions,
            discarded=state.discarded,
            token_count=len(tokens),
        )
