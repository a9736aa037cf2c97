"""
Test Suite for the Quiz Compiler
================================
Unit tests for the models, lexer, heuristics, finalizer and state machine.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from quizcompiler.finalizer import (
    QuestionDraft,
    finalize_draft,
    join_text,
    parse_heatmap,
    parse_source,
    parse_time_limit,
)
from quizcompiler.heuristics import (
    KNOWN_TAGS,
    fix_ocr_artifacts,
    fuzzy_match_tag,
    levenshtein_distance,
)
from quizcompiler.lexer import (
    ANSWER_PATTERN,
    QUESTION_PATTERN,
    Lexer,
    marker_style,
)
from quizcompiler.models import (
    Heatmap,
    MetadataTarget,
    ParsedQuestion,
    ParseMode,
    Section,
    SourceRef,
    Token,
    TokenKind,
    ValidationReport,
)
from quizcompiler.normalizer import normalize_text
from quizcompiler.state_machine import (
    DIRECTIONS_PATTERN,
    Directions,
    ParseState,
    StateMachineParser,
    apply_answer,
    apply_tag,
    close_draft,
    ensure_draft,
    loose_step,
    open_question,
    route_text,
    run_transitions,
    start_option,
    strict_step,
)


def _parse(text: str):
    return StateMachineParser().parse(Lexer().tokenize(text))


def _kinds(tokens):
    return [t.kind for t in tokens]


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestParsedQuestion:
    """Test ParsedQuestion model."""

    def test_camel_case_serialization(self):
        q = ParsedQuestion(
            id=1,
            question="What is 2+2?",
            options=["3", "4"],
            correct_answer=1,
            group_instruction="Directions (Q1-2): Solve.",
        )
        data = q.model_dump()
        assert data["correctAnswer"] == 1
        assert data["groupInstruction"] == "Directions (Q1-2): Solve."
        assert data["topic"] == "General"
        # None fields are omitted
        assert "explanation" not in data
        assert "timeLimit" not in data

    def test_populate_by_alias_or_name(self):
        by_alias = ParsedQuestion.model_validate(
            {"id": 1, "question": "Q", "options": ["a", "b"], "correctAnswer": 1}
        )
        by_name = ParsedQuestion(
            id=1, question="Q", options=["a", "b"], correct_answer=1
        )
        assert by_alias == by_name

    def test_well_formed(self):
        q = ParsedQuestion(id=1, question="Q", options=["a", "b"], correct_answer=1)
        assert q.is_well_formed

    def test_answer_out_of_range_not_well_formed(self):
        q = ParsedQuestion(id=1, question="Q", options=["a", "b"], correct_answer=4)
        assert not q.is_well_formed

    def test_linear_question(self):
        q = ParsedQuestion(id=1, question="Sun -> Star", options=["Star"])
        assert q.is_linear
        assert q.is_well_formed

    def test_single_option_without_marker_not_well_formed(self):
        q = ParsedQuestion(id=1, question="Sun", options=["Star"])
        assert not q.is_linear
        assert not q.is_well_formed


class TestHeatmap:
    """Test Heatmap and SourceRef models."""

    def test_diff_alias(self):
        heatmap = Heatmap.model_validate({"diff": "6/10", "avgTime": "25s"})
        assert heatmap.difficulty == "6/10"
        assert heatmap.avg_time == "25s"
        assert heatmap.type == "Standard"

    def test_heatmap_dump(self):
        data = Heatmap(difficulty="Hard").model_dump()
        assert data == {"difficulty": "Hard", "avgTime": "N/A", "type": "Standard"}

    def test_source_defaults(self):
        source = SourceRef(text="NCERT")
        assert source.type == "Source"
        assert source.model_dump() == {"type": "Source", "text": "NCERT"}


class TestValidationReport:
    """Test ValidationReport model."""

    def test_success_rate(self):
        report = ValidationReport(total_questions=95, discarded_candidates=5)
        assert report.success_rate == 95.0

    def test_empty_report(self):
        report = ValidationReport()
        assert report.success_rate == 0.0
        assert report.total_questions == 0
        assert report.mode == ParseMode.STRICT


# ═══════════════════════════════════════════════════════════════════════════════
# NORMALIZER & HEURISTICS TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestNormalizer:
    """Test text normalization."""

    def test_line_endings(self):
        assert normalize_text("a\r\nb\rc") == "a\nb\nc"

    def test_smart_punctuation(self):
        text = "“Quoted” and ‘single’ here"
        assert normalize_text(text) == "\"Quoted\" and 'single' here"

    def test_trims(self):
        assert normalize_text("  \n Q1. Hi \n ") == "Q1. Hi"

    def test_idempotent(self):
        text = "\r\n “Q1.” What’s this?\r\n(A) x y \n"
        once = normalize_text(text)
        assert normalize_text(once) == once


class TestLevenshtein:
    """Test edit distance."""

    @pytest.mark.parametrize("a, b, expected", [
        ("kitten", "sitting", 3),
        ("flaw", "lawn", 2),
        ("", "abc", 3),
        ("abc", "", 3),
        ("same", "same", 0),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_symmetric(self):
        assert levenshtein_distance("HEATMAP", "HETMAP") == levenshtein_distance(
            "HETMAP", "HEATMAP"
        )


class TestFuzzyMatchTag:
    """Test fuzzy tag recognition."""

    def test_exact_match(self):
        assert fuzzy_match_tag("explanation") == "EXPLANATION"

    def test_corrupted_tag(self):
        assert fuzzy_match_tag("EXPLANATON") == "EXPLANATION"
        assert fuzzy_match_tag("S0URCE") == "SOURCE"
        assert fuzzy_match_tag("GODFATHER INSIGT") == "GODFATHER INSIGHT"

    def test_no_match(self):
        assert fuzzy_match_tag("XYZ") is None

    def test_max_distance_override(self):
        assert fuzzy_match_tag("EXPLNATON", max_distance=1) is None
        assert fuzzy_match_tag("EXPLNATON") == "EXPLANATION"

    def test_known_tags_are_uppercase(self):
        assert all(tag == tag.upper() for tag in KNOWN_TAGS)
        assert "TIME LIMIT" in KNOWN_TAGS


class TestOcrFixes:
    """Test OCR artifact correction."""

    def test_at_sign_option(self):
        assert fix_ocr_artifacts("(@) Paris") == "(A) Paris"
        assert fix_ocr_artifacts("[@] Paris") == "[A] Paris"

    def test_lowercase_options(self):
        assert fix_ocr_artifacts("(b) Rome (c) Oslo") == "(B) Rome (C) Oslo"

    def test_corrupted_words(self):
        assert fix_ocr_artifacts("C0rrect Answcr: B") == "Correct Answer: B"
        assert fix_ocr_artifacts("Queston 4") == "Question 4"
        assert fix_ocr_artifacts("0ption") == "Option"

    def test_question_number_suffix(self):
        assert fix_ocr_artifacts("Q12l What is it?") == "Q12. What is it?"

    def test_question_number_untouched(self):
        assert fix_ocr_artifacts("Q11 What is it?") == "Q11 What is it?"


# ═══════════════════════════════════════════════════════════════════════════════
# LEXER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestLinePatterns:
    """Test regex patterns for line anchors."""

    def test_question_patterns(self):
        assert QUESTION_PATTERN.match("Q1. What?")
        assert QUESTION_PATTERN.match("Q.1) What?")
        assert QUESTION_PATTERN.match("Question 2: What?")
        assert QUESTION_PATTERN.match("3) What?")
        assert QUESTION_PATTERN.match("प्रश्न 4. क्या?")

        assert not QUESTION_PATTERN.match("What is Q1?")
        assert not QUESTION_PATTERN.match("2023 was a year")

    def test_answer_patterns(self):
        assert ANSWER_PATTERN.search("Correct Answer: B").group(1) == "B"
        assert ANSWER_PATTERN.search("[Correct Answer: C]").group(1) == "C"
        assert ANSWER_PATTERN.search("[CORRECT ANSWER]: A) Rig").group(1) == "A"
        assert ANSWER_PATTERN.search("Ans: (d)").group(1) == "d"

        assert not ANSWER_PATTERN.search("Answer the following")
        assert not ANSWER_PATTERN.search("Answer: Because")

    def test_marker_style(self):
        assert marker_style("1. Boil water") == ""
        assert marker_style("Q1. What?") == "q"
        assert marker_style("Question 1: What?") == "q"
        assert marker_style("Step 1: Mix") == "step"
        assert marker_style("Plain text") is None


class TestLexer:
    """Test tokenization."""

    def test_question_with_inline_options(self):
        tokens = Lexer().tokenize("Q1. Pick one (A) x (B) y")
        assert _kinds(tokens) == [
            TokenKind.QUESTION_NUMBER,
            TokenKind.TEXT,
            TokenKind.OPTION_LABEL,
            TokenKind.TEXT,
            TokenKind.OPTION_LABEL,
            TokenKind.TEXT,
            TokenKind.END_OF_STREAM,
        ]
        assert [t.value for t in tokens[:-1]] == ["1", "Pick one", "A", "x", "B", "y"]

    def test_option_label_styles(self):
        tokens = Lexer().tokenize("A. one\nB) two\n[C] three\n(D) four")
        labels = [t.value for t in tokens if t.kind is TokenKind.OPTION_LABEL]
        assert labels == ["A", "B", "C", "D"]

    def test_separators(self):
        tokens = Lexer().tokenize("---\n###\n***\n⚡ BATCH 2")
        assert _kinds(tokens) == [TokenKind.SEPARATOR] * 4 + [TokenKind.END_OF_STREAM]

    def test_answer_line_drops_remainder(self):
        tokens = Lexer().tokenize("[CORRECT ANSWER]: A) Rig Veda")
        assert _kinds(tokens) == [TokenKind.ANSWER_LABEL, TokenKind.END_OF_STREAM]
        assert tokens[0].value == "A"

    def test_metadata_label(self):
        tokens = Lexer().tokenize("**[HEATMAP]:** [Diff: 6/10]")
        assert tokens[0].kind is TokenKind.TAG_LABEL
        assert tokens[0].value == "HEATMAP"
        assert tokens[1].kind is TokenKind.TEXT
        assert tokens[1].value == "[Diff: 6/10]"

    def test_fuzzy_metadata_label(self):
        tokens = Lexer().tokenize("Explanaton: because")
        assert tokens[0].kind is TokenKind.TAG_LABEL
        assert tokens[1].value == "because"

    def test_unknown_label_is_text(self):
        tokens = Lexer().tokenize("Remember this: always")
        assert tokens[0].kind is TokenKind.TEXT

    def test_ocr_option_fixed(self):
        tokens = Lexer().tokenize("(@) Paris")
        assert tokens[0].kind is TokenKind.OPTION_LABEL
        assert tokens[0].value == "A"

    def test_line_numbers_and_end_of_stream(self):
        tokens = Lexer().tokenize("Q1. Hi\n\nA) x")
        assert [t.line_number for t in tokens] == [1, 1, 3, 3, 3]
        assert tokens[-1].kind is TokenKind.END_OF_STREAM
        assert tokens[-1].value == "3"

    def test_empty_input(self):
        tokens = Lexer().tokenize("")
        assert _kinds(tokens) == [TokenKind.END_OF_STREAM]


# ═══════════════════════════════════════════════════════════════════════════════
# FINALIZER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestSubParsers:
    """Test time limit, heatmap and source parsing."""

    @pytest.mark.parametrize("content, expected", [
        ("45", 45),
        ("45s", 45),
        ("[30 sec]", 30),
        ("2 min", 120),
        ("2m", 120),
        ("90 seconds", 90),
        ("none", None),
    ])
    def test_time_limit(self, content, expected):
        assert parse_time_limit(content) == expected

    def test_heatmap_full(self):
        heatmap = parse_heatmap("[Diff: 6/10] | [Avg Time: 25s] | [Type: MATCH]")
        assert heatmap.difficulty == "6/10"
        assert heatmap.avg_time == "25s"
        assert heatmap.type == "MATCH"

    def test_heatmap_defaults(self):
        heatmap = parse_heatmap("[Diff: Hard]")
        assert heatmap.avg_time == "N/A"
        assert heatmap.type == "Standard"

    def test_keyed_source(self):
        source = parse_source("[Exam: SSC CGL Mains 2022]")
        assert source.type == "Exam"
        assert source.text == "SSC CGL Mains 2022"
        assert source.year == "2022"

    def test_bracketed_source(self):
        source = parse_source("[NCERT Class 11]")
        assert source.type == "Source"
        assert source.text == "NCERT Class 11"
        assert source.year is None

    def test_source_takes_last_year(self):
        source = parse_source("Editions of 1999 and 2005")
        assert source.year == "2005"

    def test_join_text(self):
        assert join_text("", "b", "\n") == "b"
        assert join_text(None, "b", "\n") == "b"
        assert join_text("a", "b", "\n") == "a\nb"


class TestFinalizeDraft:
    """Test draft finalization and rejection."""

    def test_complete_draft(self):
        draft = QuestionDraft(
            id=1,
            question="  What?  ",
            options=(" a ", "b", "  "),
            correct_answer=1,
            explanation="Because.\n",
        )
        q = finalize_draft(draft)
        assert q.question == "What?"
        assert q.options == ["a", "b"]
        assert q.explanation == "Because."

    def test_linear_format(self):
        q = finalize_draft(QuestionDraft(id=1, question="Capital of France->Paris"))
        assert q.question == "Capital of France -> Paris"
        assert q.options == ["Paris"]
        assert q.correct_answer == 0

    def test_inline_tags(self):
        draft = QuestionDraft(
            id=1,
            question="What is X? [Time: 45s] [TOPIC: Physics] [TAG: Optics]",
            options=("a", "b"),
            correct_answer=0,
        )
        q = finalize_draft(draft)
        assert q.question == "What is X?"
        assert q.time_limit == 45
        assert q.topic == "Physics, Optics"

    def test_slash_options(self):
        draft = QuestionDraft(
            id=1,
            question="She orders",
            options=("/ as if she", "/ were the queen", "/ No error", ""),
            correct_answer=1,
        )
        q = finalize_draft(draft)
        assert q.options == ["(A)", "(B)", "(C)", "(D)"]
        assert "(B) / were the queen" in q.question
        assert q.question.startswith("She orders (A) / as if she")

    def test_rejects_missing_answer(self):
        draft = QuestionDraft(id=1, question="Q", options=("a", "b"))
        assert finalize_draft(draft) is None

    def test_rejects_single_option(self):
        draft = QuestionDraft(id=1, question="Q", options=("a",), correct_answer=0)
        assert finalize_draft(draft) is None

    def test_rejects_answer_out_of_range(self):
        draft = QuestionDraft(id=1, question="Q", options=("a", "b"), correct_answer=3)
        assert finalize_draft(draft) is None

    def test_rejects_empty_question(self):
        draft = QuestionDraft(id=1, options=("a", "b"), correct_answer=0)
        assert finalize_draft(draft) is None


# ═══════════════════════════════════════════════════════════════════════════════
# STATE TRANSITION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


def _state_with_draft(**fields) -> ParseState:
    state = ensure_draft(ParseState())
    return replace(state, draft=replace(state.draft, **fields))


class TestTransitions:
    """Test individual pure transitions."""

    def test_ensure_draft(self):
        state = ensure_draft(ParseState())
        assert state.draft.id == 1
        assert state.section is Section.QUESTION

    def test_close_valid_draft(self):
        state = _state_with_draft(question="Q", options=("a", "b"), correct_answer=0)
        state, emitted = close_draft(state)
        assert state.draft is None
        assert state.emitted == 1
        assert emitted[0].question == "Q"

    def test_close_invalid_draft_counts_discard(self):
        state = _state_with_draft(question="Only text")
        state, emitted = close_draft(state)
        assert emitted == []
        assert state.discarded == 1

    def test_close_empty_draft_not_counted(self):
        state, emitted = close_draft(ensure_draft(ParseState()))
        assert emitted == []
        assert state.discarded == 0

    def test_open_question_emits_previous(self):
        state = _state_with_draft(question="Q", options=("a", "b"), correct_answer=0)
        state, emitted = open_question(state, number=2, style="q")
        assert len(emitted) == 1
        assert state.draft.id == 2
        assert state.draft.number == 2
        assert state.draft.question == ""

    def test_open_question_attaches_directions(self):
        directions = Directions(text="Read.", start=1, end=2)
        state = replace(ParseState(), directions=directions)

        state, _ = open_question(state, number=2)
        assert state.draft.group_instruction == "Read."

        state, _ = open_question(state, number=3)
        assert state.draft.group_instruction is None
        assert state.directions is None

    def test_apply_answer(self):
        state = apply_answer(_state_with_draft(), "C")
        assert state.draft.correct_answer == 2
        assert state.section is Section.EXPLANATION

    def test_option_text(self):
        state = start_option(_state_with_draft(question="Q"))
        state, _ = route_text(state, "Paris")
        state, _ = route_text(state, "France")
        assert state.section is Section.OPTION
        assert state.draft.options == ("Paris France",)

    def test_apply_explanation_tag(self):
        state = apply_tag(_state_with_draft(), "Explanaton")
        assert state.section is Section.EXPLANATION
        assert state.metadata_target is None

    def test_apply_metadata_tag(self):
        state = apply_tag(_state_with_draft(), "Heatmap")
        assert state.section is Section.METADATA
        assert state.metadata_target is MetadataTarget.HEATMAP

    def test_apply_custom_tag(self):
        state = apply_tag(_state_with_draft(), "Mnemonic")
        assert state.metadata_target is MetadataTarget.GENERIC
        state, _ = route_text(state, "Think of rivers.")
        assert state.draft.explanation == "**Mnemonic**: Think of rivers."

    def test_inner_tag_in_explanation(self):
        state = replace(_state_with_draft(), section=Section.EXPLANATION)
        state, _ = route_text(state, "Main reason.")
        state, _ = route_text(state, "[TRAP]: Don't pick A")
        state, _ = route_text(state, "[Sorce]: NCERT")
        assert state.draft.explanation == (
            "Main reason.\n**TRAP**: Don't pick A\n**SOURCE**: NCERT"
        )

    def test_metadata_routing(self):
        state = apply_tag(_state_with_draft(), "Topic")
        state, _ = route_text(state, "Geography")
        state = apply_tag(state, "Time Limit")
        state, _ = route_text(state, "2 min")
        state = apply_tag(state, "Godfather Insight")
        state, _ = route_text(state, "Think twice.")
        assert state.draft.topic == "Geography"
        assert state.draft.time_limit == 120
        assert state.draft.godfather_insight == "Think twice."

    def test_directions_text_captured(self):
        state = _state_with_draft()
        state, emitted = route_text(state, "Directions (Q1-3): Read the passage.")
        state, _ = route_text(state, "The river flows east.")
        assert emitted == []
        assert state.collecting_directions
        assert state.directions.start == 1
        assert state.directions.end == 3
        assert state.directions.text.endswith("\nThe river flows east.")
        assert state.draft.question == ""

    @pytest.mark.parametrize("text, start, end", [
        ("Directions (Q1-5):", 1, 5),
        ("Directions (Q. 101–105): Study", 101, 105),
        ("Directions (Questions 6 to 10)", 6, 10),
    ])
    def test_directions_pattern(self, text, start, end):
        match = DIRECTIONS_PATTERN.search(text)
        assert (int(match.group(1)), int(match.group(2))) == (start, end)

    def test_strict_step_rejects_nothing_on_end(self):
        token = Token(kind=TokenKind.END_OF_STREAM, value="0", line_number=0)
        state, emitted = strict_step(ParseState(), token)
        assert state.draft is None
        assert emitted == []

    def test_directions_mentioned_mid_explanation(self):
        state = replace(
            _state_with_draft(question="Q", options=("a", "b"), correct_answer=0),
            section=Section.EXPLANATION,
        )
        state, emitted = route_text(state, "As stated in Directions (Q1-2), a.")
        assert emitted == []
        assert state.directions is None
        assert state.draft.explanation == "As stated in Directions (Q1-2), a."

    def test_directions_line_after_explanation(self):
        state = replace(
            _state_with_draft(question="Q", options=("a", "b"), correct_answer=0),
            section=Section.EXPLANATION,
        )
        state, emitted = route_text(state, "Directions (Q2-3): Read.")
        assert len(emitted) == 1
        assert state.directions.start == 2
        assert state.collecting_directions

    def test_number_after_options_opens_question(self):
        state = _state_with_draft(
            question="One?", options=("a", "b"), number=1, style="q"
        )
        token = Token(
            kind=TokenKind.QUESTION_NUMBER,
            value="3",
            line_number=4,
            raw_line="3. Three?",
        )
        state, emitted = strict_step(state, token)
        assert emitted == []
        assert state.discarded == 1
        assert state.draft.number == 3
        assert state.draft.question == ""

    def test_number_before_options_is_content(self):
        state = _state_with_draft(question="Arrange:", number=20, style="q")
        token = Token(
            kind=TokenKind.QUESTION_NUMBER,
            value="1",
            line_number=2,
            raw_line="1. Boil water",
        )
        state, _ = strict_step(state, token)
        assert state.draft.number == 20
        assert state.draft.question == "Arrange:\n1. Boil water"
        assert state.skip_line == 2


# ═══════════════════════════════════════════════════════════════════════════════
# STATE MACHINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestStateMachineParser:
    """Test full strict and loose parsing over lexer output."""

    def test_single_complete_question(self):
        result = _parse(
            "Q1. The capital of France is?\n"
            "A) London\nB) Paris\nC) Berlin\nD) Madrid\n"
            "Correct Answer: B\n"
            "Explanation: Paris is the capital."
        )
        assert result.mode is ParseMode.STRICT
        assert len(result.questions) == 1
        q = result.questions[0]
        assert q.question == "The capital of France is?"
        assert q.options == ["London", "Paris", "Berlin", "Madrid"]
        assert q.correct_answer == 1
        assert q.explanation == "Paris is the capital."

    def test_multiple_questions_sequential_ids(self):
        result = _parse(
            "Q1. One?\nA) a\nB) b\nCorrect Answer: A\n"
            "Q2. Two?\nA) a\nB) b\nCorrect Answer: B\n"
            "---\n"
            "Q7. Three?\nA) a\nB) b\nCorrect Answer: B\n"
        )
        assert [q.id for q in result.questions] == [1, 2, 3]
        assert [q.correct_answer for q in result.questions] == [0, 1, 1]

    def test_multiline_question_text(self):
        result = _parse(
            "Q1. First line\nsecond line\nA) a\nB) b\nCorrect Answer: A"
        )
        assert result.questions[0].question == "First line\nsecond line"

    def test_single_option_rejected(self):
        result = _parse("Q1. Invalid Question\nA) One option only\nCorrect Answer: A")
        assert result.questions == []
        assert result.mode is ParseMode.RECOVERED
        assert result.discarded == 1

    def test_answer_out_of_range_rejected(self):
        result = _parse(
            "Q1. Two options?\nA) a\nB) b\nCorrect Answer: D\n"
            "Q2. Fine?\nA) a\nB) b\nCorrect Answer: A"
        )
        assert len(result.questions) == 1
        assert result.questions[0].question == "Fine?"
        assert result.discarded == 1

    def test_metadata_block(self):
        result = _parse(
            "Q1. Which river is longest?\n"
            "A) Nile\nB) Amazon\n"
            "Correct Answer: A\n"
            "Explanation: The Nile is about 6650 km.\n"
            "**[GODFATHER INSIGHT]:** Length, not volume.\n"
            "**[HEATMAP]:** [Diff: 6/10] | [Avg Time: 25s] | [Type: FACT]\n"
            "Topic: Geography\n"
            "Source: [Exam: SSC CGL 2022]"
        )
        q = result.questions[0]
        assert q.godfather_insight == "Length, not volume."
        assert q.heatmap.difficulty == "6/10"
        assert q.heatmap.type == "FACT"
        assert q.topic == "Geography"
        assert q.source.type == "Exam"
        assert q.source.year == "2022"
        assert q.explanation == (
            "The Nile is about 6650 km.\n**SOURCES**: [Exam: SSC CGL 2022]"
        )

    def test_directions_range(self):
        result = _parse(
            "Directions (Q1-2): Read the passage.\n"
            "The river flows east.\n"
            "Q1. Which way does the river flow?\nA) East\nB) West\nCorrect Answer: A\n"
            "Q2. Is it a river?\nA) Yes\nB) No\nCorrect Answer: A\n"
            "Q3. Unrelated?\nA) Yes\nB) No\nCorrect Answer: B"
        )
        instruction = "Directions (Q1-2): Read the passage.\nThe river flows east."
        assert [q.group_instruction for q in result.questions] == [
            instruction, instruction, None,
        ]
        assert result.questions[0].question == "Which way does the river flow?"

    def test_numbered_list_inside_question(self):
        result = _parse(
            "Q20. Arrange the steps:\n"
            "1. Boil water\n"
            "2. Add tea\n"
            "A) 1,2\nB) 2,1\n"
            "Correct Answer: A"
        )
        assert len(result.questions) == 1
        q = result.questions[0]
        assert q.question == "Arrange the steps:\n1. Boil water\n2. Add tea"
        assert q.options == ["1,2", "2,1"]

    def test_keyword_list_inside_question(self):
        result = _parse(
            "Q3. Follow the recipe.\n"
            "Step 1: Mix\n"
            "Step 2: Bake\n"
            "A) Cake\nB) Bread\n"
            "Correct Answer: A"
        )
        assert len(result.questions) == 1
        assert "Step 1: Mix" in result.questions[0].question

    def test_skipped_number_starts_new_question(self):
        result = _parse(
            "Q1. One?\nA) a\nB) b\nAnswer: A\n"
            "3. Three?\nA) c\nB) d\nAnswer: B"
        )
        assert len(result.questions) == 2
        first, second = result.questions
        assert first.options == ["a", "b"]
        assert first.correct_answer == 0
        assert first.explanation is None
        assert second.question == "Three?"
        assert second.options == ["c", "d"]
        assert second.correct_answer == 1

    def test_number_before_answer_starts_new_question(self):
        result = _parse(
            "Q1. One?\nA) a\nB) b\n"
            "2. Two?\nA) c\nB) d\nAnswer: B"
        )
        assert len(result.questions) == 1
        q = result.questions[0]
        assert q.question == "Two?"
        assert q.options == ["c", "d"]
        assert result.discarded == 1

    def test_explanation_mentioning_directions_kept(self):
        result = _parse(
            "Q1. One?\nA) a\nB) b\nAnswer: A\n"
            "Explanation: As stated in Directions (Q1-2), a.\n"
            "Q2. Two?\nA) c\nB) d\nAnswer: B"
        )
        assert len(result.questions) == 2
        assert result.questions[0].explanation == "As stated in Directions (Q1-2), a."
        assert result.questions[1].group_instruction is None

    def test_directions_en_dash_five_questions(self):
        blocks = "".join(
            f"Q{n}. Row {n}?\nA) yes\nB) no\nCorrect Answer: A\n"
            for n in range(1, 7)
        )
        result = _parse("Directions (Q1–5): Use the table.\n" + blocks)
        assert len(result.questions) == 6
        assert [q.group_instruction for q in result.questions] == (
            ["Directions (Q1–5): Use the table."] * 5 + [None]
        )

    def test_loose_fallback(self):
        def text(value, line):
            return Token(kind=TokenKind.TEXT, value=value, line_number=line)

        def option(letter, line):
            return Token(kind=TokenKind.OPTION_LABEL, value=letter, line_number=line)

        tokens = [
            text("**Question 1** What is 2+2?", 1),
            option("A", 2), text("3", 2),
            option("B", 3), text("4", 3),
            text("Answer: B", 4),
            text("Because 2+2 is 4.", 5),
            Token(kind=TokenKind.END_OF_STREAM, value="5", line_number=5),
        ]
        result = StateMachineParser().parse(tokens)
        assert result.mode is ParseMode.RECOVERED
        q = result.questions[0]
        assert q.question == "What is 2+2?"
        assert q.correct_answer == 1
        assert q.explanation == "Because 2+2 is 4."

    def test_loose_fallback_disabled(self):
        tokens = [
            Token(kind=TokenKind.TEXT, value="1. Lonely", line_number=1),
            Token(kind=TokenKind.END_OF_STREAM, value="1", line_number=1),
        ]
        result = StateMachineParser(loose_fallback=False).parse(tokens)
        assert result.mode is ParseMode.STRICT
        assert result.questions == []

    def test_run_transitions_without_end_token(self):
        tokens = Lexer().tokenize("Q1. Hi?\nA) a\nB) b\nCorrect Answer: A")[:-1]
        questions, state = run_transitions(tokens, loose_step)
        assert len(questions) == 1
        assert state.draft is None
