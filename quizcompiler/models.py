"""
Data Models
===========
Pydantic models for tokens and parsed questions.
Question models serialize to camelCase JSON for the exam store and UI.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


# ─── Enums ────────────────────────────────────────────────────────────────────


class TokenKind(str, Enum):
    """Kind of a lexical token."""
    SEPARATOR = "separator"
    QUESTION_NUMBER = "question_number"
    OPTION_LABEL = "option_label"
    ANSWER_LABEL = "answer_label"
    TAG_LABEL = "tag_label"
    TEXT = "text"
    END_OF_STREAM = "end_of_stream"


class Section(str, Enum):
    """Part of the question that plain text is currently routed into."""
    QUESTION = "question"
    OPTION = "option"
    EXPLANATION = "explanation"
    METADATA = "metadata"


class MetadataTarget(str, Enum):
    """Structured field that metadata text is routed into."""
    GODFATHER_INSIGHT = "godfather_insight"
    HEATMAP = "heatmap"
    SOURCE = "source"
    TOPIC = "topic"
    TIME_LIMIT = "time_limit"
    GENERIC = "generic"


class ParseMode(str, Enum):
    """How a result was produced."""
    STRUCTURED = "structured"
    STRICT = "strict"
    RECOVERED = "recovered"


# ─── Token Model ──────────────────────────────────────────────────────────────


class Token(BaseModel):
    """
    A single lexical token.
    Immutable once produced by the lexer.
    """
    model_config = ConfigDict(frozen=True)

    kind: TokenKind
    value: str = ""
    line_number: int = Field(ge=0)
    raw_line: str = ""


# ─── Question Models ─────────────────────────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def model_dump(self, **kwargs):
        kwargs.setdefault("by_alias", True)
        kwargs.setdefault("exclude_none", True)
        return super().model_dump(**kwargs)


class Heatmap(_CamelModel):
    """Difficulty heatmap attached to a question."""
    difficulty: str = Field(
        default="N/A",
        validation_alias=AliasChoices("difficulty", "diff"),
    )
    avg_time: str = "N/A"
    type: str = "Standard"


class SourceRef(_CamelModel):
    """Source citation, e.g. an exam paper and its year."""
    type: str = "Source"
    text: str = ""
    year: Optional[str] = None


class ParsedQuestion(_CamelModel):
    """
    A finalized question record.
    `correct_answer` is a zero-based index into `options`, or -1 when
    undetermined.
    """
    id: int = Field(ge=0)
    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: int = 0
    explanation: Optional[str] = None
    topic: Optional[str] = "General"
    group_instruction: Optional[str] = None
    godfather_insight: Optional[str] = None
    heatmap: Optional[Heatmap] = None
    source: Optional[SourceRef] = None
    time_limit: Optional[int] = None

    @property
    def is_linear(self) -> bool:
        return len(self.options) == 1 and "->" in self.question

    @property
    def is_well_formed(self) -> bool:
        """Check the structural invariants every emitted question satisfies."""
        if not self.question.strip():
            return False
        if len(self.options) < 2 and not self.is_linear:
            return False
        return 0 <= self.correct_answer < len(self.options)


# ─── Result Models ────────────────────────────────────────────────────────────


class ParseResult(BaseModel):
    """
    Output of a full parse, tagged with the path that produced it.
    """
    mode: ParseMode
    questions: list[ParsedQuestion] = Field(default_factory=list)
    discarded: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)

    @property
    def is_empty(self) -> bool:
        return not self.questions


class ValidationReport(BaseModel):
    """Post-parse structural report."""
    mode: ParseMode = ParseMode.STRICT
    total_questions: int = 0
    discarded_candidates: int = 0
    linear_questions: list[int] = Field(default_factory=list)
    questions_missing_explanation: list[int] = Field(default_factory=list)
    grouped_questions: list[int] = Field(default_factory=list)
    invariant_violations: list[int] = Field(default_factory=list)
    topic_breakdown: dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def success_rate(self) -> float:
        candidates = self.total_questions + self.discarded_candidates
        if candidates == 0:
            return 0.0
        return round(self.total_questions / candidates * 100, 2)


# ─── Worker Messages ──────────────────────────────────────────────────────────


class ParseRequest(BaseModel):
    """Request posted to a parse worker."""
    text: Optional[str] = None
