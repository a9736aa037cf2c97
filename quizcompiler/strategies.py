"""
Parsing Strategies
==================
Interchangeable parsing algorithms tried in order by the engine.

    JsonStrategy     input is already a JSON array of questions
    LexicalStrategy  Lexer -> StateMachineParser -> rapid fire
"""

from __future__ import annotations

import json
import logging
import random
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from .lexer import Lexer
from .models import ParsedQuestion, ParseMode, ParseResult
from .rapid_fire import DISTRACTOR_COUNT, MIN_BATCH, apply_rapid_fire
from .state_machine import StateMachineParser

logger = logging.getLogger(__name__)


class ParsingStrategy(ABC):
    """A way of turning raw text into questions."""

    @abstractmethod
    def can_parse(self, text: str) -> bool:
        """Whether this strategy is suitable for the input."""

    @abstractmethod
    def parse(self, text: str) -> ParseResult:
        """Run the strategy. Never raises on malformed input."""


class JsonStrategy(ParsingStrategy):
    """Deserializes a JSON array of question objects directly."""

    def can_parse(self, text: str) -> bool:
        trimmed = text.strip()
        return trimmed.startswith("[") and trimmed.endswith("]")

    def parse(self, text: str) -> ParseResult:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.debug(f"Input is not JSON ({e}); falling through")
            return ParseResult(mode=ParseMode.STRUCTURED)

        if not isinstance(data, list):
            return ParseResult(mode=ParseMode.STRUCTURED)

        questions = []
        skipped = 0
        for index, item in enumerate(data):
            question = self._to_question(index, item)
            if question is None:
                skipped += 1
                continue
            questions.append(question)

        logger.info(
            f"JSON strategy: {len(questions)} questions, {skipped} skipped"
        )
        return ParseResult(
            mode=ParseMode.STRUCTURED,
            questions=questions,
            discarded=skipped,
        )

    def _to_question(self, index: int, item) -> Optional[ParsedQuestion]:
        if not isinstance(item, dict) or not item.get("question"):
            return None

        fields = {k: v for k, v in item.items() if v is not None}
        fields["id"] = index + 1
        fields.setdefault("options", [])
        if "correctAnswer" not in fields and "correct_answer" not in fields:
            fields["correctAnswer"] = 0

        try:
            return ParsedQuestion.model_validate(fields)
        except ValidationError as e:
            logger.warning(f"Skipping JSON question at index {index}: {e}")
            return None


class LexicalStrategy(ParsingStrategy):
    """Tokenizes and parses free text. Always applicable."""

    def __init__(
        self,
        rng: random.Random,
        loose_fallback: bool = True,
        rapid_fire: bool = True,
        rapid_fire_min_batch: int = MIN_BATCH,
        distractor_count: int = DISTRACTOR_COUNT,
    ):
        self.rng = rng
        self.loose_fallback = loose_fallback
        self.rapid_fire = rapid_fire
        self.rapid_fire_min_batch = rapid_fire_min_batch
        self.distractor_count = distractor_count

    def can_parse(self, text: str) -> bool:
        return True

    def parse(self, text: str) -> ParseResult:
        tokens = Lexer().tokenize(text)
        result = StateMachineParser(self.loose_fallback).parse(tokens)

        if self.rapid_fire and result.questions:
            questions = apply_rapid_fire(
                result.questions,
                self.rng,
                min_batch=self.rapid_fire_min_batch,
                distractor_count=self.distractor_count,
            )
            result = result.model_copy(update={"questions": questions})
        return result
