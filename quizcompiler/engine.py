"""
Parsing Engine
==============
Main orchestrator: normalizes input, selects a strategy and returns the
parsed questions.

Usage:
    engine = ParsingEngine(config)
    questions = engine.parse(raw_text)
    result = engine.parse_result(raw_text)   # tagged with the parse mode

Architecture:
    Raw text → Normalizer → JsonStrategy | LexicalStrategy
             (Lexer → StateMachineParser → Rapid Fire) → ParseResult
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .lexer import Lexer
from .models import ParsedQuestion, ParseMode, ParseResult, Token
from .normalizer import normalize_text
from .rapid_fire import DISTRACTOR_COUNT, MIN_BATCH
from .strategies import JsonStrategy, LexicalStrategy, ParsingStrategy

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ParserConfig:
    """Configuration for the parsing engine."""

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Recovery
    loose_fallback: bool = True

    # Rapid fire
    rapid_fire: bool = True
    rapid_fire_min_batch: int = MIN_BATCH
    distractor_count: int = DISTRACTOR_COUNT
    seed: Optional[int] = None


class ParsingEngine:
    """
    Text-to-question compiler.

    Tries each strategy in order and returns the first non-empty result:
        1. JSON array passthrough
        2. Lexical pipeline (strict, then loose recovery)

    An instance holds configuration only; every call builds its own lexer,
    parser state and random source, so one engine can serve many threads.
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or ParserConfig()
        self._rng = rng
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("quizcompiler")
        package_logger.setLevel(log_level)

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_path = Path(self.config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            already_attached = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path.resolve()
                for h in package_logger.handlers
            )
            if not already_attached:
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(
                    logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
                )
                package_logger.addHandler(file_handler)

    def parse(self, text: str) -> list[ParsedQuestion]:
        """
        Parse raw text into questions.

        Returns:
            The questions; an empty list means nothing could be recovered.

        Raises:
            TypeError: If `text` is not a string.
        """
        return self.parse_result(text).questions

    def parse_result(self, text: str) -> ParseResult:
        """
        Parse raw text and report which path produced the questions.

        Raises:
            TypeError: If `text` is not a string.
        """
        if not isinstance(text, str):
            raise TypeError(
                f"text must be a string, got {type(text).__name__}"
            )

        start_time = time.time()
        clean = normalize_text(text)

        for strategy in self._strategies():
            if not strategy.can_parse(clean):
                continue
            logger.debug(f"Strategy selected: {type(strategy).__name__}")
            result = strategy.parse(clean)
            if result.questions:
                elapsed = time.time() - start_time
                logger.info(
                    f"Parse complete in {elapsed:.3f}s — "
                    f"{len(result.questions)} questions ({result.mode.value})"
                )
                return result

        logger.warning("No strategy produced questions. Returning empty set.")
        return ParseResult(mode=ParseMode.RECOVERED)

    def tokenize(self, text: str) -> list[Token]:
        """Token stream for the normalized text (diagnostics)."""
        if not isinstance(text, str):
            raise TypeError(
                f"text must be a string, got {type(text).__name__}"
            )
        return Lexer().tokenize(normalize_text(text))

    def _strategies(self) -> list[ParsingStrategy]:
        rng = self._rng or random.Random(self.config.seed)
        return [
            JsonStrategy(),
            LexicalStrategy(
                rng,
                loose_fallback=self.config.loose_fallback,
                rapid_fire=self.config.rapid_fire,
                rapid_fire_min_batch=self.config.rapid_fire_min_batch,
                distractor_count=self.config.distractor_count,
            ),
        ]
