"""
Rapid Fire
==========
Distractor synthesis for linear "fact -> answer" questions.

When a batch holds enough single-answer questions, their answers form a
shared pool and each question borrows distractors from the others.
"""

from __future__ import annotations

import logging
import random

from .models import ParsedQuestion

logger = logging.getLogger(__name__)

LINEAR_MARKER = "->"
MIN_BATCH = 3
DISTRACTOR_COUNT = 3


def is_linear(question: ParsedQuestion) -> bool:
    return len(question.options) == 1 and question.correct_answer == 0


def apply_rapid_fire(
    questions: list[ParsedQuestion],
    rng: random.Random,
    min_batch: int = MIN_BATCH,
    distractor_count: int = DISTRACTOR_COUNT,
) -> list[ParsedQuestion]:
    """
    Give every linear question a shuffled multiple-choice option set.

    Args:
        questions: Finalized questions, in order.
        rng: Random source for sampling and shuffling.
        min_batch: Minimum number of linear questions needed to build a pool.
        distractor_count: Distractors drawn per question.

    Returns:
        A new list; non-linear questions are passed through unchanged.
    """
    linear = [q for q in questions if is_linear(q)]
    if len(linear) < min_batch:
        return list(questions)

    pool = [q.options[0] for q in linear]
    logger.info(
        f"Rapid fire: building options for {len(linear)} linear questions"
    )

    result = []
    for question in questions:
        if not is_linear(question):
            result.append(question)
            continue

        answer = question.options[0]
        others = [a for a in dict.fromkeys(pool) if a != answer]
        distractors = rng.sample(others, min(distractor_count, len(others)))
        if not distractors:
            result.append(question)
            continue

        options = [answer, *distractors]
        rng.shuffle(options)

        text = question.question
        if LINEAR_MARKER in text:
            text = text.split(LINEAR_MARKER, 1)[0].strip()

        result.append(question.model_copy(update={
            "question": text,
            "options": options,
            "correct_answer": options.index(answer),
        }))
    return result
