"""
Validation Engine
=================
Post-parse validation and reporting.

After each parse, generates a report:
    - Total Questions and the parse mode that produced them
    - Discarded Candidates (drafts rejected during finalization)
    - Linear Questions (single-answer "fact -> answer" items)
    - Questions Missing Explanation
    - Grouped Questions (sharing a directions block)
    - Invariant Violations (only reachable through the JSON path)
    - Topic breakdown

Never silently ignores failures.
"""

from __future__ import annotations

import logging
from collections import Counter

from .models import ParseResult, ValidationReport

logger = logging.getLogger(__name__)


class ValidationEngine:
    """
    Validates a parse result and produces a report.
    """

    def validate(self, result: ParseResult) -> ValidationReport:
        """
        Run full validation on a parse result.

        Args:
            result: Output of ParsingEngine.parse_result().

        Returns:
            ValidationReport with all detected issues.
        """
        report = ValidationReport(
            mode=result.mode,
            discarded_candidates=result.discarded,
        )

        if not result.questions:
            logger.warning("No questions to validate")
            return report

        report.total_questions = len(result.questions)
        topics: Counter[str] = Counter()

        for q in result.questions:
            if q.is_linear:
                report.linear_questions.append(q.id)

            if not q.explanation:
                report.questions_missing_explanation.append(q.id)

            if q.group_instruction:
                report.grouped_questions.append(q.id)

            if not q.is_well_formed:
                report.invariant_violations.append(q.id)

            topics[q.topic or "General"] += 1

        report.topic_breakdown = dict(topics)

        # Log summary
        logger.info("=" * 60)
        logger.info("VALIDATION REPORT")
        logger.info("=" * 60)
        logger.info(f"Parse Mode: {report.mode.value}")
        logger.info(
            f"Total Questions: {report.total_questions} "
            f"({report.success_rate}% of candidates)"
        )
        logger.info(f"Discarded Candidates: {report.discarded_candidates}")
        logger.info(f"Linear Questions: {len(report.linear_questions)}")
        logger.info(
            f"Questions Missing Explanation: "
            f"{len(report.questions_missing_explanation)}"
        )
        logger.info(f"Grouped Questions: {len(report.grouped_questions)}")

        if report.invariant_violations:
            logger.warning(
                f"Invariant Violations: {report.invariant_violations}"
            )

        if report.topic_breakdown:
            logger.info("Topic Breakdown:")
            for topic, count in sorted(report.topic_breakdown.items()):
                logger.info(f"  • {topic}: {count}")

        logger.info("=" * 60)

        return report
