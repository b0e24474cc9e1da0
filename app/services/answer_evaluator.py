"""
Answer evaluation - compares a submitted answer with a question's canonical answer
Years: integer comparison
Contemporaries: order-insensitive group partition comparison
Other lists: exact ordered comparison
Other scalars: exact string comparison
"""
import logging
import re
from typing import Any, List, Optional

from app.schemas.quiz import (
    ANSWER_SHAPES,
    AnswerShape,
    QuestionKind,
    answer_matches_shape,
)

logger = logging.getLogger(__name__)

YEAR_KINDS = (QuestionKind.BIRTH_YEAR, QuestionKind.DEATH_YEAR)
YEAR_PATTERN = re.compile(r"-?[0-9]+")


class AnswerEvaluator:
    """
    Pure, stateless answer comparison keyed by question kind

    Trimming and case folding belong to the presentation layer; scalar
    answers are compared exactly as received.
    """

    def is_correct(self, question_kind: QuestionKind, submitted: Any, canonical: Any) -> bool:
        """
        Judge a submitted answer

        Args:
            question_kind: Kind of the question being answered
            submitted: Answer sent by the player
            canonical: Correct answer stored with the question

        Returns:
            True when the answers are equal under the kind's comparison rule
        """
        kind = QuestionKind(question_kind)

        if kind in YEAR_KINDS:
            submitted_year = self._parse_year(submitted)
            return submitted_year is not None and submitted_year == self._parse_year(canonical)

        shape = ANSWER_SHAPES[kind]

        if shape is AnswerShape.GROUP_PARTITION:
            if not (
                answer_matches_shape(submitted, shape) and answer_matches_shape(canonical, shape)
            ):
                return False
            return self._normalize_groups(submitted) == self._normalize_groups(canonical)

        if isinstance(submitted, list) or isinstance(canonical, list):
            # Order matters for every list-valued kind except contemporaries
            return (
                isinstance(submitted, list)
                and isinstance(canonical, list)
                and submitted == canonical
            )

        return isinstance(submitted, str) and isinstance(canonical, str) and submitted == canonical

    def _parse_year(self, value: Any) -> Optional[int]:
        """Parse a year; anything non-numeric yields None"""
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and YEAR_PATTERN.fullmatch(value):
            return int(value)
        return None

    def _normalize_groups(self, groups: List[List[str]]) -> List[List[str]]:
        """
        Sort members inside each group, then sort groups by their first member
        """
        sorted_groups = [sorted(group) for group in groups]
        sorted_groups.sort(key=lambda group: (group[:1], group))
        return sorted_groups


# Global instance
answer_evaluator = AnswerEvaluator()
