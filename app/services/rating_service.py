"""
Rating calculation service
Turns per-question outcomes into a single rating value for an attempt
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from app.schemas.quiz import QuestionKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerOutcome:
    """Correctness and latency of one answered question"""
    is_correct: bool
    time_spent_ms: int
    question_kind: QuestionKind


class RatingCalculator:
    """
    Rating points calculator

    Detailed mode: Σ(BasePoints × DifficultyMultiplier × TimeBonus) over
    correct answers, with a hyperbolic per-question time bonus.

    Fallback mode (no per-question detail): accuracy × difficulty of the
    whole question set × a single time bonus from the average answer time.
    The two modes are not reconciled and generally disagree for the same run.
    """

    DIFFICULTY: Dict[QuestionKind, float] = {
        QuestionKind.BIRTH_YEAR: 0.0,
        QuestionKind.DEATH_YEAR: 0.0,
        QuestionKind.PROFESSION: 0.0,
        QuestionKind.COUNTRY: 0.0,
        QuestionKind.ACHIEVEMENTS_MATCH: 0.1,
        QuestionKind.GUESS_PERSON: 0.1,
        QuestionKind.BIRTH_ORDER: 0.2,
        QuestionKind.CONTEMPORARIES: 0.2,
    }

    SIMPLE_CHOICE_KINDS = (
        QuestionKind.BIRTH_YEAR,
        QuestionKind.DEATH_YEAR,
        QuestionKind.PROFESSION,
        QuestionKind.COUNTRY,
    )

    # (max_bonus, k, offset) for bonus = 1 + k / (time_ms + offset)
    SIMPLE_TIME_CURVE = (1.5, 3000, 500)
    CONTEMPORARIES_TIME_CURVE = (2.0, 20000, 2000)
    COMPLEX_TIME_CURVE = (1.8, 10000, 1000)

    BASELINE_QUESTION_COUNT = 5
    QUESTION_COUNT_WEIGHT = 0.1

    # Fallback time bonus: linear in average time, 30s average is neutral
    FALLBACK_NEUTRAL_TIME_MS = 30000
    FALLBACK_TIME_SCALE_MS = 60000
    FALLBACK_MAX_TIME_BONUS = 1.5

    def score(
        self,
        correct_count: int,
        total_count: int,
        total_time_ms: int,
        question_kinds: Sequence[QuestionKind],
        detailed: Optional[Sequence[AnswerOutcome]] = None
    ) -> float:
        """
        Calculate rating points for an attempt

        Args:
            correct_count: Number of correct answers
            total_count: Number of questions in the quiz (must be > 0)
            total_time_ms: Total time spent answering
            question_kinds: Kind of every question in the quiz
            detailed: Per-question outcomes aligned 1:1 with question_kinds

        Returns:
            Rating points rounded to 2 decimals, never negative
        """
        if correct_count == 0:
            return 0.0

        if detailed is not None and len(detailed) == len(question_kinds):
            return self.detailed_score(detailed, total_count)

        return self.fallback_score(correct_count, total_count, total_time_ms, question_kinds)

    def detailed_score(self, outcomes: Sequence[AnswerOutcome], total_count: int) -> float:
        """Sum of per-question points over correct answers"""
        base_points = 100 / total_count
        question_count_bonus = self._question_count_bonus(total_count)

        total_rating = 0.0
        for outcome in outcomes:
            if not outcome.is_correct:
                continue

            difficulty_multiplier = 1 + question_count_bonus + self.difficulty(outcome.question_kind)
            time_bonus = self.question_time_bonus(outcome.time_spent_ms, outcome.question_kind)
            total_rating += base_points * difficulty_multiplier * time_bonus

        return self._round_points(total_rating)

    def fallback_score(
        self,
        correct_count: int,
        total_count: int,
        total_time_ms: int,
        question_kinds: Sequence[QuestionKind]
    ) -> float:
        """Coarse rating used when per-question detail is unavailable"""
        if correct_count == 0:
            return 0.0

        base_score = (correct_count / total_count) * 100
        type_difficulty = sum(self.difficulty(kind) for kind in question_kinds)
        difficulty_multiplier = 1 + self._question_count_bonus(total_count) + type_difficulty

        avg_time_per_question = total_time_ms / total_count
        raw_bonus = min(
            self.FALLBACK_MAX_TIME_BONUS,
            1 + (self.FALLBACK_NEUTRAL_TIME_MS - avg_time_per_question) / self.FALLBACK_TIME_SCALE_MS
        )
        capped_bonus = max(1.0, raw_bonus)
        correct_ratio = correct_count / total_count
        # Low accuracy runs only get a proportional share of the speed bonus
        time_bonus = 1.0 + (capped_bonus - 1.0) * correct_ratio

        return self._round_points(base_score * difficulty_multiplier * time_bonus)

    def question_time_bonus(self, time_ms: float, question_kind: QuestionKind) -> float:
        """
        Hyperbolic speed bonus for one correct answer, clamped to [1.0, max_bonus]
        """
        max_bonus, k, offset = self.time_curve(question_kind)
        raw_bonus = 1 + k / (max(time_ms, 0) + offset)
        return min(max_bonus, max(1.0, raw_bonus))

    def time_curve(self, question_kind: QuestionKind) -> Tuple[float, int, int]:
        kind = QuestionKind(question_kind)
        if kind in self.SIMPLE_CHOICE_KINDS:
            return self.SIMPLE_TIME_CURVE
        if kind is QuestionKind.CONTEMPORARIES:
            return self.CONTEMPORARIES_TIME_CURVE
        return self.COMPLEX_TIME_CURVE

    def difficulty(self, question_kind: QuestionKind) -> float:
        return self.DIFFICULTY.get(QuestionKind(question_kind), 0.0)

    def _question_count_bonus(self, total_count: int) -> float:
        # Negative below the baseline: short quizzes score less per question
        return (total_count - self.BASELINE_QUESTION_COUNT) * self.QUESTION_COUNT_WEIGHT

    def _round_points(self, points: float) -> float:
        # Half-up on the value scaled to hundredths
        return max(0.0, math.floor(points * 100 + 0.5) / 100)


# Global instance
rating_calculator = RatingCalculator()
