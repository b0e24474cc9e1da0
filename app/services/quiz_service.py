"""
Quiz service - entry point used by the HTTP layer
Standalone attempts, shared quizzes, sessions, leaderboards and history
"""
import logging
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import Float, cast, func
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import (
    AttemptNotFoundError,
    InvalidAttemptError,
    InvalidQuizError,
    InvalidSessionError,
    QuestionNotFoundError,
    SharedQuizNotFoundError,
)
from app.models import QuizAttempt, QuizSession, SharedQuiz, SharedQuizQuestion
from app.schemas.quiz import (
    CreatorAttempt,
    DetailedAnswer,
    Question,
    QuestionKind,
    QuizSetupConfig,
)
from app.services.leaderboard_service import LeaderboardAggregator
from app.services.rating_service import AnswerOutcome, RatingCalculator, rating_calculator
from app.services.session_service import QuizSessionStore
from app.services.share_code_service import ShareCodeGenerator

logger = logging.getLogger(__name__)


class QuizService:
    """
    Composition root of the quiz engine

    Every operation receives a request-scoped database session; the service
    itself keeps no per-request state.
    """

    def __init__(
        self,
        calculator: Optional[RatingCalculator] = None,
        code_generator: Optional[ShareCodeGenerator] = None,
        session_store: Optional[QuizSessionStore] = None,
        leaderboard: Optional[LeaderboardAggregator] = None,
        max_questions: int = settings.MAX_SHARED_QUIZ_QUESTIONS
    ):
        self.calculator = calculator or rating_calculator
        self.code_generator = code_generator or ShareCodeGenerator()
        self.session_store = session_store or QuizSessionStore(calculator=self.calculator)
        self.leaderboard = leaderboard or LeaderboardAggregator()
        self.max_questions = max_questions

    # Standalone attempts

    async def save_standalone_attempt(
        self,
        db: Session,
        user_id: Optional[int],
        correct_answers: int,
        total_questions: int,
        total_time_ms: int,
        question_kinds: Sequence[QuestionKind],
        detailed: Optional[Sequence[DetailedAnswer]] = None,
        config: Optional[QuizSetupConfig] = None,
        questions: Optional[Sequence[Question]] = None
    ) -> Dict[str, Any]:
        """
        Rate and store a play-through of a non-shared quiz

        Returns:
            {"attempt_id", "rating_points"}
        """
        self._check_counts(correct_answers, total_questions, total_time_ms)

        outcomes = None
        if detailed is not None:
            outcomes = [
                AnswerOutcome(
                    is_correct=answer.is_correct,
                    time_spent_ms=answer.time_spent,
                    question_kind=answer.question_type,
                )
                for answer in detailed
            ]

        rating_points = self.calculator.score(
            correct_answers, total_questions, total_time_ms, list(question_kinds), outcomes
        )

        attempt = QuizAttempt(
            user_id=user_id,
            shared_quiz_id=None,
            correct_answers=correct_answers,
            total_questions=total_questions,
            total_time_ms=total_time_ms,
            rating_points=rating_points,
            config=config.model_dump(mode="json") if config else None,
            answers=[answer.model_dump(mode="json") for answer in detailed] if detailed else None,
            questions=[question.model_dump(mode="json") for question in questions] if questions else None,
        )

        try:
            db.add(attempt)
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.leaderboard.invalidate()
        logger.info(
            f"Quiz attempt saved: {attempt.id}, user={user_id}, "
            f"score={correct_answers}/{total_questions}, rating={rating_points}"
        )

        return {"attempt_id": attempt.id, "rating_points": rating_points}

    # Shared quizzes

    async def create_shared_quiz(
        self,
        db: Session,
        creator_id: Optional[int],
        title: str,
        description: Optional[str],
        config: Optional[QuizSetupConfig],
        questions: Sequence[Question],
        creator_attempt: Optional[CreatorAttempt] = None
    ) -> Dict[str, Any]:
        """
        Store an immutable shared quiz under a fresh share code

        The creator's own attempt, when given, is stored in the same transaction.

        Returns:
            {"id", "share_code"}
        """
        title = (title or "").strip()
        description = description.strip() if description else None
        self._check_shared_quiz(creator_id, title, questions)

        share_code = await self.code_generator.generate(db)

        try:
            quiz = SharedQuiz(
                creator_user_id=creator_id,
                title=title,
                description=description or None,
                share_code=share_code,
                config=config.model_dump(mode="json") if config else None,
            )
            db.add(quiz)
            db.flush()

            for index, question in enumerate(questions):
                db.add(SharedQuizQuestion(
                    shared_quiz_id=quiz.id,
                    question_index=index,
                    question_id=question.id,
                    question_data=question.model_dump(mode="json"),
                ))

            if creator_attempt is not None:
                db.add(self._creator_attempt_row(quiz.id, creator_id, questions, creator_attempt))

            db.commit()
        except Exception:
            db.rollback()
            raise

        if creator_attempt is not None:
            self.leaderboard.invalidate()

        logger.info(
            f"Shared quiz created: id={quiz.id}, code={share_code}, "
            f"questions={len(questions)}, creator={creator_id}"
        )

        return {"id": quiz.id, "share_code": share_code}

    async def get_shared_quiz(self, db: Session, share_code: str) -> Dict[str, Any]:
        """
        Shared quiz as shown to players, without answers or explanations
        """
        quiz = self._quiz_by_code(db, share_code)

        public_fields = ("id", "type", "question", "options", "data")
        return {
            "id": quiz.id,
            "title": quiz.title,
            "description": quiz.description,
            "creator_id": quiz.creator_user_id,
            "config": quiz.config,
            "questions": [
                {field: row.question_data.get(field) for field in public_fields}
                for row in quiz.questions
            ],
            "created_at": quiz.created_at,
        }

    # Sessions

    async def start_session(
        self,
        db: Session,
        shared_quiz_id: int,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self.session_store.start(db, shared_quiz_id, user_id)

    async def start_session_by_code(
        self,
        db: Session,
        share_code: str,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        quiz = self._quiz_by_code(db, share_code)
        return await self.session_store.start(db, quiz.id, user_id)

    async def record_answer(
        self,
        db: Session,
        session_token: str,
        question_id: str,
        answer: Any,
        time_spent_ms: int,
        share_code: Optional[str] = None
    ) -> Dict[str, bool]:
        self._check_session_quiz(db, session_token, share_code)
        is_correct = await self.session_store.record_answer(
            db, session_token, question_id, answer, time_spent_ms
        )
        return {"is_correct": is_correct}

    async def finish_session(
        self,
        db: Session,
        session_token: str,
        share_code: Optional[str] = None
    ) -> Dict[str, Any]:
        self._check_session_quiz(db, session_token, share_code)
        result = await self.session_store.finish(db, session_token)
        self.leaderboard.invalidate()
        return result

    async def session_detail(self, db: Session, session_token: str) -> Dict[str, Any]:
        return await self.session_store.session_detail(db, session_token)

    # Leaderboards

    async def global_leaderboard(self, db: Session, user_id: Optional[int] = None) -> Dict[str, Any]:
        return await self.leaderboard.global_leaderboard(db, user_id)

    async def shared_quiz_leaderboard(
        self,
        db: Session,
        share_code: str,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self.leaderboard.shared_quiz_leaderboard(db, share_code, user_id)

    async def user_stats(
        self,
        db: Session,
        user_id: int,
        recent_limit: int = settings.RECENT_ATTEMPTS_LIMIT
    ) -> Dict[str, Any]:
        """
        Totals, averages and global rank of one player, plus recent attempts
        """
        score = func.avg(cast(QuizAttempt.correct_answers, Float) * 100.0 / QuizAttempt.total_questions)
        stats = db.query(
            func.count(QuizAttempt.id).label("total_games"),
            func.sum(QuizAttempt.rating_points).label("total_rating"),
            func.avg(QuizAttempt.rating_points).label("average_rating"),
            func.max(QuizAttempt.rating_points).label("best_rating"),
            score.label("average_score"),
        ).filter(QuizAttempt.user_id == user_id).one()

        return {
            "total_games": int(stats.total_games or 0),
            "total_rating": round(float(stats.total_rating or 0), 2),
            "average_rating": round(float(stats.average_rating or 0), 2),
            "best_rating": round(float(stats.best_rating or 0), 2),
            "average_score": round(float(stats.average_score or 0), 2),
            "rank": await self.leaderboard.user_rank(db, user_id),
            "recent_attempts": await self.user_quiz_history(db, user_id, recent_limit),
        }

    # History

    async def user_quiz_history(
        self,
        db: Session,
        user_id: int,
        limit: int = settings.HISTORY_DEFAULT_LIMIT
    ) -> List[Dict[str, Any]]:
        """Attempts of one player, newest first"""
        rows = db.query(QuizAttempt, SharedQuiz.title).outerjoin(
            SharedQuiz, QuizAttempt.shared_quiz_id == SharedQuiz.id
        ).filter(
            QuizAttempt.user_id == user_id
        ).order_by(
            QuizAttempt.created_at.desc(), QuizAttempt.id.desc()
        ).limit(limit).all()

        return [
            {
                "attempt_id": attempt.id,
                "quiz_title": quiz_title,
                "shared_quiz_id": attempt.shared_quiz_id,
                "is_shared": attempt.shared_quiz_id is not None,
                "correct_answers": attempt.correct_answers,
                "total_questions": attempt.total_questions,
                "total_time_ms": attempt.total_time_ms,
                "rating_points": attempt.rating_points,
                "created_at": attempt.created_at,
                "config": attempt.config,
            }
            for attempt, quiz_title in rows
        ]

    async def attempt_detail(self, db: Session, attempt_id: int, user_id: int) -> Dict[str, Any]:
        """
        Full stored attempt; attempts of other players are reported as not found
        """
        row = db.query(QuizAttempt, SharedQuiz.title).outerjoin(
            SharedQuiz, QuizAttempt.shared_quiz_id == SharedQuiz.id
        ).filter(
            QuizAttempt.id == attempt_id,
            QuizAttempt.user_id == user_id
        ).first()

        if row is None:
            raise AttemptNotFoundError(attempt_id)

        attempt, quiz_title = row
        return {
            "id": attempt.id,
            "user_id": attempt.user_id,
            "shared_quiz_id": attempt.shared_quiz_id,
            "quiz_title": quiz_title,
            "correct_answers": attempt.correct_answers,
            "total_questions": attempt.total_questions,
            "total_time_ms": attempt.total_time_ms,
            "rating_points": attempt.rating_points,
            "config": attempt.config,
            "answers": attempt.answers,
            "questions": attempt.questions,
            "created_at": attempt.created_at,
        }

    # Helpers

    def _quiz_by_code(self, db: Session, share_code: str) -> SharedQuiz:
        quiz = db.query(SharedQuiz).filter(SharedQuiz.share_code == share_code).first()
        if quiz is None:
            raise SharedQuizNotFoundError(share_code=share_code)
        return quiz

    def _check_session_quiz(self, db: Session, session_token: str, share_code: Optional[str]) -> None:
        """A token used under another quiz's code looks like an unknown token"""
        if share_code is None:
            return

        match = db.query(QuizSession.id).join(
            SharedQuiz, QuizSession.shared_quiz_id == SharedQuiz.id
        ).filter(
            QuizSession.session_token == session_token,
            SharedQuiz.share_code == share_code
        ).first()
        if match is None:
            raise InvalidSessionError()

    def _check_counts(self, correct_answers: int, total_questions: int, total_time_ms: int) -> None:
        if total_questions <= 0:
            raise InvalidAttemptError("Quiz must have at least one question")
        if correct_answers < 0 or correct_answers > total_questions:
            raise InvalidAttemptError(
                "Invalid answer count",
                correct_answers=correct_answers,
                total_questions=total_questions,
            )
        if total_time_ms < 0:
            raise InvalidAttemptError("Invalid total time", total_time_ms=total_time_ms)

    def _check_shared_quiz(
        self,
        creator_id: Optional[int],
        title: str,
        questions: Sequence[Question]
    ) -> None:
        if creator_id is None:
            raise InvalidQuizError("Shared quizzes need a creator")
        if not title:
            raise InvalidQuizError("Quiz title is required")
        if not questions:
            raise InvalidQuizError("Quiz must contain at least one question")
        if len(questions) > self.max_questions:
            raise InvalidQuizError(
                f"Maximum number of questions: {self.max_questions}",
                questions=len(questions),
            )

        question_ids = [question.id for question in questions]
        if len(set(question_ids)) != len(question_ids):
            raise InvalidQuizError("Question ids must be unique within a quiz")

    def _creator_attempt_row(
        self,
        shared_quiz_id: int,
        creator_id: int,
        questions: Sequence[Question],
        creator_attempt: CreatorAttempt
    ) -> QuizAttempt:
        self._check_counts(
            creator_attempt.correct_answers,
            creator_attempt.total_questions,
            creator_attempt.total_time_ms,
        )

        kinds_by_id = {question.id: question.type for question in questions}
        outcomes = None
        if creator_attempt.answers is not None:
            outcomes = []
            for answer in creator_attempt.answers:
                if answer.question_id not in kinds_by_id:
                    raise QuestionNotFoundError(answer.question_id)
                outcomes.append(AnswerOutcome(
                    is_correct=answer.is_correct,
                    time_spent_ms=answer.time_spent,
                    question_kind=kinds_by_id[answer.question_id],
                ))

        rating_points = self.calculator.score(
            creator_attempt.correct_answers,
            creator_attempt.total_questions,
            creator_attempt.total_time_ms,
            [question.type for question in questions],
            outcomes
        )

        return QuizAttempt(
            user_id=creator_id,
            shared_quiz_id=shared_quiz_id,
            correct_answers=creator_attempt.correct_answers,
            total_questions=creator_attempt.total_questions,
            total_time_ms=creator_attempt.total_time_ms,
            rating_points=rating_points,
            answers=[
                {**answer.model_dump(mode="json"), "question_type": kinds_by_id[answer.question_id].value}
                for answer in creator_attempt.answers
            ] if creator_attempt.answers else None,
            questions=[question.model_dump(mode="json") for question in questions],
        )
