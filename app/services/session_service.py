"""
Quiz session service - state machine for playing a shared quiz

Active -> Finished (explicit, once) or Active -> Expired (implicit, at read time)
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import (
    InvalidSessionError,
    QuestionAlreadyAnsweredError,
    QuestionNotFoundError,
    QuizEngineError,
    SessionNotFoundError,
    SharedQuizNotFoundError,
)
from app.models import QuizAttempt, QuizSession, QuizSessionAnswer, SharedQuiz, SharedQuizQuestion
from app.schemas.quiz import QuestionKind
from app.services.answer_evaluator import AnswerEvaluator, answer_evaluator
from app.services.rating_service import AnswerOutcome, RatingCalculator, rating_calculator

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def token_hint(session_token: str) -> str:
    """Short prefix of a session token, safe to log"""
    return f"{session_token[:8]}..."


class QuizSessionStore:
    """
    Owns session creation, answer recording, finishing and cleanup

    Consistency rests on the store:
    - quiz_session_answers has a unique (session_id, question_id), so two
      concurrent submissions for one question yield one row and one rejection
    - finish claims the session with a conditional UPDATE, so only one
      caller can move it out of the Active state
    """

    def __init__(
        self,
        evaluator: Optional[AnswerEvaluator] = None,
        calculator: Optional[RatingCalculator] = None,
        session_ttl_seconds: int = settings.SESSION_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow
    ):
        self.evaluator = evaluator or answer_evaluator
        self.calculator = calculator or rating_calculator
        self.session_ttl = timedelta(seconds=session_ttl_seconds)
        self.clock = clock

    async def start(
        self,
        db: Session,
        shared_quiz_id: int,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Open a new session for a shared quiz

        Returns:
            {"session_token", "expires_at"}
        """
        if db.get(SharedQuiz, shared_quiz_id) is None:
            raise SharedQuizNotFoundError(quiz_id=shared_quiz_id)

        now = self.clock()
        session = QuizSession(
            session_token=secrets.token_hex(32),
            shared_quiz_id=shared_quiz_id,
            user_id=user_id,
            started_at=now,
            expires_at=now + self.session_ttl,
        )

        try:
            db.add(session)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Quiz session started: quiz={shared_quiz_id}, user={user_id}, "
            f"token={token_hint(session.session_token)}"
        )

        return {
            "session_token": session.session_token,
            "expires_at": session.expires_at,
        }

    async def record_answer(
        self,
        db: Session,
        session_token: str,
        question_id: str,
        submitted_answer: Any,
        time_spent_ms: int
    ) -> bool:
        """
        Judge and append one answer to an active session

        Returns:
            Whether the answer was correct (the canonical answer is never returned)

        Raises:
            InvalidSessionError: unknown, expired or finished session
            QuestionAlreadyAnsweredError: question already has an answer in this session
            QuestionNotFoundError: question is not part of the session's quiz
        """
        try:
            session = self._get_active_session(db, session_token, for_update=True)

            already_answered = db.query(QuizSessionAnswer.id).filter(
                QuizSessionAnswer.session_id == session.id,
                QuizSessionAnswer.question_id == question_id
            ).first()
            if already_answered:
                raise QuestionAlreadyAnsweredError(question_id)

            question_row = db.query(SharedQuizQuestion).filter(
                SharedQuizQuestion.shared_quiz_id == session.shared_quiz_id,
                SharedQuizQuestion.question_id == question_id
            ).first()
            if question_row is None:
                raise QuestionNotFoundError(question_id)

            question = question_row.question_data
            is_correct = self.evaluator.is_correct(
                question["type"], submitted_answer, question["correct_answer"]
            )

            db.add(QuizSessionAnswer(
                session_id=session.id,
                question_id=question_id,
                answer=submitted_answer,
                is_correct=is_correct,
                time_spent_ms=time_spent_ms,
            ))
            db.commit()

        except IntegrityError:
            # A concurrent submission for the same question won the race
            db.rollback()
            logger.warning(
                f"Duplicate answer rejected: token={token_hint(session_token)}, question={question_id}"
            )
            raise QuestionAlreadyAnsweredError(question_id)
        except QuizEngineError as e:
            db.rollback()
            logger.warning(
                f"Answer rejected: token={token_hint(session_token)}, "
                f"question={question_id}, reason={e.error_code}"
            )
            raise
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Answer recorded: token={token_hint(session_token)}, "
            f"question={question_id}, correct={is_correct}"
        )
        return is_correct

    async def finish(self, db: Session, session_token: str) -> Dict[str, Any]:
        """
        Close an active session, score it and persist the attempt

        Returns:
            Attempt id, score summary and per-question review

        Raises:
            InvalidSessionError: unknown, expired or already finished session
        """
        now = self.clock()

        try:
            claimed = db.query(QuizSession).filter(
                QuizSession.session_token == session_token,
                QuizSession.finished_at.is_(None),
                QuizSession.expires_at > now
            ).update({QuizSession.finished_at: now}, synchronize_session=False)

            if claimed != 1:
                raise InvalidSessionError()

            session = db.query(QuizSession).filter(
                QuizSession.session_token == session_token
            ).one()
            questions = self._load_questions(db, session.shared_quiz_id)
            answers = db.query(QuizSessionAnswer).filter(
                QuizSessionAnswer.session_id == session.id
            ).order_by(QuizSessionAnswer.id).all()

            questions_by_id = {question["id"]: question for question in questions}
            correct_answers = sum(1 for answer in answers if answer.is_correct)
            total_questions = len(questions)
            total_time_ms = sum(answer.time_spent_ms for answer in answers)

            outcomes = [
                AnswerOutcome(
                    is_correct=answer.is_correct,
                    time_spent_ms=answer.time_spent_ms,
                    question_kind=QuestionKind(questions_by_id[answer.question_id]["type"]),
                )
                for answer in answers
            ]
            rating_points = self.calculator.score(
                correct_answers,
                total_questions,
                total_time_ms,
                [QuestionKind(question["type"]) for question in questions],
                outcomes
            )

            attempt = QuizAttempt(
                user_id=session.user_id,
                shared_quiz_id=session.shared_quiz_id,
                correct_answers=correct_answers,
                total_questions=total_questions,
                total_time_ms=total_time_ms,
                rating_points=rating_points,
                answers=[
                    {
                        "question_id": answer.question_id,
                        "answer": answer.answer,
                        "is_correct": answer.is_correct,
                        "time_spent": answer.time_spent_ms,
                        "question_type": questions_by_id[answer.question_id]["type"],
                    }
                    for answer in answers
                ],
                questions=questions,
            )
            db.add(attempt)
            db.flush()

            session.attempt_id = attempt.id
            db.commit()

        except InvalidSessionError:
            db.rollback()
            logger.warning(f"Finish rejected: token={token_hint(session_token)}")
            raise
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Quiz session finished: token={token_hint(session_token)}, attempt={attempt.id}, "
            f"score={correct_answers}/{total_questions}, rating={rating_points}"
        )

        answers_by_question = {answer.question_id: answer for answer in answers}
        detailed_results = []
        for question in questions:
            user_answer = answers_by_question.get(question["id"])
            detailed_results.append({
                "question_id": question["id"],
                "question": question["question"],
                "is_correct": bool(user_answer and user_answer.is_correct),
                "user_answer": user_answer.answer if user_answer else None,
                "correct_answer": question["correct_answer"],
                "explanation": question.get("explanation"),
                "time_spent": user_answer.time_spent_ms if user_answer else 0,
            })

        return {
            "attempt_id": attempt.id,
            "correct_answers": correct_answers,
            "total_questions": total_questions,
            "total_time_ms": total_time_ms,
            "rating_points": rating_points,
            "detailed_results": detailed_results,
        }

    async def session_detail(self, db: Session, session_token: str) -> Dict[str, Any]:
        """
        Review of a finished session: answers, questions with answers, title
        """
        row = db.query(QuizSession, SharedQuiz.title).join(
            SharedQuiz, QuizSession.shared_quiz_id == SharedQuiz.id
        ).filter(
            QuizSession.session_token == session_token,
            QuizSession.finished_at.isnot(None)
        ).first()

        if row is None:
            raise SessionNotFoundError()

        session, quiz_title = row
        return {
            "quiz_title": quiz_title,
            "shared_quiz_id": session.shared_quiz_id,
            "user_id": session.user_id,
            "started_at": session.started_at,
            "finished_at": session.finished_at,
            "answers": [
                {
                    "question_id": answer.question_id,
                    "answer": answer.answer,
                    "is_correct": answer.is_correct,
                    "time_spent": answer.time_spent_ms,
                }
                for answer in session.answers
            ],
            "questions": self._load_questions(db, session.shared_quiz_id),
        }

    async def cleanup_expired_sessions(self, db: Session) -> int:
        """Delete sessions that expired without being finished"""
        stale = db.query(QuizSession.id).filter(
            QuizSession.expires_at <= self.clock(),
            QuizSession.finished_at.is_(None)
        )
        deleted = self._delete_sessions(db, [row.id for row in stale.all()])
        if deleted:
            logger.info(f"Cleanup: deleted {deleted} expired quiz sessions")
        return deleted

    async def cleanup_old_finished_sessions(
        self,
        db: Session,
        days_old: int = settings.FINISHED_SESSION_RETENTION_DAYS
    ) -> int:
        """Delete finished sessions older than the retention window; attempts stay"""
        cutoff = self.clock() - timedelta(days=days_old)
        old = db.query(QuizSession.id).filter(
            QuizSession.finished_at.isnot(None),
            QuizSession.finished_at < cutoff
        )
        deleted = self._delete_sessions(db, [row.id for row in old.all()])
        if deleted:
            logger.info(f"Cleanup: deleted {deleted} finished quiz sessions older than {days_old} days")
        return deleted

    def _get_active_session(
        self,
        db: Session,
        session_token: str,
        for_update: bool = False
    ) -> QuizSession:
        query = db.query(QuizSession).filter(
            QuizSession.session_token == session_token,
            QuizSession.finished_at.is_(None),
            QuizSession.expires_at > self.clock()
        )
        if for_update:
            query = query.with_for_update()

        session = query.first()
        if session is None:
            raise InvalidSessionError()
        return session

    def _load_questions(self, db: Session, shared_quiz_id: int) -> List[Dict[str, Any]]:
        rows = db.query(SharedQuizQuestion.question_data).filter(
            SharedQuizQuestion.shared_quiz_id == shared_quiz_id
        ).order_by(SharedQuizQuestion.question_index).all()
        return [row.question_data for row in rows]

    def _delete_sessions(self, db: Session, session_ids: List[int]) -> int:
        if not session_ids:
            return 0

        try:
            db.query(QuizSessionAnswer).filter(
                QuizSessionAnswer.session_id.in_(session_ids)
            ).delete(synchronize_session=False)
            deleted = db.query(QuizSession).filter(
                QuizSession.id.in_(session_ids)
            ).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise

        return deleted
