import asyncio
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.exceptions import (
    InvalidSessionError,
    QuestionAlreadyAnsweredError,
    QuestionNotFoundError,
    SessionNotFoundError,
    SharedQuizNotFoundError,
)
from app.database import Base
from app.models import QuizAttempt, QuizSession, QuizSessionAnswer
from app.services.answer_evaluator import AnswerEvaluator
from app.services.quiz_service import QuizService
from app.services.session_service import QuizSessionStore


@pytest.fixture
async def simple_quiz(db, quiz_service, simple_questions):
    return await quiz_service.create_shared_quiz(
        db, creator_id=1, title="Ada", description=None, config=None, questions=simple_questions
    )


class TestStartSession:
    async def test_start_returns_token_and_expiry(self, db, session_store, shared_quiz, clock):
        result = await session_store.start(db, shared_quiz["id"], user_id=7)

        assert len(result["session_token"]) == 64
        assert result["expires_at"] == clock.now + session_store.session_ttl

        session = db.query(QuizSession).one()
        assert session.user_id == 7
        assert session.finished_at is None

    async def test_tokens_are_unique(self, db, session_store, shared_quiz):
        tokens = {
            (await session_store.start(db, shared_quiz["id"]))["session_token"]
            for _ in range(5)
        }
        assert len(tokens) == 5

    async def test_unknown_quiz(self, db, session_store):
        with pytest.raises(SharedQuizNotFoundError):
            await session_store.start(db, 999)
        assert db.query(QuizSession).count() == 0


class TestRecordAnswer:
    async def test_correct_and_wrong_answers(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]

        assert await session_store.record_answer(db, token, "q1", "1815", 1000) is True
        assert await session_store.record_answer(db, token, "q2", 1870, 1000) is False
        assert await session_store.record_answer(
            db, token, "q5", [["hopper", "turing"], ["lovelace", "babbage"]], 1000
        ) is True

        assert db.query(QuizSessionAnswer).count() == 3

    async def test_duplicate_answer_is_rejected(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.record_answer(db, token, "q1", "1815", 1000)

        with pytest.raises(QuestionAlreadyAnsweredError):
            await session_store.record_answer(db, token, "q1", "1816", 500)

        answers = db.query(QuizSessionAnswer).all()
        assert len(answers) == 1
        assert answers[0].answer == "1815"

    async def test_concurrent_duplicates_store_one_answer(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]

        results = await asyncio.gather(
            session_store.record_answer(db, token, "q3", "Mathematician", 800),
            session_store.record_answer(db, token, "q3", "Mathematician", 900),
            return_exceptions=True,
        )

        assert sum(1 for result in results if result is True) == 1
        assert sum(1 for result in results if isinstance(result, QuestionAlreadyAnsweredError)) == 1
        assert db.query(QuizSessionAnswer).count() == 1

    async def test_unknown_question(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]

        with pytest.raises(QuestionNotFoundError):
            await session_store.record_answer(db, token, "nope", "1815", 1000)

        assert db.query(QuizSessionAnswer).count() == 0

    async def test_unknown_token(self, db, session_store, shared_quiz):
        with pytest.raises(InvalidSessionError):
            await session_store.record_answer(db, "missing", "q1", "1815", 1000)

    async def test_expired_session(self, db, session_store, shared_quiz, clock):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        clock.advance(seconds=session_store.session_ttl.total_seconds(), milliseconds=1)

        with pytest.raises(InvalidSessionError):
            await session_store.record_answer(db, token, "q1", "1815", 1000)
        assert db.query(QuizSessionAnswer).count() == 0

    async def test_session_expires_at_exact_deadline(self, db, session_store, shared_quiz, clock):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        clock.advance(seconds=session_store.session_ttl.total_seconds())

        with pytest.raises(InvalidSessionError):
            await session_store.record_answer(db, token, "q1", "1815", 1000)

    async def test_finished_session_rejects_answers(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.finish(db, token)

        with pytest.raises(InvalidSessionError):
            await session_store.record_answer(db, token, "q1", "1815", 1000)


class TestFinishSession:
    async def test_fast_perfect_run(self, db, session_store, simple_quiz):
        """Three simple questions answered correctly in 500ms each."""
        token = (await session_store.start(db, simple_quiz["id"], user_id=3))["session_token"]
        await session_store.record_answer(db, token, "y1", "1815", 500)
        await session_store.record_answer(db, token, "y2", 1852, 500)
        await session_store.record_answer(db, token, "p1", "Mathematician", 500)

        result = await session_store.finish(db, token)

        assert result["correct_answers"] == 3
        assert result["total_questions"] == 3
        assert result["total_time_ms"] == 1500
        assert result["rating_points"] == 120.0
        assert all(item["is_correct"] for item in result["detailed_results"])

        attempt = db.query(QuizAttempt).one()
        assert attempt.id == result["attempt_id"]
        assert attempt.user_id == 3
        assert attempt.shared_quiz_id == simple_quiz["id"]
        assert attempt.rating_points == 120.0
        assert [answer["question_type"] for answer in attempt.answers] == [
            "birthYear", "deathYear", "profession"
        ]

    async def test_review_covers_unanswered_questions(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.record_answer(db, token, "q3", "Mathematician", 2000)

        result = await session_store.finish(db, token)

        assert result["correct_answers"] == 1
        assert result["total_questions"] == 5
        assert result["total_time_ms"] == 2000
        assert result["rating_points"] > 0

        review = {item["question_id"]: item for item in result["detailed_results"]}
        assert list(review) == ["q1", "q2", "q3", "q4", "q5"]
        assert review["q1"]["user_answer"] is None
        assert review["q1"]["time_spent"] == 0
        assert review["q1"]["correct_answer"] == "1815"
        assert review["q1"]["explanation"] == "Ada Lovelace was born on 10 December 1815."
        assert review["q3"]["is_correct"] is True

    async def test_no_answers_scores_zero(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]

        result = await session_store.finish(db, token)

        assert result["correct_answers"] == 0
        assert result["rating_points"] == 0

    async def test_finish_twice_creates_one_attempt(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.finish(db, token)

        with pytest.raises(InvalidSessionError):
            await session_store.finish(db, token)

        assert db.query(QuizAttempt).count() == 1
        session = db.query(QuizSession).one()
        assert session.attempt_id is not None

    async def test_finished_and_unknown_look_the_same(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.finish(db, token)

        with pytest.raises(InvalidSessionError) as finished:
            await session_store.finish(db, token)
        with pytest.raises(InvalidSessionError) as unknown:
            await session_store.finish(db, "0" * 64)

        assert finished.value.message == unknown.value.message

    async def test_expired_session_cannot_finish(self, db, session_store, shared_quiz, clock):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        clock.advance(hours=3)

        with pytest.raises(InvalidSessionError):
            await session_store.finish(db, token)
        assert db.query(QuizAttempt).count() == 0
        assert db.query(QuizSession).one().finished_at is None


class TestSessionDetail:
    async def test_detail_of_finished_session(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"], user_id=4))["session_token"]
        await session_store.record_answer(db, token, "q4", ["babbage", "lovelace", "turing"], 3000)
        await session_store.finish(db, token)

        detail = await session_store.session_detail(db, token)

        assert detail["quiz_title"] == "Computing pioneers"
        assert detail["user_id"] == 4
        assert detail["answers"] == [{
            "question_id": "q4",
            "answer": ["babbage", "lovelace", "turing"],
            "is_correct": True,
            "time_spent": 3000,
        }]
        assert len(detail["questions"]) == 5

    async def test_active_session_has_no_detail(self, db, session_store, shared_quiz):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]

        with pytest.raises(SessionNotFoundError):
            await session_store.session_detail(db, token)


class TestSessionCleanup:
    async def test_cleanup_expired_sessions(self, db, session_store, shared_quiz, clock):
        stale = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.record_answer(db, stale, "q1", "1815", 1000)
        clock.advance(hours=1)
        fresh = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        clock.advance(hours=1, seconds=1)

        deleted = await session_store.cleanup_expired_sessions(db)

        assert deleted == 1
        remaining = db.query(QuizSession).one()
        assert remaining.session_token == fresh
        assert db.query(QuizSessionAnswer).count() == 0

    async def test_expired_cleanup_keeps_finished_sessions(self, db, session_store, shared_quiz, clock):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.finish(db, token)
        clock.advance(days=1)

        assert await session_store.cleanup_expired_sessions(db) == 0
        assert db.query(QuizSession).count() == 1

    async def test_cleanup_old_finished_keeps_attempts(self, db, session_store, shared_quiz, clock):
        token = (await session_store.start(db, shared_quiz["id"]))["session_token"]
        await session_store.record_answer(db, token, "q1", "1815", 1000)
        await session_store.finish(db, token)

        clock.advance(days=10)
        assert await session_store.cleanup_old_finished_sessions(db, days_old=30) == 0

        clock.advance(days=30)
        assert await session_store.cleanup_old_finished_sessions(db, days_old=30) == 1
        assert db.query(QuizSession).count() == 0
        assert db.query(QuizSessionAnswer).count() == 0
        assert db.query(QuizAttempt).count() == 1


class RacingEvaluator(AnswerEvaluator):
    """Commits the same answer from another connection while the first request is judging"""

    def __init__(self, other_db, session_token):
        self.other_db = other_db
        self.session_token = session_token

    def is_correct(self, question_kind, submitted, canonical):
        session = self.other_db.query(QuizSession).filter(
            QuizSession.session_token == self.session_token
        ).one()
        self.other_db.add(QuizSessionAnswer(
            session_id=session.id,
            question_id="q1",
            answer=submitted,
            is_correct=True,
            time_spent_ms=100,
        ))
        self.other_db.commit()
        return super().is_correct(question_kind, submitted, canonical)


class TestAnswerRace:
    @pytest.fixture
    def file_engine(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(bind=engine)
        yield engine
        engine.dispose()

    async def test_unique_constraint_rejects_late_duplicate(
        self, file_engine, clock, sample_questions
    ):
        """A duplicate committed after the pre-check is still rejected by the store."""
        make_session = sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
        db, other_db = make_session(), make_session()
        try:
            store = QuizSessionStore(clock=clock)
            quiz = await QuizService(session_store=store).create_shared_quiz(
                db, creator_id=1, title="Race", description=None, config=None,
                questions=sample_questions,
            )
            token = (await store.start(db, quiz["id"]))["session_token"]
            store.evaluator = RacingEvaluator(other_db, token)

            with pytest.raises(QuestionAlreadyAnsweredError):
                await store.record_answer(db, token, "q1", "1815", 900)

            answers = other_db.query(QuizSessionAnswer).all()
            assert len(answers) == 1
            assert answers[0].time_spent_ms == 100
        finally:
            db.close()
            other_db.close()
