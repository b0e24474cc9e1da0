import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base, get_db
from app.main import app
from app.models import QuizAttempt
from app.schemas.quiz import Question
from app.services.leaderboard_service import LeaderboardAggregator
from app.services.quiz_service import QuizService
from app.services.session_service import QuizSessionStore


class FakeClock:
    """Controllable replacement for the session store clock"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """In-memory SQLite database shared by every connection of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session bound to the test engine."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture
def session_store(clock):
    return QuizSessionStore(clock=clock)


@pytest.fixture
def quiz_service(session_store):
    return QuizService(
        session_store=session_store,
        leaderboard=LeaderboardAggregator(limit=100),
    )


@pytest.fixture
def sample_questions():
    """One question per answer shape, plus both year kinds."""
    return [
        Question(
            id="q1",
            type="birthYear",
            question="When was Ada Lovelace born?",
            options=["1815", "1820", "1799"],
            correct_answer="1815",
            explanation="Ada Lovelace was born on 10 December 1815.",
        ),
        Question(
            id="q2",
            type="deathYear",
            question="When did Charles Babbage die?",
            correct_answer="1871",
        ),
        Question(
            id="q3",
            type="profession",
            question="What was Ada Lovelace's profession?",
            options=["Mathematician", "Painter", "Composer"],
            correct_answer="Mathematician",
        ),
        Question(
            id="q4",
            type="birthOrder",
            question="Order these people by birth",
            correct_answer=["babbage", "lovelace", "turing"],
        ),
        Question(
            id="q5",
            type="contemporaries",
            question="Group the contemporaries",
            correct_answer=[["babbage", "lovelace"], ["turing", "hopper"]],
        ),
    ]


@pytest.fixture
def simple_questions():
    """Three single-choice questions."""
    return [
        Question(id="y1", type="birthYear", question="Born?", correct_answer="1815"),
        Question(id="y2", type="deathYear", question="Died?", correct_answer="1852"),
        Question(id="p1", type="profession", question="Profession?", correct_answer="Mathematician"),
    ]


@pytest.fixture
async def shared_quiz(db, quiz_service, sample_questions):
    """Shared quiz created by user 1."""
    return await quiz_service.create_shared_quiz(
        db,
        creator_id=1,
        title="Computing pioneers",
        description="Early history of computing",
        config=None,
        questions=sample_questions,
    )


@pytest.fixture
def add_attempt(db):
    """Insert a finished attempt directly."""
    def _add_attempt(user_id, rating_points, correct_answers=5, total_questions=5,
                     total_time_ms=30000, shared_quiz_id=None):
        attempt = QuizAttempt(
            user_id=user_id,
            shared_quiz_id=shared_quiz_id,
            correct_answers=correct_answers,
            total_questions=total_questions,
            total_time_ms=total_time_ms,
            rating_points=rating_points,
        )
        db.add(attempt)
        db.commit()
        return attempt
    return _add_attempt


@pytest.fixture
def client(db, quiz_service):
    """Test client wired to the test database and quiz service."""
    previous_service = app.state.quiz_service
    app.dependency_overrides[get_db] = lambda: db
    app.state.quiz_service = quiz_service
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.quiz_service = previous_service
