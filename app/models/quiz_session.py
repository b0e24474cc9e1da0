"""
QuizSession models - one participant's in-progress play of a shared quiz
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, TIMESTAMP, ForeignKey, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from app.database import Base, JSONType


class QuizSession(Base):
    """
    Quiz sessions table

    finished_at transitions from NULL to a timestamp exactly once. Expired
    sessions stay until the cleanup job removes them.
    """
    __tablename__ = "quiz_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_token = Column(String(64), unique=True, nullable=False, index=True)
    shared_quiz_id = Column(Integer, ForeignKey("shared_quizzes.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    started_at = Column(TIMESTAMP, nullable=False)
    expires_at = Column(TIMESTAMP, nullable=False, index=True)
    finished_at = Column(TIMESTAMP, nullable=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id"), nullable=True)

    answers = relationship(
        "QuizSessionAnswer",
        order_by="QuizSessionAnswer.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<QuizSession(id={self.id}, quiz={self.shared_quiz_id}, finished={self.finished_at})>"


class QuizSessionAnswer(Base):
    """
    Append-only answer log; the unique constraint makes "append if absent" atomic
    """
    __tablename__ = "quiz_session_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_session_answer_question"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Integer, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id = Column(String(128), nullable=False)
    answer = Column(JSONType)
    is_correct = Column(Boolean, nullable=False)
    time_spent_ms = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP, server_default=text("CURRENT_TIMESTAMP"))

    def __repr__(self):
        return f"<QuizSessionAnswer(session={self.session_id}, question_id={self.question_id})>"
