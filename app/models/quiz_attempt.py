"""
QuizAttempt model - the scored, immutable record of a completed play-through
"""
from sqlalchemy import Column, Integer, Float, TIMESTAMP, ForeignKey, CheckConstraint, text
from app.database import Base, JSONType


class QuizAttempt(Base):
    """
    Quiz attempts table - one row per completed play-through

    Standalone attempts have no shared_quiz_id; attempts produced by finishing
    a session reference the shared quiz that was played.
    """
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        CheckConstraint("correct_answers >= 0", name="ck_attempt_correct_non_negative"),
        CheckConstraint("correct_answers <= total_questions", name="ck_attempt_correct_le_total"),
        CheckConstraint("rating_points >= 0", name="ck_attempt_rating_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    shared_quiz_id = Column(Integer, ForeignKey("shared_quizzes.id"), nullable=True, index=True)
    correct_answers = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    total_time_ms = Column(Integer, nullable=False, default=0)
    rating_points = Column(Float, nullable=False, default=0)
    config = Column(JSONType)  # QuizSetupConfig of standalone quizzes
    answers = Column(JSONType)  # Detailed per-question answers
    questions = Column(JSONType)  # Questions snapshot
    created_at = Column(TIMESTAMP, server_default=text("CURRENT_TIMESTAMP"), index=True)

    def __repr__(self):
        return f"<QuizAttempt(id={self.id}, user_id={self.user_id}, rating={self.rating_points})>"
