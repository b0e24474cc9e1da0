"""
SharedQuiz models - immutable, publicly codeable bundles of questions
"""
from sqlalchemy import Column, String, Integer, Text, TIMESTAMP, ForeignKey, UniqueConstraint, text
from sqlalchemy.orm import relationship
from app.database import Base, JSONType


class SharedQuiz(Base):
    """
    Shared quizzes table - the share code is the only public handle
    """
    __tablename__ = "shared_quizzes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_user_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    share_code = Column(String(16), unique=True, nullable=False, index=True)
    config = Column(JSONType)
    created_at = Column(TIMESTAMP, server_default=text("CURRENT_TIMESTAMP"))

    questions = relationship(
        "SharedQuizQuestion",
        order_by="SharedQuizQuestion.question_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<SharedQuiz(id={self.id}, share_code={self.share_code}, title={self.title})>"


class SharedQuizQuestion(Base):
    """
    Questions embedded in a shared quiz, stored in display order
    """
    __tablename__ = "shared_quiz_questions"
    __table_args__ = (
        UniqueConstraint("shared_quiz_id", "question_id", name="uq_shared_quiz_question"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    shared_quiz_id = Column(Integer, ForeignKey("shared_quizzes.id"), nullable=False, index=True)
    question_index = Column(Integer, nullable=False)
    question_id = Column(String(128), nullable=False)
    question_data = Column(JSONType, nullable=False)  # Full question incl. correct answer

    def __repr__(self):
        return f"<SharedQuizQuestion(quiz={self.shared_quiz_id}, question_id={self.question_id})>"
