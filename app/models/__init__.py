"""
Database models package
"""
from app.models.shared_quiz import SharedQuiz, SharedQuizQuestion
from app.models.quiz_session import QuizSession, QuizSessionAnswer
from app.models.quiz_attempt import QuizAttempt

__all__ = [
    "SharedQuiz",
    "SharedQuizQuestion",
    "QuizSession",
    "QuizSessionAnswer",
    "QuizAttempt",
]
