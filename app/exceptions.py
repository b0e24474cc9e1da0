"""
Named failure conditions raised by the quiz engine

The HTTP layer maps each family onto a status code; storage errors
(SQLAlchemyError) are not wrapped and propagate as-is.
"""


class QuizEngineError(Exception):
    """Base class for all engine errors"""

    error_code = "quiz_engine_error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


# Not found

class NotFoundError(QuizEngineError):
    error_code = "not_found"


class SharedQuizNotFoundError(NotFoundError):
    error_code = "quiz_not_found"

    def __init__(self, share_code: str = None, quiz_id: int = None):
        super().__init__("Quiz not found", share_code=share_code, quiz_id=quiz_id)


class QuestionNotFoundError(NotFoundError):
    error_code = "question_not_found"

    def __init__(self, question_id: str):
        super().__init__(f"Question not found: {question_id}", question_id=question_id)


class AttemptNotFoundError(NotFoundError):
    error_code = "attempt_not_found"

    def __init__(self, attempt_id: int):
        super().__init__(f"Attempt not found: {attempt_id}", attempt_id=attempt_id)


class SessionNotFoundError(NotFoundError):
    error_code = "session_not_found"

    def __init__(self):
        super().__init__("Session not found")


# State conflicts

class StateConflictError(QuizEngineError):
    error_code = "state_conflict"


class InvalidSessionError(StateConflictError):
    """
    Unknown, expired and already finished tokens all look the same to callers
    """
    error_code = "invalid_session"

    def __init__(self):
        super().__init__("Invalid or expired session")


class QuestionAlreadyAnsweredError(StateConflictError):
    error_code = "question_already_answered"

    def __init__(self, question_id: str):
        super().__init__(f"Question already answered: {question_id}", question_id=question_id)


# Exhaustion

class ShareCodeExhaustedError(QuizEngineError):
    error_code = "share_code_exhausted"

    def __init__(self, attempts: int):
        super().__init__("Failed to generate unique share code", attempts=attempts)


# Business validation

class InvalidAttemptError(QuizEngineError):
    error_code = "invalid_attempt"


class InvalidQuizError(QuizEngineError):
    error_code = "invalid_quiz"
