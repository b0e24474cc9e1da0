"""
Shared FastAPI dependencies
"""
from fastapi import Header, Request
from typing import Optional

from app.services.quiz_service import QuizService


def get_quiz_service(request: Request) -> QuizService:
    """Quiz service built by the application at startup"""
    return request.app.state.quiz_service


def get_current_user_id(x_user_id: Optional[int] = Header(None)) -> Optional[int]:
    """
    Caller identity, verified upstream by the authentication layer

    Anonymous callers send no X-User-Id header.
    """
    return x_user_id
