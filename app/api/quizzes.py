"""
Quiz attempt, shared quiz and session API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.api.deps import get_current_user_id, get_quiz_service
from app.config import settings
from app.database import get_db
from app.schemas.quiz import (
    AttemptDetailResponse,
    CheckAnswerRequest,
    CheckAnswerResponse,
    CreateSharedQuizRequest,
    CreateSharedQuizResponse,
    FinishSessionRequest,
    FinishSessionResponse,
    HistoryEntry,
    SaveAttemptRequest,
    SaveAttemptResponse,
    SessionDetailResponse,
    SharedQuizResponse,
    StartSessionResponse,
)
from app.services.quiz_service import QuizService


router = APIRouter(prefix="/api/quiz", tags=["quiz"])
logger = logging.getLogger(__name__)


def _require_user(user_id: Optional[int]) -> int:
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


@router.post("/save-result", response_model=SaveAttemptResponse)
async def save_quiz_attempt(
    request: SaveAttemptRequest,
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """
    Save a standalone quiz attempt

    - Uses the detailed rating formula when per-question answers are sent
    - Falls back to the aggregate formula otherwise
    - Anonymous attempts are stored but never ranked
    """
    result = await quiz_service.save_standalone_attempt(
        db,
        user_id=user_id,
        correct_answers=request.correct_answers,
        total_questions=request.total_questions,
        total_time_ms=request.total_time_ms,
        question_kinds=request.question_types,
        detailed=request.answers,
        config=request.config,
        questions=request.questions,
    )
    return SaveAttemptResponse(**result)


@router.post("/share", response_model=CreateSharedQuizResponse, status_code=201)
async def create_shared_quiz(
    request: CreateSharedQuizRequest,
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """
    Publish a quiz under a share code

    - Requires an authenticated creator
    - Optionally records the creator's own attempt
    """
    creator_id = _require_user(user_id)

    result = await quiz_service.create_shared_quiz(
        db,
        creator_id=creator_id,
        title=request.title,
        description=request.description,
        config=request.config,
        questions=request.questions,
        creator_attempt=request.creator_attempt,
    )
    return CreateSharedQuizResponse(
        id=result["id"],
        share_code=result["share_code"],
        share_url=f"/quiz/{result['share_code']}",
    )


@router.get("/shared/{share_code}", response_model=SharedQuizResponse)
async def get_shared_quiz(
    share_code: str,
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """Get a shared quiz without its answers"""
    quiz = await quiz_service.get_shared_quiz(db, share_code)
    return SharedQuizResponse(**quiz)


@router.post("/shared/{share_code}/start", response_model=StartSessionResponse)
async def start_shared_quiz(
    share_code: str,
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """Open a play session for a shared quiz"""
    session = await quiz_service.start_session_by_code(db, share_code, user_id)
    return StartSessionResponse(**session)


@router.post("/shared/{share_code}/check-answer", response_model=CheckAnswerResponse)
async def check_answer(
    share_code: str,
    request: CheckAnswerRequest,
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """
    Judge one answer of an active session

    Only correctness is returned; the correct answer stays hidden until finish.
    """
    result = await quiz_service.record_answer(
        db,
        session_token=request.session_token,
        question_id=request.question_id,
        answer=request.answer,
        time_spent_ms=request.time_spent,
        share_code=share_code,
    )
    return CheckAnswerResponse(**result)


@router.post("/shared/{share_code}/finish", response_model=FinishSessionResponse)
async def finish_shared_quiz(
    share_code: str,
    request: FinishSessionRequest,
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """
    Finish a session

    Returns:
    - Score summary and rating points
    - Per-question review with correct answers and explanations
    """
    result = await quiz_service.finish_session(
        db, request.session_token, share_code=share_code
    )
    return FinishSessionResponse(**result)


@router.get("/history", response_model=List[HistoryEntry])
async def get_quiz_history(
    limit: int = Query(settings.HISTORY_DEFAULT_LIMIT, ge=1, le=100),
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """Attempts of the caller, newest first"""
    history = await quiz_service.user_quiz_history(db, _require_user(user_id), limit)
    return [HistoryEntry(**entry) for entry in history]


@router.get("/history/{attempt_id}", response_model=AttemptDetailResponse)
async def get_attempt_detail(
    attempt_id: int,
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """Full record of one of the caller's attempts"""
    detail = await quiz_service.attempt_detail(db, attempt_id, _require_user(user_id))
    return AttemptDetailResponse(**detail)


@router.get("/sessions/{session_token}", response_model=SessionDetailResponse)
async def get_session_detail(
    session_token: str,
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db),
):
    """Review of a finished shared quiz session"""
    detail = await quiz_service.session_detail(db, session_token)
    return SessionDetailResponse(**detail)
