"""
Leaderboard and player statistics API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.api.deps import get_current_user_id, get_quiz_service
from app.database import get_db
from app.schemas.leaderboard import (
    GlobalLeaderboardResponse,
    SharedQuizLeaderboardResponse,
    UserStats,
)
from app.services.quiz_service import QuizService

router = APIRouter(prefix="/api/quiz", tags=["leaderboard"])
logger = logging.getLogger(__name__)


@router.get("/leaderboard", response_model=GlobalLeaderboardResponse)
async def get_global_leaderboard(
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db)
):
    """
    Global leaderboard

    Returns:
    - Top players by total rating points
    - The caller's own entry when outside the top
    - Number of ranked players
    """
    leaderboard = await quiz_service.global_leaderboard(db, user_id)
    return GlobalLeaderboardResponse(**leaderboard)


@router.get("/leaderboard/me", response_model=UserStats)
async def get_my_stats(
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db)
):
    """Statistics and global rank of the caller"""
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    stats = await quiz_service.user_stats(db, user_id)
    return UserStats(**stats)


@router.get("/shared/{share_code}/leaderboard", response_model=SharedQuizLeaderboardResponse)
async def get_shared_quiz_leaderboard(
    share_code: str,
    user_id: Optional[int] = Depends(get_current_user_id),
    quiz_service: QuizService = Depends(get_quiz_service),
    db: Session = Depends(get_db)
):
    """
    Leaderboard of one shared quiz

    Attempts are ranked by correct answers, faster attempts win ties.
    """
    logger.info(f"Fetching leaderboard for shared quiz {share_code}")

    leaderboard = await quiz_service.shared_quiz_leaderboard(db, share_code, user_id)
    return SharedQuizLeaderboardResponse(**leaderboard)
