"""
Pydantic schemas for leaderboard and statistics endpoints
"""
from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

from app.schemas.quiz import HistoryEntry


class GlobalLeaderboardEntry(BaseModel):
    """Aggregated standing of one player across all attempts"""
    rank: int
    user_id: int
    total_rating: float
    games_played: int
    average_score: float
    best_score: float


class GlobalLeaderboardResponse(BaseModel):
    top_players: List[GlobalLeaderboardEntry]
    user_entry: Optional[GlobalLeaderboardEntry] = None
    total_players: int


class SharedQuizLeaderboardEntry(BaseModel):
    """Single attempt ranked within one shared quiz"""
    rank: int
    attempt_id: int
    user_id: Optional[int] = None
    correct_answers: int
    total_questions: int
    total_time_ms: int
    completed_at: Optional[datetime] = None


class SharedQuizLeaderboardResponse(BaseModel):
    quiz_title: str
    entries: List[SharedQuizLeaderboardEntry]
    user_entry: Optional[SharedQuizLeaderboardEntry] = None
    total_attempts: int


class UserStats(BaseModel):
    total_games: int
    total_rating: float
    average_rating: float
    best_rating: float
    average_score: float
    rank: Optional[int] = None
    recent_attempts: List[HistoryEntry]
