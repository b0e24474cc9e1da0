"""
Leaderboard service - ranked aggregation over persisted quiz attempts
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import Float, cast, func
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import SharedQuizNotFoundError
from app.models import QuizAttempt, SharedQuiz
from app.utils.cache import LeaderboardCache

logger = logging.getLogger(__name__)


def _score_percentage():
    return cast(QuizAttempt.correct_answers, Float) * 100.0 / QuizAttempt.total_questions


class LeaderboardAggregator:
    """
    Global and per-shared-quiz rankings

    Both views return the top N entries plus the caller's own entry when it
    falls outside them. The caller's rank always comes from the same full
    ranking the top N is cut from.
    """

    def __init__(
        self,
        limit: int = settings.LEADERBOARD_LIMIT,
        cache: Optional[LeaderboardCache] = None
    ):
        self.limit = limit
        self.cache = cache

    async def global_leaderboard(
        self,
        db: Session,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Rank players by total rating points

        Returns:
            {"top_players", "user_entry", "total_players"}
        """
        ranking = self._cached(self._cache_key("global"), lambda: self._global_ranking(db))
        top_players, user_entry = self._window(ranking, user_id)

        logger.info(
            f"Global leaderboard: players={len(ranking)}, "
            f"user={user_id}, user_outside_top={user_entry is not None}"
        )

        return {
            "top_players": top_players,
            "user_entry": user_entry,
            "total_players": len(ranking),
        }

    async def shared_quiz_leaderboard(
        self,
        db: Session,
        share_code: str,
        user_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Rank attempts at one shared quiz: most correct first, faster wins ties

        Raises:
            SharedQuizNotFoundError: unknown share code
        """
        quiz = db.query(SharedQuiz.id, SharedQuiz.title).filter(
            SharedQuiz.share_code == share_code
        ).first()
        if quiz is None:
            raise SharedQuizNotFoundError(share_code=share_code)

        ranking = self._cached(
            self._cache_key("shared", quiz.id), lambda: self._shared_quiz_ranking(db, quiz.id)
        )
        entries, user_entry = self._window(ranking, user_id)

        return {
            "quiz_title": quiz.title,
            "entries": entries,
            "user_entry": user_entry,
            "total_attempts": len(ranking),
        }

    async def user_rank(self, db: Session, user_id: int) -> Optional[int]:
        """Position of a player in the global ranking, None without attempts"""
        ranking = self._cached(self._cache_key("global"), lambda: self._global_ranking(db))
        for entry in ranking:
            if entry["user_id"] == user_id:
                return entry["rank"]
        return None

    def invalidate(self) -> None:
        """Forget cached rankings after a new attempt was stored"""
        if self.cache:
            self.cache.invalidate()

    def _global_ranking(self, db: Session) -> List[Dict[str, Any]]:
        score = _score_percentage()
        total_rating = func.sum(QuizAttempt.rating_points).label("total_rating")

        rows = db.query(
            QuizAttempt.user_id,
            total_rating,
            func.count(QuizAttempt.id).label("games_played"),
            func.avg(score).label("average_score"),
            func.max(score).label("best_score"),
        ).filter(
            QuizAttempt.user_id.isnot(None)
        ).group_by(
            QuizAttempt.user_id
        ).order_by(
            total_rating.desc(), QuizAttempt.user_id
        ).all()

        return [
            {
                "rank": position,
                "user_id": row.user_id,
                "total_rating": round(float(row.total_rating or 0), 2),
                "games_played": int(row.games_played),
                "average_score": round(float(row.average_score or 0), 2),
                "best_score": round(float(row.best_score or 0), 2),
            }
            for position, row in enumerate(rows, start=1)
        ]

    def _shared_quiz_ranking(self, db: Session, shared_quiz_id: int) -> List[Dict[str, Any]]:
        attempts = db.query(QuizAttempt).filter(
            QuizAttempt.shared_quiz_id == shared_quiz_id
        ).order_by(
            QuizAttempt.correct_answers.desc(),
            QuizAttempt.total_time_ms.asc(),
            QuizAttempt.id.asc()
        ).all()

        return [
            {
                "rank": position,
                "attempt_id": attempt.id,
                "user_id": attempt.user_id,
                "correct_answers": attempt.correct_answers,
                "total_questions": attempt.total_questions,
                "total_time_ms": attempt.total_time_ms,
                "completed_at": attempt.created_at.isoformat() if attempt.created_at else None,
            }
            for position, attempt in enumerate(attempts, start=1)
        ]

    def _window(
        self,
        ranking: List[Dict[str, Any]],
        user_id: Optional[int]
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        """
        Cut the top N and, if needed, pick the caller's best entry from the rest
        """
        top = ranking[:self.limit]
        if user_id is None or any(entry["user_id"] == user_id for entry in top):
            return top, None

        user_entry = next(
            (entry for entry in ranking[self.limit:] if entry["user_id"] == user_id),
            None
        )
        return top, user_entry

    def _cache_key(self, *parts: Any) -> Optional[str]:
        return self.cache.key(*parts) if self.cache else None

    def _cached(self, key: Optional[str], compute) -> List[Dict[str, Any]]:
        """
        Cache-aside lookup

        The key is taken before computing, so a ranking computed across an
        invalidation lands under the retired generation
        """
        if key is None:
            return compute()

        ranking = self.cache.get(key)
        if ranking is None:
            ranking = compute()
            self.cache.set(key, ranking)
        return ranking
