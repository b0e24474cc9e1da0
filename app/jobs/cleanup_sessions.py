"""
Cleanup job for quiz sessions

Removes sessions that expired without being finished and, optionally,
finished sessions past the retention window. Intended for a scheduler
(e.g. cron every 6 hours):

    python -m app.jobs.cleanup_sessions
"""
import asyncio
import logging
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.services.session_service import QuizSessionStore, utcnow

logger = logging.getLogger(__name__)


async def run_sessions_cleanup(
    db: Session,
    store: Optional[QuizSessionStore] = None,
    clean_old_finished: bool = False,
    days_old: int = settings.FINISHED_SESSION_RETENTION_DAYS
) -> Dict[str, Any]:
    """
    Run the session cleanup

    Args:
        db: Database session
        store: Session store to clean (a default one when omitted)
        clean_old_finished: Also delete finished sessions older than days_old
        days_old: Retention window for finished sessions

    Returns:
        Deleted counts per category and the run timestamp
    """
    store = store or QuizSessionStore()

    try:
        result: Dict[str, Any] = {
            "expired": await store.cleanup_expired_sessions(db),
            "old_finished": None,
            "timestamp": utcnow(),
        }
        if clean_old_finished:
            result["old_finished"] = await store.cleanup_old_finished_sessions(db, days_old)
    except Exception:
        logger.exception("Cleanup: failed to clean quiz sessions")
        raise

    logger.info(
        f"Cleanup finished: expired={result['expired']}, old_finished={result['old_finished']}"
    )
    return result


def main() -> Dict[str, Any]:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    db = SessionLocal()
    try:
        return asyncio.run(run_sessions_cleanup(db, clean_old_finished=True))
    finally:
        db.close()


if __name__ == "__main__":
    main()
