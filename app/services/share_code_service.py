"""
Share code generation for shared quizzes
"""
import logging
import secrets
import string
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import ShareCodeExhaustedError
from app.models import SharedQuiz

logger = logging.getLogger(__name__)


class ShareCodeGenerator:
    """
    Draws random [A-Z0-9] codes until one is not taken yet

    The pre-check only avoids needless insert failures; the unique
    constraint on shared_quizzes.share_code remains the final arbiter.
    """

    ALPHABET = string.ascii_uppercase + string.digits

    def __init__(
        self,
        code_length: int = settings.SHARE_CODE_LENGTH,
        max_attempts: int = settings.SHARE_CODE_MAX_ATTEMPTS
    ):
        self.code_length = code_length
        self.max_attempts = max_attempts

    async def generate(self, db: Session) -> str:
        """
        Generate a share code not used by any stored quiz

        Raises:
            ShareCodeExhaustedError: every attempt collided
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self._draw_code()
            if not await self._code_exists(db, code):
                return code
            logger.warning(f"Share code collision on attempt {attempt}/{self.max_attempts}")

        logger.error(f"Share code generation exhausted after {self.max_attempts} attempts")
        raise ShareCodeExhaustedError(self.max_attempts)

    def _draw_code(self) -> str:
        return "".join(secrets.choice(self.ALPHABET) for _ in range(self.code_length))

    async def _code_exists(self, db: Session, code: str) -> bool:
        return db.query(SharedQuiz.id).filter(SharedQuiz.share_code == code).first() is not None
