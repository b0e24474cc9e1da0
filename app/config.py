"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./quiz.db"

    # Redis (leaderboard cache)
    REDIS_URL: str = "redis://redis:6379/0"
    LEADERBOARD_CACHE_ENABLED: bool = False
    LEADERBOARD_CACHE_TTL: int = 60  # seconds

    # Application
    APP_NAME: str = "Quiz Session & Scoring Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Sessions
    SESSION_TTL_SECONDS: int = 2 * 60 * 60  # 2 hours
    FINISHED_SESSION_RETENTION_DAYS: int = 90

    # Shared quizzes
    SHARE_CODE_LENGTH: int = 8
    SHARE_CODE_MAX_ATTEMPTS: int = 10
    MAX_SHARED_QUIZ_QUESTIONS: int = 100

    # Leaderboards & history
    LEADERBOARD_LIMIT: int = 100
    HISTORY_DEFAULT_LIMIT: int = 20
    RECENT_ATTEMPTS_LIMIT: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
