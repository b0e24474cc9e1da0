"""
Main FastAPI application
Quiz session & scoring engine: shared quizzes, timed sessions, ranked leaderboards
"""
from fastapi import Depends, FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
import time

from app.config import settings
from app.database import get_db, init_db
from app.api import quizzes, leaderboard
from app.exceptions import (
    InvalidAttemptError,
    InvalidQuizError,
    InvalidSessionError,
    NotFoundError,
    QuizEngineError,
    ShareCodeExhaustedError,
    StateConflictError,
)
from app.services.leaderboard_service import LeaderboardAggregator
from app.services.quiz_service import QuizService
from app.utils.cache import LeaderboardCache

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_quiz_service() -> QuizService:
    """Wire the engine together, with a Redis leaderboard cache when enabled"""
    cache = None
    if settings.LEADERBOARD_CACHE_ENABLED:
        cache = LeaderboardCache(settings.REDIS_URL, ttl=settings.LEADERBOARD_CACHE_TTL)

    return QuizService(leaderboard=LeaderboardAggregator(cache=cache))


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Quiz sessions, tamper-resistant scoring and leaderboards",
    docs_url="/docs",
    redoc_url="/redoc"
)
app.state.quiz_service = build_quiz_service()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with caller and timing"""

    start_time = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start_time

    logger.info(
        f"{request.method} {request.url.path} - "
        f"User: {request.headers.get('x-user-id', 'anonymous')} - "
        f"Status: {response.status_code} - "
        f"Duration: {duration:.3f}s"
    )

    return response


def _engine_error_status(exc: QuizEngineError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, InvalidSessionError):
        return 400
    if isinstance(exc, StateConflictError):
        return 409
    if isinstance(exc, ShareCodeExhaustedError):
        return 503
    if isinstance(exc, (InvalidAttemptError, InvalidQuizError)):
        return 400
    return 500


# Engine error handler
@app.exception_handler(QuizEngineError)
async def quiz_engine_exception_handler(request: Request, exc: QuizEngineError):
    """Translate named engine failures into HTTP responses"""

    status_code = _engine_error_status(exc)
    if status_code >= 500:
        logger.error(f"Quiz engine failure: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "status_code": status_code
        }
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors gracefully"""

    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "detail": str(exc) if settings.DEBUG else None
        }
    )


# HTTP exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Format HTTP exceptions consistently"""

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "http_error",
            "message": exc.detail,
            "status_code": exc.status_code
        }
    )


# Health check endpoint
@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint for monitoring

    Reports database reachability and whether the leaderboard cache is on
    """
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check: database unavailable: {str(e)}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": database,
        "leaderboard_cache": app.state.quiz_service.leaderboard.cache is not None,
        "timestamp": time.time()
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Quiz Session & Scoring API",
        "version": settings.APP_VERSION,
        "session_ttl_seconds": settings.SESSION_TTL_SECONDS,
        "endpoints": ["/api/quiz", "/api/quiz/leaderboard"],
        "docs": "/docs",
    }


# Include routers
app.include_router(quizzes.router)
app.include_router(leaderboard.router)


# Startup event
@app.on_event("startup")
async def startup_event():
    """Create missing tables and report the effective engine settings"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    try:
        init_db()
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    logger.info(
        f"Engine ready: session_ttl={settings.SESSION_TTL_SECONDS}s, "
        f"leaderboard_limit={settings.LEADERBOARD_LIMIT}, "
        f"cache={'on' if settings.LEADERBOARD_CACHE_ENABLED else 'off'}"
    )


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Release the Redis connection pool, if any"""
    cache = app.state.quiz_service.leaderboard.cache
    if cache is not None:
        cache.close()
    logger.info("Shutting down application")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
