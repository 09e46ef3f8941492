from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: str = Field(..., description="Async SQLAlchemy connection string (postgresql+asyncpg://...)")
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis (per-user locks for statistics updates)
    REDIS_URL: str = Field("redis://localhost:6379/0")
    USE_REDIS_LOCKS: bool = Field(False, description="Serialize statistics updates across processes with Redis locks")
    STATS_LOCK_TIMEOUT_SECONDS: int = 10

    # Scoring policy
    STREAK_THRESHOLD: int = Field(70, description="Minimum percentage that keeps a streak alive")
    QUIZ_MASTER_THRESHOLD: int = 10
    STREAK_ACHIEVEMENT_LENGTH: int = 5

    # Quiz Settings
    MAX_QUESTIONS_PER_QUIZ: int = 100
    DEFAULT_DIFFICULTY: str = "medium"

    # Leaderboards
    LEADERBOARD_LIMIT: int = 50
    QUIZ_LEADERBOARD_LIMIT: int = 10
    SEARCH_RESULT_LIMIT: int = 50
    RANK_RECOMPUTE_INTERVAL_SECONDS: int = 300
    RANK_JOB_ID: str = "recompute_ranks"

    # Environment
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

settings = Settings()
