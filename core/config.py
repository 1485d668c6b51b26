from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: str = Field(..., description="Async PostgreSQL connection string (postgresql+asyncpg://...)")
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = Field("redis://localhost:6379/0")

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    # Status evaluation
    STATUS_BATCH_SIZE: int = Field(20, description="Scheduled quizzes evaluated concurrently per batch", ge=1)
    STATUS_EVALUATION_TIMEOUT_SECONDS: float = 10.0
    OLD_QUIZ_CUTOFF_MONTHS: int = Field(4, description="Bulk scans skip quizzes whose window closed longer ago than this")
    SURVEY_GRACE_PERIOD_DAYS: int = Field(1, description="Days after the window closes during which a survey may still be taken")

    # Rate limiting of the bulk status scan
    STATUS_SCAN_RATE_LIMIT: int = 30
    STATUS_SCAN_RATE_WINDOW_SECONDS: int = 60

    # Environment
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

settings = Settings()
