"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    APP_NAME: str = "Pulse Workflow Engine"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production

    # Workflow runtime
    WORKFLOW_TIMEZONE: str = "UTC"  # IANA zone used for office hours and schedules
    WAIT_INLINE_MAX_SECONDS: int = 30  # longer waits are checkpointed and resumed later
    CHECKPOINT_TTL_SECONDS: int = 60 * 60 * 24 * 30
    CHECKPOINT_SWEEP_GRACE_SECONDS: int = 300  # overdue checkpoints older than this are re-dispatched
    RESUME_ETA_MAX_SECONDS: int = 3600  # resume tasks are never queued further ahead than this

    # Email transport
    EMAIL_TRANSPORT: str = "simulated"  # simulated, smtp
    EMAIL_DEFAULT_FROM: str = "workflows@localhost"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True

    # Database query transport
    QUERY_TRANSPORT: str = "simulated"  # simulated, sqlalchemy
    QUERY_MAX_ROWS: int = 1000

    # Redis (checkpoints + Celery broker)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Claude AI (code generation from intent)
    ANTHROPIC_API_KEY: str = ""
    CLAUDE_MODEL: str = "claude-sonnet-4-5-20250929"
    CLAUDE_MAX_TOKENS: int = 4096
    CLAUDE_TIMEOUT: int = 120
    CLAUDE_MAX_RETRIES: int = 3
    CLAUDE_RETRY_DELAY: float = 1.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
