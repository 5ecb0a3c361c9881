"""Application configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    PROJECT_NAME: str = "Help Desk Engine"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    # WHY: SQLite default keeps a single-process deployment self-contained;
    # production points this at PostgreSQL.
    DATABASE_URL: str = "sqlite+aiosqlite:///./helpdesk.db"

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"

    # Slack Notifications
    SLACK_WEBHOOK_URL: Optional[str] = None
    SLACK_WEBHOOK_ENABLED: bool = False
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # SLA
    # WHY: Fraction of the resolution window after which a ticket counts
    # as "at risk" on dashboards.
    SLA_WARNING_THRESHOLD: float = 0.75
    SLA_CHECK_INTERVAL_SECONDS: int = 300

    # Closure policy
    # WHY: Tenant admins and super admins can always close tickets manually;
    # whether analysts may close is a deployment decision.
    ANALYSTS_CAN_CLOSE: bool = True

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return to_async_url(self.DATABASE_URL)


def to_async_url(url: str) -> str:
    """Point a plain PostgreSQL URL at the asyncpg driver."""
    return url.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
