"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Environment
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Asia/Singapore", alias="TZ")

    # Database
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="pickleplus", alias="POSTGRES_DB")
    postgres_user: str = Field(default="pickleplus", alias="POSTGRES_USER")
    postgres_password: str = Field(default="pickleplus", alias="POSTGRES_PASSWORD")
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Facility check-in codes look like TC001-SG
    access_code_pattern: str = Field(
        default=r"^TC[0-9A-Z\-]+$", alias="ACCESS_CODE_PATTERN"
    )

    # Schedule view
    week_start_weekday: int = Field(
        default=6, ge=0, le=6, alias="WEEK_START_WEEKDAY"
    )  # datetime.weekday() numbering, 6=Sunday
    low_availability_threshold: int = Field(
        default=2, ge=0, alias="LOW_AVAILABILITY_THRESHOLD"
    )
    schedule_cache_ttl_seconds: int = Field(
        default=60, ge=0, alias="SCHEDULE_CACHE_TTL_SECONDS"
    )

    # Worker
    auto_cancel_check_minutes: int = Field(
        default=15, ge=1, alias="AUTO_CANCEL_CHECK_MINUTES"
    )

    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    @property
    def database_url(self) -> str:
        """Get async database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
