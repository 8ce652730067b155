from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    app_name: str = Field(default="Facility Booking Service", alias="APP_NAME")
    app_version: str = "1.0.0"

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./facility_booking.db",
        alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        alias="ALLOWED_ORIGINS"
    )

    # Citizen endpoint throttling (slowapi limit strings)
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    citizen_submission_rate_limit: str = Field(default="20/minute", alias="CITIZEN_SUBMISSION_RATE_LIMIT")
    availability_check_rate_limit: str = Field(default="60/minute", alias="AVAILABILITY_CHECK_RATE_LIMIT")

    # Request numbering: FR-2025-0001
    request_number_prefix: str = Field(default="FR", alias="REQUEST_NUMBER_PREFIX")

    # Staff dashboard horizon for upcoming approved events
    upcoming_events_days: int = Field(default=7, alias="UPCOMING_EVENTS_DAYS")
    upcoming_events_limit: int = Field(default=10, alias="UPCOMING_EVENTS_LIMIT")

    @field_validator('request_number_prefix')
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.strip().upper()
        if not v or "-" in v:
            raise ValueError("REQUEST_NUMBER_PREFIX must be non-empty and contain no '-'")
        return v

    @field_validator('upcoming_events_days', 'upcoming_events_limit')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def normalized_database_url(self) -> str:
        """Hosting platforms hand out postgres://, SQLAlchemy needs postgresql://"""
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)

        return origins or ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
