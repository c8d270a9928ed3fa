"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Adaptive Assessment Engine"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # Session persistence
    # "memory" keeps the turn log in-process; "database" writes it through SQLAlchemy
    SESSION_STORE: Literal["memory", "database"] = "memory"
    DATABASE_URL: str = "sqlite:///./assessment.db"

    # Optional JSON file with the item pool served by the HTTP API.
    # Empty means the API starts with an empty in-memory pool.
    ITEM_POOL_PATH: str = ""

    # CAT estimation defaults. Session configs may override each of these.
    CAT_THETA_MIN: float = -4.0
    CAT_THETA_MAX: float = 4.0
    CAT_MLE_MAX_ITERATIONS: int = Field(
        default=50,
        ge=1,
        description="Upper bound on Newton iterations per ability estimate",
    )
    CAT_MLE_TOLERANCE: float = Field(
        default=1e-4,
        gt=0.0,
        description="Stop iterating once a Newton step moves theta less than this",
    )
    CAT_NON_MIXED_STEP: float = Field(
        default=1.0,
        gt=0.0,
        description="Logits past the hardest/easiest answered item for all-correct "
        "or all-incorrect patterns",
    )

    # CAT stopping defaults
    CAT_DEFAULT_MIN_ITEMS: int = Field(default=5, ge=1)
    CAT_DEFAULT_MAX_ITEMS: int = Field(default=20, ge=1)
    CAT_DEFAULT_SE_THRESHOLD: float = Field(default=0.30, gt=0.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_theta_range(self) -> Self:
        """Validate that the theta estimation range is non-empty."""
        if self.CAT_THETA_MIN >= self.CAT_THETA_MAX:
            raise ValueError(
                f"CAT_THETA_MIN ({self.CAT_THETA_MIN}) must be less than "
                f"CAT_THETA_MAX ({self.CAT_THETA_MAX})"
            )
        return self

    @model_validator(mode="after")
    def validate_item_limits(self) -> Self:
        """Validate that the default minimum test length does not exceed the maximum."""
        if self.CAT_DEFAULT_MIN_ITEMS > self.CAT_DEFAULT_MAX_ITEMS:
            raise ValueError(
                f"CAT_DEFAULT_MIN_ITEMS ({self.CAT_DEFAULT_MIN_ITEMS}) must not exceed "
                f"CAT_DEFAULT_MAX_ITEMS ({self.CAT_DEFAULT_MAX_ITEMS})"
            )
        return self


settings = Settings()
