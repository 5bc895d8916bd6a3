from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the shop-floor tracker service.

    This is separate from tracker.db.config.Settings, which focuses on the database layer.
    Workflow policy (travel sheet generation, risk buckets) lives here so that callers
    can toggle it per deployment.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Shop-Floor Tracker API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Shop-floor execution tracker: travel sheet generation, checkpoint scans, "
            "operation state machine and quantity reconciliation."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed demo routing data and operators after migrations.",
    )

    # Travel sheet policy
    ALLOW_MULTIPLE_ACTIVE_SHEETS: bool = Field(
        default=False,
        description="If false, a production order may only have one Active travel sheet.",
    )
    TRAVEL_SHEET_PREFIX: str = Field(default="TS", min_length=1, max_length=10)

    # Risk policy
    RISK_PRODUCTIVE_MINUTES_PER_DAY: float = Field(
        default=480.0, gt=0, description="Productive minutes available per calendar day."
    )
    RISK_GREEN_MAX_LOAD: float = Field(
        default=0.75, gt=0, description="Highest required/available load ratio still rated Green."
    )
    RISK_YELLOW_MAX_LOAD: float = Field(
        default=1.0, gt=0, description="Highest required/available load ratio still rated Yellow."
    )
    RISK_DEFAULT_UNIT_MINUTES: float = Field(
        default=1.0,
        ge=0,
        description="Per-unit minutes assumed for routing steps without a standard time.",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level (DEBUG, INFO, WARNING, ...)")

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]

    @model_validator(mode="after")
    def _check_risk_buckets(self) -> "AppSettings":
        if self.RISK_YELLOW_MAX_LOAD < self.RISK_GREEN_MAX_LOAD:
            raise ValueError("RISK_YELLOW_MAX_LOAD must be >= RISK_GREEN_MAX_LOAD")
        return self


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    Note:
      For simplicity we construct a new instance each time. If caching is desired,
      we can add a module-level cache or lru_cache.
    """
    return AppSettings()
