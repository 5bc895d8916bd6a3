from __future__ import annotations

import re
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings for database configuration and general environment.

    Reads from environment variables (or .env via pydantic-settings):
      - DATABASE_URL (any SQLAlchemy async URL, e.g. sqlite+aiosqlite:///./shopfloor.db)
      - or POSTGRES_USER / POSTGRES_PASSWORD / POSTGRES_DB / POSTGRES_HOST / POSTGRES_PORT
    """

    DATABASE_URL: Optional[str] = Field(
        default=None, description="If provided, full SQLAlchemy connection URL."
    )
    POSTGRES_USER: Optional[str] = Field(default=None, description="DB username")
    POSTGRES_PASSWORD: Optional[str] = Field(default=None, description="DB password")
    POSTGRES_DB: Optional[str] = Field(default=None, description="Database name")
    POSTGRES_PORT: Optional[int] = Field(
        default=5432, description="Database port (default 5432)"
    )
    POSTGRES_HOST: Optional[str] = Field(
        default="localhost", description="Database host (default localhost)"
    )

    # SQLAlchemy engine options
    SQL_ECHO: bool = Field(
        default=False, description="Echo SQL statements for debugging (default False)"
    )

    # General environment
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def database_url(self) -> str:
        """
        Compute the base database URL. Prefers DATABASE_URL, then POSTGRES_* parts,
        and falls back to a local SQLite file.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if all([self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_DB]):
            host = self.POSTGRES_HOST or "localhost"
            port = self.POSTGRES_PORT or 5432
            return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{host}:{port}/{self.POSTGRES_DB}"

        return "sqlite:///./shopfloor.db"

    @property
    def async_database_url(self) -> str:
        """
        Convert the base URL to an async driver URL (asyncpg / aiosqlite), required for AsyncEngine.
        """
        url = self.database_url
        if url.startswith("postgresql"):
            return re.sub(r"^postgresql(\+\w+)?://", "postgresql+asyncpg://", url)
        if url.startswith("sqlite"):
            return re.sub(r"^sqlite(\+\w+)?://", "sqlite+aiosqlite://", url)
        return url

    @property
    def sync_database_url(self) -> str:
        """
        Provide a sync URL variant for Alembic offline mode (driver tag stripped).
        """
        url = self.database_url
        return re.sub(r"^(postgresql|sqlite)\+\w+://", r"\1://", url)


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return a settings object for reuse across modules."""
    return Settings()
