from __future__ import annotations

import os

APP_VERSION = "0.4.0"


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    PROJECT_NAME: str = "Engagement Tracker"
    API_V1_PREFIX: str = "/api/v1"

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "engagements")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "engagements")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "engagements")

    RESET_DB: bool = _env_bool("RESET_DB")

    # "database" mirrors documents into Postgres, "memory" keeps them in-process
    PERSISTENCE_BACKEND: str = os.getenv("PERSISTENCE_BACKEND", "database")

    # Editing session tuning
    AUTOSAVE_DEBOUNCE_SECONDS: float = float(os.getenv("AUTOSAVE_DEBOUNCE_SECONDS", "1.0"))
    CELEBRATION_DELAY_SECONDS: float = float(os.getenv("CELEBRATION_DELAY_SECONDS", "1.0"))
    # 0 keeps the undo history unbounded
    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "0"))
    # Fallback engagement start date used when backfilling stage history
    DEFAULT_START_DATE: str = os.getenv("DEFAULT_START_DATE", "2025-07-10")

    SAVE_RATE_LIMIT: str = os.getenv("SAVE_RATE_LIMIT", "60/minute")

    ALLOWED_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
        if o.strip()
    ]

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
