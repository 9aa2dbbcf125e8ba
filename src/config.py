from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # Backend
    api_base_url: str = "http://localhost:8000"

    # Timeouts (seconds)
    connect_timeout: float = 10.0
    stream_read_timeout: float | None = None  # jobs can run for minutes between frames
    chat_timeout: float = 60.0

    # App config
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
