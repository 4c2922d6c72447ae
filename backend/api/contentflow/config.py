# backend/api/contentflow/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _load_env_once() -> None:
    """
    Loads .env from:
      1) ENV_PATH if provided
      2) backend/api/.env (project default)
      3) current working directory .env (fallback)
    """
    env_path = os.getenv("ENV_PATH")
    if env_path:
        p = Path(env_path)
        if p.exists():
            load_dotenv(p, override=False)
            return

    # this file is backend/api/contentflow/config.py
    backend_api_dir = Path(__file__).resolve().parents[1]
    p2 = backend_api_dir / ".env"
    if p2.exists():
        load_dotenv(p2, override=False)
        return

    p3 = Path.cwd() / ".env"
    if p3.exists():
        load_dotenv(p3, override=False)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    log_level: str
    log_format: str
    activity_page_size: int
    activity_page_max: int
    comment_max_length: int

    def require_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        backend_api_dir = Path(__file__).resolve().parents[1]
        tried = [
            f"ENV_PATH={os.getenv('ENV_PATH')}",
            str(backend_api_dir / ".env"),
            str(Path.cwd() / ".env"),
        ]
        raise RuntimeError(
            "DATABASE_URL is not set. Ensure it exists in backend/api/.env or set ENV_PATH.\n"
            f"Tried: {', '.join(tried)}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_env_once()

    page_size = _int_env("ACTIVITY_PAGE_SIZE", 20)
    page_max = _int_env("ACTIVITY_PAGE_MAX", 100)
    if page_size < 1 or page_max < page_size:
        raise RuntimeError("ACTIVITY_PAGE_SIZE must be >= 1 and <= ACTIVITY_PAGE_MAX")

    return Settings(
        database_url=os.getenv("DATABASE_URL") or os.getenv("DB_URL"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "text"),
        activity_page_size=page_size,
        activity_page_max=page_max,
        comment_max_length=_int_env("COMMENT_MAX_LENGTH", 5000),
    )
