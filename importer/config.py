"""Configuration utilities for the stream importer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from sqlalchemy.engine import URL

DEFAULT_SESSION_FILE = Path("session.txt")
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_YOUTUBE_API_ENDPOINT = "www.googleapis.com/youtube/v3"

DEFAULT_USER_AGENT = "patreon-importer/1.0"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class TimeoutConfig:
    request_timeout: float = 30.0
    link_check_timeout: float = 10.0


@dataclass(slots=True)
class LinkCheckConfig:
    max_workers: int = 8
    # Transport errors are indeterminate; by default they count as a dead link.
    keep_on_error: bool = False


@dataclass(slots=True)
class FeedConfig:
    """Patreon stream endpoint and login credentials."""

    api_endpoint: str = ""
    email: Optional[str] = None
    password: Optional[str] = None
    max_pages: int | None = None

    def has_credentials(self) -> bool:
        return bool(self.email and self.password)


@dataclass(slots=True)
class YouTubeConfig:
    api_endpoint: str = DEFAULT_YOUTUBE_API_ENDPOINT
    api_key: Optional[str] = None


@dataclass(slots=True)
class ImportConfig:
    feed: FeedConfig = field(default_factory=FeedConfig)
    youtube: YouTubeConfig = field(default_factory=YouTubeConfig)
    db_url: Optional[str] = None
    session_file: Path = DEFAULT_SESSION_FILE
    log_dir: Path = DEFAULT_LOG_DIR
    log_level: str = "INFO"
    user_agent: str = DEFAULT_USER_AGENT
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    link_check: LinkCheckConfig = field(default_factory=LinkCheckConfig)

    def ensure_directories(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.session_file.parent.mkdir(parents=True, exist_ok=True)


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = _env_str(env, name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def _env_int(env: Mapping[str, str], name: str, default: int | None) -> int | None:
    value = _env_str(env, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer for {name}: {value!r}") from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = _env_str(env, name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid number for {name}: {value!r}") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive (got {value!r})")
    return parsed


def _apply_page_limit(value: int | None) -> int | None:
    if value is None or value <= 0:
        return None
    return value


def _strip_scheme(endpoint: str) -> str:
    for prefix in ("https://", "http://"):
        if endpoint.lower().startswith(prefix):
            endpoint = endpoint[len(prefix):]
            break
    return endpoint.rstrip("/")


def database_url_from_env(env: Mapping[str, str]) -> str | None:
    """Return ``DATABASE_URL`` or one assembled from libpq-style ``PG*`` variables."""

    explicit = _env_str(env, "DATABASE_URL")
    if explicit:
        return explicit

    database = _env_str(env, "PGDATABASE")
    if not database:
        return None

    url = URL.create(
        "postgresql+psycopg2",
        username=_env_str(env, "PGUSER"),
        password=_env_str(env, "PGPASSWORD"),
        host=_env_str(env, "PGHOST") or "localhost",
        port=_env_int(env, "PGPORT", None),
        database=database,
    )
    return url.render_as_string(hide_password=False)


def load_config(env: Mapping[str, str] | None = None) -> ImportConfig:
    """Build an :class:`ImportConfig` from environment variables.

    Raises ``ValueError`` when a required value is missing or malformed.
    """

    if env is None:
        env = os.environ

    feed_endpoint = _env_str(env, "PATREON_API_ENDPOINT")
    if not feed_endpoint:
        raise ValueError("PATREON_API_ENDPOINT is required")

    api_key = _env_str(env, "YOUTUBE_API_KEY")
    if not api_key:
        raise ValueError("YOUTUBE_API_KEY is required")

    max_workers = _env_int(env, "LINK_CHECK_MAX_WORKERS", LinkCheckConfig().max_workers)
    if max_workers is None or max_workers < 1:
        raise ValueError("LINK_CHECK_MAX_WORKERS must be at least 1")

    config = ImportConfig(
        feed=FeedConfig(
            api_endpoint=_strip_scheme(feed_endpoint),
            email=_env_str(env, "PATREON_EMAIL"),
            password=env.get("PATREON_PASSWORD") or None,
            max_pages=_apply_page_limit(_env_int(env, "FEED_MAX_PAGES", None)),
        ),
        youtube=YouTubeConfig(
            api_endpoint=_strip_scheme(_env_str(env, "YOUTUBE_API_ENDPOINT") or DEFAULT_YOUTUBE_API_ENDPOINT),
            api_key=api_key,
        ),
        db_url=database_url_from_env(env),
        session_file=Path(_env_str(env, "SESSION_FILE") or DEFAULT_SESSION_FILE),
        log_dir=Path(_env_str(env, "IMPORT_LOG_DIR") or DEFAULT_LOG_DIR),
        log_level=(_env_str(env, "LOG_LEVEL") or "INFO").upper(),
        timeout=TimeoutConfig(
            request_timeout=_env_float(env, "REQUEST_TIMEOUT", TimeoutConfig().request_timeout),
            link_check_timeout=_env_float(env, "LINK_CHECK_TIMEOUT", TimeoutConfig().link_check_timeout),
        ),
        link_check=LinkCheckConfig(
            max_workers=max_workers,
            keep_on_error=_env_bool(env, "LINK_CHECK_KEEP_ON_ERROR"),
        ),
    )
    return config
