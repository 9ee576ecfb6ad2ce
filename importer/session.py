"""Patreon session acquisition and on-disk caching."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable

import httpx

from .config import FeedConfig
from .http_client import ensure_scheme

LOGGER = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session_id"
RENEWAL_WINDOW = timedelta(minutes=10)
JSON_API_VERSION = "json-api-version=1.0"


class AuthError(RuntimeError):
    """Raised when no usable Patreon session can be obtained."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_expires(cookie: str) -> datetime | None:
    for attribute in cookie.split(";"):
        name, _, value = attribute.strip().partition("=")
        if name.lower() != "expires" or not value:
            continue
        try:
            expires = parsedate_to_datetime(value.strip())
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring unparseable session expiry %r", value)
            return None
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires
    return None


@dataclass(frozen=True, slots=True)
class SessionToken:
    cookie: str
    expires_at: datetime | None = None

    @classmethod
    def from_cookie(cls, cookie: str) -> "SessionToken":
        cleaned = cookie.strip()
        return cls(cookie=cleaned, expires_at=_parse_expires(cleaned))

    @property
    def value(self) -> str:
        """Name/value pair suitable for a ``Cookie`` request header."""
        return self.cookie.split(";", 1)[0].strip()

    def needs_renewal(self, now: datetime, window: timedelta = RENEWAL_WINDOW) -> bool:
        if self.expires_at is None:
            return True
        return now >= self.expires_at - window

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class SessionStore:
    """Persists the raw session cookie in a local text file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SessionToken | None:
        try:
            cookie = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            LOGGER.warning("Failed to read session cache %s: %s", self._path, exc)
            return None
        if not cookie.strip():
            return None
        return SessionToken.from_cookie(cookie)

    def save(self, token: SessionToken) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(token.cookie, encoding="utf-8")


class SessionManager:
    """Reuses the cached Patreon session until it nears expiry, then logs in again."""

    def __init__(
        self,
        config: FeedConfig,
        store: SessionStore,
        client: httpx.Client,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._client = client
        self._clock = clock or _utcnow

    def acquire(self) -> SessionToken:
        now = self._clock()
        cached = self._store.load()
        if cached is not None and not cached.needs_renewal(now):
            LOGGER.info("Reusing cached session valid until %s", cached.expires_at)
            return cached

        try:
            token = self._login()
        except AuthError as exc:
            if cached is not None and cached.expires_at is not None and not cached.is_expired(now):
                LOGGER.warning("Login failed (%s); falling back to cached session until %s", exc, cached.expires_at)
                return cached
            raise

        try:
            self._store.save(token)
        except OSError as exc:
            LOGGER.error("Failed to persist session to %s: %s", self._store.path, exc)
        return token

    def _login(self) -> SessionToken:
        if not self._config.has_credentials():
            raise AuthError("Patreon credentials are not configured")

        url = ensure_scheme(f"{self._config.api_endpoint}/login?{JSON_API_VERSION}")
        payload = {
            "data": {
                "type": "user",
                "attributes": {
                    "email": self._config.email,
                    "password": self._config.password,
                },
            }
        }
        LOGGER.info("Logging in to %s", self._config.api_endpoint)
        try:
            response = self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise AuthError(f"Login request failed: {exc}") from exc

        if not response.is_success:
            raise AuthError(f"Login rejected with status {response.status_code}")

        for cookie in response.headers.get_list("set-cookie"):
            if cookie.startswith(SESSION_COOKIE_NAME):
                token = SessionToken.from_cookie(cookie)
                LOGGER.info("Obtained new session valid until %s", token.expires_at)
                return token

        raise AuthError("Login response did not include a session cookie")
