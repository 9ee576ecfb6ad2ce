"""Cursor-based retrieval of the Patreon stream feed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

import httpx

from .config import FeedConfig
from .http_client import HttpFetchError, ensure_scheme
from .posts import RawFeedEntry
from .session import JSON_API_VERSION, SessionToken

LOGGER = logging.getLogger(__name__)

_STREAM_QUERY = (
    "filter%5Bis_following%5D=true&json-api-use-default-includes=false&" + JSON_API_VERSION
)


class FeedFetchError(HttpFetchError):
    """Raised when a feed page cannot be retrieved or decoded."""


@dataclass(slots=True)
class FeedPage:
    cursor: str
    entries: list[RawFeedEntry] = field(default_factory=list)
    next_cursor: str | None = None


class FeedClient:
    """Fetches pages of the followed-creators stream."""

    def __init__(self, config: FeedConfig, client: httpx.Client) -> None:
        self._config = config
        self._client = client

    def initial_cursor(self) -> str:
        return f"{self._config.api_endpoint}/stream?{_STREAM_QUERY}"

    def fetch_page(self, cursor: str, session: SessionToken) -> FeedPage:
        url = ensure_scheme(cursor)
        try:
            response = self._client.get(url, headers={"Cookie": session.value})
        except httpx.HTTPError as exc:
            raise FeedFetchError(f"Request for {cursor} failed: {exc}") from exc

        if not response.is_success:
            raise FeedFetchError(f"Unexpected status {response.status_code} for {cursor}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise FeedFetchError(f"Invalid JSON payload for {cursor}: {exc}") from exc

        if not isinstance(payload, Mapping):
            raise FeedFetchError(f"Unexpected payload type {type(payload).__name__} for {cursor}")

        entries = [
            RawFeedEntry.from_payload(item)
            for item in payload.get("data") or []
            if isinstance(item, Mapping)
        ]
        links = payload.get("links") or {}
        next_cursor = links.get("next") if isinstance(links, Mapping) else None

        LOGGER.info("Fetched %d entries from %s", len(entries), cursor)
        return FeedPage(cursor=cursor, entries=entries, next_cursor=next_cursor or None)
