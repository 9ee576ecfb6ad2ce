"""HTTP utilities shared by the feed, metadata and link-check clients."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

import httpx

from .config import ImportConfig

LOGGER = logging.getLogger(__name__)

_SECRET_PATTERNS = (
    (re.compile(r"session_id=[^;\s&\"']+"), "session_id=<redacted>"),
    (re.compile(r"(?i)([?&]key=)[^&\s\"']+"), r"\1<redacted>"),
)


class HttpFetchError(RuntimeError):
    """Raised when an HTTP request fails irrecoverably."""


def mask_secrets(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class _HttpxSecretFilter(logging.Filter):
    """Redact session cookies and API keys from httpx request logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


def _ensure_httpx_filter() -> None:
    logger = logging.getLogger("httpx")
    if any(isinstance(f, _HttpxSecretFilter) for f in logger.filters):
        return
    logger.addFilter(_HttpxSecretFilter())


_ensure_httpx_filter()


def build_client(
    config: ImportConfig,
    *,
    timeout: float | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    kwargs: dict[str, object] = {
        "timeout": timeout if timeout is not None else config.timeout.request_timeout,
        "headers": {"User-Agent": config.user_agent},
        "follow_redirects": True,
    }
    if transport:
        kwargs["transport"] = transport
    return httpx.Client(**kwargs)


def ensure_scheme(url: str) -> str:
    if "://" in url:
        return url
    return f"https://{url}"


class LinkValidator:
    """Checks that externally hosted links still resolve."""

    def __init__(
        self,
        config: ImportConfig,
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._max_workers = max(1, config.link_check.max_workers)
        self._keep_on_error = config.link_check.keep_on_error
        self._client = client or build_client(
            config,
            timeout=config.timeout.link_check_timeout,
            transport=transport,
        )
        self._owns_client = client is None

    def is_alive(self, url: str) -> bool:
        try:
            response = self._client.head(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            LOGGER.info("Link check for %s failed: %s", url, exc)
            return self._keep_on_error
        if not response.is_success:
            LOGGER.info("Link check for %s returned status %s", url, response.status_code)
            return False
        return True

    def check_links(self, urls: Iterable[str]) -> dict[str, bool]:
        """Probe every URL concurrently and return liveness per URL."""

        unique_urls = list(dict.fromkeys(urls))
        if not unique_urls:
            return {}

        workers = min(self._max_workers, len(unique_urls))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = executor.map(self.is_alive, unique_urls)
            return dict(zip(unique_urls, results))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "LinkValidator":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()
