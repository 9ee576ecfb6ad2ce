"""Entrypoint that mirrors the Patreon stream into the video table."""

from __future__ import annotations

import json
import logging
import os
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import ImportConfig, load_config
from .dedupe import PostFilter
from .enrichment import VideoMetadataSource, enrich_posts
from .feed import FeedClient, FeedPage
from .http_client import LinkValidator, build_client
from .persistence import PostPersistence
from .posts import CanonicalPost, normalize_entries
from .session import SessionManager, SessionStore
from .youtube import YouTubeClient
from models import Base

LOGGER = logging.getLogger(__name__)
_IMPORT_FAILURE_LOG = "import_failures.ndjson"


@dataclass(slots=True)
class ImportStats:
    pages: int = 0
    imported: int = 0
    failed_pages: int = 0


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _record_import_failure(log_dir: Path, cursor: str, posts: list[CanonicalPost], exc: Exception) -> None:
    payload = {
        "cursor": cursor,
        "error": str(exc),
        "error_type": type(exc).__name__,
        "posts": [post.to_dict() for post in posts],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    log_path = log_dir / _IMPORT_FAILURE_LOG
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
    except OSError as file_error:  # pragma: no cover - filesystem failure path
        LOGGER.warning("Failed to record import failure for %s: %s", cursor, file_error)


class PostImporter:
    """Walks the feed page by page: normalize, enrich, filter, persist."""

    def __init__(
        self,
        *,
        sessions: SessionManager,
        feed: FeedClient,
        metadata: VideoMetadataSource,
        post_filter: PostFilter,
        persistence: PostPersistence,
        log_dir: Path,
        max_pages: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sessions = sessions
        self._feed = feed
        self._metadata = metadata
        self._filter = post_filter
        self._persistence = persistence
        self._log_dir = log_dir
        self._max_pages = max_pages
        self._clock = clock

    def run(self) -> ImportStats:
        """
        Import every page of the feed.

        Raises:
            AuthError: If no session can be acquired.
            FeedFetchError: If a page cannot be retrieved; the run stops there.
        """
        stats = ImportStats()
        session = self._sessions.acquire()

        cursor: str | None = self._feed.initial_cursor()
        while cursor:
            if self._max_pages is not None and stats.pages >= self._max_pages:
                LOGGER.info("Reached page limit of %d; stopping before %s", self._max_pages, cursor)
                break

            page = self._feed.fetch_page(cursor, session)
            stats.pages += 1

            posts: list[CanonicalPost] = []
            try:
                posts = normalize_entries(page.entries)
                imported = self._process_page(page, posts)
            except Exception as exc:
                stats.failed_pages += 1
                LOGGER.exception("Import failed for %s", page.cursor)
                LOGGER.error("Posts: %s", json.dumps([post.to_dict() for post in posts], ensure_ascii=False))
                _record_import_failure(self._log_dir, page.cursor, posts, exc)
            else:
                stats.imported += imported
                LOGGER.info("Imported %d post(s) for %s", imported, page.cursor)

            cursor = page.next_cursor

        LOGGER.info(
            "Processed %d page(s): %d post(s) imported, %d page(s) failed",
            stats.pages,
            stats.imported,
            stats.failed_pages,
        )
        return stats

    def _process_page(self, page: FeedPage, posts: list[CanonicalPost]) -> int:
        if not posts:
            LOGGER.debug("No embeddable posts on %s", page.cursor)
            return 0
        now = self._clock() if self._clock else None
        enrich_posts(posts, self._metadata, now=now)
        survivors = self._filter.filter(posts)
        if not survivors:
            return 0
        return self._persistence.insert_posts(survivors)


def main() -> int:
    if os.getenv("APP_ENV", "").lower() != "production":
        load_dotenv()

    config: ImportConfig = load_config()
    configure_logging(config.log_level)
    config.ensure_directories()

    if not config.db_url:
        raise ValueError("DATABASE_URL (or PGDATABASE) is required")

    engine = create_engine(config.db_url)
    Base.metadata.create_all(engine)  # ensure required tables exist before queries
    SessionLocal = sessionmaker(bind=engine)
    persistence = PostPersistence(SessionLocal)

    with ExitStack() as stack:
        client = stack.enter_context(build_client(config))
        link_validator = stack.enter_context(LinkValidator(config))
        importer = PostImporter(
            sessions=SessionManager(config.feed, SessionStore(config.session_file), client),
            feed=FeedClient(config.feed, client),
            metadata=YouTubeClient(config.youtube, client),
            post_filter=PostFilter(persistence, link_validator),
            persistence=persistence,
            log_dir=config.log_dir,
            max_pages=config.feed.max_pages,
        )
        importer.run()

    return 0


__all__ = [
    "ImportStats",
    "PostImporter",
    "configure_logging",
    "main",
    "_record_import_failure",
]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
