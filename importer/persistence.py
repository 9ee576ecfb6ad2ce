"""Database persistence helpers for imported posts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence

from sqlalchemy import and_, insert, or_, select
from sqlalchemy.exc import SQLAlchemyError

from models import Video, generate_uuid7

from .posts import CanonicalPost, PostKey

LOGGER = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when querying or writing imported posts fails."""


@dataclass(slots=True)
class ExistingPosts:
    links: set[str] = field(default_factory=set)
    keys: set[PostKey] = field(default_factory=set)

    def add_row(self, import_link: str, provider_name: str | None, video_id: str | None) -> None:
        self.links.add(import_link)
        self.keys.add(PostKey.build(import_link, provider_name, video_id))

    def contains(self, post: CanonicalPost) -> bool:
        return post.key in self.keys or post.link in self.links


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    cleaned = value.strip()
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        LOGGER.warning("Ignoring unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PostPersistence:
    """Reads and writes rows of the ``video`` table."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def find_existing(self, posts: Sequence[CanonicalPost]) -> ExistingPosts:
        """Return stored rows matching any post's link or provider identity, in one query."""

        existing = ExistingPosts()
        if not posts:
            return existing

        links = list(dict.fromkeys(post.link for post in posts))
        provider_keys = list(dict.fromkeys(post.key for post in posts if post.key.is_provider_key))
        conditions = [Video.import_link.in_(links)]
        conditions.extend(
            and_(Video.provider_name == key.provider_name, Video.video_id == key.resource_id)
            for key in provider_keys
        )
        statement = select(Video.import_link, Video.provider_name, Video.video_id).where(or_(*conditions))

        try:
            with self._session_factory() as session:
                rows = session.execute(statement).all()
        except SQLAlchemyError as exc:
            compiled = statement.compile()
            LOGGER.error("query: %s", compiled)
            LOGGER.error("params: %s", compiled.params)
            raise PersistenceError(str(exc)) from exc

        for import_link, provider_name, video_id in rows:
            existing.add_row(import_link, provider_name, video_id)
        return existing

    def insert_posts(self, posts: Iterable[CanonicalPost]) -> int:
        """Insert every post with a single multi-row statement and return the row count."""

        rows = [self._to_row(post) for post in posts]
        if not rows:
            return 0

        statement = insert(Video).values(rows)
        try:
            with self._session_factory() as session:
                session.execute(statement)
                session.commit()
        except SQLAlchemyError as exc:
            LOGGER.error("query: %s", statement.compile())
            LOGGER.error("params: %s", rows)
            raise PersistenceError(str(exc)) from exc

        return len(rows)

    @staticmethod
    def _to_row(post: CanonicalPost) -> dict:
        if not post.title:
            raise ValueError(f"Refusing to persist post without title: {post.link}")
        return {
            "id": generate_uuid7(),
            "import_link": post.link,
            "provider_name": post.provider_name,
            "video_id": post.resource_id,
            "post_type": post.post_type,
            "title": post.title,
            "description": post.description,
            "upload_time": parse_timestamp(post.publish_time),
            "last_sync": parse_timestamp(post.last_sync),
        }
