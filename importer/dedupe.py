"""Drops untitled, already-imported and unreachable posts before persistence."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from .persistence import PostPersistence
from .posts import CanonicalPost, PostKey

LOGGER = logging.getLogger(__name__)


class LinkChecker(Protocol):
    def check_links(self, urls: Iterable[str]) -> dict[str, bool]:  # pragma: no cover - interface only
        ...


def collapse_by_key(posts: Iterable[CanonicalPost]) -> dict[PostKey, CanonicalPost]:
    """Index posts by identity key; a later post replaces an earlier one in place."""

    by_key: dict[PostKey, CanonicalPost] = {}
    for post in posts:
        by_key[post.key] = post
    return by_key


class PostFilter:
    def __init__(self, persistence: PostPersistence, link_checker: LinkChecker) -> None:
        self._persistence = persistence
        self._link_checker = link_checker

    def filter(self, posts: Iterable[CanonicalPost]) -> list[CanonicalPost]:
        candidates = collapse_by_key(posts)

        untitled = [post for post in candidates.values() if not post.title]
        if untitled:
            LOGGER.warning(
                "Import found posts without title: %s",
                [post.to_dict() for post in untitled],
            )
            for post in untitled:
                del candidates[post.key]

        if not candidates:
            return []

        existing = self._persistence.find_existing(list(candidates.values()))
        duplicates = [key for key, post in candidates.items() if existing.contains(post)]
        for key in duplicates:
            del candidates[key]
        if duplicates:
            LOGGER.info("Skipping %d already imported post(s)", len(duplicates))

        # YouTube links are validated by the metadata lookup
        to_probe = [post for post in candidates.values() if not post.is_youtube]
        if to_probe:
            liveness = self._link_checker.check_links(post.link for post in to_probe)
            for post in to_probe:
                if not liveness.get(post.link, False):
                    LOGGER.info("Dropping unreachable link %s", post.link)
                    del candidates[post.key]

        return list(candidates.values())
