"""Overwrite YouTube post metadata with the canonical values from the Data API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol, Sequence

from .posts import CanonicalPost, VideoMetadata
from .youtube import EnrichmentError, InvalidVideoLinkError, YouTubeClient

LOGGER = logging.getLogger(__name__)


class VideoMetadataSource(Protocol):
    def get_videos(self, video_ids: Sequence[str]) -> list[VideoMetadata]:  # pragma: no cover - interface only
        ...


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _assign_video_ids(posts: Sequence[CanonicalPost]) -> list[CanonicalPost]:
    selected: list[CanonicalPost] = []
    for post in posts:
        if not post.is_youtube:
            continue
        try:
            video_id = YouTubeClient.get_video_id(post.link)
        except InvalidVideoLinkError as exc:
            LOGGER.error("%s", exc)
            continue
        if not video_id:
            LOGGER.error("No video id found in YouTube link %s", post.link)
            continue
        post.resource_id = video_id
        selected.append(post)
    return selected


def _correlate(
    posts: list[CanonicalPost],
    videos: list[VideoMetadata],
) -> list[tuple[CanonicalPost, VideoMetadata]]:
    if len(posts) == len(videos):
        pairs = list(zip(posts, videos))
        if all(post.resource_id == video.video_id for post, video in pairs):
            return pairs
        LOGGER.warning("Video results are out of order; matching %d result(s) by id", len(videos))

    by_id = {video.video_id: video for video in videos}
    matched: list[tuple[CanonicalPost, VideoMetadata]] = []
    for post in posts:
        video = by_id.get(post.resource_id)
        if video is None:
            LOGGER.warning("No metadata returned for video %s (%s)", post.resource_id, post.link)
            continue
        matched.append((post, video))
    return matched


def enrich_posts(
    posts: list[CanonicalPost],
    source: VideoMetadataSource,
    *,
    now: datetime | None = None,
) -> list[CanonicalPost]:
    """
    Apply YouTube titles, descriptions and publish times to the page's YouTube posts.

    Posts are updated in place and the same list is returned. Lookup failures
    are logged and leave every post with its feed metadata.
    """
    selected = _assign_video_ids(posts)
    if not selected:
        return posts

    try:
        videos = source.get_videos([post.resource_id for post in selected])
    except EnrichmentError as exc:
        LOGGER.error("Skipping YouTube enrichment for %d post(s): %s", len(selected), exc)
        return posts

    last_sync = format_timestamp(now or datetime.now(timezone.utc))
    for post, video in _correlate(selected, videos):
        post.title = video.title
        post.description = video.description
        post.publish_time = video.published_at
        post.last_sync = last_sync

    return posts
