"""YouTube Data API client used to enrich video embeds."""

from __future__ import annotations

import logging
import re
from typing import Sequence

import httpx

from .config import YouTubeConfig
from .http_client import ensure_scheme
from .posts import VideoMetadata

LOGGER = logging.getLogger(__name__)

# Short links, watch/embed/live/v paths and legacy user URLs.
_VIDEO_ID_PATTERN = re.compile(
    r".*youtu\.?be(?:\.com)?/.*?(?:live/|v/|user/.*/|embed/|watch\?.*&?v=)?([^#&?\s]*).*"
)


class EnrichmentError(RuntimeError):
    """Raised when video metadata cannot be applied to a batch of posts."""


class VideoLookupError(EnrichmentError):
    """Raised when the videos endpoint fails or returns an incomplete result."""


class InvalidVideoLinkError(EnrichmentError):
    """Raised when a link does not look like a YouTube video URL."""


class YouTubeClient:
    def __init__(self, config: YouTubeConfig, client: httpx.Client) -> None:
        if not config.api_key:
            raise ValueError("YouTube API key cannot be empty")
        self._config = config
        self._client = client

    def get_videos(self, video_ids: Sequence[str]) -> list[VideoMetadata]:
        """
        Fetch snippets for the given ids in one request.

        Raises:
            VideoLookupError: If no ids are given, the request fails, or the
                API does not report exactly one result per distinct id.
        """
        requested = list(dict.fromkeys(video_id for video_id in video_ids if video_id))
        if not requested:
            raise VideoLookupError("No video id(s) provided")

        id_param = ",".join(requested)
        payload = self._get_resource("videos", {"part": "snippet", "id": id_param})

        page_info = payload.get("pageInfo") or {}
        total_results = page_info.get("totalResults") or 0
        if not total_results:
            raise VideoLookupError(f"Video(s) not found: {id_param}")
        if total_results != len(requested):
            raise VideoLookupError(
                f"{total_results} video(s) found but {len(requested)} id(s) provided: {id_param}"
            )

        videos: list[VideoMetadata] = []
        for item in payload.get("items") or []:
            snippet = item.get("snippet")
            if not snippet:
                raise VideoLookupError(f"Missing snippet for video {item.get('id')}")
            videos.append(
                VideoMetadata(
                    video_id=item["id"],
                    title=snippet.get("title"),
                    description=snippet.get("description"),
                    published_at=snippet.get("publishedAt"),
                )
            )
        return videos

    def _get_resource(self, resource: str, params: dict[str, str]) -> dict:
        url = ensure_scheme(f"{self._config.api_endpoint}/{resource}")
        try:
            response = self._client.get(
                url,
                params=params,
                headers={"x-goog-api-key": self._config.api_key},
            )
        except httpx.HTTPError as exc:
            raise VideoLookupError(f"Error retrieving YouTube resources: {exc}") from exc

        if not response.is_success:
            raise VideoLookupError(
                f"Error retrieving YouTube resources: {self._error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise VideoLookupError(f"Invalid YouTube response: {exc}") from exc
        if not isinstance(payload, dict):
            raise VideoLookupError("Invalid YouTube response: expected an object")
        return payload

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return f"status {response.status_code}"

    @staticmethod
    def get_video_id(link: str) -> str | None:
        """
        Extract the video id from a YouTube link.

        Returns None when the link matches but carries no id.

        Raises:
            InvalidVideoLinkError: If the link is not a YouTube URL.
        """
        if not isinstance(link, str):
            raise InvalidVideoLinkError(f"Invalid YouTube link: {link!r}")
        match = _VIDEO_ID_PATTERN.match(link)
        if not match:
            raise InvalidVideoLinkError(f"Invalid YouTube link: {link}")
        return match.group(1) or None
