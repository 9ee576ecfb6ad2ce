"""Feed entry and post data models for stream ingestion."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Iterable, Mapping

LOGGER = logging.getLogger(__name__)


class ProviderType(str, Enum):
    YOUTUBE = "YouTube"
    VIMEO = "Vimeo"
    BITCHUTE = "BitChute"


class PostType(str, Enum):
    VIDEO = "video_embed"
    LIVESTREAM = "livestream_youtube"
    LINK = "link"


_RECOGNIZED_PROVIDERS = frozenset(provider.value for provider in ProviderType)


def _text(value) -> str | None:
    return value if isinstance(value, str) else None


@dataclass(slots=True)
class EmbedBlock:
    url: str | None = None
    provider: str | None = None
    subject: str | None = None
    description: str | None = None


@dataclass(slots=True)
class RawFeedEntry:
    title: str | None
    post_type: str | None
    content: str | None = None
    embed: EmbedBlock | None = None

    @classmethod
    def from_payload(cls, payload: Mapping) -> "RawFeedEntry":
        """Build an entry from one element of the stream ``data`` array."""

        attributes = payload.get("attributes")
        if not isinstance(attributes, Mapping):
            attributes = {}
        embed_payload = attributes.get("embed")
        embed: EmbedBlock | None = None
        if isinstance(embed_payload, Mapping):
            embed = EmbedBlock(
                url=_text(embed_payload.get("url")),
                provider=_text(embed_payload.get("provider")),
                subject=_text(embed_payload.get("subject")),
                description=_text(embed_payload.get("description")),
            )
        return cls(
            title=_text(attributes.get("title")),
            post_type=_text(attributes.get("post_type")),
            content=_text(attributes.get("content")),
            embed=embed,
        )


@dataclass(frozen=True, slots=True)
class PostKey:
    """Identity of a post: provider + video id when both are known, else the link."""

    link: str | None = None
    provider_name: str | None = None
    resource_id: str | None = None

    @classmethod
    def build(cls, link: str | None, provider_name: str | None, resource_id: str | None) -> "PostKey":
        if provider_name and resource_id:
            return cls(provider_name=provider_name, resource_id=resource_id)
        return cls(link=link)

    @property
    def is_provider_key(self) -> bool:
        return self.resource_id is not None

    def __str__(self) -> str:
        if self.is_provider_key:
            return f"{self.provider_name},{self.resource_id}"
        return self.link or ""


@dataclass(slots=True)
class CanonicalPost:
    link: str
    title: str | None
    post_type: str | None
    provider_name: str | None = None
    resource_id: str | None = None
    description: str | None = None
    publish_time: str | None = None
    last_sync: str | None = None

    @property
    def key(self) -> PostKey:
        return PostKey.build(self.link, self.provider_name, self.resource_id)

    @property
    def is_youtube(self) -> bool:
        return self.provider_name == ProviderType.YOUTUBE.value

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class VideoMetadata:
    video_id: str
    title: str
    description: str | None
    published_at: str | None


def normalize_entries(entries: Iterable[RawFeedEntry]) -> list[CanonicalPost]:
    """Map feed entries to posts, dropping those without a recognized embed."""

    posts: list[CanonicalPost] = []
    for entry in entries:
        embed = entry.embed
        if embed is None or not isinstance(embed.url, str) or not embed.url:
            continue
        if not isinstance(embed.provider, str) or embed.provider not in _RECOGNIZED_PROVIDERS:
            LOGGER.debug("Skipping embed from unsupported provider %r: %s", embed.provider, embed.url)
            continue
        posts.append(
            CanonicalPost(
                link=embed.url,
                title=embed.subject or entry.title,
                post_type=entry.post_type,
                provider_name=embed.provider,
                description=embed.description,
            )
        )
    return posts
