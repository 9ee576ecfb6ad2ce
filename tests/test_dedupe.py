import unittest
from unittest.mock import MagicMock

import httpx
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from importer.config import ImportConfig
from importer.dedupe import PostFilter, collapse_by_key
from importer.http_client import LinkValidator
from importer.persistence import PostPersistence
from importer.posts import CanonicalPost
from models import Base, Video


def _session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


class StubLinkChecker:
    def __init__(self, dead=()) -> None:
        self._dead = set(dead)
        self.checked: list[str] = []

    def check_links(self, urls):
        urls = list(urls)
        self.checked.extend(urls)
        return {url: url not in self._dead for url in urls}


def _youtube(video_id: str, title: str | None = "YouTube title", link: str | None = None) -> CanonicalPost:
    return CanonicalPost(
        link=link or f"https://youtu.be/{video_id}",
        title=title,
        post_type="video_embed",
        provider_name="YouTube",
        resource_id=video_id,
    )


def _vimeo(number: int, title: str | None = "Vimeo title") -> CanonicalPost:
    return CanonicalPost(link=f"https://vimeo.com/{number}", title=title, post_type="link", provider_name="Vimeo")


class PostFilterTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = _session_factory()
        self.persistence = PostPersistence(self.session_factory)

    def test_existing_provider_identity_is_removed(self) -> None:
        self.persistence.insert_posts([_youtube("abc123XYZ_", link="https://www.youtube.com/watch?v=abc123XYZ_")])
        checker = StubLinkChecker()
        post_filter = PostFilter(self.persistence, checker)

        survivors = post_filter.filter([_youtube("abc123XYZ_")])

        self.assertEqual(survivors, [])
        self.assertEqual(checker.checked, [])

    def test_existing_link_is_removed(self) -> None:
        self.persistence.insert_posts([_vimeo(1)])
        post_filter = PostFilter(self.persistence, StubLinkChecker())

        survivors = post_filter.filter([_vimeo(1), _vimeo(2)])

        self.assertEqual([post.link for post in survivors], ["https://vimeo.com/2"])

    def test_untitled_posts_never_reach_query(self) -> None:
        persistence = MagicMock(wraps=self.persistence)
        post_filter = PostFilter(persistence, StubLinkChecker())

        with self.assertLogs("importer.dedupe", level="WARNING") as captured:
            survivors = post_filter.filter([_vimeo(1, title=""), _youtube("aaa", title=None), _vimeo(2)])

        self.assertEqual([post.link for post in survivors], ["https://vimeo.com/2"])
        self.assertIn("without title", captured.output[0])
        queried = persistence.find_existing.call_args.args[0]
        self.assertEqual([post.link for post in queried], ["https://vimeo.com/2"])

    def test_only_untitled_posts_skip_query(self) -> None:
        persistence = MagicMock()
        post_filter = PostFilter(persistence, StubLinkChecker())

        with self.assertLogs("importer.dedupe", level="WARNING"):
            self.assertEqual(post_filter.filter([_vimeo(1, title="")]), [])
        persistence.find_existing.assert_not_called()

    def test_dead_links_are_dropped_and_youtube_is_exempt(self) -> None:
        checker = StubLinkChecker(dead={"https://vimeo.com/2"})
        post_filter = PostFilter(self.persistence, checker)

        survivors = post_filter.filter([_vimeo(1), _vimeo(2), _youtube("aaa")])

        self.assertEqual([post.link for post in survivors], ["https://vimeo.com/1", "https://youtu.be/aaa"])
        self.assertEqual(sorted(checker.checked), ["https://vimeo.com/1", "https://vimeo.com/2"])

    def test_probe_status_and_transport_errors_with_link_validator(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "www.bitchute.com":
                raise httpx.ConnectError("connection refused", request=request)
            if request.url.path == "/404":
                return httpx.Response(404, text="missing")
            return httpx.Response(200)

        validator = LinkValidator(ImportConfig(), transport=httpx.MockTransport(handler))
        self.addCleanup(validator.close)
        post_filter = PostFilter(self.persistence, validator)
        bitchute = CanonicalPost(
            link="https://www.bitchute.com/video/xyz/",
            title="BitChute title",
            post_type="link",
            provider_name="BitChute",
        )

        survivors = post_filter.filter([_vimeo(200), _vimeo(404), bitchute])

        self.assertEqual([post.link for post in survivors], ["https://vimeo.com/200"])

    def test_duplicates_within_page_are_collapsed(self) -> None:
        post_filter = PostFilter(self.persistence, StubLinkChecker())
        first = _youtube("aaa", title="First")
        second = _youtube("aaa", title="Second", link="https://www.youtube.com/watch?v=aaa")

        survivors = post_filter.filter([first, _vimeo(1), second])

        self.assertEqual([post.title for post in survivors], ["Second", "Vimeo title"])
        self.persistence.insert_posts(survivors)
        with self.session_factory() as session:
            self.assertEqual(len(session.scalars(select(Video)).all()), 2)


class CollapseByKeyTestCase(unittest.TestCase):
    def test_keeps_first_position_and_last_value(self) -> None:
        first = _vimeo(1, title="old")
        other = _vimeo(2)
        replacement = _vimeo(1, title="new")

        collapsed = collapse_by_key([first, other, replacement])

        self.assertEqual([post.title for post in collapsed.values()], ["new", "Vimeo title"])


if __name__ == "__main__":
    unittest.main()
