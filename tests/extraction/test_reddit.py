from __future__ import annotations

from typing import Any

import pytest
import requests

from linkstash.errors import ExtractionError
from linkstash.extraction.reddit import RedditExtractor, json_endpoint, needs_redirect, post_images, post_video
from linkstash.models import ContentKind


class _FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, url: str = "") -> None:
        self._payload = payload
        self.status_code = status_code
        self.url = url

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)  # type: ignore[arg-type]

    def json(self) -> Any:
        return self._payload


class _FakeSession:
    def __init__(self, response: _FakeResponse, resolved: str | None = None) -> None:
        self.response = response
        self.resolved = resolved
        self.calls: list[dict[str, Any]] = []
        self.heads: list[str] = []

    def get(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        return self.response

    def head(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.heads.append(url)
        return _FakeResponse(url=self.resolved or url)


POST = {
    "id": "abc123",
    "title": "Look at this",
    "selftext": "Long body text",
    "author": "spez",
    "subreddit": "pics",
    "permalink": "/r/pics/comments/abc123/look/",
    "thumbnail": "self",
    "created_utc": 1704164645,
    "ups": 1234,
    "num_comments": 56,
    "upvote_ratio": 0.97,
    "preview": {"images": [{"source": {"url": "https://preview.redd.it/a.jpg?width=640&amp;s=x"}}]},
}


def _listing(post: dict[str, Any]) -> list[dict[str, Any]]:
    return [{"data": {"children": [{"data": post}]}}, {"data": {"children": []}}]


def test_json_endpoint_drops_query_and_trailing_slash() -> None:
    url = "https://www.reddit.com/r/pics/comments/abc123/look/?utm_source=share"
    assert json_endpoint(url) == "https://www.reddit.com/r/pics/comments/abc123/look.json"


def test_needs_redirect_for_share_and_short_links() -> None:
    assert needs_redirect("https://www.reddit.com/r/pics/s/AbCdEf")
    assert needs_redirect("https://redd.it/abc123")
    assert not needs_redirect("https://www.reddit.com/r/pics/comments/abc123/look/")


def test_post_images_prefers_gallery_order() -> None:
    gallery = {
        "is_gallery": True,
        "gallery_data": {"items": [{"media_id": "b"}, {"media_id": "a"}, {"media_id": "gone"}]},
        "media_metadata": {
            "a": {"s": {"u": "https://i.redd.it/a.png?x=1&amp;y=2"}},
            "b": {"s": {"gif": "https://i.redd.it/b.gif"}},
        },
    }
    assert post_images(gallery) == ["https://i.redd.it/b.gif", "https://i.redd.it/a.png?x=1&y=2"]
    assert post_images({"url": "https://i.imgur.com/c.JPG"}) == ["https://i.imgur.com/c.JPG"]
    assert post_images({"url": "https://example.com/article"}) == []


def test_post_video_checks_crosspost() -> None:
    crosspost = {
        "is_video": False,
        "crosspost_parent_list": [
            {
                "is_video": True,
                "secure_media": {"reddit_video": {"fallback_url": "https://v.redd.it/x/DASH_720.mp4", "duration": 12}},
            }
        ],
    }
    assert post_video(crosspost) == ("https://v.redd.it/x/DASH_720.mp4", 12)
    assert post_video({"post_hint": "hosted:video", "url": "https://v.redd.it/y"}) == ("https://v.redd.it/y", None)
    assert post_video({}) == (None, None)


def test_reddit_extractor_builds_envelope() -> None:
    extractor = RedditExtractor()
    session = _FakeSession(_FakeResponse(_listing(POST)))
    extractor.session = session  # type: ignore[assignment]
    url = "https://www.reddit.com/r/pics/comments/abc123/look/"

    envelope = extractor.extract(url, ContentKind.REDDIT)

    assert session.calls[0]["url"] == "https://www.reddit.com/r/pics/comments/abc123/look.json"
    assert session.calls[0]["params"] == {"raw_json": 1}
    assert session.heads == []
    assert envelope.url == url
    assert envelope.content_type is ContentKind.REDDIT
    assert envelope.title == "Look at this"
    assert envelope.description.startswith("Long body text\n\nr/pics")  # type: ignore[union-attr]
    assert envelope.image == "https://preview.redd.it/a.jpg?width=640&s=x"
    assert envelope.images == ["https://preview.redd.it/a.jpg?width=640&s=x"]
    assert envelope.author == "u/spez"
    assert envelope.site_name == "Reddit"
    assert envelope.published_date == "2024-01-02T03:04:05+00:00"
    assert envelope.extra["subreddit"] == "pics"
    assert envelope.extra["text"] == "Long body text"
    assert envelope.extra["metrics"]["comments"] == 56
    assert envelope.extra["permalink"] == "https://www.reddit.com/r/pics/comments/abc123/look/"


def test_reddit_share_link_is_resolved_first() -> None:
    extractor = RedditExtractor()
    session = _FakeSession(
        _FakeResponse(_listing(POST)),
        resolved="https://www.reddit.com/r/pics/comments/abc123/look/?share_id=1",
    )
    extractor.session = session  # type: ignore[assignment]

    extractor.extract("https://www.reddit.com/r/pics/s/AbCdEf", ContentKind.REDDIT)

    assert session.heads == ["https://www.reddit.com/r/pics/s/AbCdEf"]
    assert session.calls[0]["url"] == "https://www.reddit.com/r/pics/comments/abc123/look.json"


def test_reddit_extractor_maps_errors() -> None:
    extractor = RedditExtractor()
    extractor.session = _FakeSession(_FakeResponse([], status_code=403))  # type: ignore[assignment]
    with pytest.raises(ExtractionError, match="HTTP 403"):
        extractor.extract("https://www.reddit.com/r/pics/comments/abc123/", ContentKind.REDDIT)

    extractor.session = _FakeSession(_FakeResponse({"kind": "Listing"}))  # type: ignore[assignment]
    with pytest.raises(ExtractionError, match="Unexpected Reddit listing"):
        extractor.extract("https://www.reddit.com/r/pics/comments/abc123/", ContentKind.REDDIT)

    assert extractor.supports(ContentKind.REDDIT)
    assert not extractor.supports(ContentKind.X)
