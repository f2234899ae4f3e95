"""Reddit extractor built on the public ``.json`` post endpoint."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import requests
from loguru import logger

from linkstash.errors import ExtractionError
from linkstash.models import ContentKind, MetadataEnvelope

from .base import build_session, get_json

SITE_NAME = "Reddit"

_PLACEHOLDER_THUMBNAILS = {"self", "default", "nsfw", "spoiler", "image", ""}
_IMAGE_URL = re.compile(r"\.(jpe?g|png|gif|webp)$", re.IGNORECASE)


def json_endpoint(url: str) -> str:
    """``https://www.reddit.com/r/x/comments/id/slug/?utm=..`` -> ``.../slug.json`` without the query."""

    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    return f"{parts.scheme}://{parts.netloc}{path}.json"


def needs_redirect(url: str) -> bool:
    """Share links (``/s/<token>``) and ``redd.it`` short links only resolve through a redirect."""

    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    return host == "redd.it" or host.endswith(".redd.it") or "/s/" in parts.path


def post_images(post: dict[str, Any]) -> list[str]:
    """Gallery images in gallery order, else the preview source, else a direct image link."""

    images: list[str] = []
    if post.get("is_gallery") and post.get("gallery_data") and post.get("media_metadata"):
        media = post["media_metadata"]
        for entry in post["gallery_data"].get("items") or []:
            source = (media.get(entry.get("media_id")) or {}).get("s") or {}
            image_url = source.get("u") or source.get("gif")
            if image_url:
                images.append(html.unescape(image_url))
    elif (post.get("preview") or {}).get("images"):
        source = post["preview"]["images"][0].get("source") or {}
        if source.get("url"):
            images.append(html.unescape(source["url"]))
    elif post.get("url") and _IMAGE_URL.search(post["url"]):
        images.append(post["url"])
    return images


def post_video(post: dict[str, Any]) -> tuple[str | None, float | None]:
    """Reddit-hosted video (own or first crosspost) as ``(fallback_url, duration)``."""

    for candidate in [post, *(post.get("crosspost_parent_list") or [])[:1]]:
        if not candidate.get("is_video"):
            continue
        video = (candidate.get("secure_media") or candidate.get("media") or {}).get("reddit_video") or {}
        if video.get("fallback_url"):
            return video["fallback_url"], video.get("duration")
    if post.get("post_hint") == "hosted:video" and post.get("url"):
        return post["url"], None
    return None, None


def format_score(post: dict[str, Any]) -> str:
    return f"⬆️ {post.get('ups', 0):,} · 💬 {post.get('num_comments', 0):,}"


@dataclass(slots=True)
class RedditExtractor:
    timeout: float = 20.0
    user_agent: str = "linkstash/0.1"
    name: str = "reddit"
    session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.session = build_session(self.user_agent)

    def supports(self, kind: ContentKind) -> bool:
        return kind is ContentKind.REDDIT

    def resolve(self, url: str) -> str:
        if not needs_redirect(url):
            return url
        try:
            response = self.session.head(url, allow_redirects=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ExtractionError(f"Could not resolve Reddit link: {exc}", extractor=self.name) from exc
        logger.debug("Resolved Reddit link {} to {}", url, response.url)
        return response.url or url

    def fetch_post(self, url: str) -> dict[str, Any]:
        payload = get_json(
            self.session,
            json_endpoint(url),
            extractor=self.name,
            timeout=self.timeout,
            params={"raw_json": 1},
            headers={"Accept": "application/json"},
        )
        try:
            post = payload[0]["data"]["children"][0]["data"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ExtractionError("Unexpected Reddit listing payload", extractor=self.name) from exc
        if not isinstance(post, dict):
            raise ExtractionError("Unexpected Reddit listing payload", extractor=self.name)
        return post

    def extract(self, url: str, kind: ContentKind) -> MetadataEnvelope:
        post = self.fetch_post(self.resolve(url))
        try:
            return self._to_envelope(url, post)
        except (KeyError, TypeError, AttributeError) as exc:
            raise ExtractionError(f"Unexpected Reddit post payload: {exc}", extractor=self.name) from exc

    def _to_envelope(self, url: str, post: dict[str, Any]) -> MetadataEnvelope:
        images = post_images(post)
        video_url, duration = post_video(post)
        thumbnail = post.get("thumbnail") or ""
        if thumbnail in _PLACEHOLDER_THUMBNAILS or not thumbnail.startswith("http"):
            thumbnail = images[0] if images else None

        subreddit = post.get("subreddit") or "unknown"
        author = post.get("author") or "unknown"
        selftext = post.get("selftext") or None
        description = "\n\n".join(part for part in (selftext, f"r/{subreddit} · {format_score(post)}") if part)

        created = post.get("created_utc")
        published = datetime.fromtimestamp(created, tz=timezone.utc).isoformat() if created else None
        permalink = post.get("permalink")

        return MetadataEnvelope(
            url=url,
            content_type=ContentKind.REDDIT,
            title=post.get("title") or "Reddit Post",
            description=description,
            image=thumbnail,
            images=images,
            video_url=video_url,
            site_name=SITE_NAME,
            author=f"u/{author}",
            username=author,
            published_date=published,
            duration=float(duration) if duration else None,
            extractor=self.name,
            extra={
                "post_id": post.get("id"),
                "subreddit": subreddit,
                "permalink": f"https://www.reddit.com{permalink}" if permalink else None,
                "text": selftext,
                "flair": post.get("link_flair_text"),
                "over_18": bool(post.get("over_18")),
                "spoiler": bool(post.get("spoiler")),
                "metrics": {
                    "upvotes": post.get("ups", 0),
                    "comments": post.get("num_comments", 0),
                    "upvote_ratio": post.get("upvote_ratio", 0),
                    "crossposts": post.get("num_crossposts", 0),
                },
            },
        )


__all__ = ["RedditExtractor", "json_endpoint", "needs_redirect", "post_images", "post_video"]
