"""X (Twitter) API v2 extractor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests
from loguru import logger

from linkstash.classifier import extract_tweet_id
from linkstash.errors import ExtractionError
from linkstash.models import ContentKind, MetadataEnvelope

from .base import build_session, get_json

SITE_NAME = "X (Twitter)"

TWEET_PARAMS = {
    "tweet.fields": "created_at,public_metrics,attachments,referenced_tweets,author_id,entities",
    "expansions": "author_id,attachments.media_keys,referenced_tweets.id,referenced_tweets.id.author_id",
    "user.fields": "name,username,profile_image_url,verified",
    "media.fields": "url,preview_image_url,type,variants,width,height,duration_ms",
}


def select_video_variant(media: dict[str, Any]) -> str | None:
    """Pick the highest bit-rate mp4 variant; ties keep source order.

    Falls back to the first variant carrying a URL, then to the media URL itself.
    """

    variants = [variant for variant in media.get("variants") or [] if variant.get("url")]
    best: dict[str, Any] | None = None
    for variant in variants:
        if variant.get("content_type") != "video/mp4":
            continue
        if best is None or (variant.get("bit_rate") or 0) > (best.get("bit_rate") or 0):
            best = variant
    if best is not None:
        return best["url"]
    if variants:
        return variants[0]["url"]
    return media.get("url")


def format_metrics(metrics: dict[str, Any]) -> str:
    return (
        f"❤️ {metrics.get('like_count', 0):,} · "
        f"🔄 {metrics.get('retweet_count', 0):,} · "
        f"💬 {metrics.get('reply_count', 0):,}"
    )


def format_age(created_at: str | None, *, now: datetime | None = None) -> str:
    if not created_at:
        return ""
    try:
        created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return ""
    now = now or datetime.now(timezone.utc)
    seconds = max(0, int((now - created).total_seconds()))
    if seconds < 3600:
        return f"{max(1, seconds // 60)}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    if seconds < 7 * 86400:
        return f"{seconds // 86400}d"
    return f"{created:%b} {created.day}, {created.year}"


def build_title(username: str, text: str) -> str:
    suffix = "..." if len(text) > 50 else ""
    return f"@{username}: {text[:50]}{suffix}"


@dataclass(slots=True)
class XExtractor:
    bearer_token: str | None
    base_url: str = "https://api.twitter.com/2"
    timeout: float = 20.0
    user_agent: str = "linkstash/0.1"
    name: str = "x"
    session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.session = build_session(self.user_agent)

    def supports(self, kind: ContentKind) -> bool:
        return kind is ContentKind.X

    def fetch_tweet(self, tweet_id: str) -> dict[str, Any]:
        if not self.bearer_token:
            raise ExtractionError("X bearer token is not configured", extractor=self.name)
        payload = get_json(
            self.session,
            f"{self.base_url.rstrip('/')}/tweets/{tweet_id}",
            extractor=self.name,
            timeout=self.timeout,
            params=TWEET_PARAMS,
            headers={"Authorization": f"Bearer {self.bearer_token}"},
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            detail = ""
            errors = payload.get("errors") if isinstance(payload, dict) else None
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                detail = f": {errors[0].get('detail', '')}"
            raise ExtractionError(f"Tweet {tweet_id} not found{detail}", extractor=self.name)
        return payload

    def extract(self, url: str, kind: ContentKind) -> MetadataEnvelope:
        tweet_id = extract_tweet_id(url)
        if tweet_id is None:
            raise ExtractionError("Invalid X URL: could not extract tweet id", extractor=self.name)

        payload = self.fetch_tweet(tweet_id)
        try:
            return self._to_envelope(url, payload)
        except (KeyError, TypeError, AttributeError) as exc:
            raise ExtractionError(f"Unexpected tweet payload: {exc}", extractor=self.name) from exc

    def _to_envelope(self, url: str, payload: dict[str, Any]) -> MetadataEnvelope:
        tweet = payload["data"]
        includes = payload.get("includes") or {}
        users = {user["id"]: user for user in includes.get("users") or []}
        media_by_key = {media["media_key"]: media for media in includes.get("media") or []}
        tweets = {item["id"]: item for item in includes.get("tweets") or []}

        author = users.get(tweet.get("author_id"), {})
        username = author.get("username") or "unknown"
        text = tweet.get("text", "")
        metrics = tweet.get("public_metrics") or {}

        media = [
            media_by_key[key]
            for key in (tweet.get("attachments") or {}).get("media_keys") or []
            if key in media_by_key
        ]
        photos = [item["url"] for item in media if item.get("type") == "photo" and item.get("url")]
        video = next((item for item in media if item.get("type") in {"video", "animated_gif"}), None)
        video_url = select_video_variant(video) if video else None

        quoted = None
        for reference in tweet.get("referenced_tweets") or []:
            if reference.get("type") == "quoted" and reference.get("id") in tweets:
                quoted_tweet = tweets[reference["id"]]
                quoted_author = users.get(quoted_tweet.get("author_id"), {})
                quoted = {
                    "id": quoted_tweet["id"],
                    "text": quoted_tweet.get("text", ""),
                    "author": quoted_author.get("username") or "unknown",
                }
                break

        description = text
        if quoted:
            description += f"\n\nQuoted @{quoted['author']}: \"{quoted['text']}\""
        age = format_age(tweet.get("created_at"))
        description += f"\n\n{format_metrics(metrics)}" + (f" · {age}" if age else "")

        profile_image = author.get("profile_image_url")
        image = (video or {}).get("preview_image_url") or (photos[0] if photos else profile_image)
        if video and not video_url:
            logger.warning("Tweet {} has video media without a playable variant", tweet["id"])

        return MetadataEnvelope(
            url=url,
            content_type=ContentKind.X,
            title=build_title(username, text),
            description=description,
            image=image,
            images=photos,
            video_url=video_url,
            site_name=SITE_NAME,
            author=f"{author.get('name', username)} (@{username})",
            username=username,
            profile_image=profile_image,
            published_date=tweet.get("created_at"),
            extractor=self.name,
            extra={
                "tweet_id": tweet["id"],
                "text": text,
                "metrics": {
                    "likes": metrics.get("like_count", 0),
                    "retweets": metrics.get("retweet_count", 0),
                    "replies": metrics.get("reply_count", 0),
                    "views": metrics.get("impression_count", 0),
                },
                "quoted_tweet": quoted,
            },
        )


__all__ = ["XExtractor", "build_title", "format_age", "format_metrics", "select_video_variant"]
