"""YouTube metadata extraction backed by yt-dlp."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yt_dlp
from loguru import logger

from linkstash.classifier import extract_youtube_video_id, is_youtube_short_url
from linkstash.errors import ExtractionError
from linkstash.models import ContentKind, MetadataEnvelope

SHORT_MAX_SECONDS = 60


def fetch_video_info(url: str, options: dict[str, Any]) -> dict[str, Any]:
    with yt_dlp.YoutubeDL(options) as ydl:
        info = ydl.extract_info(url, download=False)
    return ydl.sanitize_info(info) if info else {}


def canonical_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def looks_like_short(info: dict[str, Any]) -> bool:
    """Vertical videos of a minute or less are treated as shorts."""

    duration = info.get("duration")
    width, height = info.get("width"), info.get("height")
    if not duration or duration > SHORT_MAX_SECONDS:
        return False
    return bool(width and height and height > width)


def _best_thumbnail(info: dict[str, Any], video_id: str) -> str:
    thumbnail = info.get("thumbnail")
    if thumbnail:
        return thumbnail
    candidates = [thumb for thumb in info.get("thumbnails") or [] if thumb.get("url")]
    if candidates:
        best = max(candidates, key=lambda thumb: (thumb.get("preference") or 0, thumb.get("width") or 0))
        return best["url"]
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


@dataclass(slots=True)
class YouTubeExtractor:
    socket_timeout: float = 15.0
    name: str = "youtube"

    def supports(self, kind: ContentKind) -> bool:
        return kind in {ContentKind.YOUTUBE, ContentKind.YOUTUBE_SHORT}

    def extract(self, url: str, kind: ContentKind) -> MetadataEnvelope:
        video_id = extract_youtube_video_id(url)
        if video_id is None:
            raise ExtractionError("Could not extract a YouTube video id", extractor=self.name)

        options = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
            "socket_timeout": self.socket_timeout,
        }
        try:
            info = fetch_video_info(canonical_watch_url(video_id), options)
        except yt_dlp.utils.DownloadError as exc:
            raise ExtractionError(f"yt-dlp could not read video {video_id}: {exc}", extractor=self.name) from exc
        except Exception as exc:  # yt-dlp surfaces many extractor-specific errors
            raise ExtractionError(f"yt-dlp failed for video {video_id}: {exc}", extractor=self.name) from exc

        if not info:
            raise ExtractionError(f"No metadata returned for video {video_id}", extractor=self.name)

        is_short = is_youtube_short_url(url) or looks_like_short(info)
        logger.debug("YouTube video {} short={}", video_id, is_short)
        upload_date = info.get("upload_date")
        published = f"{upload_date[:4]}-{upload_date[4:6]}-{upload_date[6:8]}" if upload_date else None
        channel = info.get("channel") or info.get("uploader")
        handle = info.get("uploader_id")

        return MetadataEnvelope(
            url=url,
            content_type=ContentKind.YOUTUBE_SHORT if is_short else ContentKind.YOUTUBE,
            title=info.get("title"),
            description=info.get("description"),
            image=_best_thumbnail(info, video_id),
            video_url=canonical_watch_url(video_id),
            site_name="YouTube",
            author=channel,
            username=handle.lstrip("@") if isinstance(handle, str) else None,
            published_date=published,
            duration=info.get("duration"),
            is_short=is_short,
            extractor=self.name,
            extra={"video_id": video_id, "view_count": info.get("view_count")},
        )


__all__ = ["YouTubeExtractor", "canonical_watch_url", "fetch_video_info", "looks_like_short"]
