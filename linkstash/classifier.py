"""Pure URL and shared-payload classification."""

from __future__ import annotations

import re
from typing import Callable
from urllib.parse import parse_qs, urlsplit

from linkstash.models import ContentKind, SharedPayload

_YOUTUBE_HOSTS = {"youtube.com", "youtu.be", "youtube-nocookie.com", "music.youtube.com"}
_X_HOSTS = {"x.com", "twitter.com"}
_AMAZON_SHORT_HOSTS = {"amzn.to", "amzn.eu", "a.co"}
_PODCAST_HOSTS = {"podcasts.apple.com", "overcast.fm", "pca.st", "podcasts.google.com"}

_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "svg", "heic", "bmp"}
_VIDEO_EXTENSIONS = {"mp4", "mov", "webm", "m4v", "mkv"}
_AUDIO_EXTENSIONS = {"mp3", "m4a", "wav", "ogg", "flac", "aac"}

_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_TWEET_PATH = re.compile(r"/(?:[^/]+/)?status(?:es)?/(\d+)")


def parse_http_url(text: str | None) -> str | None:
    """Return ``text`` stripped when it is an absolute http(s) URL with a host."""

    if not text:
        return None
    candidate = text.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return None
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None
    if parts.scheme.lower() not in {"http", "https"} or not parts.hostname:
        return None
    return candidate


def normalized_host(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    for prefix in ("www.", "m.", "mobile."):
        if host.startswith(prefix):
            host = host[len(prefix):]
            break
    return host


def _host_matches(host: str, domains: set[str] | tuple[str, ...]) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in domains)


def _extension(path: str) -> str:
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return ""
    return last.rsplit(".", 1)[-1].lower()


def _is_amazon(host: str) -> bool:
    if host in _AMAZON_SHORT_HOSTS:
        return True
    labels = host.split(".")
    return "amazon" in labels[:-1]


def _is_spotify_podcast(host: str, path: str) -> bool:
    return host == "open.spotify.com" and (path.startswith("/episode/") or path.startswith("/show/"))


# First matching signature wins; order matters (shorts before youtube, imdb before extensions).
_Signature = Callable[[str, str], bool]
_SIGNATURES: list[tuple[_Signature, ContentKind]] = [
    (lambda host, path: _host_matches(host, _YOUTUBE_HOSTS) and path.startswith("/shorts/"), ContentKind.YOUTUBE_SHORT),
    (lambda host, path: _host_matches(host, _YOUTUBE_HOSTS), ContentKind.YOUTUBE),
    (lambda host, path: host in _X_HOSTS, ContentKind.X),
    (lambda host, path: _host_matches(host, ("instagram.com", "instagr.am")), ContentKind.INSTAGRAM),
    (lambda host, path: _host_matches(host, ("tiktok.com",)), ContentKind.TIKTOK),
    (lambda host, path: _host_matches(host, ("reddit.com", "redd.it")), ContentKind.REDDIT),
    (lambda host, path: _host_matches(host, ("facebook.com", "fb.com", "fb.watch")), ContentKind.FACEBOOK),
    (lambda host, path: _host_matches(host, ("threads.net", "threads.com")), ContentKind.THREADS),
    (lambda host, path: _host_matches(host, ("linkedin.com", "lnkd.in")), ContentKind.LINKEDIN),
    (lambda host, path: host == "github.com", ContentKind.GITHUB),
    (lambda host, path: _host_matches(host, ("imdb.com",)) and path.startswith("/title/"), ContentKind.MOVIE),
    (lambda host, path: host in _PODCAST_HOSTS or _is_spotify_podcast(host, path), ContentKind.PODCAST),
    (lambda host, path: _is_amazon(host) or _host_matches(host, ("ebay.com",)), ContentKind.PRODUCT),
    (lambda host, path: _host_matches(host, ("medium.com", "substack.com")), ContentKind.ARTICLE),
    (lambda host, path: _host_matches(host, ("vimeo.com", "dailymotion.com")), ContentKind.VIDEO),
    (lambda host, path: _extension(path) in _IMAGE_EXTENSIONS, ContentKind.IMAGE),
    (lambda host, path: _extension(path) in _VIDEO_EXTENSIONS, ContentKind.VIDEO),
    (lambda host, path: _extension(path) in _AUDIO_EXTENSIONS, ContentKind.AUDIO),
    (lambda host, path: _extension(path) == "pdf", ContentKind.PDF),
]


def classify_url(url: str) -> ContentKind:
    """Classify an already validated http(s) URL."""

    host = normalized_host(url)
    path = urlsplit(url).path or "/"
    for matches, kind in _SIGNATURES:
        if matches(host, path):
            return kind
    return ContentKind.BOOKMARK


def classify(payload: SharedPayload | str | None) -> ContentKind:
    """Map a URL string or shared payload onto a :class:`ContentKind`.

    Malformed input never raises; it is treated as a note.
    """

    if payload is None:
        return ContentKind.NOTE
    if isinstance(payload, str):
        payload = SharedPayload(text=payload)

    url = parse_http_url(payload.url) or parse_http_url(payload.text)
    if url is not None:
        return classify_url(url)
    if payload.images:
        return ContentKind.IMAGE
    if payload.videos:
        return ContentKind.VIDEO
    return ContentKind.NOTE


def extract_youtube_video_id(url: str) -> str | None:
    """Return the 11-character video id for watch, youtu.be, embed, shorts and live URLs."""

    parsed = parse_http_url(url)
    if parsed is None:
        return None
    parts = urlsplit(parsed)
    host = normalized_host(parsed)
    if not _host_matches(host, _YOUTUBE_HOSTS):
        return None

    candidate: str | None = None
    segments = [segment for segment in parts.path.split("/") if segment]
    if host == "youtu.be":
        candidate = segments[0] if segments else None
    elif segments and segments[0] == "watch":
        candidate = (parse_qs(parts.query).get("v") or [None])[0]
    elif len(segments) >= 2 and segments[0] in {"embed", "shorts", "live", "v", "e"}:
        candidate = segments[1]
    else:
        candidate = (parse_qs(parts.query).get("v") or [None])[0]

    if candidate and _VIDEO_ID.match(candidate):
        return candidate
    return None


def is_youtube_short_url(url: str) -> bool:
    return "/shorts/" in (urlsplit(url).path or "")


def extract_tweet_id(url: str) -> str | None:
    parsed = parse_http_url(url)
    if parsed is None or normalized_host(parsed) not in _X_HOSTS:
        return None
    match = _TWEET_PATH.search(urlsplit(parsed).path)
    return match.group(1) if match else None


__all__ = [
    "classify",
    "classify_url",
    "extract_tweet_id",
    "extract_youtube_video_id",
    "is_youtube_short_url",
    "normalized_host",
    "parse_http_url",
]
