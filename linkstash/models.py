"""Data models shared by the store, extractors, sync engine and jobs."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

RecordT = TypeVar("RecordT", bound="Record")


class ContentKind(str, Enum):
    """Kinds of saved content."""

    NOTE = "note"
    BOOKMARK = "bookmark"
    X = "x"
    YOUTUBE = "youtube"
    YOUTUBE_SHORT = "youtube_short"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    REDDIT = "reddit"
    FACEBOOK = "facebook"
    THREADS = "threads"
    LINKEDIN = "linkedin"
    ARTICLE = "article"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PODCAST = "podcast"
    PDF = "pdf"
    PRODUCT = "product"
    GITHUB = "github"
    MOVIE = "movie"
    TV_SHOW = "tv_show"
    BOOK = "book"
    COURSE = "course"

    @classmethod
    def coerce(cls, value: Any) -> "ContentKind":
        """Map stored or remote values onto a kind, degrading unknown ones to ``bookmark``."""

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.BOOKMARK


class JobKind(str, Enum):
    TRANSCRIPT = "transcript"
    IMAGE_DESCRIPTION = "image_description"
    TAGS = "tags"
    TLDR = "tldr"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class Record:
    """Mixin giving dataclass records a JSON-friendly round trip."""

    __slots__ = ()

    def to_record(self) -> dict[str, Any]:
        data = asdict(self)  # type: ignore[call-overload]
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data

    @classmethod
    def from_record(cls: type[RecordT], data: dict[str, Any]) -> RecordT:
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(slots=True)
class Item(Record):
    """A saved piece of content."""

    id: str = field(default_factory=new_id)
    content_type: ContentKind = ContentKind.BOOKMARK
    title: str = ""
    desc: str | None = None
    content: str | None = None
    raw_text: str | None = None
    tags: list[str] = field(default_factory=list)
    url: str | None = None
    thumbnail_url: str | None = None
    tldr: str | None = None
    notes: str | None = None
    is_archived: bool = False
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.content_type = ContentKind.coerce(self.content_type)
        self.tags = dedupe_tags(self.tags)


@dataclass(slots=True)
class Space(Record):
    """A user-defined collection of items."""

    name: str
    id: str = field(default_factory=new_id)
    color: str = "#007AFF"
    description: str | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass(slots=True)
class ItemSpace(Record):
    """Join row assigning an item to a space."""

    item_id: str
    space_id: str
    created_at: str = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return f"{self.item_id}:{self.space_id}"


@dataclass(slots=True)
class ItemTypeMetadata(Record):
    """Type-specific side data such as ``video_url`` and ``image_urls``."""

    item_id: str
    content_type: ContentKind = ContentKind.BOOKMARK
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.content_type = ContentKind.coerce(self.content_type)

    @property
    def video_url(self) -> str | None:
        return self.data.get("video_url")

    @property
    def image_urls(self) -> list[str]:
        return list(self.data.get("image_urls") or [])


@dataclass(slots=True)
class ItemMetadata(Record):
    """Source attribution captured during extraction."""

    item_id: str
    domain: str | None = None
    author: str | None = None
    username: str | None = None
    profile_image: str | None = None
    published_date: str | None = None
    site_name: str | None = None
    favicon: str | None = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass(slots=True)
class VideoTranscript(Record):
    """Transcript for a video item; one per item."""

    item_id: str
    transcript: str
    platform: str
    language: str | None = None
    duration: float | None = None
    id: str = field(default_factory=new_id)
    fetched_at: str = field(default_factory=utc_now)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass(slots=True)
class ImageDescription(Record):
    """Vision-model description of one image belonging to an item."""

    item_id: str
    image_url: str
    description: str
    model: str | None = None
    id: str = field(default_factory=new_id)
    fetched_at: str = field(default_factory=utc_now)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return image_description_key(self.item_id, self.image_url)


@dataclass(slots=True)
class SharedPayload:
    """Content handed over by a share action: any mix of URL, text, images and videos."""

    url: str | None = None
    text: str | None = None
    images: list[str] = field(default_factory=list)
    videos: list[str] = field(default_factory=list)


@dataclass(slots=True)
class MetadataEnvelope:
    """Normalized metadata returned by every extractor."""

    url: str
    content_type: ContentKind
    title: str | None = None
    description: str | None = None
    image: str | None = None
    images: list[str] = field(default_factory=list)
    video_url: str | None = None
    site_name: str | None = None
    favicon: str | None = None
    author: str | None = None
    username: str | None = None
    profile_image: str | None = None
    published_date: str | None = None
    duration: float | None = None
    is_short: bool = False
    extractor: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["content_type"] = self.content_type.value
        return data


def dedupe_tags(tags: list[str] | None) -> list[str]:
    """Drop blanks and repeated tags while keeping first-seen order (case-sensitive)."""

    seen: set[str] = set()
    result: list[str] = []
    for tag in tags or []:
        cleaned = str(tag).strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def image_description_key(item_id: str, image_url: str) -> str:
    return f"{item_id}|{image_url}"


__all__ = [
    "ContentKind",
    "ImageDescription",
    "Item",
    "ItemMetadata",
    "ItemSpace",
    "ItemTypeMetadata",
    "JobKind",
    "MetadataEnvelope",
    "Record",
    "SharedPayload",
    "Space",
    "VideoTranscript",
    "dedupe_tags",
    "image_description_key",
    "is_uuid",
    "new_id",
    "utc_now",
]
