"""Turn URLs, shared payloads and notes into stored items."""

from __future__ import annotations

from typing import Any, Iterable

from loguru import logger

from linkstash.classifier import classify, normalized_host, parse_http_url
from linkstash.errors import NotFoundError, ValidationError
from linkstash.extraction import INVALID_URL_ERROR, MetadataOrchestrator
from linkstash.jobs import EnrichmentService
from linkstash.models import (
    ContentKind,
    Item,
    ItemMetadata,
    ItemTypeMetadata,
    MetadataEnvelope,
    SharedPayload,
)
from linkstash.store import LocalStore

NOTE_TITLE_LENGTH = 80


def item_from_envelope(envelope: MetadataEnvelope) -> Item:
    return Item(
        content_type=envelope.content_type,
        title=(envelope.title or envelope.url).strip(),
        desc=envelope.description,
        content=envelope.extra.get("content") or envelope.extra.get("text"),
        url=envelope.url,
        thumbnail_url=envelope.image,
    )


def type_metadata_from_envelope(item_id: str, envelope: MetadataEnvelope) -> ItemTypeMetadata | None:
    data: dict[str, Any] = {}
    if envelope.video_url:
        data["video_url"] = envelope.video_url
    if envelope.images:
        data["image_urls"] = list(envelope.images)
    if envelope.duration is not None:
        data["duration"] = envelope.duration
    if envelope.is_short:
        data["is_short"] = True
    for key in ("video_id", "tweet_id", "metrics", "quoted_tweet", "post_id", "subreddit"):
        if envelope.extra.get(key) is not None:
            data[key] = envelope.extra[key]
    if not data:
        return None
    return ItemTypeMetadata(item_id=item_id, content_type=envelope.content_type, data=data)


def item_metadata_from_envelope(item_id: str, envelope: MetadataEnvelope) -> ItemMetadata:
    return ItemMetadata(
        item_id=item_id,
        domain=normalized_host(envelope.url) or None,
        author=envelope.author,
        username=envelope.username,
        profile_image=envelope.profile_image,
        published_date=envelope.published_date,
        site_name=envelope.site_name,
        favicon=envelope.favicon,
    )


def _note_title(text: str) -> str:
    first_line = text.strip().splitlines()[0].strip()
    if len(first_line) <= NOTE_TITLE_LENGTH:
        return first_line
    return first_line[: NOTE_TITLE_LENGTH - 3].rstrip() + "..."


class IngestionService:
    """Creates items from user input, stores their side tables and kicks off enrichment."""

    def __init__(
        self,
        store: LocalStore,
        orchestrator: MetadataOrchestrator,
        *,
        enrichment: EnrichmentService | None = None,
        enrichment_settings: Any = None,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.enrichment = enrichment
        self.enrichment_settings = enrichment_settings

    def save_url(self, url: str, *, space_ids: Iterable[str] = (), auto_generate: bool = True) -> Item:
        """Extract metadata for ``url`` and store the result; malformed input becomes a note."""

        space_ids = self._known_spaces(space_ids)
        envelope = self.orchestrator.extract_metadata(url)
        if envelope.error == INVALID_URL_ERROR:
            return self.add_note(url, space_ids=space_ids)
        if envelope.error:
            logger.warning("Saving {} with partial metadata: {}", url, envelope.error)

        item = self.store.add_item(item_from_envelope(envelope))
        self._store_side_tables(item.id, envelope)
        self._assign_spaces(item.id, space_ids)
        logger.info("Saved {} item {} ({})", item.content_type.value, item.id, item.title)
        if auto_generate:
            self._auto_generate(item)
        return item

    def save_shared(self, payload: SharedPayload, *, space_ids: Iterable[str] = ()) -> Item:
        kind = classify(payload)
        url = parse_http_url(payload.url) or parse_http_url(payload.text)
        if url is not None:
            item = self.save_url(url, space_ids=space_ids)
            text = (payload.text or "").strip()
            if text and text != url:
                item = self.store.update_item(item.id, {"notes": text})
            return item

        if kind is ContentKind.IMAGE:
            return self._save_media(payload, kind, payload.images, space_ids)
        if kind is ContentKind.VIDEO:
            return self._save_media(payload, kind, payload.videos, space_ids)
        return self.add_note(payload.text or payload.url or "", space_ids=space_ids)

    def _save_media(
        self,
        payload: SharedPayload,
        kind: ContentKind,
        media: list[str],
        space_ids: Iterable[str],
    ) -> Item:
        text = (payload.text or "").strip()
        title = _note_title(text) if text else ("Shared image" if kind is ContentKind.IMAGE else "Shared video")
        item = self.store.add_item(
            Item(
                content_type=kind,
                title=title,
                desc=text or None,
                url=media[0],
                thumbnail_url=media[0] if kind is ContentKind.IMAGE else None,
            )
        )
        data: dict[str, Any] = {"image_urls": list(media)} if kind is ContentKind.IMAGE else {"video_url": media[0]}
        self.store.upsert_type_metadata(ItemTypeMetadata(item_id=item.id, content_type=kind, data=data))
        self._assign_spaces(item.id, space_ids)
        self._auto_generate(item)
        return item

    def add_note(self, text: str, *, title: str | None = None, space_ids: Iterable[str] = ()) -> Item:
        if not text or not text.strip():
            raise ValidationError("Note text must not be empty")
        item = self.store.add_item(
            Item(
                content_type=ContentKind.NOTE,
                title=(title or _note_title(text)).strip(),
                content=text,
                raw_text=text,
            )
        )
        self._assign_spaces(item.id, space_ids)
        logger.info("Saved note {}", item.id)
        self._auto_generate(item)
        return item

    def refresh_metadata(self, item_id: str) -> Item:
        """Re-run extraction for an item's URL and merge whatever came back."""

        item = self.store.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        if not item.url or parse_http_url(item.url) is None:
            raise ValidationError(f"Item {item_id} has no URL to refresh")

        envelope = self.orchestrator.extract_metadata(item.url)
        if envelope.error:
            logger.warning("Metadata refresh for {} failed: {}", item_id, envelope.error)
            return item

        changes: dict[str, Any] = {"content_type": envelope.content_type}
        if envelope.title:
            changes["title"] = envelope.title.strip()
        if envelope.description:
            changes["desc"] = envelope.description
        if envelope.image:
            changes["thumbnail_url"] = envelope.image
        content = envelope.extra.get("content")
        if content:
            changes["content"] = content
        updated = self.store.update_item(item_id, changes)
        self._store_side_tables(item_id, envelope)
        logger.info("Refreshed metadata for {}", item_id)
        return updated

    def _store_side_tables(self, item_id: str, envelope: MetadataEnvelope) -> None:
        type_metadata = type_metadata_from_envelope(item_id, envelope)
        if type_metadata is not None:
            self.store.upsert_type_metadata(type_metadata)
        self.store.upsert_item_metadata(item_metadata_from_envelope(item_id, envelope))

    def _known_spaces(self, space_ids: Iterable[str]) -> list[str]:
        space_ids = list(space_ids)
        for space_id in space_ids:
            if self.store.get_space(space_id) is None:
                raise NotFoundError(f"Space {space_id} not found")
        return space_ids

    def _assign_spaces(self, item_id: str, space_ids: Iterable[str]) -> None:
        for space_id in space_ids:
            self.store.add_item_to_space(item_id, space_id)

    def _auto_generate(self, item: Item) -> None:
        if self.enrichment is None or self.enrichment_settings is None:
            return
        self.enrichment.auto_generate(item, self.enrichment_settings)


__all__ = [
    "IngestionService",
    "item_from_envelope",
    "item_metadata_from_envelope",
    "type_metadata_from_envelope",
]
