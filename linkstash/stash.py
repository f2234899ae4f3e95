"""Application facade wiring storage, sync, extraction and enrichment together."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

from loguru import logger

from linkstash.classifier import classify
from linkstash.config import AppConfig
from linkstash.errors import SyncError
from linkstash.extraction import MetadataOrchestrator
from linkstash.ingestion import IngestionService
from linkstash.jobs import EnrichmentService, JobTracker, ProgressStream, ProgressUpdate
from linkstash.models import (
    ContentKind,
    ImageDescription,
    Item,
    ItemSpace,
    JobKind,
    MetadataEnvelope,
    SharedPayload,
    Space,
    VideoTranscript,
)
from linkstash.store import JsonSnapshotStorage, LocalStore
from linkstash.sync import FlushReport, SyncEngine, SyncStatus, create_remote_store, create_sync_engine
from linkstash.sync.remote import RemoteStore


class Stash:
    """Entry point for every core operation.

    Local writes return as soon as they are durable on disk; remote
    propagation happens through the sync engine, either on demand via
    :meth:`sync_now` or in the background after :meth:`start_background_sync`.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        store: LocalStore | None = None,
        remote: RemoteStore | None = None,
        orchestrator: MetadataOrchestrator | None = None,
        enrichment: EnrichmentService | None = None,
    ) -> None:
        self.config = config
        self.store = store or LocalStore(JsonSnapshotStorage(config.snapshot_dir))
        self.remote = remote or create_remote_store(config.sync, data_root=config.data_root)
        self.sync: SyncEngine = create_sync_engine(
            self.store,
            config.sync,
            self.remote,
            outbox_dir=config.resolve_path(Path("sync")),
        )
        self.orchestrator = orchestrator or MetadataOrchestrator.from_config(config.extraction)
        self.tracker = enrichment.tracker if enrichment is not None else JobTracker()
        self.enrichment = enrichment or EnrichmentService.from_config(
            self.store,
            config,
            tracker=self.tracker,
            updater=self.update_item_with_sync,
        )
        self.ingestion = IngestionService(
            self.store,
            self.orchestrator,
            enrichment=self.enrichment,
            enrichment_settings=config.enrichment,
        )
        logger.debug("Stash ready at {} (sync backend {})", config.data_root, config.sync.backend)

    # ------------------------------------------------------------------
    # Classification and extraction
    @staticmethod
    def classify(payload: SharedPayload | str | None) -> ContentKind:
        return classify(payload)

    def extract_metadata(self, url: str) -> MetadataEnvelope:
        return self.orchestrator.extract_metadata(url)

    # ------------------------------------------------------------------
    # Items
    def save_url(self, url: str, *, space_ids: Iterable[str] = (), auto_generate: bool = True) -> Item:
        return self.ingestion.save_url(url, space_ids=space_ids, auto_generate=auto_generate)

    def save_shared(self, payload: SharedPayload, *, space_ids: Iterable[str] = ()) -> Item:
        return self.ingestion.save_shared(payload, space_ids=space_ids)

    def add_note(self, text: str, *, title: str | None = None, space_ids: Iterable[str] = ()) -> Item:
        return self.ingestion.add_note(text, title=title, space_ids=space_ids)

    def refresh_metadata(self, item_id: str) -> Item:
        return self.ingestion.refresh_metadata(item_id)

    def get_item(self, item_id: str) -> Item | None:
        return self.store.get_item(item_id)

    def list_items(self, **filters: Any) -> list[Item]:
        return self.store.list_items(**filters)

    def update_item_with_sync(self, item_id: str, changes: dict[str, Any]) -> Item:
        """Merge ``changes`` locally (tags deduped, ``updated_at`` stamped) and queue the remote upsert."""

        return self.store.update_item(item_id, changes)

    def delete_item_with_sync(self, item_id: str) -> bool:
        """Delete an item with its memberships and artefacts, queueing remote deletes for each."""

        return self.store.delete_item(item_id)

    # ------------------------------------------------------------------
    # Spaces
    def create_space(self, name: str, *, color: str | None = None, description: str | None = None) -> Space:
        space = Space(name=name.strip(), description=description)
        if color:
            space.color = color
        return self.store.add_space(space)

    def list_spaces(self) -> list[Space]:
        return self.store.list_spaces()

    def update_space(self, space_id: str, changes: dict[str, Any]) -> Space:
        return self.store.update_space(space_id, changes)

    def delete_space(self, space_id: str) -> bool:
        return self.store.delete_space(space_id)

    def add_item_to_space(self, item_id: str, space_id: str) -> ItemSpace:
        return self.store.add_item_to_space(item_id, space_id)

    def remove_item_from_space(self, item_id: str, space_id: str) -> bool:
        return self.store.remove_item_from_space(item_id, space_id)

    def set_item_spaces(self, item_id: str, space_ids: Iterable[str]) -> list[str]:
        return self.store.set_item_spaces(item_id, space_ids)

    # ------------------------------------------------------------------
    # Artefacts and jobs
    def set_generating(self, kind: JobKind, item_id: str, flag: bool) -> None:
        self.tracker.set_generating(kind, item_id, flag)

    def is_generating(self, kind: JobKind, item_id: str) -> bool:
        return self.tracker.is_generating(kind, item_id)

    def get_transcript(self, item_id: str) -> VideoTranscript | None:
        return self.store.get_transcript(item_id)

    def remove_transcript(self, item_id: str) -> bool:
        return self.store.remove_transcript(item_id)

    def get_image_descriptions(self, item_id: str) -> list[ImageDescription]:
        return self.store.get_image_descriptions(item_id)

    def remove_image_description(self, item_id: str, image_url: str) -> bool:
        return self.store.remove_image_description(item_id, image_url)

    def start_transcript(
        self,
        item_id: str,
        *,
        on_progress: Callable[[ProgressUpdate], None] | None = None,
    ) -> ProgressStream[VideoTranscript]:
        return self.enrichment.start_transcript(item_id, on_progress=on_progress)

    def generate_transcript(
        self,
        item_id: str,
        *,
        on_progress: Callable[[ProgressUpdate], None] | None = None,
        timeout: float | None = None,
    ) -> VideoTranscript:
        return self.enrichment.generate_transcript(item_id, on_progress=on_progress, timeout=timeout)

    def generate_image_descriptions(self, item_id: str) -> list[ImageDescription]:
        return self.enrichment.generate_image_descriptions(item_id)

    def generate_tags(self, item_id: str) -> list[str]:
        return self.enrichment.generate_tags(item_id)

    def generate_tldr(self, item_id: str) -> str:
        return self.enrichment.generate_tldr(item_id)

    # ------------------------------------------------------------------
    # Sync
    def sync_now(self, *, pull: bool = False) -> FlushReport:
        if pull:
            try:
                self.sync.pull()
            except SyncError as exc:
                logger.warning("Remote pull failed: {}", exc)
        return self.sync.flush()

    def sync_status(self) -> SyncStatus:
        return self.sync.status()

    def start_background_sync(self) -> None:
        self.sync.start()

    def close(self) -> None:
        """Wait for running jobs, then stop the sync worker after a final flush."""

        self.enrichment.close()
        self.sync.stop(drain=self.config.sync.enabled)
        self.sync.detach()


__all__ = ["Stash"]
