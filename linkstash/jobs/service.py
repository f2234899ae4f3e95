"""Background enrichment jobs writing their results back through the store."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from loguru import logger

from linkstash.config import AppConfig
from linkstash.errors import GenerationError, JobAlreadyRunningError, NotFoundError
from linkstash.models import (
    ContentKind,
    ImageDescription,
    Item,
    JobKind,
    VideoTranscript,
    dedupe_tags,
)
from linkstash.store.local import LocalStore

from .llm import LLMClient, build_client
from .progress import ProgressStream, ProgressUpdate
from .tracker import JobTracker
from .transcripts import AssemblyAITranscriber, TranscriptResult, YouTubeCaptionFetcher

ItemUpdater = Callable[[str, dict[str, Any]], Item]

_VIDEO_KINDS = {ContentKind.YOUTUBE, ContentKind.YOUTUBE_SHORT}


class EnrichmentService:
    """Enrichment jobs guarded by per-item generating flags."""

    def __init__(
        self,
        store: LocalStore,
        tracker: JobTracker | None = None,
        *,
        caption_fetcher: YouTubeCaptionFetcher | None = None,
        transcriber: AssemblyAITranscriber | None = None,
        vision: LLMClient | None = None,
        tagger: LLMClient | None = None,
        summarizer: LLMClient | None = None,
        updater: ItemUpdater | None = None,
        max_workers: int = 2,
    ) -> None:
        self.store = store
        self.tracker = tracker or JobTracker()
        self.caption_fetcher = caption_fetcher or YouTubeCaptionFetcher()
        self.transcriber = transcriber
        self.vision = vision
        self.tagger = tagger
        self.summarizer = summarizer
        self.updater = updater or store.update_item
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="linkstash-job")

    @classmethod
    def from_config(
        cls,
        store: LocalStore,
        config: AppConfig,
        *,
        tracker: JobTracker | None = None,
        updater: ItemUpdater | None = None,
    ) -> "EnrichmentService":
        enrichment = config.enrichment
        vision_cfg = config.get_llm(enrichment.vision_model)
        tag_cfg = config.get_llm(enrichment.tag_model)
        tldr_cfg = config.get_llm(enrichment.tldr_model or enrichment.tag_model)
        transcriber = AssemblyAITranscriber(enrichment.assemblyai) if enrichment.assemblyai.api_key else None
        return cls(
            store,
            tracker,
            caption_fetcher=YouTubeCaptionFetcher(
                languages=list(enrichment.caption_languages),
                timeout=config.extraction.timeout,
            ),
            transcriber=transcriber,
            vision=build_client(vision_cfg) if vision_cfg else None,
            tagger=build_client(tag_cfg) if tag_cfg else None,
            summarizer=build_client(tldr_cfg) if tldr_cfg else None,
            updater=updater,
            max_workers=enrichment.max_workers,
        )

    # ------------------------------------------------------------------
    # Transcripts
    def start_transcript(
        self,
        item_id: str,
        *,
        on_progress: Callable[[ProgressUpdate], None] | None = None,
    ) -> ProgressStream[VideoTranscript]:
        """Begin transcription in the background and return its progress stream.

        Raises :class:`JobAlreadyRunningError` right away if a transcript job
        for the item is in flight.
        """

        item = self.store.require_item(item_id)
        generating = self.tracker[JobKind.TRANSCRIPT]
        if not generating.try_begin(item_id):
            raise JobAlreadyRunningError(JobKind.TRANSCRIPT.value, item_id)

        progress: ProgressStream[VideoTranscript] = ProgressStream()
        if on_progress is not None:
            progress.subscribe(on_progress)
        try:
            self._executor.submit(self._run_transcript, item, progress)
        except RuntimeError:
            generating.set_generating(item_id, False)
            raise
        return progress

    def generate_transcript(
        self,
        item_id: str,
        *,
        on_progress: Callable[[ProgressUpdate], None] | None = None,
        timeout: float | None = None,
    ) -> VideoTranscript:
        """Transcribe and wait for the result; replaces any previous transcript."""

        return self.start_transcript(item_id, on_progress=on_progress).result(timeout=timeout)

    def _run_transcript(self, item: Item, progress: ProgressStream[VideoTranscript]) -> None:
        try:
            result = self._transcribe(item, progress)
            try:
                record = self.store.add_transcript(
                    VideoTranscript(
                        item_id=item.id,
                        transcript=result.text,
                        platform=result.platform,
                        language=result.language,
                        duration=result.duration,
                    )
                )
            except NotFoundError as exc:
                raise GenerationError(f"Item {item.id} was deleted before its transcript was stored") from exc
            logger.info("Transcript stored for {} ({} chars)", item.id, len(result.text))
            progress.finish(record)
        except GenerationError as exc:
            logger.warning("Transcript generation failed for {}: {}", item.id, exc)
            progress.fail(exc)
        except Exception as exc:
            logger.exception("Transcript job crashed for {}", item.id)
            progress.fail(GenerationError(f"Transcript generation failed: {exc}"))
        finally:
            self.tracker.set_generating(JobKind.TRANSCRIPT, item.id, False)

    def _transcribe(self, item: Item, progress: ProgressStream[Any]) -> TranscriptResult:
        if item.content_type in _VIDEO_KINDS and item.url:
            return self.caption_fetcher.fetch(item.url, progress)

        metadata = self.store.get_type_metadata(item.id)
        video_url = metadata.video_url if metadata else None
        if item.content_type is ContentKind.X and video_url:
            if self.transcriber is None:
                raise GenerationError("Speech-to-text is not configured")
            return self.transcriber.transcribe(video_url, progress)
        raise GenerationError(f"Item {item.id} has no video to transcribe")

    # ------------------------------------------------------------------
    # Image descriptions
    def generate_image_descriptions(self, item_id: str) -> list[ImageDescription]:
        """Describe every image of an item; failures are skipped unless all images fail."""

        item = self.store.require_item(item_id)
        with self.tracker.track(JobKind.IMAGE_DESCRIPTION, item_id):
            if self.vision is None:
                raise GenerationError("No vision model configured")
            image_urls = self.image_urls_for(item)
            if not image_urls:
                raise GenerationError(f"Item {item_id} has no images to describe")

            stored: list[ImageDescription] = []
            errors: list[str] = []
            for image_url in image_urls:
                try:
                    text = self.vision.describe_image(image_url, context=item.title or None)
                except GenerationError as exc:
                    logger.warning("Image description failed for {} ({}): {}", item_id, image_url, exc)
                    errors.append(str(exc))
                    continue
                try:
                    stored.append(
                        self.store.add_image_description(
                            ImageDescription(
                                item_id=item_id, image_url=image_url, description=text, model=self.vision.model
                            )
                        )
                    )
                except NotFoundError as exc:
                    raise GenerationError(f"Item {item_id} was deleted during image description") from exc
            if not stored:
                raise GenerationError(f"All {len(image_urls)} image descriptions failed: {errors[0]}")
            logger.info("Described {}/{} images for {}", len(stored), len(image_urls), item_id)
            return stored

    def image_urls_for(self, item: Item) -> list[str]:
        metadata = self.store.get_type_metadata(item.id)
        urls = metadata.image_urls if metadata else []
        if not urls and item.thumbnail_url:
            urls = [item.thumbnail_url]
        if not urls and item.content_type is ContentKind.IMAGE and item.url:
            urls = [item.url]
        return list(dict.fromkeys(urls))

    # ------------------------------------------------------------------
    # Tags
    def generate_tags(self, item_id: str) -> list[str]:
        """Merge suggested tags into the item's tags and return the merged list."""

        item = self.store.require_item(item_id)
        with self.tracker.track(JobKind.TAGS, item_id):
            if self.tagger is None:
                raise GenerationError("No tag model configured")
            suggested = self.tagger.suggest_tags(
                title=item.title,
                description=item.desc,
                content=item.content or item.raw_text,
            )
            if not suggested:
                raise GenerationError(f"No tags suggested for {item_id}")
            merged = dedupe_tags(item.tags + suggested)
            try:
                self.updater(item_id, {"tags": merged})
            except NotFoundError as exc:
                raise GenerationError(f"Item {item_id} was deleted during tag generation") from exc
            logger.info("Tags for {}: {}", item_id, merged)
            return merged

    # ------------------------------------------------------------------
    # TLDR
    def generate_tldr(self, item_id: str) -> str:
        """Summarize an item from its text, description and transcript; overwrites any previous TLDR."""

        item = self.store.require_item(item_id)
        with self.tracker.track(JobKind.TLDR, item_id):
            if self.summarizer is None:
                raise GenerationError("No summary model configured")
            context = self.tldr_context(item)
            if not context:
                raise GenerationError(f"Item {item_id} has no text to summarize")
            tldr = self.summarizer.summarize(kind=item.content_type.value, context=context).strip()
            if not tldr:
                raise GenerationError(f"Empty summary for {item_id}")
            try:
                self.updater(item_id, {"tldr": tldr})
            except NotFoundError as exc:
                raise GenerationError(f"Item {item_id} was deleted during TLDR generation") from exc
            logger.info("TLDR stored for {} ({} chars)", item_id, len(tldr))
            return tldr

    def tldr_context(self, item: Item) -> str:
        parts = [
            f"Title: {item.title}" if item.title else "",
            f"Description: {item.desc}" if item.desc else "",
            item.content or item.raw_text or "",
        ]
        transcript = self.store.get_transcript(item.id)
        if transcript is not None:
            parts.append(f"Transcript: {transcript.transcript}")
        descriptions = self.store.get_image_descriptions(item.id)
        if descriptions:
            parts.append("Images: " + " ".join(row.description for row in descriptions))
        return "\n\n".join(part for part in parts if part.strip())

    # ------------------------------------------------------------------
    def auto_generate(self, item: Item, settings: Any) -> dict[JobKind, Any]:
        """Queue the enrichment jobs enabled in ``settings`` for a freshly saved item.

        Returns the handle of each started job: a :class:`ProgressStream` for
        transcripts and a :class:`Future` for the others.
        """

        handles: dict[JobKind, Any] = {}
        if settings.auto_generate_transcripts and self._has_video(item):
            try:
                handles[JobKind.TRANSCRIPT] = self.start_transcript(item.id)
            except GenerationError as exc:
                logger.info("Automatic transcript skipped for {}: {}", item.id, exc)
        if settings.auto_generate_image_descriptions and self.vision is not None and self.image_urls_for(item):
            handles[JobKind.IMAGE_DESCRIPTION] = self._submit_quietly(
                JobKind.IMAGE_DESCRIPTION, self.generate_image_descriptions, item.id
            )
        if settings.auto_generate_tags and self.tagger is not None:
            handles[JobKind.TAGS] = self._submit_quietly(JobKind.TAGS, self.generate_tags, item.id)
        if settings.auto_generate_tldr and self.summarizer is not None and not item.tldr:
            handles[JobKind.TLDR] = self._submit_quietly(JobKind.TLDR, self.generate_tldr, item.id)
        return handles

    def _has_video(self, item: Item) -> bool:
        if item.content_type in _VIDEO_KINDS:
            return True
        if item.content_type is ContentKind.X and self.transcriber is not None:
            metadata = self.store.get_type_metadata(item.id)
            return bool(metadata and metadata.video_url)
        return False

    def _submit_quietly(self, kind: JobKind, func: Callable[[str], Any], item_id: str) -> Future[Any]:
        def _job() -> Any:
            try:
                return func(item_id)
            except GenerationError as exc:
                logger.info("Automatic {} skipped for {}: {}", kind.value, item_id, exc)
                return None

        return self._executor.submit(_job)

    def close(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = ["EnrichmentService"]
