"""Transcript providers: YouTube captions and AssemblyAI speech-to-text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import requests
import yt_dlp
from loguru import logger

from linkstash.classifier import extract_youtube_video_id
from linkstash.config.enrichment import AssemblyAIConfig
from linkstash.errors import GenerationError
from linkstash.extraction.youtube import canonical_watch_url, fetch_video_info

from .progress import ProgressStream

_VTT_TIMING = re.compile(r"^\d{2}:\d{2}(?::\d{2})?[.,]\d{3} -->")
_VTT_TAG = re.compile(r"<[^>]+>")


@dataclass(slots=True)
class TranscriptResult:
    text: str
    platform: str
    language: str | None = None
    duration: float | None = None


def parse_json3(payload: dict[str, Any]) -> str:
    """Join the text segments of a YouTube ``json3`` caption track."""

    lines: list[str] = []
    for event in payload.get("events") or []:
        text = "".join(seg.get("utf8", "") for seg in event.get("segs") or []).strip()
        if text:
            lines.append(text)
    return " ".join(" ".join(lines).split())


def parse_vtt(raw: str) -> str:
    """Strip headers, cue timings and inline tags from a WebVTT track, dropping rolling repeats."""

    lines: list[str] = []
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped == "WEBVTT" or stripped.startswith(("Kind:", "Language:", "NOTE")):
            continue
        if _VTT_TIMING.match(stripped) or stripped.isdigit():
            continue
        text = _VTT_TAG.sub("", stripped).strip()
        if text and (not lines or lines[-1] != text):
            lines.append(text)
    return " ".join(lines)


def pick_caption_track(info: dict[str, Any], languages: list[str]) -> tuple[str, dict[str, Any]] | None:
    """Choose a caption track: manual before automatic, preferred languages first, json3 before vtt."""

    for source in ("subtitles", "automatic_captions"):
        tracks: dict[str, list[dict[str, Any]]] = info.get(source) or {}
        ordered = [lang for lang in languages if lang in tracks]
        ordered += [lang for lang in tracks if lang not in ordered and any(lang.startswith(p) for p in languages)]
        for lang in ordered:
            formats = {entry.get("ext"): entry for entry in tracks[lang] if entry.get("url")}
            for ext in ("json3", "vtt"):
                if ext in formats:
                    return lang, formats[ext]
    return None


@dataclass(slots=True)
class YouTubeCaptionFetcher:
    languages: list[str] = field(default_factory=lambda: ["en"])
    timeout: float = 20.0
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def fetch(self, url: str, progress: ProgressStream[TranscriptResult] | None = None) -> TranscriptResult:
        video_id = extract_youtube_video_id(url)
        if video_id is None:
            raise GenerationError(f"Not a YouTube video URL: {url}")

        if progress is not None:
            progress.publish("processing", "Looking up caption tracks")
        options = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
            "socket_timeout": self.timeout,
        }
        try:
            info = fetch_video_info(canonical_watch_url(video_id), options)
        except yt_dlp.utils.DownloadError as exc:
            raise GenerationError(f"Could not read captions for {video_id}: {exc}") from exc

        track = pick_caption_track(info, self.languages)
        if track is None:
            raise GenerationError(f"No captions available for video {video_id}")
        language, entry = track
        logger.debug("Using {} captions ({}) for {}", language, entry.get("ext"), video_id)

        try:
            response = self.session.get(entry["url"], timeout=self.timeout)
            response.raise_for_status()
            text = parse_json3(response.json()) if entry.get("ext") == "json3" else parse_vtt(response.text)
        except requests.RequestException as exc:
            raise GenerationError(f"Caption download failed for {video_id}: {exc}") from exc
        except ValueError as exc:
            raise GenerationError(f"Caption track for {video_id} was not valid JSON") from exc

        if not text:
            raise GenerationError(f"Caption track for {video_id} is empty")
        return TranscriptResult(text=text, platform="youtube", language=language, duration=info.get("duration"))


class AssemblyAITranscriber:
    """Submit an audio/video URL and poll until the transcript completes."""

    def __init__(self, config: AssemblyAIConfig, *, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        api_key = self.config.api_key_secret
        if not api_key:
            raise GenerationError("AssemblyAI API key is not configured")
        return {"Authorization": api_key, "Content-Type": "application/json"}

    def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
        try:
            response = self.session.request(method, url, headers=self._headers(), timeout=self.config.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise GenerationError(f"AssemblyAI request failed: {exc}") from exc
        except ValueError as exc:
            raise GenerationError("AssemblyAI returned invalid JSON") from exc

    def submit(self, audio_url: str) -> str:
        payload = self._call("POST", "transcript", json={"audio_url": audio_url, "language_detection": True})
        transcript_id = payload.get("id")
        if not transcript_id:
            raise GenerationError("AssemblyAI did not return a transcript id")
        return transcript_id

    def status(self, transcript_id: str) -> dict[str, Any]:
        return self._call("GET", f"transcript/{transcript_id}")

    def transcribe(self, audio_url: str, progress: ProgressStream[TranscriptResult]) -> TranscriptResult:
        transcript_id = self.submit(audio_url)
        progress.publish("queued", f"Submitted transcript {transcript_id}")
        logger.info("AssemblyAI transcript {} submitted", transcript_id)

        for attempt in range(1, self.config.max_polls + 1):
            if progress.sleep(self.config.poll_interval):
                raise GenerationError("Transcription cancelled")
            result = self.status(transcript_id)
            state = result.get("status")
            logger.debug("AssemblyAI status (attempt {}): {}", attempt, state)
            if state == "completed":
                text = (result.get("text") or "").strip()
                if not text:
                    raise GenerationError("AssemblyAI returned an empty transcript")
                return TranscriptResult(
                    text=text,
                    platform="x",
                    language=result.get("language_code") or "en",
                    duration=result.get("audio_duration"),
                )
            if state == "error":
                raise GenerationError(f"AssemblyAI transcription failed: {result.get('error', 'unknown error')}")
            progress.publish(state or "processing", f"Attempt {attempt} of {self.config.max_polls}")

        raise GenerationError(f"Transcription timed out after {self.config.max_polls} polls")


__all__ = [
    "AssemblyAITranscriber",
    "TranscriptResult",
    "YouTubeCaptionFetcher",
    "parse_json3",
    "parse_vtt",
    "pick_caption_track",
]
