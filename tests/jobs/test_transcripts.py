from __future__ import annotations

from typing import Any

import pytest
import requests

from linkstash.config import AssemblyAIConfig
from linkstash.errors import GenerationError
from linkstash.jobs import AssemblyAITranscriber, ProgressStream, YouTubeCaptionFetcher
from linkstash.jobs.transcripts import parse_json3, parse_vtt, pick_caption_track

VTT = """WEBVTT
Kind: captions
Language: en

00:00:00.000 --> 00:00:02.000
<c>Hello</c> there

00:00:02.000 --> 00:00:04.000
Hello there

00:00:04.000 --> 00:00:06.000
general <00:00:05.000>Kenobi
"""


def test_parse_vtt_strips_markup_and_rolling_repeats() -> None:
    assert parse_vtt(VTT) == "Hello there general Kenobi"


def test_parse_json3_joins_segments() -> None:
    payload = {"events": [{"segs": [{"utf8": "Hello "}, {"utf8": "world"}]}, {"segs": [{"utf8": "\n"}]}, {}]}
    assert parse_json3(payload) == "Hello world"


def test_pick_caption_track_prefers_manual_json3() -> None:
    info = {
        "subtitles": {"de": [{"ext": "vtt", "url": "de.vtt"}]},
        "automatic_captions": {
            "en-US": [{"ext": "vtt", "url": "auto.vtt"}, {"ext": "json3", "url": "auto.json3"}],
        },
    }

    assert pick_caption_track(info, ["en"]) == ("en-US", {"ext": "json3", "url": "auto.json3"})
    assert pick_caption_track(info, ["de", "en"]) == ("de", {"ext": "vtt", "url": "de.vtt"})
    assert pick_caption_track({}, ["en"]) is None


class _Response:
    def __init__(self, payload: Any = None, text: str = "", status_code: int = 200) -> None:
        self._payload = payload
        self.text = text
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(str(self.status_code), response=self)  # type: ignore[arg-type]

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _CaptionSession:
    def __init__(self, response: _Response) -> None:
        self.response = response
        self.urls: list[str] = []

    def get(self, url: str, **kwargs: Any) -> _Response:
        self.urls.append(url)
        return self.response


def test_caption_fetcher_downloads_selected_track(monkeypatch: pytest.MonkeyPatch) -> None:
    info = {"duration": 212, "subtitles": {"en": [{"ext": "json3", "url": "https://captions/en.json3"}]}}
    monkeypatch.setattr("linkstash.jobs.transcripts.fetch_video_info", lambda url, options: info)
    session = _CaptionSession(_Response({"events": [{"segs": [{"utf8": "Never gonna give you up"}]}]}))
    fetcher = YouTubeCaptionFetcher(languages=["en"], session=session)  # type: ignore[arg-type]

    result = fetcher.fetch("https://youtu.be/dQw4w9WgXcQ")

    assert session.urls == ["https://captions/en.json3"]
    assert result.text == "Never gonna give you up"
    assert result.platform == "youtube"
    assert result.language == "en"
    assert result.duration == 212


def test_caption_fetcher_without_tracks_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("linkstash.jobs.transcripts.fetch_video_info", lambda url, options: {"subtitles": {}})

    with pytest.raises(GenerationError, match="No captions"):
        YouTubeCaptionFetcher().fetch("https://youtu.be/dQw4w9WgXcQ")
    with pytest.raises(GenerationError, match="Not a YouTube"):
        YouTubeCaptionFetcher().fetch("https://vimeo.com/1")


class _AssemblySession:
    def __init__(self, statuses: list[dict[str, Any]]) -> None:
        self.statuses = list(statuses)
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _Response:
        self.calls.append((method, url, kwargs))
        if method == "POST":
            return _Response({"id": "t-1", "status": "queued"})
        return _Response(self.statuses.pop(0))


def _transcriber(statuses: list[dict[str, Any]], **overrides: Any) -> tuple[AssemblyAITranscriber, _AssemblySession]:
    config = AssemblyAIConfig(api_key="secret", poll_interval=0.001, **overrides)
    session = _AssemblySession(statuses)
    return AssemblyAITranscriber(config, session=session), session  # type: ignore[arg-type]


def test_assemblyai_polls_until_completed() -> None:
    transcriber, session = _transcriber(
        [{"status": "processing"}, {"status": "completed", "text": " Hi all ", "audio_duration": 12.5}]
    )
    progress: ProgressStream[Any] = ProgressStream()

    result = transcriber.transcribe("https://video.twimg.com/high.mp4", progress)

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://api.assemblyai.com/v2/transcript")
    assert kwargs["json"] == {"audio_url": "https://video.twimg.com/high.mp4", "language_detection": True}
    assert kwargs["headers"]["Authorization"] == "secret"
    assert session.calls[1][1].endswith("/transcript/t-1")
    assert result.text == "Hi all"
    assert result.language == "en"
    assert result.platform == "x"
    assert result.duration == 12.5
    assert [update.status for update in progress.updates] == ["queued", "processing"]


def test_assemblyai_reports_errors_and_timeouts() -> None:
    failing, _ = _transcriber([{"status": "error", "error": "unsupported media"}])
    with pytest.raises(GenerationError, match="unsupported media"):
        failing.transcribe("https://video/1.mp4", ProgressStream())

    slow, _ = _transcriber([{"status": "processing"}] * 2, max_polls=2)
    with pytest.raises(GenerationError, match="timed out"):
        slow.transcribe("https://video/1.mp4", ProgressStream())


def test_assemblyai_requires_key() -> None:
    transcriber = AssemblyAITranscriber(AssemblyAIConfig(api_key=None), session=_AssemblySession([]))  # type: ignore[arg-type]

    with pytest.raises(GenerationError, match="not configured"):
        transcriber.submit("https://video/1.mp4")


def test_assemblyai_stops_when_cancelled() -> None:
    transcriber, session = _transcriber([])
    progress: ProgressStream[Any] = ProgressStream()
    progress.cancel()

    with pytest.raises(GenerationError, match="cancelled"):
        transcriber.transcribe("https://video/1.mp4", progress)
    assert [call[0] for call in session.calls] == ["POST"]
