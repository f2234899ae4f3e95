"""Background enrichment jobs and their generating-flag tracker."""

from .llm import LiteLLMClient, LLMClient, StubLLMClient, build_client, parse_tags
from .progress import ProgressStream, ProgressUpdate
from .service import EnrichmentService
from .tracker import GeneratingSet, JobTracker
from .transcripts import AssemblyAITranscriber, TranscriptResult, YouTubeCaptionFetcher

__all__ = [
    "AssemblyAITranscriber",
    "EnrichmentService",
    "GeneratingSet",
    "JobTracker",
    "LLMClient",
    "LiteLLMClient",
    "ProgressStream",
    "ProgressUpdate",
    "StubLLMClient",
    "TranscriptResult",
    "YouTubeCaptionFetcher",
    "build_client",
    "parse_tags",
]
