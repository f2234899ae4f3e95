"""Metadata extraction providers and the fallback orchestrator."""

from .base import ExtractionResult, Extractor, try_extract
from .generic import ReaderExtractor
from .orchestrator import INVALID_URL_ERROR, MetadataOrchestrator
from .reddit import RedditExtractor
from .twitter import XExtractor, select_video_variant
from .youtube import YouTubeExtractor

__all__ = [
    "ExtractionResult",
    "Extractor",
    "INVALID_URL_ERROR",
    "MetadataOrchestrator",
    "ReaderExtractor",
    "RedditExtractor",
    "XExtractor",
    "YouTubeExtractor",
    "select_video_variant",
    "try_extract",
]
