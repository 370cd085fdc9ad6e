"""
Transcript acquisition from YouTube.

Fetches captions with youtube-transcript-api and renders them as
time-coded text for the recommendation extractor.
"""

import logging
from typing import Iterable, Optional, Sequence

import requests
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from yt_stock_ai.core.errors import TranscriptUnavailable

logger = logging.getLogger(__name__)


def format_time_coded(snippets: Iterable) -> str:
    """Render snippets as ``[<seconds>s] <text>`` joined by spaces."""
    parts = []
    for snippet in snippets:
        text = " ".join(snippet.text.split())
        if text:
            parts.append(f"[{int(round(snippet.start))}s] {text}")
    return " ".join(parts)


class YouTubeTranscriptAcquirer:
    """Transcript provider backed by youtube-transcript-api."""

    def __init__(
        self,
        languages: Sequence[str] = ("en",),
        api: Optional[YouTubeTranscriptApi] = None,
    ):
        if not languages:
            raise ValueError("languages is required and cannot be empty")
        self.languages = tuple(languages)
        self.api = api or YouTubeTranscriptApi()

    def fetch_transcript(self, video_id: str) -> str:
        """Fetch the transcript of ``video_id`` as time-coded text.

        Args:
            video_id: YouTube video identifier

        Returns:
            Text such as ``"[0s] hello [4s] today we look at..."``

        Raises:
            TranscriptUnavailable: If captions are missing or disabled, the
                request fails, or the transcript is empty
        """
        try:
            fetched = self.api.fetch(video_id, languages=self.languages)
        except CouldNotRetrieveTranscript as e:
            logger.warning("No transcript for video %s: %s", video_id, type(e).__name__)
            raise TranscriptUnavailable(f"Failed to fetch transcript: {type(e).__name__}") from e
        except requests.RequestException as e:
            logger.warning("Transcript request for video %s failed: %s", video_id, e)
            raise TranscriptUnavailable(f"Failed to fetch transcript: {e}") from e

        text = format_time_coded(fetched)
        if not text:
            raise TranscriptUnavailable("Failed to fetch transcript: transcript is empty")
        return text
