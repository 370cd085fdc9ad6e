"""
External service adapters for YT Stock AI.

Wraps the transcript provider and the generative-text provider.
"""

from .extraction import OpenAIRecommendationExtractor
from .transcripts import YouTubeTranscriptAcquirer

__all__ = ["OpenAIRecommendationExtractor", "YouTubeTranscriptAcquirer"]
