"""
Recommendation cache keyed by video identifier.

Stored recommendation sets double as the cache: once a video has a
non-empty set it is served from storage instead of being re-analyzed.
"""

from dataclasses import dataclass
from typing import Union

from yt_stock_ai.storage.models import RecommendationSet
from yt_stock_ai.storage.repository import RecommendationRepository


@dataclass(frozen=True)
class CacheHit:
    recommendation_set: RecommendationSet


@dataclass(frozen=True)
class CacheMiss:
    video_id: str


CacheResult = Union[CacheHit, CacheMiss]


class RecommendationCache:
    """get / put_if_absent view over the recommendation store."""

    def __init__(self, repository: RecommendationRepository):
        self.repository = repository

    def get(self, video_id: str) -> CacheResult:
        stored = self.repository.find_by_video_id(video_id)
        if stored is None:
            return CacheMiss(video_id)
        return CacheHit(stored)

    def put_if_absent(self, recommendation_set: RecommendationSet) -> bool:
        """Store a non-empty set unless the video already has one.

        Args:
            recommendation_set: Freshly extracted recommendations

        Returns:
            True if this call stored the set, False if another writer
            already had

        Raises:
            ValueError: If the set is empty
        """
        if not recommendation_set.recommendations:
            raise ValueError("empty recommendation sets are never cached")
        return self.repository.insert_if_absent(recommendation_set)
