"""
Analysis orchestration.

Runs the "analyze a video" workflow end to end.

Workflow Order:
1. Identify the caller and the video
2. Gate on the caller's monthly quota
3. Serve a cached recommendation set, or fetch the transcript, extract
   recommendations and cache a non-empty result
4. Charge the delivered analysis to free-tier callers

Nothing is persisted before a complete, non-empty recommendation list
exists, and no step is retried here.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from .cache import CacheHit, RecommendationCache
from .errors import (
    AnalysisError,
    ExtractionFailed,
    PersistenceFailed,
    TranscriptUnavailable,
    Unauthenticated,
    UnknownUser,
)
from .usage import current_month, enforce_quota
from .video_id import extract_video_id
from yt_stock_ai.storage.models import RecommendationEntry, RecommendationSet, UserRecord
from yt_stock_ai.storage.repository import RecommendationRepository, UserRepository

logger = logging.getLogger(__name__)


class TranscriptAcquirer(Protocol):
    def fetch_transcript(self, video_id: str) -> str:
        ...


class RecommendationExtractor(Protocol):
    def extract_recommendations(self, transcript: str) -> List[RecommendationEntry]:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisOrchestrator:
    """Composes identifier extraction, metering, caching and the AI services."""

    def __init__(
        self,
        users: UserRepository,
        recommendations: RecommendationRepository,
        transcripts: TranscriptAcquirer,
        extractor: RecommendationExtractor,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.users = users
        self.recommendations = recommendations
        self.cache = RecommendationCache(recommendations)
        self.transcripts = transcripts
        self.extractor = extractor
        self.clock = clock

    def analyze(self, video_reference: str, user_email: Optional[str]) -> RecommendationSet:
        """
        Return stock recommendations for a video on behalf of a user.

        Cached and freshly extracted results both count as one analysis
        against a free user's monthly quota.

        Args:
            video_reference: YouTube URL supplied by the caller
            user_email: Authenticated identity, None if the caller is anonymous

        Returns:
            The recommendation set for the video (possibly empty)

        Raises:
            Unauthenticated: If no identity was supplied
            InvalidVideoReference: If no video id can be extracted
            UnknownUser: If the identity has no user record
            QuotaExceeded: If a free user has used up this month's quota
            TranscriptUnavailable: If the transcript cannot be fetched
            ExtractionFailed: If the AI service fails or returns malformed data
            PersistenceFailed: If the user or recommendation store fails
        """
        if not user_email or not user_email.strip():
            raise Unauthenticated("User not authenticated")
        email = user_email.strip()

        video_id = extract_video_id(video_reference)
        now = self.clock()

        user = self._load_user(email)
        enforce_quota(user, now)

        cached = self._lookup(video_id)
        if isinstance(cached, CacheHit):
            logger.info("Returning cached recommendations for video %s", video_id)
            recommendation_set = cached.recommendation_set
        else:
            recommendation_set = self._compute(video_id, now)

        self._charge(user, now)
        self._remember(email, video_id, now)
        return recommendation_set

    def _load_user(self, email: str) -> UserRecord:
        try:
            user = self.users.find_by_email(email)
        except sqlite3.Error as e:
            raise PersistenceFailed("Failed to load user record") from e
        if user is None:
            raise UnknownUser("User not found")
        return user

    def _lookup(self, video_id: str):
        try:
            return self.cache.get(video_id)
        except sqlite3.Error as e:
            raise PersistenceFailed("Failed to read cached recommendations") from e

    def _compute(self, video_id: str, now: datetime) -> RecommendationSet:
        logger.info("No cached recommendations for video %s, analyzing transcript", video_id)
        try:
            transcript = self.transcripts.fetch_transcript(video_id)
        except AnalysisError:
            raise
        except Exception as e:
            raise TranscriptUnavailable(f"Failed to fetch transcript: {e}") from e

        try:
            entries = self.extractor.extract_recommendations(transcript)
        except AnalysisError:
            raise
        except Exception as e:
            raise ExtractionFailed("Failed to process recommendations") from e

        fresh = RecommendationSet(video_id=video_id, recommendations=entries, created_at=now)
        if not fresh.recommendations:
            logger.info("Video %s yielded no recommendations; not caching", video_id)
            return fresh
        return self._persist(fresh)

    def _persist(self, fresh: RecommendationSet) -> RecommendationSet:
        # A failed write still returns the computed result.
        try:
            if self.cache.put_if_absent(fresh):
                return fresh
            stored = self.recommendations.find_by_video_id(fresh.video_id)
        except sqlite3.Error:
            logger.exception(
                "Failed to persist recommendations for video %s; returning uncached result",
                fresh.video_id,
            )
            return fresh
        logger.info("Video %s was cached by a concurrent request", fresh.video_id)
        return stored if stored is not None else fresh

    def _charge(self, user: UserRecord, now: datetime) -> None:
        if user.is_premium:
            return
        try:
            ledger = self.users.record_usage(user.email, current_month(now))
        except sqlite3.Error as e:
            raise PersistenceFailed("Failed to update usage") from e
        if ledger is None:
            raise UnknownUser("User not found")
        logger.debug("Usage for %s is now %d in %s", user.email, ledger.count, ledger.month)

    def _remember(self, email: str, video_id: str, now: datetime) -> None:
        try:
            self.recommendations.record_analysis(email, video_id, now)
        except sqlite3.Error:
            logger.warning("Failed to record analysis history for video %s", video_id, exc_info=True)
