"""
Tests for the analysis workflow.

Runs the orchestrator against a temporary database with stubbed
transcript and extraction services.
"""

import os
import shutil
import sqlite3
import tempfile
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from yt_stock_ai.core.analysis import AnalysisOrchestrator
from yt_stock_ai.core.cache import CacheHit, CacheMiss, RecommendationCache
from yt_stock_ai.core.errors import (
    ExtractionFailed,
    InvalidVideoReference,
    PersistenceFailed,
    QuotaExceeded,
    TranscriptUnavailable,
    Unauthenticated,
    UnknownUser,
)
from yt_stock_ai.storage.models import (
    RecommendationEntry,
    RecommendationSet,
    SubscriptionTier,
    UsageLedger,
)
from yt_stock_ai.storage.repository import (
    RecommendationRepository,
    UserRepository,
    initialize_schema,
)

JAN_15 = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
FEB_1 = datetime(2024, 2, 1, 0, 5, tzinfo=timezone.utc)

APPLE = RecommendationEntry(
    company_name="Apple Inc.",
    ticker="NASDAQ:AAPL",
    timestamp=42,
    reason="Strong services growth",
)
DISNEY = RecommendationEntry(
    company_name="The Walt Disney Company",
    ticker="NYSE:DIS",
    timestamp=120,
    reason="Parks recovery",
)


class Clock:
    """Settable clock for month rollover tests."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestAnalysisOrchestrator:
    """Test the analyze workflow."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

        self.users = UserRepository(self.db_path)
        self.recommendations = RecommendationRepository(self.db_path)
        self.transcripts = Mock()
        self.transcripts.fetch_transcript.return_value = "[0s] buy apple [120s] and disney"
        self.extractor = Mock()
        self.extractor.extract_recommendations.return_value = [APPLE, DISNEY]
        self.clock = Clock(JAN_15)

        self.orchestrator = AnalysisOrchestrator(
            users=self.users,
            recommendations=self.recommendations,
            transcripts=self.transcripts,
            extractor=self.extractor,
            clock=self.clock,
        )

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def add_user(self, email="a@x.com", tier=SubscriptionTier.FREE, count=0):
        self.users.create_if_absent(email, email.split("@")[0], None, JAN_15)
        for _ in range(count):
            self.users.record_usage(email, "2024-01")
        if tier != SubscriptionTier.FREE:
            self.users.set_subscription(email, tier)

    def ledger(self, email="a@x.com"):
        return self.users.find_by_email(email).usage

    def test_fresh_analysis_persists_and_charges(self):
        self.add_user()

        result = self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

        assert result.video_id == "abc123"
        assert list(result.recommendations) == [APPLE, DISNEY]
        self.transcripts.fetch_transcript.assert_called_once_with("abc123")
        self.extractor.extract_recommendations.assert_called_once_with(
            "[0s] buy apple [120s] and disney"
        )
        assert self.recommendations.find_by_video_id("abc123") == result
        assert self.ledger() == UsageLedger("2024-01", 1)

    def test_second_user_served_from_cache_and_charged(self):
        self.add_user("a@x.com")
        self.add_user("b@x.com")

        first = self.orchestrator.analyze("https://www.youtube.com/watch?v=new1", "a@x.com")
        second = self.orchestrator.analyze("https://youtu.be/new1", "b@x.com")

        assert second.recommendations == first.recommendations
        assert self.transcripts.fetch_transcript.call_count == 1
        assert self.extractor.extract_recommendations.call_count == 1
        assert self.ledger("a@x.com") == UsageLedger("2024-01", 1)
        assert self.ledger("b@x.com") == UsageLedger("2024-01", 1)

    def test_quota_reached_at_tenth_analysis(self):
        self.add_user(count=9)

        self.orchestrator.analyze("https://youtu.be/first", "a@x.com")
        assert self.ledger() == UsageLedger("2024-01", 10)

        with pytest.raises(QuotaExceeded):
            self.orchestrator.analyze("https://youtu.be/second", "a@x.com")
        assert self.transcripts.fetch_transcript.call_count == 1
        assert self.ledger() == UsageLedger("2024-01", 10)

    def test_quota_applies_to_cache_hits(self):
        self.add_user(count=10)
        self.recommendations.insert_if_absent(
            RecommendationSet("cached", [APPLE], created_at=JAN_15)
        )

        with pytest.raises(QuotaExceeded):
            self.orchestrator.analyze("https://youtu.be/cached", "a@x.com")

    def test_month_rollover_restores_quota(self):
        self.add_user(count=10)
        self.clock.now = FEB_1

        self.orchestrator.analyze("https://youtu.be/feb", "a@x.com")

        assert self.ledger() == UsageLedger("2024-02", 1)

    def test_premium_not_gated_or_charged(self):
        self.add_user(tier=SubscriptionTier.PREMIUM, count=25)

        self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

        assert self.ledger() == UsageLedger("2024-01", 25)

    def test_empty_result_is_returned_but_not_cached(self):
        self.add_user()
        self.extractor.extract_recommendations.return_value = []

        result = self.orchestrator.analyze("https://youtu.be/quiet", "a@x.com")

        assert result.recommendations == ()
        assert self.recommendations.find_by_video_id("quiet") is None
        assert self.ledger() == UsageLedger("2024-01", 1)

        self.orchestrator.analyze("https://youtu.be/quiet", "a@x.com")
        assert self.extractor.extract_recommendations.call_count == 2

    def test_analysis_recorded_in_history(self):
        self.add_user()

        self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

        history = self.recommendations.analysis_history("a@x.com")
        assert [entry.video_id for entry in history] == ["abc123"]

    @pytest.mark.parametrize("identity", [None, "", "   "])
    def test_missing_identity(self, identity):
        with pytest.raises(Unauthenticated):
            self.orchestrator.analyze("https://youtu.be/abc123", identity)

    def test_invalid_reference(self):
        self.add_user()
        with pytest.raises(InvalidVideoReference):
            self.orchestrator.analyze("https://vimeo.com/12345", "a@x.com")

    def test_unknown_user(self):
        with pytest.raises(UnknownUser):
            self.orchestrator.analyze("https://youtu.be/abc123", "ghost@x.com")

    def test_transcript_failure_persists_nothing(self):
        self.add_user()
        self.transcripts.fetch_transcript.side_effect = TranscriptUnavailable("no captions")

        with pytest.raises(TranscriptUnavailable):
            self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

        self.extractor.extract_recommendations.assert_not_called()
        assert self.recommendations.find_by_video_id("abc123") is None
        assert self.ledger() == UsageLedger("2024-01", 0)

    def test_unexpected_transcript_error_is_typed(self):
        self.add_user()
        self.transcripts.fetch_transcript.side_effect = TimeoutError("timed out")

        with pytest.raises(TranscriptUnavailable):
            self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

    def test_extraction_failure_persists_nothing(self):
        self.add_user()
        self.extractor.extract_recommendations.side_effect = ExtractionFailed("bad json")

        with pytest.raises(ExtractionFailed):
            self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

        assert self.recommendations.find_by_video_id("abc123") is None
        assert self.ledger() == UsageLedger("2024-01", 0)

    def test_unexpected_extraction_error_is_typed(self):
        self.add_user()
        self.extractor.extract_recommendations.side_effect = RuntimeError("boom")

        with pytest.raises(ExtractionFailed):
            self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

    def test_persist_failure_still_returns_results(self):
        self.add_user()

        with patch.object(
            self.recommendations, "insert_if_absent",
            side_effect=sqlite3.OperationalError("disk I/O error"),
        ):
            result = self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")

        assert list(result.recommendations) == [APPLE, DISNEY]
        assert self.recommendations.find_by_video_id("abc123") is None
        assert self.ledger() == UsageLedger("2024-01", 1)

    def test_concurrent_writer_wins(self):
        self.add_user()
        earlier = RecommendationSet("race", [DISNEY], created_at=JAN_15)
        original_get = self.orchestrator.cache.get

        def get_then_lose_race(video_id):
            result = original_get(video_id)
            self.recommendations.insert_if_absent(earlier)
            return result

        with patch.object(self.orchestrator.cache, "get", side_effect=get_then_lose_race):
            result = self.orchestrator.analyze("https://youtu.be/race", "a@x.com")

        assert result == earlier
        assert self.recommendations.find_by_video_id("race") == earlier
        assert self.ledger() == UsageLedger("2024-01", 1)

    def test_user_store_failure(self):
        with patch.object(
            self.users, "find_by_email",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            with pytest.raises(PersistenceFailed):
                self.orchestrator.analyze("https://youtu.be/abc123", "a@x.com")


class TestRecommendationCache:
    """Test the tagged cache interface."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.cache = RecommendationCache(RecommendationRepository(self.db_path))

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_miss_then_hit(self):
        assert self.cache.get("v1") == CacheMiss("v1")

        stored = RecommendationSet("v1", [APPLE], created_at=JAN_15)
        assert self.cache.put_if_absent(stored)

        result = self.cache.get("v1")
        assert isinstance(result, CacheHit)
        assert result.recommendation_set.recommendations == (APPLE,)

    def test_put_if_absent_is_first_write_wins(self):
        assert self.cache.put_if_absent(RecommendationSet("v1", [APPLE], created_at=JAN_15))
        assert not self.cache.put_if_absent(RecommendationSet("v1", [DISNEY], created_at=JAN_15))

    def test_empty_set_rejected(self):
        with pytest.raises(ValueError):
            self.cache.put_if_absent(RecommendationSet("v1", [], created_at=JAN_15))
        assert self.cache.get("v1") == CacheMiss("v1")
