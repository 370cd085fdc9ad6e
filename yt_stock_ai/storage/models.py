"""
Data models for storage layer.

Defines the user, recommendation and channel records persisted by the
repositories.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SubscriptionTier(Enum):
    """Subscription classes gating the monthly analysis quota."""
    FREE = "free"
    PREMIUM = "premium"


@dataclass(frozen=True)
class UsageLedger:
    """Per-user analysis counter for a single calendar month.

    The count is only meaningful relative to ``month``; a ledger whose
    month token is not the current month is logically empty.
    """
    month: str
    count: int = 0


@dataclass(frozen=True)
class UserRecord:
    """A registered user, created on first login and never deleted."""
    email: str
    name: str
    image: Optional[str] = None
    subscription: SubscriptionTier = SubscriptionTier.FREE
    usage: Optional[UsageLedger] = None
    created_at: Optional[datetime] = None

    @property
    def is_premium(self) -> bool:
        return self.subscription == SubscriptionTier.PREMIUM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "image": self.image,
            "subscription": self.subscription.value,
            "usage": (
                {"month": self.usage.month, "count": self.usage.count}
                if self.usage else None
            ),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class RecommendationEntry:
    """One extracted stock mention."""
    company_name: str
    ticker: str
    timestamp: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_name": self.company_name,
            "ticker": self.ticker,
            "timestamp": self.timestamp,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RecommendationSet:
    """Recommendations extracted from one video.

    Written once per video identifier and read-only afterwards.
    """
    video_id: str
    recommendations: Tuple[RecommendationEntry, ...]
    created_at: datetime

    def __post_init__(self):
        # Accept any sequence but store an immutable tuple.
        object.__setattr__(self, "recommendations", tuple(self.recommendations))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": [entry.to_dict() for entry in self.recommendations],
        }


@dataclass(frozen=True)
class AnalysisHistoryEntry:
    """A video a user analyzed, with the stored recommendations."""
    video_id: str
    analyzed_at: datetime
    recommendations: List[RecommendationEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "videoId": self.video_id,
            "videoUrl": f"https://www.youtube.com/watch?v={self.video_id}",
            "analyzedAt": self.analyzed_at.isoformat(),
            "recommendations": [entry.to_dict() for entry in self.recommendations],
        }


@dataclass(frozen=True)
class Channel:
    """A YouTube channel added to a user's catalogue."""
    channel_id: str
    user_id: str
    url: Optional[str] = None
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    handle: Optional[str] = None
    subscribers: Optional[str] = None
    added_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.channel_id,
            "url": self.url,
            "userId": self.user_id,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "handle": self.handle,
            "subscribers": self.subscribers,
            "addedAt": self.added_at.isoformat() if self.added_at else None,
        }
