"""
Usage metering and free-tier quota enforcement.

Tracks how many analyses a user received in the current calendar month.

Gating Rules:
1. Premium subscribers may always proceed
2. Free subscribers may proceed while this month's count is below the quota
3. A ledger from a previous month counts as zero (monthly rollover)
"""

from datetime import datetime, timezone
from typing import Optional

from .errors import QuotaExceeded
from yt_stock_ai.storage.models import UsageLedger, UserRecord

FREE_TIER_QUOTA = 10


def current_month(now: datetime) -> str:
    """Month token (``YYYY-MM``) of ``now`` in UTC.

    Naive datetimes are taken to be UTC already.
    """
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m")


def effective_count(ledger: Optional[UsageLedger], now: datetime) -> int:
    """Analyses counted against the month of ``now``.

    A missing ledger or one stamped with another month is empty,
    whatever count it stores.
    """
    if ledger is None or ledger.month != current_month(now):
        return 0
    return ledger.count


def can_proceed(user: UserRecord, now: datetime) -> bool:
    """Whether ``user`` may receive another analysis this month."""
    if user.is_premium:
        return True
    return effective_count(user.usage, now) < FREE_TIER_QUOTA


def enforce_quota(user: UserRecord, now: datetime) -> None:
    """
    Reject the request if the user has exhausted the free-tier quota.

    Args:
        user: The requesting user
        now: Current time, used to determine the active month

    Raises:
        QuotaExceeded: If a free user has reached FREE_TIER_QUOTA this month
    """
    if can_proceed(user, now):
        return
    used = effective_count(user.usage, now)
    raise QuotaExceeded(
        "Free-tier limit reached. Upgrade to Premium for unlimited analyses.",
        quota=FREE_TIER_QUOTA,
        used=used,
    )


def record_usage(ledger: Optional[UsageLedger], now: datetime) -> UsageLedger:
    """
    Count one delivered analysis.

    Rolls over to a fresh ledger with count 1 when the stored month is not
    the current one, otherwise increments the stored count. The persisted
    equivalent is ``UserRepository.record_usage``, which performs the same
    transition in a single statement.

    Args:
        ledger: The user's stored ledger, if any
        now: Time the analysis was delivered

    Returns:
        The new ledger
    """
    month = current_month(now)
    if ledger is None or ledger.month != month:
        return UsageLedger(month=month, count=1)
    return UsageLedger(month=month, count=ledger.count + 1)
