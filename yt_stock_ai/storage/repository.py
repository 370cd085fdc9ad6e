"""
Repository pattern for data access.

Handles database operations for users, recommendation sets, analysis
history and channel catalogues.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from yt_stock_ai.core.usage import current_month

from .db import DEFAULT_DB_PATH, get_connection
from .models import (
    AnalysisHistoryEntry,
    Channel,
    RecommendationEntry,
    RecommendationSet,
    SubscriptionTier,
    UsageLedger,
    UserRecord,
)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    ``recommendation_sets`` is keyed by video id so a second insert for the
    same video is ignored rather than duplicated. Entries of a set are only
    written by the transaction that created the set row.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                email TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                image TEXT,
                subscription TEXT NOT NULL DEFAULT 'free',
                usage_month TEXT,
                usage_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS recommendation_sets (
                video_id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS recommendation_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                video_id TEXT NOT NULL REFERENCES recommendation_sets(video_id),
                position INTEGER NOT NULL,
                company_name TEXT NOT NULL,
                ticker TEXT NOT NULL,
                timestamp REAL NOT NULL,
                reason TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_entries_video
                ON recommendation_entries (video_id, position);

            CREATE TABLE IF NOT EXISTS analysis_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL,
                video_id TEXT NOT NULL,
                analyzed_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_history_email
                ON analysis_history (email, analyzed_at);

            CREATE TABLE IF NOT EXISTS channels (
                channel_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                url TEXT,
                title TEXT,
                thumbnail TEXT,
                handle TEXT,
                subscribers TEXT,
                added_at TEXT NOT NULL,
                PRIMARY KEY (user_id, channel_id)
            );
        """)
        conn.commit()
    finally:
        conn.close()


def _row_to_user(row) -> UserRecord:
    usage = UsageLedger(month=row[4], count=row[5]) if row[4] else None
    return UserRecord(
        email=row[0],
        name=row[1],
        image=row[2],
        subscription=SubscriptionTier(row[3]),
        usage=usage,
        created_at=datetime.fromisoformat(row[6]),
    )


class UserRepository:
    """Repository for user records and their usage ledgers."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        """Return the user identified by ``email`` or None."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT email, name, image, subscription,
                       usage_month, usage_count, created_at
                FROM users WHERE email = ?
            """, (email,))
            row = cursor.fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()

    def create_if_absent(
        self,
        email: str,
        name: str,
        image: Optional[str],
        now: datetime,
    ) -> UserRecord:
        """Register a user on first login.

        New users start on the free tier with an empty ledger for the
        month of ``now``. An existing user is returned unchanged.

        Args:
            email: Unique identity of the user
            name: Display name
            image: Avatar reference, if any
            now: Time of the login

        Returns:
            The stored user record
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT OR IGNORE INTO users
                (email, name, image, subscription, usage_month, usage_count, created_at)
                VALUES (?, ?, ?, ?, ?, 0, ?)
            """, (
                email,
                name,
                image,
                SubscriptionTier.FREE.value,
                current_month(now),
                now.isoformat(),
            ))
            conn.commit()
        finally:
            conn.close()
        return self.find_by_email(email)

    def record_usage(self, email: str, month: str) -> Optional[UsageLedger]:
        """Count one analysis against the user's ledger for ``month``.

        Rollover and increment happen in a single UPDATE: the count becomes 1
        when the stored month differs from ``month`` and is incremented
        otherwise. SQLite evaluates every SET expression against the old row,
        so the CASE sees the previous month token.

        Args:
            email: User to charge
            month: Current month token (``YYYY-MM``)

        Returns:
            The updated ledger, or None if the user does not exist
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                UPDATE users
                SET usage_count = CASE
                        WHEN usage_month = ? THEN usage_count + 1
                        ELSE 1
                    END,
                    usage_month = ?
                WHERE email = ?
            """, (month, month, email))
            if cursor.rowcount == 0:
                conn.rollback()
                return None
            row = conn.execute(
                "SELECT usage_month, usage_count FROM users WHERE email = ?",
                (email,),
            ).fetchone()
            conn.commit()
            return UsageLedger(month=row[0], count=row[1])
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def set_subscription(self, email: str, tier: SubscriptionTier) -> bool:
        """Change a user's tier. Returns False if the user does not exist."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "UPDATE users SET subscription = ? WHERE email = ?",
                (tier.value, email),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class RecommendationRepository:
    """Repository for recommendation sets and the aggregations over them."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def find_by_video_id(self, video_id: str) -> Optional[RecommendationSet]:
        """Return the stored set for ``video_id`` or None."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT video_id, created_at FROM recommendation_sets WHERE video_id = ?",
                (video_id,),
            ).fetchone()
            if row is None:
                return None
            entries = self._load_entries(conn, video_id)
            return RecommendationSet(
                video_id=row[0],
                recommendations=entries,
                created_at=datetime.fromisoformat(row[1]),
            )
        finally:
            conn.close()

    def insert_if_absent(self, recommendation_set: RecommendationSet) -> bool:
        """Persist a set unless one already exists for its video.

        The set row and its entries are written in one transaction. When
        another writer got there first the insert is ignored and the stored
        set stays authoritative.

        Args:
            recommendation_set: Set to store

        Returns:
            True if this call created the record, False if it already existed
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute(
                "INSERT OR IGNORE INTO recommendation_sets (video_id, created_at) VALUES (?, ?)",
                (recommendation_set.video_id, recommendation_set.created_at.isoformat()),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                return False
            conn.executemany("""
                INSERT INTO recommendation_entries
                (video_id, position, company_name, ticker, timestamp, reason)
                VALUES (?, ?, ?, ?, ?, ?)
            """, [
                (
                    recommendation_set.video_id,
                    position,
                    entry.company_name,
                    entry.ticker,
                    entry.timestamp,
                    entry.reason,
                )
                for position, entry in enumerate(recommendation_set.recommendations)
            ])
            conn.commit()
            return True
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def record_analysis(self, email: str, video_id: str, analyzed_at: datetime) -> None:
        """Append an entry to the user's analysis history."""
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO analysis_history (email, video_id, analyzed_at) VALUES (?, ?, ?)",
                (email, video_id, analyzed_at.isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def analysis_history(self, email: str, limit: int = 100) -> List[AnalysisHistoryEntry]:
        """Get the videos a user analyzed, most recent analysis first.

        A video analyzed several times appears once, at its latest time.
        Videos that yielded no recommendations are listed with an empty list.

        Args:
            email: User whose history to read
            limit: Maximum number of videos to return

        Returns:
            History entries ordered by analysis time (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("""
                SELECT video_id, MAX(analyzed_at) AS last_analyzed
                FROM analysis_history
                WHERE email = ?
                GROUP BY video_id
                ORDER BY last_analyzed DESC
                LIMIT ?
            """, (email, limit)).fetchall()
            return [
                AnalysisHistoryEntry(
                    video_id=row[0],
                    analyzed_at=datetime.fromisoformat(row[1]),
                    recommendations=self._load_entries(conn, row[0]),
                )
                for row in rows
            ]
        finally:
            conn.close()

    def top_stocks(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Rank stocks by the number of distinct videos recommending them.

        Args:
            limit: Maximum number of stocks to return

        Returns:
            Dicts with company_name, ticker and count, highest count first
        """
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("""
                SELECT company_name, ticker, COUNT(DISTINCT video_id) AS videos
                FROM recommendation_entries
                GROUP BY company_name, ticker
                ORDER BY videos DESC, ticker ASC
                LIMIT ?
            """, (limit,)).fetchall()
            return [
                {"company_name": row[0], "ticker": row[1], "count": row[2]}
                for row in rows
            ]
        finally:
            conn.close()

    def videos_by_ticker(self, stock: str) -> List[Dict[str, Any]]:
        """Find videos recommending a ticker (case-insensitive substring match).

        Args:
            stock: Ticker or part of one, e.g. "AAPL" or "nasdaq:aapl"

        Returns:
            One dict per video with only the matching recommendations,
            newest video first
        """
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("""
                SELECT e.video_id, s.created_at, e.company_name, e.reason, e.timestamp
                FROM recommendation_entries e
                JOIN recommendation_sets s ON s.video_id = e.video_id
                WHERE instr(lower(e.ticker), lower(?)) > 0
                ORDER BY s.created_at DESC, e.video_id, e.position
            """, (stock,)).fetchall()
        finally:
            conn.close()

        videos: Dict[str, Dict[str, Any]] = {}
        for video_id, created_at, company_name, reason, timestamp in rows:
            video = videos.setdefault(video_id, {
                "videoId": video_id,
                "recommendations": [],
                "createdAt": created_at,
            })
            video["recommendations"].append({
                "company_name": company_name,
                "reason": reason,
                "timeStamp": timestamp,
            })
        return list(videos.values())

    @staticmethod
    def _load_entries(conn, video_id: str) -> List[RecommendationEntry]:
        cursor = conn.execute("""
            SELECT company_name, ticker, timestamp, reason
            FROM recommendation_entries
            WHERE video_id = ?
            ORDER BY position
        """, (video_id,))
        return [
            RecommendationEntry(
                company_name=row[0],
                ticker=row[1],
                timestamp=row[2],
                reason=row[3],
            )
            for row in cursor.fetchall()
        ]


class ChannelRepository:
    """Repository for users' channel catalogues."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def add(self, channel: Channel, now: datetime) -> Channel:
        """Add a channel to a user's catalogue; re-adding keeps the original entry."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT OR IGNORE INTO channels
                (channel_id, user_id, url, title, thumbnail, handle, subscribers, added_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                channel.channel_id,
                channel.user_id,
                channel.url,
                channel.title,
                channel.thumbnail,
                channel.handle,
                channel.subscribers,
                now.isoformat(),
            ))
            conn.commit()
            row = conn.execute("""
                SELECT channel_id, user_id, url, title, thumbnail, handle, subscribers, added_at
                FROM channels WHERE user_id = ? AND channel_id = ?
            """, (channel.user_id, channel.channel_id)).fetchone()
            return self._row_to_channel(row)
        finally:
            conn.close()

    def remove(self, channel_id: str, user_id: str) -> bool:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM channels WHERE channel_id = ? AND user_id = ?",
                (channel_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def list_for_user(self, user_id: str) -> List[Channel]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("""
                SELECT channel_id, user_id, url, title, thumbnail, handle, subscribers, added_at
                FROM channels WHERE user_id = ?
                ORDER BY added_at
            """, (user_id,)).fetchall()
            return [self._row_to_channel(row) for row in rows]
        finally:
            conn.close()

    def top_channels(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Rank channels by how many users added them."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("""
                SELECT channel_id, MAX(title), MAX(thumbnail), MAX(handle),
                       COUNT(*) AS users
                FROM channels
                GROUP BY channel_id
                ORDER BY users DESC, channel_id ASC
                LIMIT ?
            """, (limit,)).fetchall()
            return [
                {
                    "id": row[0],
                    "title": row[1],
                    "thumbnail": row[2],
                    "handle": row[3],
                    "count": row[4],
                }
                for row in rows
            ]
        finally:
            conn.close()

    @staticmethod
    def _row_to_channel(row) -> Channel:
        return Channel(
            channel_id=row[0],
            user_id=row[1],
            url=row[2],
            title=row[3],
            thumbnail=row[4],
            handle=row[5],
            subscribers=row[6],
            added_at=datetime.fromisoformat(row[7]),
        )
