"""
Repository pattern for data access.

Handles the usage ledger: append-only attempt records, aggregate queries,
retention cleanup and the single-row account info cache.
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

from loguru import logger

from tts_player.core.errors import StorageError
from .db import get_connection
from .models import AccountInfo, DailyUsage, UsageRecord, UsageStats


RECORD_COLUMNS = (
    "id, timestamp, text, character_count, voice_id, model_id, success, error_message"
)

# One writer at a time per process; SQLite's file lock covers other processes.
_write_lock = threading.Lock()


def initialize_schema(db_path: str) -> None:
    """Create the ledger tables and indexes if they don't exist.

    usage_records is append-only: rows are inserted and bulk-deleted by
    retention, never updated. account_info_cache holds at most one row.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                text TEXT NOT NULL,
                character_count INTEGER NOT NULL,
                voice_id TEXT NOT NULL,
                model_id TEXT NOT NULL,
                success INTEGER NOT NULL,
                error_message TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS account_info_cache (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                subscription_tier TEXT NOT NULL,
                character_limit INTEGER NOT NULL,
                character_used INTEGER NOT NULL,
                characters_remaining INTEGER NOT NULL,
                reset_date TEXT NOT NULL,
                last_updated TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_usage_timestamp ON usage_records(timestamp)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_usage_voice ON usage_records(voice_id)"
        )
        conn.commit()
    finally:
        conn.close()


def _format_timestamp(value: datetime) -> str:
    """Store local naive timestamps with a fixed width so text order is time order."""
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.isoformat(timespec="microseconds")


def _cutoff(days: int) -> str:
    return _format_timestamp(datetime.now() - timedelta(days=days))


def _row_to_record(row) -> UsageRecord:
    return UsageRecord(
        id=row[0],
        timestamp=datetime.fromisoformat(row[1]),
        text=row[2],
        character_count=row[3],
        voice_id=row[4],
        model_id=row[5],
        success=bool(row[6]),
        error_message=row[7],
    )


class UsageLedger:
    """Durable store of generation attempts plus the account info cache.

    Every method opens its own connection, so one ledger can be shared by
    concurrent pipeline runs. SQLite errors surface as StorageError.
    """

    def __init__(self, db_path: str, default_voice: str = "alloy"):
        """Initialize the ledger and make sure the schema exists.

        Args:
            db_path: Path to SQLite database file
            default_voice: Voice reported as most used when there are no records
        """
        self.db_path = db_path
        self.default_voice = default_voice
        with self._errors("initialize schema"):
            initialize_schema(db_path)

    @contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Failed to {action}: {e}") from e

    @contextmanager
    def _connection(self, action: str) -> Iterator[sqlite3.Connection]:
        with self._errors(action):
            conn = get_connection(self.db_path)
            try:
                yield conn
            finally:
                conn.close()

    def record(self, record: UsageRecord) -> int:
        """Append a usage record to the ledger.

        Args:
            record: The attempt to record; timestamp defaults to now

        Returns:
            Id assigned to the new record
        """
        timestamp = record.timestamp or datetime.now()
        with _write_lock, self._connection("record usage") as conn:
            cursor = conn.execute(
                """
                INSERT INTO usage_records
                (timestamp, text, character_count, voice_id, model_id, success, error_message)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _format_timestamp(timestamp),
                    record.text,
                    record.character_count,
                    record.voice_id,
                    record.model_id,
                    1 if record.success else 0,
                    record.error_message,
                ),
            )
            conn.commit()
            return cursor.lastrowid

    def list(self, limit: int = 50, days: Optional[int] = None) -> List[UsageRecord]:
        """Get recent usage records.

        Args:
            limit: Maximum number of records to return
            days: Optional number of days to look back

        Returns:
            List of usage records ordered by timestamp (newest first)
        """
        query = f"SELECT {RECORD_COLUMNS} FROM usage_records"
        params: list = []
        if days is not None:
            query += " WHERE timestamp >= ?"
            params.append(_cutoff(days))
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._connection("read usage records") as conn:
            return [_row_to_record(row) for row in conn.execute(query, params).fetchall()]

    def stats(self, days: int = 30) -> UsageStats:
        """Aggregate usage over the trailing window.

        The most used voice is the voice with the highest request count,
        ties broken by voice id in ascending order. With no records the
        ledger's default voice is reported.

        Args:
            days: Number of days to include in the statistics

        Returns:
            UsageStats for the window
        """
        cutoff = _cutoff(days)
        with self._connection("compute usage stats") as conn:
            totals = conn.execute(
                """
                SELECT
                    COUNT(*),
                    SUM(character_count),
                    SUM(CASE WHEN success THEN 1 ELSE 0 END),
                    SUM(CASE WHEN success THEN 0 ELSE 1 END)
                FROM usage_records
                WHERE timestamp >= ?
                """,
                (cutoff,),
            ).fetchone()

            voice_row = conn.execute(
                """
                SELECT voice_id, COUNT(*) AS usage_count
                FROM usage_records
                WHERE timestamp >= ?
                GROUP BY voice_id
                ORDER BY usage_count DESC, voice_id ASC
                LIMIT 1
                """,
                (cutoff,),
            ).fetchone()

            daily_rows = conn.execute(
                """
                SELECT
                    substr(timestamp, 1, 10) AS day,
                    SUM(character_count),
                    COUNT(*)
                FROM usage_records
                WHERE timestamp >= ?
                GROUP BY day
                ORDER BY day DESC
                """,
                (cutoff,),
            ).fetchall()

        return UsageStats(
            total_requests=totals[0] or 0,
            total_characters=totals[1] or 0,
            successful_requests=totals[2] or 0,
            failed_requests=totals[3] or 0,
            most_used_voice=voice_row[0] if voice_row else self.default_voice,
            daily_usage=[
                DailyUsage(date=row[0], character_count=row[1] or 0, request_count=row[2])
                for row in daily_rows
            ],
        )

    def cache_account_info(self, info: AccountInfo) -> None:
        """Replace the cached account snapshot."""
        with _write_lock, self._connection("cache account info") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO account_info_cache
                (id, subscription_tier, character_limit, character_used,
                 characters_remaining, reset_date, last_updated)
                VALUES (1, ?, ?, ?, ?, ?, ?)
                """,
                (
                    info.subscription_tier,
                    info.character_limit,
                    info.character_used,
                    info.characters_remaining,
                    _format_timestamp(info.reset_date),
                    _format_timestamp(info.last_updated),
                ),
            )
            conn.commit()

    def get_cached_account_info(self) -> Optional[AccountInfo]:
        """Return the cached account snapshot, if any."""
        with self._connection("read account info") as conn:
            row = conn.execute(
                """
                SELECT subscription_tier, character_limit, character_used,
                       characters_remaining, reset_date, last_updated
                FROM account_info_cache
                WHERE id = 1
                """
            ).fetchone()

        if row is None:
            return None
        return AccountInfo(
            subscription_tier=row[0],
            character_limit=row[1],
            character_used=row[2],
            characters_remaining=row[3],
            reset_date=datetime.fromisoformat(row[4]),
            last_updated=datetime.fromisoformat(row[5]),
        )

    def purge_older_than(self, days: int) -> int:
        """Delete records older than the given number of days.

        Returns:
            Number of records removed
        """
        if days < 0:
            raise ValueError("days cannot be negative")

        with _write_lock, self._connection("purge usage records") as conn:
            cursor = conn.execute(
                "DELETE FROM usage_records WHERE timestamp < ?", (_cutoff(days),)
            )
            conn.commit()
            removed = cursor.rowcount

        logger.info("Purged {count} usage records older than {days} days", count=removed, days=days)
        return removed


# Global ledger instance
_default_ledger: Optional[UsageLedger] = None


def get_ledger(db_path: str, default_voice: str = "alloy") -> UsageLedger:
    """Get a shared ledger instance.

    The instance is recreated when a different database path is requested.

    Args:
        db_path: Path to SQLite database file
        default_voice: Voice reported as most used when there are no records

    Returns:
        An instance of UsageLedger
    """
    global _default_ledger
    if (
        _default_ledger is None
        or _default_ledger.db_path != db_path
        or _default_ledger.default_voice != default_voice
    ):
        _default_ledger = UsageLedger(db_path, default_voice)
    return _default_ledger
