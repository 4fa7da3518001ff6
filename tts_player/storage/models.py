"""
Data models for storage layer.

Defines usage ledger records, derived statistics and the account cache.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


TEXT_PREFIX_LIMIT = 100
TRUNCATION_MARKER = "..."


def truncate_text(text: str, limit: int = TEXT_PREFIX_LIMIT) -> str:
    """Cut text to a bounded prefix, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one speech generation attempt.

    Append-only entries that form the usage ledger. Once written, these
    records are never modified, only removed by retention cleanup.
    """
    text: str
    character_count: int
    voice_id: str
    model_id: str
    success: bool
    error_message: Optional[str] = None
    timestamp: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def for_attempt(
        cls,
        text: str,
        voice_id: str,
        model_id: str,
        success: bool,
        error_message: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> "UsageRecord":
        """Build a record from the full request text.

        The stored text is truncated, the character count is taken from
        the original text.
        """
        return cls(
            text=truncate_text(text),
            character_count=len(text),
            voice_id=voice_id,
            model_id=model_id,
            success=success,
            error_message=error_message,
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class DailyUsage:
    """Usage totals for one calendar day."""
    date: str
    character_count: int
    request_count: int


@dataclass(frozen=True)
class UsageStats:
    """Aggregate usage over a trailing window. Never persisted."""
    total_requests: int
    total_characters: int
    successful_requests: int
    failed_requests: int
    most_used_voice: str
    daily_usage: List[DailyUsage] = field(default_factory=list)


@dataclass(frozen=True)
class AccountInfo:
    """Snapshot of account status. -1 means unlimited."""
    subscription_tier: str
    character_limit: int
    character_used: int
    characters_remaining: int
    reset_date: datetime
    last_updated: datetime

    @property
    def unlimited(self) -> bool:
        return self.character_limit < 0
