"""Backfill and change-detection policies.

Polling on a fixed interval is the change-detection mechanism: it stands
in for server push (IDLE), which is not assumed to be available.  Both
policies are plain values so they can be exercised without a server.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Literal

from .config import SyncConfig
from .interfaces import MailboxClient


def imap_date(day: date) -> str:
    """Format *day* for IMAP SEARCH (``01-Jan-2025``)."""
    months = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
    return f"{day.day:02d}-{months[day.month - 1]}-{day.year}"


@dataclass(frozen=True)
class BackfillPolicy:
    """Bounded historical fetch performed once when an account first connects.

    ``days``
        every message whose internal date is within the last *days* days
        (IMAP date search is day-granular).
    ``last``
        the *count* messages with the highest UIDs.
    """

    mode: Literal["days", "last"] = "days"
    days: int = 30
    count: int = 10

    @classmethod
    def from_config(cls, config: SyncConfig) -> BackfillPolicy:
        return cls(mode=config.backfill_mode, days=config.backfill_days, count=config.backfill_count)

    def criteria(self, today: date | None = None) -> str:
        if self.mode == "last":
            return "ALL"
        today = today or datetime.now(UTC).date()
        return f"SINCE {imap_date(today - timedelta(days=self.days))}"

    def select(self, uids: list[int]) -> list[int]:
        ordered = sorted(uids)
        if self.mode == "last":
            return ordered[-self.count:] if self.count > 0 else []
        return ordered

    async def find(self, client: MailboxClient, today: date | None = None) -> list[int]:
        """Search the open folder and return the UIDs to backfill, ascending."""
        return self.select(await client.search(self.criteria(today)))


@dataclass(frozen=True)
class PollingPolicy:
    """Recurring search for messages newer than the watermark.

    ``uid`` mode asks for ``UID <watermark+1>:*``; ``unseen`` is the
    degraded mode for servers with unreliable UIDs and relies on the
    pipeline's dedup check to skip messages already stored.
    """

    interval_seconds: float = 30.0
    mode: Literal["uid", "unseen"] = "uid"

    @classmethod
    def from_config(cls, config: SyncConfig) -> PollingPolicy:
        return cls(interval_seconds=config.poll_interval_seconds, mode=config.poll_mode)

    def criteria(self, watermark: int | None) -> str:
        if self.mode == "unseen":
            return "UNSEEN"
        return f"UID {(watermark or 0) + 1}:*"

    def select(self, uids: list[int], watermark: int | None) -> list[int]:
        # "UID n:*" always matches the highest UID, even when it is below n.
        ordered = sorted(set(uids))
        if self.mode == "unseen" or watermark is None:
            return ordered
        return [uid for uid in ordered if uid > watermark]

    async def find(self, client: MailboxClient, watermark: int | None) -> list[int]:
        """Search the open folder and return UIDs to process this cycle."""
        return self.select(await client.search(self.criteria(watermark)), watermark)
