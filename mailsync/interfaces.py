"""Abstract collaborator interfaces the sync engine depends on.

Production implementations live in :mod:`mailsync.imap_client`,
:mod:`mailsync.store`, :mod:`mailsync.classifier` and
:mod:`mailsync.notifications`; tests substitute in-memory fakes.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any

from .models import IdentityKey, PersistedRecord, SearchQuery, SearchResult


@dataclass
class FetchedEmail:
    """Raw message bytes and flags fetched from a mailbox."""

    uid: int
    raw_bytes: bytes
    flags: list[str] = field(default_factory=list)


class MailboxClient(abc.ABC):
    """Wire-level mailbox operations for one account.

    Implementations raise :class:`~mailsync.errors.TransportError` for
    network/protocol failures and
    :class:`~mailsync.errors.AuthenticationError` for rejected credentials.
    """

    @abc.abstractmethod
    async def connect(self) -> None: ...

    @abc.abstractmethod
    async def disconnect(self) -> None: ...

    @abc.abstractmethod
    async def is_connected(self) -> bool:
        """Liveness check; never raises."""

    @abc.abstractmethod
    async def open_folder(self, name: str) -> None: ...

    @abc.abstractmethod
    async def list_folders(self) -> list[str]: ...

    @abc.abstractmethod
    async def search(self, criteria: str) -> list[int]:
        """Return matching UIDs in ascending order."""

    @abc.abstractmethod
    async def fetch(self, uid: int) -> FetchedEmail | None:
        """Fetch one message; ``None`` when the server returned nothing."""


class SearchIndexStore(abc.ABC):
    """Keyed document store with full-text query capability."""

    @abc.abstractmethod
    async def exists(self, key: IdentityKey) -> bool: ...

    @abc.abstractmethod
    async def upsert(self, record: PersistedRecord) -> None: ...

    @abc.abstractmethod
    async def query(self, query: SearchQuery, offset: int = 0, limit: int = 10) -> SearchResult: ...

    @abc.abstractmethod
    async def aggregate(self) -> dict[str, Any]: ...

    @abc.abstractmethod
    async def folders(self, account: str | None = None) -> list[dict[str, Any]]: ...

    @abc.abstractmethod
    async def get_by_message_id(self, message_id: str) -> dict[str, Any] | None: ...

    @abc.abstractmethod
    async def delete_by_account(self, account_name: str) -> int: ...

    @abc.abstractmethod
    async def health(self) -> dict[str, Any]: ...


class Classifier(abc.ABC):
    """Remote text classifier returning a label or free text."""

    @abc.abstractmethod
    async def classify(self, text: str) -> str:
        """Raise :class:`~mailsync.errors.ClassificationUnavailable` on failure."""


class NotificationSink(abc.ABC):
    """One outbound notification channel."""

    name: str = "sink"

    @abc.abstractmethod
    async def send(self, record: PersistedRecord) -> None:
        """Raise :class:`~mailsync.errors.NotificationError` on failure."""
