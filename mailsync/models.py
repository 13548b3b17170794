"""Data models shared by the sync engine, the store and the query facade."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Category(str, Enum):
    """Closed set of labels a stored message may carry."""

    INTERESTED = "INTERESTED"
    MEETING_BOOKED = "MEETING_BOOKED"
    NOT_INTERESTED = "NOT_INTERESTED"
    SPAM = "SPAM"
    OUT_OF_OFFICE = "OUT_OF_OFFICE"


class ClassificationSource(str, Enum):
    """Which rung of the fallback ladder produced a category."""

    REMOTE = "remote"
    UNMAPPED = "unmapped"
    KEYWORD_RULE = "keyword_rule"
    DEFAULT = "default"


class ConnectionPhase(str, Enum):
    """Lifecycle phase of one account's connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    BACKFILLING = "backfilling"
    WATCHING = "watching"
    RECONNECTING = "reconnecting"


class ProcessOutcome(str, Enum):
    """Result kinds of fetching and processing a single remote message."""

    INDEXED = "indexed"
    DUPLICATE = "duplicate"
    PARSE_FAILED = "parse_failed"
    PERSIST_FAILED = "persist_failed"


class Account(BaseModel):
    """One configured remote mailbox. Immutable after load."""

    model_config = ConfigDict(frozen=True)

    account_name: str = Field(description="Unique account name")
    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    user: str = Field(description="IMAP login username")
    secret: SecretStr = Field(description="IMAP login password")
    use_tls: bool = Field(default=True, description="Connect with implicit TLS")


class IdentityKey(NamedTuple):
    """Dedup key of a message: stable and unique per account."""

    account_name: str
    folder: str
    remote_id: int

    @property
    def document_id(self) -> str:
        return f"{self.account_name}-{self.folder}-{self.remote_id}"


class NormalizedMessage(BaseModel):
    """A parsed message, ready for the processing pipeline."""

    model_config = ConfigDict(frozen=True)

    remote_id: int = Field(description="Provider-assigned UID within the folder")
    message_id: str = Field(default="", description="Message-ID header, best-effort unique")
    subject: str = Field(default="")
    sender: str = Field(default="", description="Flattened From header")
    recipients: str = Field(default="", description="Flattened To header")
    timestamp: datetime = Field(description="Date header, or fetch time when absent")
    body_text: str = Field(default="", description="Plain text body, or HTML when no text part")
    folder: str = Field(description="Mailbox folder the message was fetched from")
    account_name: str
    flags: list[str] = Field(default_factory=list)

    @property
    def identity_key(self) -> IdentityKey:
        return IdentityKey(self.account_name, self.folder, self.remote_id)


class ClassificationResult(BaseModel):
    """Outcome of running a message through the fallback ladder."""

    category: Category | None
    confidence: float | None = None
    raw_output: str | None = None
    source: ClassificationSource
    categorized_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PersistedRecord(NormalizedMessage):
    """A normalized message plus its classification, as stored in the index."""

    category: Category | None = None
    category_confidence: float | None = None
    category_source: ClassificationSource | None = None
    categorized_at: datetime | None = None
    classifier_raw_output: str | None = None
    indexed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_message(
        cls,
        message: NormalizedMessage,
        classification: ClassificationResult,
    ) -> PersistedRecord:
        return cls(
            **message.model_dump(),
            category=classification.category,
            category_confidence=classification.confidence,
            category_source=classification.source,
            categorized_at=classification.categorized_at,
            classifier_raw_output=classification.raw_output,
        )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class MessageResult(BaseModel):
    """Per-message result of one fetch/process step."""

    remote_id: int
    outcome: ProcessOutcome
    record: PersistedRecord | None = None
    error: str | None = None

    @property
    def advances_watermark(self) -> bool:
        """Whether the supervisor may move its watermark past this message."""
        return self.outcome is not ProcessOutcome.PERSIST_FAILED


class ConnectionStatus(BaseModel):
    """Read-only snapshot of one account's supervisor, for the query facade."""

    account_name: str
    host: str
    user: str
    phase: ConnectionPhase
    watermark: int | None = None
    retry_count: int = 0
    terminal: bool = Field(default=False, description="Stopped permanently (e.g. bad credentials)")
    last_error: str | None = None
    last_poll_at: datetime | None = None
    messages_indexed: int = 0
    folders: list[str] = Field(default_factory=list, description="Folders reported by the server")

    @property
    def is_connected(self) -> bool:
        return self.phase in (ConnectionPhase.BACKFILLING, ConnectionPhase.WATCHING)


class SearchQuery(BaseModel):
    """Filters accepted by the store's search operation."""

    text: str | None = None
    subject: str | None = None
    sender: str | None = None
    recipient: str | None = None
    account: str | None = None
    folder: str | None = None
    categories: list[Category] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)
    date_from: datetime | None = None
    date_to: datetime | None = None


class SearchResult(BaseModel):
    """One page of search hits plus the total match count."""

    total: int
    hits: list[dict[str, Any]] = Field(default_factory=list)
