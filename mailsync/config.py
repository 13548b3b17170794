"""Service configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Mailbox accounts are not part of this tree; see :mod:`mailsync.accounts`.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings

from .models import Category


class ElasticsearchConfig(BaseSettings):
    """Search-index store settings."""

    model_config = {"env_prefix": "ES_"}

    url: str = Field(default="http://localhost:9200", description="Elasticsearch base URL")
    index: str = Field(default="imap-emails", description="Index holding stored messages")
    request_timeout_seconds: float = Field(default=30.0, description="Per-request timeout")


class ClassifierConfig(BaseSettings):
    """Remote classifier and fallback ladder settings."""

    model_config = {"env_prefix": "CLASSIFIER_"}

    api_key: SecretStr | None = Field(
        default=None,
        description="Gemini API key; the remote classifier is skipped when unset",
    )
    model: str = Field(default="gemini-2.5-flash", description="Gemini model name")
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST API base URL",
    )
    timeout_seconds: float = Field(
        default=15.0,
        description="Upper bound on one classification call",
    )
    excerpt_chars: int = Field(
        default=1000,
        description="Maximum body characters sent to the classifier",
    )
    unmapped_category: Category = Field(
        default=Category.SPAM,
        description="Category used when the classifier answers with no known label",
    )
    fallback_category: Category | None = Field(
        default=Category.SPAM,
        description="Category used when the classifier fails and no keyword rule matches",
    )


class NotificationConfig(BaseSettings):
    """Outbound notification sinks."""

    model_config = {"env_prefix": "NOTIFY_"}

    slack_webhook_url: str = Field(default="", description="Slack incoming webhook URL")
    webhook_url: str = Field(default="", description="Generic JSON webhook URL")
    categories: list[Category] = Field(
        default_factory=lambda: [Category.INTERESTED],
        description="Categories that trigger a notification",
    )
    timeout_seconds: float = Field(default=10.0, description="Per-sink HTTP timeout")


class SyncConfig(BaseSettings):
    """Backfill and change-detection policy."""

    model_config = {"env_prefix": "SYNC_"}

    folder: str = Field(default="INBOX", description="Mailbox folder to synchronize")
    poll_interval_seconds: float = Field(
        default=30.0,
        description="Seconds between polling cycles",
    )
    poll_mode: Literal["uid", "unseen"] = Field(
        default="uid",
        description="uid: messages above the watermark; unseen: degraded UNSEEN search",
    )
    backfill_mode: Literal["days", "last"] = Field(
        default="days",
        description="days: messages since N days ago; last: the K most recent UIDs",
    )
    backfill_days: int = Field(default=30, description="Window for backfill_mode=days")
    backfill_count: int = Field(default=10, description="Message count for backfill_mode=last")


class ReconnectConfig(BaseSettings):
    """Reconnect backoff settings driven by Tenacity."""

    model_config = {"env_prefix": "RECONNECT_"}

    strategy: Literal["exponential", "fixed"] = Field(
        default="exponential",
        description="Backoff shape between connection attempts",
    )
    initial_wait_seconds: float = Field(default=1.0, description="Initial (or fixed) wait")
    max_wait_seconds: float = Field(default=300.0, description="Maximum backoff wait")
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")
    max_attempts: int = Field(
        default=0,
        description="Give up after this many consecutive attempts; 0 retries forever",
    )


class ServiceConfig(BaseSettings):
    """Root configuration for the sync service.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "MAILSYNC_"}

    api_host: str = Field(default="0.0.0.0", description="HTTP API bind address")
    api_port: int = Field(default=3000, description="HTTP API bind port")
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=True, description="JSON log lines (False for console)")

    elasticsearch: ElasticsearchConfig = Field(default_factory=ElasticsearchConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
