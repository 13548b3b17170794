"""Notification dispatcher and its HTTP webhook sinks.

Delivery is at-most-once: no retries, since the stored record remains
the durable source of truth.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from .config import NotificationConfig
from .errors import NotificationError
from .interfaces import NotificationSink
from .models import Category, PersistedRecord

logger = structlog.get_logger()


class WebhookSink(NotificationSink):
    """POSTs a JSON payload to a fixed URL."""

    name = "webhook"

    def __init__(self, url: str, *, timeout_seconds: float = 10.0) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_payload(self, record: PersistedRecord) -> dict[str, Any]:
        return {
            "message_id": record.message_id,
            "from": record.sender,
            "subject": record.subject,
            "date": record.timestamp.isoformat(),
            "category": record.category.value if record.category else None,
            "account": record.account_name,
            "body": record.body_text[:500],
        }

    async def send(self, record: PersistedRecord) -> None:
        if self._client is None:
            raise NotificationError(f"{self.name} sink not started")
        try:
            response = await self._client.post(self._url, json=self.build_payload(record))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"{self.name}: {type(exc).__name__}: {exc}") from exc


class SlackSink(WebhookSink):
    """Slack incoming webhook with a Block Kit message."""

    name = "slack"

    def build_payload(self, record: PersistedRecord) -> dict[str, Any]:
        return {
            "blocks": [
                {
                    "type": "header",
                    "text": {
                        "type": "plain_text",
                        "text": f"New {record.category.value if record.category else 'uncategorized'} email",
                        "emoji": True,
                    },
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*From:*\n{record.sender}"},
                        {"type": "mrkdwn", "text": f"*Subject:*\n{record.subject}"},
                    ],
                },
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"*Preview:*\n{record.body_text[:200]}..."},
                },
                {
                    "type": "context",
                    "elements": [
                        {
                            "type": "mrkdwn",
                            "text": f"Received: {record.timestamp.isoformat()} ({record.account_name})",
                        }
                    ],
                },
            ]
        }


class NotificationDispatcher:
    """Fans a record out to every configured sink.

    Each sink is called independently; a failing sink is logged and does
    not affect the others.
    """

    def __init__(self, sinks: list[NotificationSink], categories: list[Category]) -> None:
        self._sinks = sinks
        self._categories = frozenset(categories)

    @classmethod
    def from_config(cls, config: NotificationConfig) -> NotificationDispatcher:
        sinks: list[NotificationSink] = []
        if config.slack_webhook_url:
            sinks.append(SlackSink(config.slack_webhook_url, timeout_seconds=config.timeout_seconds))
        else:
            logger.warning("notification_sink_disabled", sink="slack")
        if config.webhook_url:
            sinks.append(WebhookSink(config.webhook_url, timeout_seconds=config.timeout_seconds))
        else:
            logger.warning("notification_sink_disabled", sink="webhook")
        return cls(sinks, config.categories)

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    async def start(self) -> None:
        for sink in self._sinks:
            if isinstance(sink, WebhookSink):
                await sink.start()

    async def stop(self) -> None:
        for sink in self._sinks:
            if isinstance(sink, WebhookSink):
                await sink.stop()

    def should_notify(self, record: PersistedRecord) -> bool:
        return record.category is not None and record.category in self._categories

    async def dispatch(self, record: PersistedRecord) -> dict[str, bool]:
        """Send *record* to all sinks; returns delivery success per sink name."""
        results = await asyncio.gather(*(self._deliver(sink, record) for sink in self._sinks))
        return {sink.name: ok for sink, ok in zip(self._sinks, results)}

    async def _deliver(self, sink: NotificationSink, record: PersistedRecord) -> bool:
        try:
            await sink.send(record)
        except NotificationError as exc:
            logger.warning(
                "notification_failed",
                sink=sink.name,
                doc_id=record.identity_key.document_id,
                error=str(exc),
            )
            return False
        except Exception:
            logger.exception(
                "notification_failed",
                sink=sink.name,
                doc_id=record.identity_key.document_id,
            )
            return False
        logger.info("notification_sent", sink=sink.name, doc_id=record.identity_key.document_id)
        return True
