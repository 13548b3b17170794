"""Tests for mailsync.pipeline."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from mailsync.classifier import Categorizer
from mailsync.config import ClassifierConfig
from mailsync.errors import NotificationError, PersistenceError
from mailsync.interfaces import NotificationSink
from mailsync.models import Category, NormalizedMessage, PersistedRecord, ProcessOutcome
from mailsync.notifications import NotificationDispatcher
from mailsync.pipeline import ProcessingPipeline

from tests.conftest import InMemoryStore, StaticClassifier


def _message(uid: int = 1, subject: str = "Hello") -> NormalizedMessage:
    return NormalizedMessage(
        remote_id=uid,
        message_id=f"<m{uid}@example.com>",
        subject=subject,
        sender="a@example.com",
        recipients="b@example.com",
        timestamp=datetime(2025, 6, 1, tzinfo=UTC),
        body_text="Body",
        folder="INBOX",
        account_name="Sales",
    )


@pytest.fixture
def classifier() -> StaticClassifier:
    return StaticClassifier("INTERESTED")


@pytest.fixture
def pipeline(store: InMemoryStore, classifier: StaticClassifier) -> ProcessingPipeline:
    return ProcessingPipeline(store, Categorizer(ClassifierConfig(), classifier))


class TestProcessingPipeline:
    @pytest.mark.asyncio
    async def test_indexes_new_message(self, pipeline: ProcessingPipeline, store: InMemoryStore):
        result = await pipeline.process(_message(1))
        assert result.outcome is ProcessOutcome.INDEXED
        assert result.record is not None
        assert result.record.category is Category.INTERESTED
        assert "Sales-INBOX-1" in store.docs

    @pytest.mark.asyncio
    async def test_second_pass_is_duplicate_without_classification(
        self,
        pipeline: ProcessingPipeline,
        store: InMemoryStore,
        classifier: StaticClassifier,
    ):
        await pipeline.process(_message(1))
        result = await pipeline.process(_message(1))
        assert result.outcome is ProcessOutcome.DUPLICATE
        assert len(classifier.calls) == 1
        assert store.upserts == 1
        assert len(store.docs) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_write_once(
        self,
        pipeline: ProcessingPipeline,
        store: InMemoryStore,
        classifier: StaticClassifier,
    ):
        results = await asyncio.gather(pipeline.process(_message(1)), pipeline.process(_message(1)))
        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == ["duplicate", "indexed"]
        assert store.upserts == 1
        assert len(classifier.calls) == 1

    @pytest.mark.asyncio
    async def test_persist_failure(self, pipeline: ProcessingPipeline, store: InMemoryStore):
        store.fail_uids.add(2)
        result = await pipeline.process(_message(2))
        assert result.outcome is ProcessOutcome.PERSIST_FAILED
        assert result.advances_watermark is False
        assert "rejected" in (result.error or "")
        assert store.docs == {}

    @pytest.mark.asyncio
    async def test_existence_check_failure_skips_classification(
        self,
        store: InMemoryStore,
        classifier: StaticClassifier,
    ):
        store.exists = AsyncMock(side_effect=PersistenceError("index down"))
        pipeline = ProcessingPipeline(store, Categorizer(ClassifierConfig(), classifier))
        result = await pipeline.process(_message(3))
        assert result.outcome is ProcessOutcome.PERSIST_FAILED
        assert classifier.calls == []

    @pytest.mark.asyncio
    async def test_notifies_for_configured_categories(self, store: InMemoryStore):
        dispatcher = NotificationDispatcher([], [Category.INTERESTED])
        dispatcher.dispatch = AsyncMock(return_value={})
        pipeline = ProcessingPipeline(
            store,
            Categorizer(ClassifierConfig(), StaticClassifier("INTERESTED")),
            dispatcher,
        )
        await pipeline.process(_message(1))
        dispatcher.dispatch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_notification_for_other_categories(self, store: InMemoryStore):
        dispatcher = NotificationDispatcher([], [Category.INTERESTED])
        dispatcher.dispatch = AsyncMock(return_value={})
        pipeline = ProcessingPipeline(
            store,
            Categorizer(ClassifierConfig(), StaticClassifier("SPAM")),
            dispatcher,
        )
        await pipeline.process(_message(1))
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_notification_for_duplicates(self, store: InMemoryStore):
        dispatcher = NotificationDispatcher([], [Category.INTERESTED])
        dispatcher.dispatch = AsyncMock(return_value={})
        pipeline = ProcessingPipeline(
            store,
            Categorizer(ClassifierConfig(), StaticClassifier("INTERESTED")),
            dispatcher,
        )
        await pipeline.process(_message(1))
        await pipeline.process(_message(1))
        assert dispatcher.dispatch.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_notification_keeps_record(self, store: InMemoryStore):
        class BrokenSink(NotificationSink):
            name = "broken"

            async def send(self, record: PersistedRecord) -> None:
                raise NotificationError("webhook returned 500")

        class CrashingSink(NotificationSink):
            name = "crashing"

            async def send(self, record: PersistedRecord) -> None:
                raise RuntimeError("unexpected")

        dispatcher = NotificationDispatcher([BrokenSink(), CrashingSink()], [Category.INTERESTED])
        pipeline = ProcessingPipeline(
            store,
            Categorizer(ClassifierConfig(), StaticClassifier("INTERESTED")),
            dispatcher,
        )

        result = await pipeline.process(_message(4))

        assert result.outcome is ProcessOutcome.INDEXED
        assert result.advances_watermark is True
        assert "Sales-INBOX-4" in store.docs
