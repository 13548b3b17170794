"""Per-message processing: dedup, classify, persist, notify."""

from __future__ import annotations

import structlog

from .classifier import Categorizer
from .errors import PersistenceError
from .interfaces import SearchIndexStore
from .models import MessageResult, NormalizedMessage, PersistedRecord, ProcessOutcome
from .notifications import NotificationDispatcher

logger = structlog.get_logger()


class ProcessingPipeline:
    """Runs one message at a time through the ingestion steps.

    1. existence check on the identity key (stop if already stored)
    2. classification via the fallback ladder (never raises)
    3. upsert keyed by the identity key
    4. notification when the category is notify-worthy

    Failures are returned as :class:`MessageResult` outcomes rather than
    raised, so one message can never abort its batch.
    """

    def __init__(
        self,
        store: SearchIndexStore,
        categorizer: Categorizer,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._store = store
        self._categorizer = categorizer
        self._dispatcher = dispatcher
        self._in_flight: set[str] = set()

    async def process(self, message: NormalizedMessage) -> MessageResult:
        key = message.identity_key
        doc_id = key.document_id
        log = logger.bind(account=message.account_name, folder=message.folder, uid=message.remote_id)

        if doc_id in self._in_flight:
            log.debug("message_in_flight")
            return MessageResult(remote_id=message.remote_id, outcome=ProcessOutcome.DUPLICATE)

        self._in_flight.add(doc_id)
        try:
            try:
                if await self._store.exists(key):
                    log.debug("message_already_indexed")
                    return MessageResult(remote_id=message.remote_id, outcome=ProcessOutcome.DUPLICATE)
            except PersistenceError as exc:
                log.error("existence_check_failed", error=str(exc))
                return MessageResult(
                    remote_id=message.remote_id,
                    outcome=ProcessOutcome.PERSIST_FAILED,
                    error=str(exc),
                )

            classification = await self._categorizer.categorize(message)
            record = PersistedRecord.from_message(message, classification)

            try:
                await self._store.upsert(record)
            except PersistenceError as exc:
                log.error("message_persist_failed", error=str(exc))
                return MessageResult(
                    remote_id=message.remote_id,
                    outcome=ProcessOutcome.PERSIST_FAILED,
                    error=str(exc),
                )

            log.info(
                "message_processed",
                subject=message.subject[:120],
                category=record.category.value if record.category else None,
                category_source=classification.source.value,
            )

            if self._dispatcher is not None and self._dispatcher.should_notify(record):
                await self._dispatcher.dispatch(record)

            return MessageResult(
                remote_id=message.remote_id,
                outcome=ProcessOutcome.INDEXED,
                record=record,
            )
        finally:
            self._in_flight.discard(doc_id)
