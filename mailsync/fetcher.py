"""Fetch raw messages for a set of UIDs and normalize them one by one."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable

import structlog

from .errors import MessageParseError
from .interfaces import MailboxClient
from .models import MessageResult, NormalizedMessage, ProcessOutcome
from .parser import MimeParser

logger = structlog.get_logger()


class MessageFetcher:
    """Retrieves and parses messages of one account's open folder.

    Transport errors propagate and abort the batch; parse errors are
    logged and reported as ``PARSE_FAILED`` results so the caller can
    account for the UID without processing it.
    """

    def __init__(
        self,
        client: MailboxClient,
        *,
        account_name: str,
        folder: str,
        parser: MimeParser | None = None,
    ) -> None:
        self._client = client
        self._account_name = account_name
        self._folder = folder
        self._parser = parser or MimeParser()

    async def stream(self, uids: Iterable[int]) -> AsyncIterator[NormalizedMessage | MessageResult]:
        """Yield one item per UID, in ascending UID order."""
        for uid in sorted(set(uids)):
            fetched = await self._client.fetch(uid)
            if fetched is None:
                logger.warning(
                    "message_not_returned",
                    account=self._account_name,
                    folder=self._folder,
                    uid=uid,
                )
                yield MessageResult(
                    remote_id=uid,
                    outcome=ProcessOutcome.PARSE_FAILED,
                    error="message not returned by server",
                )
                continue

            try:
                message = self._parser.parse(
                    fetched,
                    account_name=self._account_name,
                    folder=self._folder,
                )
            except MessageParseError as exc:
                logger.warning(
                    "message_parse_failed",
                    account=self._account_name,
                    folder=self._folder,
                    uid=uid,
                    reason=exc.reason,
                )
                yield MessageResult(
                    remote_id=uid,
                    outcome=ProcessOutcome.PARSE_FAILED,
                    error=exc.reason,
                )
                continue

            yield message
