"""Connection supervision: one state machine per account.

Phases::

    DISCONNECTED -> CONNECTING -> BACKFILLING -> WATCHING
                        ^              |            |
                        +-- RECONNECTING <----------+

Authentication failures end in DISCONNECTED permanently (until restart).
Transport failures move to RECONNECTING and back through CONNECTING with
backoff; the watermark survives reconnects, so backfill runs only once.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from tenacity import RetryCallState

from .accounts import AccountRegistry
from .config import ReconnectConfig, SyncConfig
from .errors import AuthenticationError, TransportError
from .fetcher import MessageFetcher
from .imap_client import AsyncImapClient
from .interfaces import MailboxClient
from .models import (
    Account,
    ConnectionPhase,
    ConnectionStatus,
    MessageResult,
    ProcessOutcome,
)
from .pipeline import ProcessingPipeline
from .policy import BackfillPolicy, PollingPolicy
from .retry import interruptible_sleep, reconnect_retrying

logger = structlog.get_logger()

ClientFactory = Callable[[Account], MailboxClient]


class AccountSupervisor:
    """Owns the connection lifecycle and change detection of one account.

    All mutable per-account state (phase, watermark, retry count) lives
    here and is written only by :meth:`run`; other components read it
    through :meth:`status`.
    """

    def __init__(
        self,
        account: Account,
        client: MailboxClient,
        pipeline: ProcessingPipeline,
        *,
        folder: str = "INBOX",
        backfill: BackfillPolicy | None = None,
        polling: PollingPolicy | None = None,
        reconnect: ReconnectConfig | None = None,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        self._account = account
        self._client = client
        self._pipeline = pipeline
        self._folder = folder
        self._backfill = backfill or BackfillPolicy()
        self._polling = polling or PollingPolicy()
        self._reconnect = reconnect or ReconnectConfig()
        self._shutdown = shutdown_event or asyncio.Event()
        self._fetcher = MessageFetcher(client, account_name=account.account_name, folder=folder)
        self._log = logger.bind(account=account.account_name)

        self._phase = ConnectionPhase.DISCONNECTED
        self._watermark: int | None = None
        self._backfilled = False
        self._retry_count = 0
        self._terminal = False
        self._last_error: str | None = None
        self._last_poll_at: datetime | None = None
        self._messages_indexed = 0
        self._remote_folders: list[str] = []

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def account(self) -> Account:
        return self._account

    @property
    def phase(self) -> ConnectionPhase:
        return self._phase

    @property
    def watermark(self) -> int | None:
        return self._watermark

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            account_name=self._account.account_name,
            host=self._account.host,
            user=self._account.user,
            phase=self._phase,
            watermark=self._watermark,
            retry_count=self._retry_count,
            terminal=self._terminal,
            last_error=self._last_error,
            last_poll_at=self._last_poll_at,
            messages_indexed=self._messages_indexed,
            folders=list(self._remote_folders),
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Drive the account until shutdown or a terminal failure."""
        try:
            while not self._shutdown.is_set():
                try:
                    await self._establish()
                    if not self._backfilled:
                        await self._run_backfill()
                    await self._watch()
                except AuthenticationError as exc:
                    self._terminal = True
                    self._last_error = str(exc)
                    self._log.error("account_authentication_failed", error=str(exc))
                    return
                except TransportError as exc:
                    self._last_error = str(exc)
                    if self._shutdown.is_set():
                        return
                    if self._phase is ConnectionPhase.CONNECTING:
                        # Retrying gave up (attempt limit reached).
                        self._terminal = True
                        self._log.error(
                            "account_reconnect_exhausted",
                            attempts=self._retry_count,
                            error=str(exc),
                        )
                        return
                    self._log.warning("account_connection_lost", phase=self._phase.value, error=str(exc))
                    self._set_phase(ConnectionPhase.RECONNECTING)
                    await self._close_quietly()
        finally:
            await self._close_quietly()
            self._set_phase(ConnectionPhase.DISCONNECTED)

    async def _establish(self) -> None:
        """Connect with backoff, then open the synchronized folder."""
        if self._phase is not ConnectionPhase.RECONNECTING:
            self._set_phase(ConnectionPhase.CONNECTING)

        async for attempt in reconnect_retrying(
            self._reconnect,
            self._shutdown,
            before_sleep=self._before_retry_sleep,
        ):
            with attempt:
                self._set_phase(ConnectionPhase.CONNECTING)
                await self._close_quietly()
                await self._client.connect()
                await self._client.open_folder(self._folder)

        self._retry_count = 0
        self._last_error = None
        await self._refresh_folders()
        self._log.info("account_connected", folder=self._folder, watermark=self._watermark)

    def _before_retry_sleep(self, retry_state: RetryCallState) -> None:
        self._retry_count += 1
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self._last_error = str(exc) if exc else None
        wait = retry_state.next_action.sleep if retry_state.next_action else None
        self._set_phase(ConnectionPhase.RECONNECTING)
        self._log.warning(
            "account_connect_failed",
            attempt=retry_state.attempt_number,
            retry_in_seconds=wait,
            error=self._last_error,
        )

    async def _refresh_folders(self) -> None:
        try:
            self._remote_folders = await self._client.list_folders()
        except TransportError as exc:
            self._log.warning("folder_listing_failed", error=str(exc))

    async def _run_backfill(self) -> None:
        self._set_phase(ConnectionPhase.BACKFILLING)
        ceiling = max(await self._client.search("UID *"), default=None)
        uids = await self._backfill.find(self._client)
        self._log.info("backfill_started", mode=self._backfill.mode, messages=len(uids))

        # Nothing below the window is ever fetched, even if a message in it is held back.
        if uids and uids[0] > 1:
            self._advance_watermark(uids[0] - 1)

        clean = await self._process_batch(uids)
        if clean and ceiling is not None:
            self._advance_watermark(ceiling)

        self._backfilled = True
        self._log.info("backfill_completed", watermark=self._watermark)

    async def _watch(self) -> None:
        self._set_phase(ConnectionPhase.WATCHING)
        sleep = interruptible_sleep(self._shutdown)
        while not self._shutdown.is_set():
            if not await self._client.is_connected():
                raise TransportError("liveness check failed")
            await self.poll_once()
            await sleep(self._polling.interval_seconds)

    async def poll_once(self) -> list[MessageResult]:
        """One polling cycle: find messages above the watermark and process them."""
        uids = await self._polling.find(self._client, self._watermark)
        self._last_poll_at = datetime.now(UTC)
        if not uids:
            return []
        self._log.info("poll_found_messages", count=len(uids), watermark=self._watermark)
        results: list[MessageResult] = []
        await self._process_batch(uids, results)
        return results

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    async def _process_batch(self, uids: list[int], results: list[MessageResult] | None = None) -> bool:
        """Fetch, process and account for *uids* in ascending order.

        The watermark moves after each message, but never past a message
        whose persistence failed, so that message is seen again next cycle.
        Returns ``True`` when no message was held back.
        """
        blocked = False
        async for item in self._fetcher.stream(uids):
            if isinstance(item, MessageResult):
                result = item
            else:
                result = await self._pipeline.process(item)

            if results is not None:
                results.append(result)
            if result.outcome is ProcessOutcome.INDEXED:
                self._messages_indexed += 1

            if not result.advances_watermark:
                blocked = True
            elif not blocked:
                self._advance_watermark(result.remote_id)
        return not blocked

    def _advance_watermark(self, uid: int) -> None:
        if self._watermark is None or uid > self._watermark:
            self._watermark = uid

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_phase(self, phase: ConnectionPhase) -> None:
        if phase is not self._phase:
            self._log.debug("account_phase_changed", old=self._phase.value, new=phase.value)
            self._phase = phase

    async def _close_quietly(self) -> None:
        with contextlib.suppress(Exception):
            await self._client.disconnect()


class SyncManager:
    """Registry of account supervisors, addressed by account name.

    Runs every supervisor concurrently; a supervisor that fails for any
    reason is logged and left disconnected without affecting the others.
    """

    def __init__(
        self,
        accounts: AccountRegistry,
        pipeline: ProcessingPipeline,
        *,
        sync: SyncConfig | None = None,
        reconnect: ReconnectConfig | None = None,
        client_factory: ClientFactory = AsyncImapClient,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        sync = sync or SyncConfig()
        self._shutdown = shutdown_event or asyncio.Event()
        self._supervisors: dict[str, AccountSupervisor] = {
            account.account_name: AccountSupervisor(
                account,
                client_factory(account),
                pipeline,
                folder=sync.folder,
                backfill=BackfillPolicy.from_config(sync),
                polling=PollingPolicy.from_config(sync),
                reconnect=reconnect,
                shutdown_event=self._shutdown,
            )
            for account in accounts
        }

    @property
    def shutdown_event(self) -> asyncio.Event:
        return self._shutdown

    def get(self, account_name: str) -> AccountSupervisor:
        return self._supervisors[account_name]

    def statuses(self) -> list[ConnectionStatus]:
        return [s.status() for s in self._supervisors.values()]

    @property
    def connected_count(self) -> int:
        return sum(1 for s in self.statuses() if s.is_connected)

    @property
    def total_count(self) -> int:
        return len(self._supervisors)

    async def run(self) -> None:
        """Run all supervisors until shutdown is requested."""
        logger.info("sync_manager_starting", accounts=list(self._supervisors))
        async with asyncio.TaskGroup() as tg:
            for name, supervisor in self._supervisors.items():
                tg.create_task(self._run_isolated(supervisor), name=f"supervisor:{name}")
        logger.info("sync_manager_stopped")

    def stop(self) -> None:
        self._shutdown.set()

    async def _run_isolated(self, supervisor: AccountSupervisor) -> None:
        try:
            await supervisor.run()
        except Exception:
            logger.exception("supervisor_crashed", account=supervisor.account.account_name)
