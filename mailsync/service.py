"""SyncService: wires collaborators together and runs until shutdown."""

from __future__ import annotations

import asyncio
import time

import structlog
import uvicorn

from .accounts import AccountRegistry
from .api import create_app
from .classifier import Categorizer, GeminiClassifier
from .config import ServiceConfig
from .errors import PersistenceError
from .facade import QueryFacade
from .imap_client import AsyncImapClient
from .logging import setup_logging
from .notifications import NotificationDispatcher
from .pipeline import ProcessingPipeline
from .shutdown import install_signal_handlers
from .store import ElasticsearchStore
from .supervisor import ClientFactory, SyncManager

logger = structlog.get_logger()


class SyncService:
    """The sync engine process.

    ``run()`` starts the following concurrently via
    :class:`asyncio.TaskGroup`:

    * one supervisor per configured account
    * the FastAPI query API (uvicorn)

    Call ``asyncio.run(service.run())`` to start it.
    """

    def __init__(
        self,
        config: ServiceConfig,
        accounts: AccountRegistry,
        *,
        store: ElasticsearchStore | None = None,
        client_factory: ClientFactory = AsyncImapClient,
    ) -> None:
        self.config = config
        self.start_time: float = time.monotonic()
        self._shutdown_event = asyncio.Event()

        self._store = store or ElasticsearchStore(config.elasticsearch)
        self._classifier = (
            GeminiClassifier(config.classifier) if config.classifier.api_key is not None else None
        )
        self._dispatcher = NotificationDispatcher.from_config(config.notifications)
        self._pipeline = ProcessingPipeline(
            self._store,
            Categorizer(config.classifier, self._classifier),
            self._dispatcher,
        )
        self._manager = SyncManager(
            accounts,
            self._pipeline,
            sync=config.sync,
            reconnect=config.reconnect,
            client_factory=client_factory,
            shutdown_event=self._shutdown_event,
        )
        self._facade = QueryFacade(self._store, self._manager)

    @property
    def manager(self) -> SyncManager:
        return self._manager

    @property
    def facade(self) -> QueryFacade:
        return self._facade

    # ------------------------------------------------------------------
    # API server
    # ------------------------------------------------------------------

    async def _run_api_server(self) -> None:
        """Serve the query API and shut it down on signal."""
        app = create_app(self._facade, start_time=self.start_time)
        config = uvicorn.Config(
            app,
            host=self.config.api_host,
            port=self.config.api_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        serve_task = asyncio.create_task(server.serve())
        await self._shutdown_event.wait()
        server.should_exit = True
        await serve_task

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Start all subsystems and run until SIGTERM/SIGINT."""
        setup_logging(json=self.config.log_json, level=self.config.log_level)
        install_signal_handlers(self._shutdown_event)
        self.start_time = time.monotonic()

        logger.info("service_starting", accounts=self._manager.total_count)

        try:
            await self._store.initialize()
        except PersistenceError as exc:
            # Writes fail per message until the store is reachable.
            logger.error("store_initialize_failed", error=str(exc))

        if self._classifier is not None:
            await self._classifier.start()
        else:
            logger.warning("remote_classifier_disabled", reason="no api key")
        await self._dispatcher.start()

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._manager.run())
                tg.create_task(self._run_api_server())
        except* Exception:
            logger.exception("service_task_group_error")
        finally:
            await self._dispatcher.stop()
            if self._classifier is not None:
                await self._classifier.stop()
            await self._store.close()
            logger.info("service_stopped")
