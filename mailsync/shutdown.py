"""SIGTERM / SIGINT handling for the sync service."""

from __future__ import annotations

import asyncio
import signal

import structlog

logger = structlog.get_logger()

_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Request a graceful stop of every account supervisor and the API.

    The first SIGTERM or SIGINT sets *shutdown_event*; supervisors notice
    it between polling cycles (or during reconnect backoff), so the batch
    in flight is finished and its watermark kept before the mailbox
    connection is logged out.  Later signals are only logged.

    Must be called from the running event loop.
    """
    loop = asyncio.get_running_loop()

    def _request_stop(sig: signal.Signals) -> None:
        if shutdown_event.is_set():
            logger.warning("shutdown_already_requested", signal=sig.name)
            return
        logger.info("shutdown_requested", signal=sig.name)
        shutdown_event.set()

    for sig in _SIGNALS:
        loop.add_signal_handler(sig, _request_stop, sig)


def remove_signal_handlers() -> None:
    """Give SIGTERM / SIGINT back to their default handlers."""
    loop = asyncio.get_running_loop()
    for sig in _SIGNALS:
        loop.remove_signal_handler(sig)
