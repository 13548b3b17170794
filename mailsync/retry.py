"""Tenacity reconnect policy driven by ReconnectConfig."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    stop_when_event_set,
    wait_exponential,
    wait_fixed,
)
from tenacity.wait import wait_base

from .config import ReconnectConfig
from .errors import TransportError


def backoff_wait(config: ReconnectConfig) -> wait_base:
    """Return the wait strategy for *config*.

    Exponential waits start at ``initial_wait_seconds`` and grow by
    ``multiplier`` per attempt, capped at ``max_wait_seconds``.
    """
    if config.strategy == "fixed":
        return wait_fixed(config.initial_wait_seconds)
    return wait_exponential(
        multiplier=config.initial_wait_seconds,
        exp_base=config.multiplier,
        min=config.initial_wait_seconds,
        max=config.max_wait_seconds,
    )


def interruptible_sleep(shutdown_event: asyncio.Event) -> Callable[[float], Awaitable[None]]:
    """Sleep that returns early once *shutdown_event* is set."""

    async def _sleep(seconds: float) -> None:
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    return _sleep


def reconnect_retrying(
    config: ReconnectConfig,
    shutdown_event: asyncio.Event,
    *,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` for establishing a mailbox connection.

    Only :class:`TransportError` is retried; authentication failures and
    anything unexpected propagate immediately.  Retrying stops when the
    shutdown event is set, re-raising the last transport error.

    Usage::

        async for attempt in reconnect_retrying(config.reconnect, event):
            with attempt:
                await client.connect()
    """
    stop = stop_when_event_set(shutdown_event)  # type: ignore[arg-type]
    stop = stop | (stop_after_attempt(config.max_attempts) if config.max_attempts else stop_never)
    return AsyncRetrying(
        stop=stop,
        wait=backoff_wait(config),
        retry=retry_if_exception_type(TransportError),
        sleep=interruptible_sleep(shutdown_event),
        before_sleep=before_sleep,
        reraise=True,
    )
