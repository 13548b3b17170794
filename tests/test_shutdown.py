"""Tests for mailsync.shutdown."""

from __future__ import annotations

import asyncio
import os
import signal

import pytest

from mailsync.shutdown import install_signal_handlers, remove_signal_handlers


class TestInstallSignalHandlers:
    @pytest.mark.asyncio
    async def test_sigterm_sets_event(self):
        event = asyncio.Event()
        install_signal_handlers(event)
        try:
            assert not event.is_set()
            os.kill(os.getpid(), signal.SIGTERM)
            # The loop needs an I/O poll cycle to drain the signal self-pipe.
            await asyncio.sleep(0.05)
            assert event.is_set()
        finally:
            remove_signal_handlers()

    @pytest.mark.asyncio
    async def test_repeated_signals_are_harmless(self):
        event = asyncio.Event()
        install_signal_handlers(event)
        try:
            os.kill(os.getpid(), signal.SIGINT)
            await asyncio.sleep(0.05)
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.sleep(0.05)
            assert event.is_set()
        finally:
            remove_signal_handlers()

    @pytest.mark.asyncio
    async def test_handlers_registered_for_both_signals(self):
        install_signal_handlers(asyncio.Event())
        loop = asyncio.get_running_loop()
        assert loop.remove_signal_handler(signal.SIGTERM) is True
        assert loop.remove_signal_handler(signal.SIGINT) is True
