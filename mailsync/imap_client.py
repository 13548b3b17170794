"""Async IMAP client wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import contextlib
import imaplib
import re
from collections.abc import Callable
from typing import TypeVar

import structlog

from .errors import AuthenticationError, TransportError
from .interfaces import FetchedEmail, MailboxClient
from .models import Account

logger = structlog.get_logger()

T = TypeVar("T")

_LIST_LINE = re.compile(rb'\((?P<flags>[^)]*)\) (?P<delim>"[^"]*"|NIL) (?P<name>.+)')


class AsyncImapClient(MailboxClient):
    """Async-friendly IMAP client for a single account.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop, and their
    exceptions are translated into the mailsync error taxonomy.
    """

    def __init__(self, account: Account) -> None:
        self._account = account
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._folder: str | None = None

    @property
    def folder(self) -> str | None:
        return self._folder

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket and log in. Does not select a folder."""
        try:
            await asyncio.to_thread(self._connect_sync)
        except imaplib.IMAP4.abort as exc:
            raise TransportError(f"connection aborted: {exc}") from exc
        except imaplib.IMAP4.error as exc:
            raise AuthenticationError(str(exc)) from exc
        except OSError as exc:
            raise TransportError(f"cannot reach {self._account.host}: {exc}") from exc
        logger.info(
            "imap_connected",
            account=self._account.account_name,
            host=self._account.host,
        )

    def _connect_sync(self) -> None:
        if self._account.use_tls:
            conn = imaplib.IMAP4_SSL(self._account.host, self._account.port)
        else:
            conn = imaplib.IMAP4(self._account.host, self._account.port)
        self._folder = None
        try:
            conn.login(self._account.user, self._account.secret.get_secret_value())
        except Exception:
            with contextlib.suppress(OSError):
                conn.shutdown()
            self._conn = None
            raise
        self._conn = conn

    async def disconnect(self) -> None:
        """Close the selected folder and log out; errors are ignored."""
        if self._conn is not None:
            await asyncio.to_thread(self._disconnect_sync)
            self._conn = None
            self._folder = None
            logger.info("imap_disconnected", account=self._account.account_name)

    def _disconnect_sync(self) -> None:
        assert self._conn is not None
        if self._folder is not None:
            try:
                self._conn.close()
            except (imaplib.IMAP4.error, OSError):
                pass
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError):
            pass

    async def is_connected(self) -> bool:
        """Check connection liveness with a NOOP command."""
        if self._conn is None:
            return False
        try:
            status, _ = await asyncio.to_thread(self._conn.noop)
            return status == "OK"
        except (imaplib.IMAP4.error, OSError):
            return False

    # ------------------------------------------------------------------
    # Folder operations
    # ------------------------------------------------------------------

    async def open_folder(self, name: str) -> None:
        conn = self._require_conn()
        status, data = await self._run(conn.select, _quote(name))
        if status != "OK":
            raise TransportError(f"cannot select {name}: {data!r}")
        self._folder = name

    async def list_folders(self) -> list[str]:
        conn = self._require_conn()
        status, data = await self._run(conn.list)
        if status != "OK":
            raise TransportError(f"LIST failed: {data!r}")
        return [name for line in data if (name := _parse_list_line(line))]

    # ------------------------------------------------------------------
    # Message retrieval
    # ------------------------------------------------------------------

    async def search(self, criteria: str) -> list[int]:
        """Run ``UID SEARCH`` and return the UIDs in ascending order."""
        conn = self._require_conn()
        status, data = await self._run(conn.uid, "SEARCH", None, criteria)
        if status != "OK":
            raise TransportError(f"SEARCH {criteria} failed: {data!r}")
        if not data or not data[0]:
            return []
        return sorted(int(uid) for uid in data[0].split())

    async def fetch(self, uid: int) -> FetchedEmail | None:
        """Fetch flags and full body without setting ``\\Seen``."""
        conn = self._require_conn()
        status, data = await self._run(conn.uid, "FETCH", str(uid), "(FLAGS BODY.PEEK[])")
        if status != "OK":
            raise TransportError(f"FETCH {uid} failed: {data!r}")
        for item in data or []:
            if isinstance(item, tuple) and len(item) == 2:
                header, raw_bytes = item
                flags = [f.decode() for f in imaplib.ParseFlags(header)]
                return FetchedEmail(uid=uid, raw_bytes=raw_bytes, flags=flags)
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise TransportError("not connected")
        return self._conn

    async def _run(self, fn: Callable[..., T], *args: object) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise TransportError(str(exc)) from exc


def _quote(name: str) -> str:
    if name.startswith('"') or not any(c in name for c in ' "()'):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _parse_list_line(line: bytes | None) -> str | None:
    """Extract the folder name from one ``LIST`` response line."""
    if not line:
        return None
    match = _LIST_LINE.match(line)
    if match is None:
        return None
    if b"\\Noselect" in match.group("flags"):
        return None
    name = match.group("name").decode("utf-8", errors="replace").strip()
    if len(name) >= 2 and name[0] == name[-1] == '"':
        name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return name
