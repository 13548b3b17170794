"""Shared test fixtures for the mailsync test suite."""

from __future__ import annotations

from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import pytest

from mailsync.config import ClassifierConfig
from mailsync.errors import PersistenceError, TransportError
from mailsync.interfaces import Classifier, FetchedEmail, MailboxClient, SearchIndexStore
from mailsync.models import Account, IdentityKey, PersistedRecord, SearchQuery, SearchResult


@pytest.fixture
def account() -> Account:
    return Account(
        account_name="Sales",
        host="imap.test.com",
        port=993,
        user="testuser",
        secret="testpass",
        use_tls=True,
    )


@pytest.fixture
def classifier_config() -> ClassifierConfig:
    return ClassifierConfig(api_key="test-key", timeout_seconds=1.0)


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
    date: str | None = "Sun, 01 Jun 2025 12:00:00 +0000",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    if date:
        msg["Date"] = date
    return msg.as_bytes()


def _build_html_email(*, body_html: str = "<p>Hello</p>") -> bytes:
    msg = MIMEText(body_html, "html")
    msg["Subject"] = "HTML Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<html-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_multipart_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with text, HTML, and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "Alice Example <alice@example.com>"
    msg["To"] = "bob@example.com, Carol <carol@example.com>"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"

    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def html_eml_bytes() -> bytes:
    return _build_html_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


@pytest.fixture
def fetched_email(plain_eml_bytes: bytes) -> FetchedEmail:
    return FetchedEmail(uid=100, raw_bytes=plain_eml_bytes, flags=["\\Seen"])


# ------------------------------------------------------------------
# In-memory collaborators
# ------------------------------------------------------------------


class FakeMailbox(MailboxClient):
    """Scriptable mailbox understanding the SEARCH criteria mailsync sends."""

    def __init__(self, messages: dict[int, bytes] | None = None) -> None:
        self.messages: dict[int, bytes] = dict(messages or {})
        self.seen: set[int] = set()
        self.connect_errors: list[Exception] = []
        self.connected = False
        self.connect_calls = 0
        self.searches: list[str] = []
        self.fetched: list[int] = []
        self.folders = ["INBOX", "Sent"]

    def add(self, uid: int, raw: bytes | None = None) -> None:
        self.messages[uid] = raw if raw is not None else _build_plain_email(
            subject=f"Message {uid}",
            message_id=f"<msg-{uid}@example.com>",
        )

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def is_connected(self) -> bool:
        return self.connected

    async def open_folder(self, name: str) -> None:
        if not self.connected:
            raise TransportError("not connected")

    async def list_folders(self) -> list[str]:
        return list(self.folders)

    async def search(self, criteria: str) -> list[int]:
        if not self.connected:
            raise TransportError("not connected")
        self.searches.append(criteria)
        uids = sorted(self.messages)
        if criteria == "UNSEEN":
            return [u for u in uids if u not in self.seen]
        if criteria == "UID *":
            return uids[-1:]
        if criteria.startswith("UID ") and criteria.endswith(":*"):
            low = int(criteria[4:-2])
            matched = [u for u in uids if u >= low]
            # A real server always includes the highest UID in n:*.
            return matched or uids[-1:]
        return uids

    async def fetch(self, uid: int) -> FetchedEmail | None:
        if not self.connected:
            raise TransportError("not connected")
        self.fetched.append(uid)
        raw = self.messages.get(uid)
        if raw is None:
            return None
        return FetchedEmail(uid=uid, raw_bytes=raw)


class InMemoryStore(SearchIndexStore):
    """Dict-backed store; UIDs in ``fail_uids`` fail on upsert."""

    def __init__(self) -> None:
        self.docs: dict[str, PersistedRecord] = {}
        self.fail_uids: set[int] = set()
        self.exists_calls = 0
        self.upserts = 0

    async def exists(self, key: IdentityKey) -> bool:
        self.exists_calls += 1
        return key.document_id in self.docs

    async def upsert(self, record: PersistedRecord) -> None:
        if record.remote_id in self.fail_uids:
            raise PersistenceError(f"rejected uid {record.remote_id}")
        self.upserts += 1
        self.docs[record.identity_key.document_id] = record

    async def query(self, query: SearchQuery, offset: int = 0, limit: int = 10) -> SearchResult:
        records = [
            r for r in self.docs.values()
            if (query.account is None or r.account_name == query.account)
            and (not query.categories or r.category in query.categories)
        ]
        hits = [r.to_document() for r in records[offset:offset + limit]]
        return SearchResult(total=len(records), hits=hits)

    async def aggregate(self) -> dict[str, Any]:
        return {"total_emails": len(self.docs), "accounts": [], "categories": {}}

    async def folders(self, account: str | None = None) -> list[dict[str, Any]]:
        counts: dict[tuple[str, str], int] = {}
        for r in self.docs.values():
            if account is None or r.account_name == account:
                key = (r.account_name, r.folder)
                counts[key] = counts.get(key, 0) + 1
        return [{"account": a, "folder": f, "count": c} for (a, f), c in counts.items()]

    async def get_by_message_id(self, message_id: str) -> dict[str, Any] | None:
        for r in self.docs.values():
            if r.message_id == message_id:
                return r.to_document()
        return None

    async def delete_by_account(self, account_name: str) -> int:
        doomed = [k for k, r in self.docs.items() if r.account_name == account_name]
        for k in doomed:
            del self.docs[k]
        return len(doomed)

    async def health(self) -> dict[str, Any]:
        return {"cluster": {"status": "green"}, "index": {}}


class StaticClassifier(Classifier):
    """Returns a fixed answer and counts calls."""

    def __init__(self, answer: str = "INTERESTED") -> None:
        self.answer = answer
        self.calls: list[str] = []

    async def classify(self, text: str) -> str:
        self.calls.append(text)
        return self.answer


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()
