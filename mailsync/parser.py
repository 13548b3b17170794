"""MIME parser: raw RFC 822 bytes -> NormalizedMessage."""

from __future__ import annotations

import email
import email.policy
import email.utils
from collections.abc import Iterable
from datetime import UTC, datetime
from email.headerregistry import Address, Group
from email.message import EmailMessage, Message

from .errors import MessageParseError
from .interfaces import FetchedEmail
from .models import NormalizedMessage


def flatten_addresses(value: object) -> str:
    """Render an address header as one display string.

    Accepts a parsed header, a single :class:`Address`, a plain string,
    or any iterable of those; returns ``""`` when nothing is present.
    """
    if value is None:
        return ""
    addresses = getattr(value, "addresses", None)
    if addresses is not None:
        return ", ".join(rendered for a in addresses if (rendered := _render(a)))
    if isinstance(value, (str, Address, Group)):
        return _render(value)
    if isinstance(value, Iterable):
        return ", ".join(rendered for v in value if (rendered := flatten_addresses(v)))
    return str(value)


def _render(addr: object) -> str:
    if isinstance(addr, Address):
        if addr.display_name:
            return str(addr)
        return addr.addr_spec
    return str(addr).strip()


class MimeParser:
    """Stateless parser producing :class:`NormalizedMessage` records."""

    def parse(self, fetched: FetchedEmail, *, account_name: str, folder: str) -> NormalizedMessage:
        """Parse *fetched* into a normalized record.

        Raises :class:`MessageParseError` if the bytes cannot be turned
        into a message; the caller skips that UID.
        """
        if not fetched.raw_bytes:
            raise MessageParseError(fetched.uid, "empty message body")
        try:
            msg = email.message_from_bytes(fetched.raw_bytes, policy=email.policy.default)
            return NormalizedMessage(
                remote_id=fetched.uid,
                message_id=str(msg.get("Message-ID", "") or "").strip(),
                subject=str(msg.get("Subject", "") or ""),
                sender=flatten_addresses(msg.get("From")),
                recipients=flatten_addresses(msg.get("To")),
                timestamp=self._parse_date(msg),
                body_text=self._extract_body(msg),
                folder=folder,
                account_name=account_name,
                flags=list(fetched.flags),
            )
        except MessageParseError:
            raise
        except Exception as exc:
            raise MessageParseError(fetched.uid, f"{type(exc).__name__}: {exc}") from exc

    def _parse_date(self, msg: Message) -> datetime:
        raw = msg.get("Date")
        parsed: datetime | None = getattr(raw, "datetime", None)
        if parsed is None and raw:
            try:
                parsed = email.utils.parsedate_to_datetime(str(raw))
            except (TypeError, ValueError):
                parsed = None
        if parsed is None:
            return datetime.now(UTC)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed

    def _extract_body(self, msg: Message) -> str:
        """Plain text if present, otherwise HTML, otherwise ``""``."""
        body_text: str | None = None
        body_html: str | None = None

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            if part.get_content_disposition() == "attachment":
                continue

            content_type = part.get_content_type()
            if content_type == "text/plain" and body_text is None:
                body_text = _decode_text(part)
            elif content_type == "text/html" and body_html is None:
                body_html = _decode_text(part)

        return body_text or body_html or ""


def _decode_text(part: Message) -> str:
    if isinstance(part, EmailMessage):
        try:
            content = part.get_content()
            if isinstance(content, str):
                return content
        except (LookupError, UnicodeError):
            pass
    payload = part.get_payload(decode=True)
    if not isinstance(payload, bytes):
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")
