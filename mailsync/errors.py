"""Error taxonomy for the sync engine.

Collaborator adapters translate library exceptions into these types at
their boundary so the supervisor and pipeline can decide, per kind,
whether to reconnect, skip a message, fall back, or give up on an account.
"""

from __future__ import annotations


class MailSyncError(Exception):
    """Base class for all mailsync errors."""


class ConfigurationError(MailSyncError):
    """Invalid or missing configuration. Only fatal at startup."""


class TransportError(MailSyncError):
    """Network or protocol failure talking to a mailbox. Reconnect and retry."""


class AuthenticationError(MailSyncError):
    """Mailbox rejected the credentials. Terminal for the account."""


class MessageParseError(MailSyncError):
    """A single message could not be parsed. Skip it and continue."""

    def __init__(self, uid: int, reason: str) -> None:
        super().__init__(f"uid {uid}: {reason}")
        self.uid = uid
        self.reason = reason


class ClassificationUnavailable(MailSyncError):
    """The remote classifier failed (timeout, quota, transport)."""


class PersistenceError(MailSyncError):
    """The search-index store rejected or failed a write."""


class NotificationError(MailSyncError):
    """A notification sink failed to deliver."""


class QueryError(MailSyncError):
    """A read against the search-index store failed.

    The message is safe to show to API callers.
    """
