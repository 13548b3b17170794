"""Account registry: discovery of mailbox accounts from a key-value mapping.

Accounts are declared as numbered groups of keys::

    IMAP1_HOST=imap.example.com
    IMAP1_PORT=993
    IMAP1_USER=alice@example.com
    IMAP1_PASSWORD=...
    IMAP1_TLS=true
    IMAP1_NAME=Sales

:func:`load_accounts` is pure: pass ``os.environ`` in production and a
plain dict in tests.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping

import structlog

from .errors import ConfigurationError
from .models import Account

logger = structlog.get_logger()

_ACCOUNT_KEY = re.compile(r"^IMAP(\d+)_")


def load_accounts(env: Mapping[str, str]) -> list[Account]:
    """Build the account list from ``IMAP<n>_*`` keys, ordered by *n*.

    Groups missing a host, user or password are skipped with a warning.
    Raises :class:`ConfigurationError` on duplicate account names.
    """
    numbers = sorted({int(m.group(1)) for key in env if (m := _ACCOUNT_KEY.match(key))})

    accounts: list[Account] = []
    seen: set[str] = set()
    for n in numbers:
        prefix = f"IMAP{n}_"
        host = env.get(f"{prefix}HOST", "")
        user = env.get(f"{prefix}USER", "")
        password = env.get(f"{prefix}PASSWORD", "")
        if not (host and user and password):
            logger.warning("account_config_incomplete", account_number=n)
            continue

        name = env.get(f"{prefix}NAME") or f"Account{n}"
        if name in seen:
            raise ConfigurationError(f"duplicate account name: {name}")
        seen.add(name)

        port_raw = env.get(f"{prefix}PORT") or "993"
        try:
            port = int(port_raw)
        except ValueError as exc:
            raise ConfigurationError(f"{prefix}PORT is not an integer: {port_raw!r}") from exc

        accounts.append(
            Account(
                account_name=name,
                host=host,
                port=port,
                user=user,
                secret=password,
                use_tls=env.get(f"{prefix}TLS", "").lower() == "true",
            )
        )
        logger.info("account_discovered", account=name, host=host)

    return accounts


class AccountRegistry:
    """Immutable, name-addressed set of configured accounts."""

    def __init__(self, accounts: list[Account]) -> None:
        if not accounts:
            raise ConfigurationError("no IMAP accounts configured")
        self._accounts = {a.account_name: a for a in accounts}
        if len(self._accounts) != len(accounts):
            raise ConfigurationError("duplicate account names")

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> AccountRegistry:
        return cls(load_accounts(env))

    def __iter__(self) -> Iterator[Account]:
        return iter(self._accounts.values())

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, name: object) -> bool:
        return name in self._accounts

    def get(self, name: str) -> Account:
        try:
            return self._accounts[name]
        except KeyError:
            raise KeyError(f"unknown account: {name}") from None

    @property
    def names(self) -> list[str]:
        return list(self._accounts)
