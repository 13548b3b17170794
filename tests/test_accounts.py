"""Tests for mailsync.accounts."""

from __future__ import annotations

import pytest

from mailsync.accounts import AccountRegistry, load_accounts
from mailsync.errors import ConfigurationError


def _env(n: int, **overrides: str) -> dict[str, str]:
    env = {
        f"IMAP{n}_HOST": f"imap{n}.example.com",
        f"IMAP{n}_USER": f"user{n}@example.com",
        f"IMAP{n}_PASSWORD": f"secret{n}",
    }
    env.update({f"IMAP{n}_{k}": v for k, v in overrides.items()})
    return env


class TestLoadAccounts:
    def test_defaults(self):
        accounts = load_accounts(_env(1))
        assert len(accounts) == 1
        a = accounts[0]
        assert a.account_name == "Account1"
        assert a.host == "imap1.example.com"
        assert a.port == 993
        assert a.user == "user1@example.com"
        assert a.secret.get_secret_value() == "secret1"
        assert a.use_tls is False

    def test_tls_only_for_literal_true(self):
        assert load_accounts(_env(1, TLS="true"))[0].use_tls is True
        assert load_accounts(_env(1, TLS="TRUE"))[0].use_tls is True
        assert load_accounts(_env(1, TLS="yes"))[0].use_tls is False
        assert load_accounts(_env(1, TLS="1"))[0].use_tls is False

    def test_explicit_name_and_port(self):
        a = load_accounts(_env(1, NAME="Support", PORT="143"))[0]
        assert a.account_name == "Support"
        assert a.port == 143

    def test_ordered_by_number(self):
        env = {**_env(3), **_env(1), **_env(2)}
        names = [a.account_name for a in load_accounts(env)]
        assert names == ["Account1", "Account2", "Account3"]

    def test_gaps_in_numbering(self):
        env = {**_env(1), **_env(5)}
        names = [a.account_name for a in load_accounts(env)]
        assert names == ["Account1", "Account5"]

    def test_incomplete_group_skipped(self):
        env = {**_env(1), "IMAP2_HOST": "imap2.example.com", "IMAP2_USER": "u"}
        accounts = load_accounts(env)
        assert [a.account_name for a in accounts] == ["Account1"]

    def test_empty_values_treated_as_missing(self):
        assert load_accounts(_env(1, PASSWORD="")) == []

    def test_duplicate_names_rejected(self):
        env = {**_env(1, NAME="Same"), **_env(2, NAME="Same")}
        with pytest.raises(ConfigurationError, match="duplicate"):
            load_accounts(env)

    def test_bad_port_rejected(self):
        with pytest.raises(ConfigurationError, match="PORT"):
            load_accounts(_env(1, PORT="imap"))

    def test_unrelated_keys_ignored(self):
        env = {**_env(1), "IMAP_HOST": "x", "IMAPX_HOST": "y", "PATH": "/usr/bin"}
        assert len(load_accounts(env)) == 1

    def test_no_accounts(self):
        assert load_accounts({}) == []

    def test_secret_not_in_repr(self):
        a = load_accounts(_env(1))[0]
        assert "secret1" not in repr(a)


class TestAccountRegistry:
    def test_empty_registry_is_fatal(self):
        with pytest.raises(ConfigurationError, match="no IMAP accounts"):
            AccountRegistry([])

    def test_from_env(self):
        registry = AccountRegistry.from_env({**_env(1, NAME="Sales"), **_env(2)})
        assert len(registry) == 2
        assert registry.names == ["Sales", "Account2"]
        assert "Sales" in registry
        assert "Nope" not in registry
        assert registry.get("Sales").host == "imap1.example.com"
        assert [a.account_name for a in registry] == ["Sales", "Account2"]

    def test_get_unknown(self):
        registry = AccountRegistry.from_env(_env(1))
        with pytest.raises(KeyError, match="unknown account"):
            registry.get("Missing")

    def test_from_env_without_accounts(self):
        with pytest.raises(ConfigurationError):
            AccountRegistry.from_env({"HOME": "/root"})
