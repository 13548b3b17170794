"""Entry point for the mailsync package.

Usage::

    python -m mailsync run               # sync all accounts and serve the query API
    python -m mailsync purge <account>   # delete every stored message of one account
"""

from __future__ import annotations

import asyncio
import os
import sys

USAGE = "Usage: python -m mailsync <run | purge ACCOUNT>"


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in ("run", "purge"):
        print(USAGE, file=sys.stderr)
        sys.exit(1)

    mode = sys.argv[1]

    if mode == "run":
        from .accounts import AccountRegistry
        from .config import ServiceConfig
        from .errors import ConfigurationError
        from .service import SyncService

        config = ServiceConfig()
        try:
            accounts = AccountRegistry.from_env(os.environ)
        except ConfigurationError as exc:
            print(f"Configuration error: {exc}", file=sys.stderr)
            sys.exit(2)
        asyncio.run(SyncService(config, accounts).run())

    elif mode == "purge":
        if len(sys.argv) != 3:
            print(USAGE, file=sys.stderr)
            sys.exit(1)
        asyncio.run(_purge(sys.argv[2]))


async def _purge(account_name: str) -> None:
    from .config import ElasticsearchConfig
    from .logging import setup_logging
    from .store import ElasticsearchStore

    setup_logging(json=False)
    store = ElasticsearchStore(ElasticsearchConfig())
    try:
        deleted = await store.delete_by_account(account_name)
    finally:
        await store.close()
    print(f"Deleted {deleted} messages for account {account_name}")


if __name__ == "__main__":
    main()
