"""Read-only query facade used by the HTTP layer.

Every operation is a pure read against the search-index store and the
supervisors' status snapshots.  Store failures surface as
:class:`QueryError` with a generic, caller-safe message.
"""

from __future__ import annotations

import math
from typing import Any

import structlog
from pydantic import BaseModel, Field

from .errors import QueryError
from .interfaces import SearchIndexStore
from .models import Category, ConnectionStatus, SearchQuery
from .supervisor import SyncManager

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class SearchPage(BaseModel):
    page: int
    size: int
    total: int
    total_pages: int
    results: list[dict[str, Any]] = Field(default_factory=list)


class QueryFacade:
    def __init__(self, store: SearchIndexStore, manager: SyncManager) -> None:
        self._store = store
        self._manager = manager

    async def search(
        self,
        query: SearchQuery,
        *,
        page: int = 1,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> SearchPage:
        """Search stored messages; *page* is 1-based, *size* capped at 100."""
        page = max(page, 1)
        size = min(max(size, 1), MAX_PAGE_SIZE)
        result = await self._read(
            "search",
            self._store.query(query, offset=(page - 1) * size, limit=size),
        )
        return SearchPage(
            page=page,
            size=size,
            total=result.total,
            total_pages=math.ceil(result.total / size),
            results=result.hits,
        )

    async def get_message(self, message_id: str) -> dict[str, Any] | None:
        return await self._read("get_message", self._store.get_by_message_id(message_id))

    async def stats(self) -> dict[str, Any]:
        email_stats = await self._read("stats", self._store.aggregate())
        return {
            "email_stats": email_stats,
            "account_status": [self._public_status(s) for s in self.account_status()],
            "connected_accounts": self._manager.connected_count,
            "total_accounts": self._manager.total_count,
        }

    async def folders(self, account: str | None = None) -> list[dict[str, Any]]:
        """Folders per account: indexed counts merged with server-reported names."""
        indexed = await self._read("folders", self._store.folders(account))
        seen = {(f["account"], f["folder"]) for f in indexed}
        merged = list(indexed)
        for status in self.account_status():
            if account and status.account_name != account:
                continue
            for folder in status.folders:
                if (status.account_name, folder) not in seen:
                    merged.append({"account": status.account_name, "folder": folder, "count": 0})
        return merged

    async def health(self) -> dict[str, Any]:
        statuses = self.account_status()
        try:
            es_health = await self._store.health()
            es_ok = es_health.get("cluster", {}).get("status") in ("green", "yellow")
        except QueryError as exc:
            es_health = {"available": False, "error": str(exc)}
            es_ok = False
        return {
            "status": "healthy" if es_ok else "degraded",
            "elasticsearch": es_health,
            "accounts": [self._public_status(s) for s in statuses],
            "connected_accounts": sum(1 for s in statuses if s.is_connected),
            "total_accounts": len(statuses),
        }

    def account_status(self) -> list[ConnectionStatus]:
        return self._manager.statuses()

    @staticmethod
    def categories() -> list[str]:
        return [c.value for c in Category]

    @staticmethod
    def _public_status(status: ConnectionStatus) -> dict[str, Any]:
        data = status.model_dump(mode="json")
        data["is_connected"] = status.is_connected
        return data

    async def _read(self, operation: str, awaitable: Any) -> Any:
        try:
            return await awaitable
        except QueryError:
            raise
        except Exception as exc:
            logger.exception("query_failed", operation=operation)
            raise QueryError(f"{operation} failed") from exc
