"""Elasticsearch-backed search-index store."""

from __future__ import annotations

from typing import Any

import structlog
from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from .config import ElasticsearchConfig
from .errors import PersistenceError, QueryError
from .interfaces import SearchIndexStore
from .models import IdentityKey, PersistedRecord, SearchQuery, SearchResult
from .queries import (
    build_account_filter,
    build_email_search,
    build_email_stats,
    build_folder_listing,
    build_message_id_lookup,
)

logger = structlog.get_logger()

_ES_ERRORS = (ApiError, TransportError)

_TEXT_WITH_KEYWORD = {
    "type": "text",
    "analyzer": "email_analyzer",
    "fields": {"keyword": {"type": "keyword", "ignore_above": 512}},
}

INDEX_SETTINGS: dict[str, Any] = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
    "analysis": {
        "analyzer": {
            "email_analyzer": {
                "type": "custom",
                "tokenizer": "standard",
                "filter": ["lowercase", "stop"],
            }
        }
    },
}

INDEX_MAPPINGS: dict[str, Any] = {
    "properties": {
        "remote_id": {"type": "long"},
        "message_id": {"type": "keyword"},
        "subject": _TEXT_WITH_KEYWORD,
        "sender": _TEXT_WITH_KEYWORD,
        "recipients": _TEXT_WITH_KEYWORD,
        "timestamp": {"type": "date"},
        "body_text": {"type": "text", "analyzer": "email_analyzer"},
        "folder": {"type": "keyword"},
        "account_name": {"type": "keyword"},
        "flags": {"type": "keyword"},
        "category": {"type": "keyword"},
        "category_confidence": {"type": "float"},
        "category_source": {"type": "keyword"},
        "categorized_at": {"type": "date"},
        "classifier_raw_output": {"type": "text", "index": False},
        "indexed_at": {"type": "date"},
    }
}


class ElasticsearchStore(SearchIndexStore):
    """Stores one document per identity key in a single index.

    The document id is derived from the identity key, so a concurrent
    duplicate write overwrites instead of creating a second record.
    """

    def __init__(
        self,
        config: ElasticsearchConfig,
        client: AsyncElasticsearch | None = None,
    ) -> None:
        self._config = config
        self._index = config.index
        self._client = client or AsyncElasticsearch(
            hosts=[config.url],
            request_timeout=config.request_timeout_seconds,
        )

    @property
    def index(self) -> str:
        return self._index

    async def initialize(self) -> None:
        """Create the index with explicit mappings if it does not exist."""
        try:
            if await self._client.indices.exists(index=self._index):
                logger.info("es_index_exists", index=self._index)
                return
            await self._client.indices.create(
                index=self._index,
                settings=INDEX_SETTINGS,
                mappings=INDEX_MAPPINGS,
            )
        except _ES_ERRORS as exc:
            raise PersistenceError(f"cannot initialize index {self._index}: {exc}") from exc
        logger.info("es_index_created", index=self._index)

    async def close(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def exists(self, key: IdentityKey) -> bool:
        try:
            return bool(await self._client.exists(index=self._index, id=key.document_id))
        except _ES_ERRORS as exc:
            raise PersistenceError(f"existence check failed for {key.document_id}: {exc}") from exc

    async def upsert(self, record: PersistedRecord) -> None:
        doc_id = record.identity_key.document_id
        try:
            await self._client.index(index=self._index, id=doc_id, document=record.to_document())
        except _ES_ERRORS as exc:
            raise PersistenceError(f"index failed for {doc_id}: {exc}") from exc
        logger.debug("message_indexed", doc_id=doc_id, category=record.category)

    async def delete_by_account(self, account_name: str) -> int:
        try:
            resp = await self._client.delete_by_query(
                index=self._index,
                body=build_account_filter(account_name),
                refresh=True,
            )
        except _ES_ERRORS as exc:
            raise PersistenceError(f"delete failed for account {account_name}: {exc}") from exc
        deleted = int(resp.get("deleted", 0))
        logger.info("account_messages_deleted", account=account_name, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def query(self, query: SearchQuery, offset: int = 0, limit: int = 10) -> SearchResult:
        body = build_email_search(query, offset=offset, limit=limit)
        resp = await self._search(body)
        hits_data = resp.get("hits", {})
        hits = [
            {**hit.get("_source", {}), "_id": hit.get("_id"), "_score": hit.get("_score")}
            for hit in hits_data.get("hits", [])
        ]
        return SearchResult(total=_total(hits_data), hits=hits)

    async def aggregate(self) -> dict[str, Any]:
        resp = await self._search(build_email_stats())
        aggs = resp.get("aggregations", {})
        accounts = [
            {
                "account": bucket["key"],
                "count": bucket["doc_count"],
                "folders": [
                    {"folder": f["key"], "count": f["doc_count"]}
                    for f in bucket.get("by_folder", {}).get("buckets", [])
                ],
            }
            for bucket in aggs.get("by_account", {}).get("buckets", [])
        ]
        categories = {
            bucket["key"]: bucket["doc_count"]
            for bucket in aggs.get("by_category", {}).get("buckets", [])
        }
        return {
            "total_emails": _total(resp.get("hits", {})),
            "accounts": accounts,
            "categories": categories,
        }

    async def folders(self, account: str | None = None) -> list[dict[str, Any]]:
        resp = await self._search(build_folder_listing(account))
        buckets = resp.get("aggregations", {}).get("by_account", {}).get("buckets", [])
        return [
            {"account": bucket["key"], "folder": f["key"], "count": f["doc_count"]}
            for bucket in buckets
            for f in bucket.get("by_folder", {}).get("buckets", [])
        ]

    async def get_by_message_id(self, message_id: str) -> dict[str, Any] | None:
        resp = await self._search(build_message_id_lookup(message_id))
        hits = resp.get("hits", {}).get("hits", [])
        if not hits:
            return None
        return {**hits[0].get("_source", {}), "_id": hits[0].get("_id")}

    async def health(self) -> dict[str, Any]:
        try:
            cluster = await self._client.cluster.health()
            stats = await self._client.indices.stats(index=self._index)
        except _ES_ERRORS as exc:
            raise QueryError("search index is unavailable") from exc
        return {
            "cluster": dict(cluster),
            "index": dict(stats.get("indices", {}).get(self._index, {})),
        }

    async def _search(self, body: dict) -> Any:
        try:
            return await self._client.search(index=self._index, body=body)
        except _ES_ERRORS as exc:
            logger.error("es_search_failed", index=self._index, error=str(exc))
            raise QueryError("search index query failed") from exc


def _total(hits_data: Any) -> int:
    total = hits_data.get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)
