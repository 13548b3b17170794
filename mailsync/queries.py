"""Elasticsearch query builders for stored messages."""

from __future__ import annotations

from .models import SearchQuery

TEXT_FIELDS = ["subject^2", "body_text", "sender", "recipients"]


def build_email_search(query: SearchQuery, *, offset: int = 0, limit: int = 10) -> dict:
    """Build a search body for the message index.

    Returns a dict ready to pass as ``body=`` to ``AsyncElasticsearch.search()``.
    """
    must: list[dict] = []
    filters: list[dict] = []

    if query.text:
        must.append({
            "multi_match": {
                "query": query.text,
                "fields": TEXT_FIELDS,
                "type": "best_fields",
                "fuzziness": "AUTO",
            }
        })

    if query.subject:
        filters.append({"match": {"subject": query.subject}})

    if query.sender:
        filters.append({"match": {"sender": query.sender}})

    if query.recipient:
        filters.append({"match": {"recipients": query.recipient}})

    if query.account:
        filters.append({"term": {"account_name": query.account}})

    if query.folder:
        filters.append({"term": {"folder": query.folder}})

    if query.categories:
        filters.append({"terms": {"category": [c.value for c in query.categories]}})

    if query.flags:
        filters.append({"terms": {"flags": query.flags}})

    if query.date_from or query.date_to:
        range_q: dict = {}
        if query.date_from:
            range_q["gte"] = query.date_from.isoformat()
        if query.date_to:
            range_q["lte"] = query.date_to.isoformat()
        filters.append({"range": {"timestamp": range_q}})

    return {
        "query": {
            "bool": {
                "must": must or [{"match_all": {}}],
                "filter": filters,
            }
        },
        "sort": [{"timestamp": {"order": "desc"}}],
        "track_total_hits": True,
        "from": offset,
        "size": limit,
    }


def build_email_stats() -> dict:
    """Aggregate message counts per account (with nested folders) and per category."""
    return {
        "size": 0,
        "track_total_hits": True,
        "aggs": {
            "by_account": {
                "terms": {"field": "account_name", "size": 100},
                "aggs": {
                    "by_folder": {"terms": {"field": "folder", "size": 100}},
                },
            },
            "by_category": {"terms": {"field": "category", "size": 10}},
        },
    }


def build_folder_listing(account: str | None = None) -> dict:
    """List distinct (account, folder) pairs that hold stored messages."""
    body: dict = {
        "size": 0,
        "aggs": {
            "by_account": {
                "terms": {"field": "account_name", "size": 100},
                "aggs": {
                    "by_folder": {"terms": {"field": "folder", "size": 200}},
                },
            },
        },
    }
    if account:
        body["query"] = {"bool": {"filter": [{"term": {"account_name": account}}]}}
    return body


def build_message_id_lookup(message_id: str) -> dict:
    """Point lookup by the Message-ID header."""
    return {
        "query": {"term": {"message_id": message_id}},
        "sort": [{"indexed_at": {"order": "asc"}}],
        "size": 1,
    }


def build_account_filter(account_name: str) -> dict:
    return {"query": {"term": {"account_name": account_name}}}
