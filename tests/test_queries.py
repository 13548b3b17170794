"""Pure unit tests for Elasticsearch query builders."""

from __future__ import annotations

from datetime import UTC, datetime

from mailsync.models import Category, SearchQuery
from mailsync.queries import (
    build_account_filter,
    build_email_search,
    build_email_stats,
    build_folder_listing,
    build_message_id_lookup,
)


def test_build_email_search_text():
    body = build_email_search(SearchQuery(text="hello"))
    clause = body["query"]["bool"]["must"][0]["multi_match"]
    assert clause["query"] == "hello"
    assert clause["fuzziness"] == "AUTO"
    assert "subject^2" in clause["fields"]


def test_build_email_search_empty():
    body = build_email_search(SearchQuery())
    assert body["query"]["bool"]["must"] == [{"match_all": {}}]
    assert body["query"]["bool"]["filter"] == []
    assert body["sort"] == [{"timestamp": {"order": "desc"}}]
    assert body["track_total_hits"] is True


def test_build_email_search_filters():
    body = build_email_search(
        SearchQuery(
            account="Sales",
            folder="INBOX",
            sender="alice",
            categories=[Category.INTERESTED, Category.SPAM],
            flags=["\\Seen"],
        )
    )
    filters = body["query"]["bool"]["filter"]
    assert {"term": {"account_name": "Sales"}} in filters
    assert {"term": {"folder": "INBOX"}} in filters
    assert {"match": {"sender": "alice"}} in filters
    assert {"terms": {"category": ["INTERESTED", "SPAM"]}} in filters
    assert {"terms": {"flags": ["\\Seen"]}} in filters


def test_build_email_search_date_range():
    dt_from = datetime(2024, 1, 1, tzinfo=UTC)
    body = build_email_search(SearchQuery(date_from=dt_from))
    range_filter = next(f for f in body["query"]["bool"]["filter"] if "range" in f)
    assert range_filter["range"]["timestamp"] == {"gte": dt_from.isoformat()}


def test_build_email_search_pagination():
    body = build_email_search(SearchQuery(), offset=20, limit=10)
    assert body["from"] == 20
    assert body["size"] == 10


def test_build_email_stats():
    body = build_email_stats()
    assert body["size"] == 0
    assert "by_folder" in body["aggs"]["by_account"]["aggs"]
    assert "by_category" in body["aggs"]


def test_build_folder_listing():
    assert "query" not in build_folder_listing()
    body = build_folder_listing("Sales")
    assert body["query"]["bool"]["filter"] == [{"term": {"account_name": "Sales"}}]


def test_build_message_id_lookup():
    body = build_message_id_lookup("<m1@example.com>")
    assert body["query"] == {"term": {"message_id": "<m1@example.com>"}}
    assert body["size"] == 1


def test_build_account_filter():
    assert build_account_filter("Sales") == {"query": {"term": {"account_name": "Sales"}}}
