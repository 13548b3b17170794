"""FastAPI HTTP surface over the query facade, plus liveness/readiness probes."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Annotated, Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .errors import QueryError
from .facade import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, QueryFacade
from .models import Category, ConnectionPhase, SearchQuery


def create_app(facade: QueryFacade, *, start_time: float | None = None) -> FastAPI:
    """Build the API app around *facade*.

    Routes live under ``/api``; ``/health`` and ``/ready`` are the
    process probes.
    """
    app = FastAPI(title="mailsync", docs_url=None, redoc_url=None)
    started = start_time if start_time is not None else time.monotonic()

    @app.exception_handler(QueryError)
    async def _query_error(request: Request, exc: QueryError) -> JSONResponse:
        return JSONResponse({"success": False, "error": str(exc)}, status_code=500)

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    @app.get("/health")
    async def health() -> JSONResponse:
        statuses = facade.account_status()
        return JSONResponse({
            "service": "mailsync",
            "uptime_seconds": time.monotonic() - started,
            "accounts": {s.account_name: s.phase.value for s in statuses},
        })

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = any(s.phase is ConnectionPhase.WATCHING for s in facade.account_status())
        return JSONResponse({"ready": is_ready}, status_code=200 if is_ready else 503)

    # ------------------------------------------------------------------
    # Query API
    # ------------------------------------------------------------------

    @app.get("/api/emails/search")
    async def search_emails(
        query: str | None = None,
        subject: str | None = None,
        sender: Annotated[str | None, Query(alias="from")] = None,
        recipient: Annotated[str | None, Query(alias="to")] = None,
        account: str | None = None,
        folder: str | None = None,
        categories: Annotated[list[Category] | None, Query()] = None,
        flags: Annotated[list[str] | None, Query()] = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: Annotated[int, Query(ge=1)] = 1,
        size: Annotated[int, Query(ge=1)] = DEFAULT_PAGE_SIZE,
    ) -> dict[str, Any]:
        search_query = SearchQuery(
            text=query,
            subject=subject,
            sender=sender,
            recipient=recipient,
            account=account,
            folder=folder,
            categories=categories or [],
            flags=flags or [],
            date_from=date_from,
            date_to=date_to,
        )
        result = await facade.search(search_query, page=page, size=min(size, MAX_PAGE_SIZE))
        return {
            "success": True,
            "pagination": {
                "page": result.page,
                "size": result.size,
                "total": result.total,
                "total_pages": result.total_pages,
            },
            "results": result.results,
        }

    @app.get("/api/emails/{message_id:path}")
    async def get_email(message_id: str) -> dict[str, Any]:
        doc = await facade.get_message(message_id)
        if doc is None:
            raise HTTPException(status_code=404, detail="message not found")
        return doc

    @app.get("/api/stats")
    async def stats() -> dict[str, Any]:
        return {"success": True, **await facade.stats()}

    @app.get("/api/folders")
    async def folders(account: str | None = None) -> list[dict[str, Any]]:
        return await facade.folders(account)

    @app.get("/api/accounts")
    async def accounts() -> list[dict[str, Any]]:
        return [
            {**s.model_dump(mode="json", exclude={"folders"}), "is_connected": s.is_connected}
            for s in facade.account_status()
        ]

    @app.get("/api/categories")
    async def categories() -> list[str]:
        return facade.categories()

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        return {"success": True, **await facade.health()}

    return app
