"""
sportml-chat: FastAPI application exposing the chat endpoint.

Endpoints:
    POST /api/ai           - Chat: {"message": "..."} → {reply, provider, cached, responseTime, usage}
    GET  /api/next-events  - Next events of a league from the schedule feed
    GET  /health           - Liveness, plus provider probes with ?deep=true
    GET  /stats            - Endpoint, rate limiter and cache statistics
    GET  /providers        - Provider configuration status

Run:
    sportml-chat                      # uses HOST / PORT from the environment
    uvicorn sportml_chat.server:app   # same app via the module-level instance
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sportml_chat.config import Settings
from sportml_chat.orchestrator import ChatOrchestrator
from sportml_chat.schedule import ENGLISH_PREMIER_LEAGUE, ScheduleFeed, ScheduleFeedError

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

# Checked in order after X-Forwarded-For
_FALLBACK_CLIENT_HEADERS = ("x-real-ip", "cf-connecting-ip")


def resolve_client_id(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit identity from forwarding headers.

    Uses the first address of X-Forwarded-For, then X-Real-IP, then
    CF-Connecting-IP. Requests without any of them share the "unknown" bucket.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    for name in _FALLBACK_CLIENT_HEADERS:
        value = headers.get(name)
        if value and value.strip():
            return value.strip()

    return UNKNOWN_CLIENT


def create_app(
    settings: Settings | None = None,
    orchestrator: ChatOrchestrator | None = None,
    schedule_feed: ScheduleFeed | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        settings: Application settings; read from the environment if omitted.
        orchestrator: Pre-built orchestrator (tests); built from settings if omitted.
        schedule_feed: Feed for /api/next-events; defaults to the orchestrator's.
    """
    settings = settings or Settings.from_env()
    orchestrator = orchestrator or ChatOrchestrator.from_settings(settings)
    feed = schedule_feed or orchestrator.schedule_feed or ScheduleFeed(
        base_url=settings.sportsdb_base_url, api_key=settings.sportsdb_api_key
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await orchestrator.start()
        yield
        await orchestrator.stop()
        await feed.close()

    app = FastAPI(title="SportML Chat", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.settings = settings

    @app.post("/api/ai")
    async def chat(request: Request) -> JSONResponse:
        client_id = resolve_client_id(request.headers)
        raw_body = await request.body()
        response = await orchestrator.handle(raw_body, client_id=client_id)
        return JSONResponse(
            status_code=response.status_code,
            content=response.body,
            headers=response.headers,
        )

    @app.get("/api/next-events")
    async def next_events(leagueId: str = ENGLISH_PREMIER_LEAGUE) -> JSONResponse:  # noqa: N803
        try:
            events = await feed.next_events(leagueId, limit=5)
        except ScheduleFeedError as e:
            logger.warning(f"Schedule feed failed for league {leagueId}: {e}")
            return JSONResponse(
                status_code=502,
                content={"error": "The sports schedule is unavailable right now. Please try again later."},
            )
        return JSONResponse(content={"events": [event.to_dict() for event in events]})

    @app.get("/health")
    async def health(deep: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": "ok",
            "providers": len(orchestrator.get_provider_status()),
        }
        if deep:
            result["reachable"] = await orchestrator.health()
        return result

    @app.get("/stats")
    async def stats() -> dict[str, Any]:
        return orchestrator.get_stats()

    @app.get("/providers")
    async def providers() -> dict[str, Any]:
        return orchestrator.get_provider_status()

    return app


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main() -> None:
    """Console entry point: run the app under uvicorn."""
    import uvicorn

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


def __getattr__(name: str) -> object:
    """Build the module-level ``app`` on first access (``uvicorn sportml_chat.server:app``)."""
    if name == "app":
        app = create_app()
        globals()["app"] = app
        return app
    raise AttributeError(f"module 'sportml_chat.server' has no attribute {name!r}")
