"""Web API for the operations dashboard live stream."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from nexboard.config.settings import Settings
from nexboard.streaming.auth import StaticTokenVerifier, TokenVerifier
from nexboard.streaming.endpoint import EventStreamResponse
from nexboard.streaming.hub import EventHub

LEGACY_STREAM_PATH = "/events"


class DashboardAPI:
    """Web API exposing the live event stream and hub health."""

    def __init__(
        self,
        settings: Settings,
        hub: EventHub | None = None,
        verifier: TokenVerifier | None = None,
    ):
        """
        Initialize dashboard API.

        Args:
            settings: Application settings
            hub: Event hub to serve; built from settings when omitted
            verifier: Stream token check; static tokens from settings when omitted
        """
        self.settings = settings
        self.hub = hub or EventHub.from_settings(settings)
        self.verifier = verifier or StaticTokenVerifier(settings.stream_tokens)
        self.app = FastAPI(title="NexBoard API", version="1.0.0", lifespan=self._lifespan)
        self.app.state.hub = self.hub

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Accept", "Authorization", "Cache-Control", "Content-Type", "X-CSRF-Token", "X-Requested-With"],
            expose_headers=["Link"],
            max_age=300,
        )

        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.hub.start()
        try:
            yield
        finally:
            await self.hub.stop()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/api/health")
        async def health_check():
            """Health check endpoint."""
            return {
                "status": "ok" if self.hub.running else "degraded",
                "subscribers": self.hub.count(),
                "timestamp": datetime.now().isoformat(),
            }

        @self.app.get("/api/events/stats")
        async def get_stream_stats():
            """Live stream counters."""
            return self.hub.stats()

        async def stream_events(token: Optional[str] = Query(None)):
            """Open a text/event-stream of dashboard events."""
            if not token or not await self.verifier.verify(token):
                raise HTTPException(status_code=401, detail="Authentication token required")
            return EventStreamResponse(self.hub)

        for path in dict.fromkeys([self.settings.stream_path, LEGACY_STREAM_PATH]):
            self.app.add_api_route(path, stream_events, methods=["GET"], include_in_schema=path != LEGACY_STREAM_PATH)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request, exc):
            """Handle all uncaught exceptions."""
            logger.error(f"Unhandled exception: {exc}")
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "message": str(exc),
                    "timestamp": datetime.now().isoformat()
                }
            )


def create_app(settings: Settings, hub: EventHub | None = None, verifier: TokenVerifier | None = None) -> FastAPI:
    return DashboardAPI(settings, hub=hub, verifier=verifier).app


__all__ = ["DashboardAPI", "create_app", "LEGACY_STREAM_PATH"]
