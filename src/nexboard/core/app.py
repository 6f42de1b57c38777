"""Application bootstrap."""

import uvicorn
from fastapi import FastAPI
from loguru import logger

from nexboard.config import Settings, get_settings
from nexboard.core.logging import configure_logging
from nexboard.monitoring.api import create_app
from nexboard.streaming.hub import EventHub

GRACEFUL_SHUTDOWN_TIMEOUT = 5


class EventStreamServer(uvicorn.Server):
    """Uvicorn server that ends open event streams before draining connections.

    Streams never finish on their own, so the hub is stopped as soon as
    shutdown begins. Every stream then sends its final chunk and uvicorn's
    wait for in-flight requests returns promptly. The lifespan stop that
    follows is a no-op.
    """

    def __init__(self, config: uvicorn.Config, hub: EventHub) -> None:
        super().__init__(config)
        self.hub = hub

    async def shutdown(self, sockets=None) -> None:
        logger.info("Closing {} open event stream(s)", self.hub.count())
        await self.hub.stop()
        await super().shutdown(sockets=sockets)


def build_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info("Booting NexBoard in {} mode", settings.environment)
    return create_app(settings)


def build_server(app: FastAPI, settings: Settings) -> EventStreamServer:
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT,
    )
    return EventStreamServer(config, app.state.hub)


def run() -> None:
    settings = get_settings()
    app = build_app(settings)
    logger.info(f"Starting API on {settings.api_host}:{settings.api_port}")
    build_server(app, settings).run()


if __name__ == "__main__":
    run()
