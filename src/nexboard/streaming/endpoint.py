"""Stream endpoint: turns one HTTP request into a live hub subscriber."""

from __future__ import annotations

import asyncio
import time
from typing import Protocol

from loguru import logger
from starlette.responses import PlainTextResponse, Response
from starlette.types import Receive, Scope, Send

from nexboard.streaming import events
from nexboard.streaming.events import Event, encode_frame
from nexboard.streaming.hub import EventHub
from nexboard.streaming.subscriber import Subscriber

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Keep reverse proxies from buffering frames.
    "X-Accel-Buffering": "no",
}


class StreamingUnsupported(Exception):
    """The response writer cannot flush frames individually."""


class StreamWriter(Protocol):
    async def write(self, data: bytes) -> None:
        ...

    async def flush(self) -> None:
        ...


def supports_flush(writer: object) -> bool:
    return callable(getattr(writer, "write", None)) and callable(getattr(writer, "flush", None))


class AsgiStreamWriter:
    """Writer over an ASGI `send` callable; each flush is one body message."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self._buffer = bytearray()

    async def write(self, data: bytes) -> None:
        self._buffer.extend(data)

    async def flush(self) -> None:
        if not self._buffer:
            return
        body = bytes(self._buffer)
        self._buffer.clear()
        await self._send({"type": "http.response.body", "body": body, "more_body": True})


class StreamSession:
    """Pump for a single subscriber.

    The session writes the `connected` greeting inline, registers with the
    hub, then copies mailbox events to the writer until the mailbox closes,
    a write fails or `cancel` is called. It never touches the registry
    itself; leaving always goes through `hub.unregister`.
    """

    def __init__(self, hub: EventHub, writer: StreamWriter) -> None:
        if not supports_flush(writer):
            raise StreamingUnsupported("Streaming unsupported")
        self.hub = hub
        self.writer = writer
        self.subscriber: Subscriber = hub.new_subscriber(writer)

    @property
    def client_id(self) -> str:
        return self.subscriber.id

    def cancel(self) -> None:
        self.subscriber.cancel()

    async def run(self) -> None:
        sub = self.subscriber
        greeting = Event(events.CONNECTED, {"client_id": sub.id, "timestamp": int(time.time())})
        if not await self._send(greeting):
            return

        self.hub.register(sub)
        try:
            while not sub.cancelled:
                event = await sub.mailbox.get()
                if event is None:
                    break
                if not await self._send(event):
                    break
        finally:
            self.hub.unregister(sub)

    async def _send(self, event: Event) -> bool:
        try:
            frame = encode_frame(event)
        except (TypeError, ValueError) as e:
            logger.error("Dropping unserialisable {} event for {}: {}", event.kind, self.client_id, e)
            return True

        try:
            await self.writer.write(frame)
            await self.writer.flush()
        except Exception as e:
            logger.info("Stream write failed for {}: {}", self.client_id, e)
            return False
        return True


async def _cancel_on_disconnect(receive: Receive, session: StreamSession) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            session.cancel()
            return


class EventStreamResponse(Response):
    """ASGI response serving one text/event-stream subscriber."""

    writer_class = AsgiStreamWriter

    def __init__(self, hub: EventHub) -> None:
        self.hub = hub
        self.status_code = 200
        self.background = None
        self.raw_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in STREAM_HEADERS.items()
        ]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            session = StreamSession(self.hub, self.writer_class(send))
        except StreamingUnsupported as e:
            logger.error("Cannot open event stream: {}", e)
            await PlainTextResponse(str(e), status_code=500)(scope, receive, send)
            return

        await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})

        watcher = asyncio.create_task(_cancel_on_disconnect(receive, session))
        try:
            await session.run()
        finally:
            watcher.cancel()
            try:
                await watcher
            except asyncio.CancelledError:
                pass

        if session.subscriber.cancelled:
            return
        try:
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        except Exception as e:
            logger.debug("Could not close stream for {}: {}", session.client_id, e)


__all__ = [
    "AsgiStreamWriter",
    "EventStreamResponse",
    "STREAM_HEADERS",
    "StreamSession",
    "StreamWriter",
    "StreamingUnsupported",
    "supports_flush",
]
