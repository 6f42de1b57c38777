"""Shared helpers for the live event stream tests."""

from __future__ import annotations

import asyncio
import json
from typing import Callable, List, Optional, Tuple

import pytest
from loguru import logger


class RecordingWriter:
    """In-memory stream writer.

    `block_after` stalls every write once that many frames have been
    flushed, until `release()` is called. `fail_after` raises a connection
    error on the write following that many flushed frames.
    """

    def __init__(self, block_after: Optional[int] = None, fail_after: Optional[int] = None) -> None:
        self.frames: List[bytes] = []
        self.flushes = 0
        self._pending = bytearray()
        self._block_after = block_after
        self._fail_after = fail_after
        self._gate = asyncio.Event()
        self.blocked = asyncio.Event()

    async def write(self, data: bytes) -> None:
        if self._fail_after is not None and len(self.frames) >= self._fail_after:
            raise ConnectionResetError("client went away")
        if self._block_after is not None and len(self.frames) >= self._block_after:
            self.blocked.set()
            await self._gate.wait()
        self._pending.extend(data)

    async def flush(self) -> None:
        self.flushes += 1
        if self._pending:
            self.frames.append(bytes(self._pending))
            self._pending.clear()

    def release(self) -> None:
        self._block_after = None
        self._gate.set()

    def parsed(self) -> List[Tuple[str, object]]:
        return [parse_frame(frame) for frame in self.frames]

    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.parsed()]


class NoFlushWriter:
    async def write(self, data: bytes) -> None:
        pass


def parse_frame(frame: bytes) -> Tuple[str, object]:
    text = frame.decode("utf-8")
    assert text.endswith("\n\n"), text
    event_line, data_line = text[:-2].split("\n")
    assert event_line.startswith("event: ")
    assert data_line.startswith("data: ")
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])


def parse_stream(body: bytes) -> List[Tuple[str, object]]:
    chunks = [c for c in body.split(b"\n\n") if c]
    return [parse_frame(c + b"\n\n") for c in chunks]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages: List[str] = []
    handler_id = logger.add(lambda msg: messages.append(msg.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
