"""Connected stream clients and their bounded mailboxes."""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from typing import Deque, Optional

from nexboard.streaming.events import Event


class Mailbox:
    """Bounded single-producer/single-consumer event buffer.

    The dispatcher is the only caller of `offer` and `close`; the stream pump
    is the only caller of `get`. Events buffered before `close` are still
    handed out, after which `get` returns None.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("mailbox capacity must be >= 1")
        self._capacity = capacity
        self._items: Deque[Event] = deque()
        self._closed = False
        self._interrupted = False
        self._ready = asyncio.Event()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def full(self) -> bool:
        return len(self._items) >= self._capacity

    def offer(self, event: Event) -> bool:
        """Enqueue without waiting. False when full or closed."""
        if self._closed or self.full():
            return False
        self._items.append(event)
        self._ready.set()
        return True

    def close(self) -> bool:
        """Close the mailbox. Returns True only for the call that closed it."""
        if self._closed:
            return False
        self._closed = True
        self._ready.set()
        return True

    def interrupt(self) -> None:
        """Make the pending and every later `get` return None at once."""
        self._interrupted = True
        self._ready.set()

    async def get(self) -> Optional[Event]:
        while True:
            if self._interrupted:
                return None
            if self._items:
                return self._items.popleft()
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()


class Subscriber:
    """A single connected streaming consumer of the hub."""

    def __init__(self, subscriber_id: str, mailbox_capacity: int, writer=None) -> None:
        self.id = subscriber_id
        self.mailbox = Mailbox(mailbox_capacity)
        self.writer = writer
        self.created_at = time.time()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """One-shot cancellation signal; wakes the pump if it is waiting."""
        if self._cancelled:
            return
        self._cancelled = True
        self.mailbox.interrupt()

    def __repr__(self) -> str:
        return f"Subscriber(id={self.id!r}, backlog={len(self.mailbox)}, closed={self.mailbox.closed})"


class SubscriberIdFactory:
    """Monotonic, process-unique subscriber ids: client_1, client_2, ..."""

    def __init__(self, prefix: str = "client_") -> None:
        if "\n" in prefix or "\r" in prefix:
            raise ValueError("id prefix may not contain newlines")
        self._prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self._prefix}{next(self._counter)}"


__all__ = ["Mailbox", "Subscriber", "SubscriberIdFactory"]
