"""In-process fan-out hub for the live event stream.

A single dispatcher task owns the subscriber registry and drains one inbox
carrying register, unregister and broadcast requests in arrival order.
Broadcasts are offered to every subscriber mailbox without waiting; a full
mailbox marks a slow consumer, which is evicted on the spot so one stuck
client can never hold up the others.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Optional, Tuple

from loguru import logger

from nexboard.config.settings import Settings
from nexboard.streaming import events
from nexboard.streaming.events import Event
from nexboard.streaming.registry import SubscriberRegistry
from nexboard.streaming.subscriber import Subscriber, SubscriberIdFactory

_REGISTER = "register"
_UNREGISTER = "unregister"
_BROADCAST = "broadcast"
_STOP = "stop"


@dataclass(frozen=True)
class HubConfig:
    """Tunables for the hub."""

    mailbox_capacity: int = 10
    broadcast_capacity: int = 100
    heartbeat_interval: float = 30.0
    id_prefix: str = "client_"
    drop_warning_interval: float = 10.0

    def __post_init__(self) -> None:
        if self.mailbox_capacity < 1:
            raise ValueError("mailbox_capacity must be >= 1")
        if self.broadcast_capacity < 1:
            raise ValueError("broadcast_capacity must be >= 1")
        if self.heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be > 0")
        if self.drop_warning_interval < 0:
            raise ValueError("drop_warning_interval must be >= 0")
        if "\n" in self.id_prefix or "\r" in self.id_prefix:
            raise ValueError("id_prefix may not contain newlines")

    @classmethod
    def from_settings(cls, settings: Settings) -> "HubConfig":
        return cls(
            mailbox_capacity=settings.mailbox_capacity,
            broadcast_capacity=settings.broadcast_capacity,
            heartbeat_interval=settings.heartbeat_interval,
            id_prefix=settings.id_prefix,
            drop_warning_interval=settings.drop_warning_interval,
        )


@dataclass
class HubStats:
    """Counters exposed for monitoring."""

    published: int = 0
    broadcast_dropped: int = 0
    delivered: int = 0
    evicted: int = 0


class _Inbox:
    """Multi-producer, single-consumer request queue of the dispatcher.

    Only broadcast requests count against the capacity; membership changes
    are always accepted so a connect or disconnect is never lost.
    """

    def __init__(self, broadcast_capacity: int) -> None:
        self._items: Deque[Tuple[str, Any]] = deque()
        self._capacity = broadcast_capacity
        self._pending_broadcasts = 0
        self._ready = asyncio.Event()

    def put_control(self, op: str, item: Any) -> None:
        self._items.append((op, item))
        self._ready.set()

    def put_broadcast(self, event: Event) -> bool:
        if self._pending_broadcasts >= self._capacity:
            return False
        self._pending_broadcasts += 1
        self._items.append((_BROADCAST, event))
        self._ready.set()
        return True

    async def get(self) -> Tuple[str, Any]:
        while not self._items:
            self._ready.clear()
            await self._ready.wait()
        op, item = self._items.popleft()
        if op == _BROADCAST:
            self._pending_broadcasts -= 1
        return op, item

    @property
    def pending_broadcasts(self) -> int:
        return self._pending_broadcasts

    def __len__(self) -> int:
        return len(self._items)


class EventHub:
    """Publish/subscribe hub feeding long-lived event-stream clients."""

    def __init__(self, config: HubConfig | None = None) -> None:
        self.config = config or HubConfig()
        self._registry = SubscriberRegistry()
        self._inbox = _Inbox(self.config.broadcast_capacity)
        self._next_id = SubscriberIdFactory(self.config.id_prefix)
        self._stats = HubStats()

        self._running = False
        self._stopped = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None

        self._last_drop_warning: float | None = None
        self._drops_since_warning = 0

        # Thread-side handoffs scheduled on the loop but not yet published.
        self._handoff_lock = threading.Lock()
        self._handoffs = 0
        self._handoff_dropped = 0
        self._handoff_drop_scheduled = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "EventHub":
        return cls(HubConfig.from_settings(settings))

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the dispatcher and heartbeat tasks on the running loop."""
        if self._running:
            return
        if self._stopped:
            raise RuntimeError("event hub cannot be restarted after stop")

        self._loop = asyncio.get_running_loop()
        self._running = True
        self._dispatcher_task = asyncio.create_task(self._dispatch_loop(), name="event-hub-dispatcher")
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="event-hub-heartbeat")
        logger.info(
            "Event hub started (mailbox={}, inbox={}, heartbeat={}s)",
            self.config.mailbox_capacity,
            self.config.broadcast_capacity,
            self.config.heartbeat_interval,
        )

    async def stop(self) -> None:
        """Stop the hub. Safe to call any number of times."""
        if self._shutdown_task is None:
            if not self._running:
                self._stopped = True
                return
            self._shutdown_task = asyncio.create_task(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        self._running = False
        self._stopped = True

        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass

        # Requests queued before the stop marker are still processed.
        self._inbox.put_control(_STOP, None)
        if self._dispatcher_task:
            await self._dispatcher_task
        logger.info("Event hub stopped")

    async def __aenter__(self) -> "EventHub":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Producer surface
    # ------------------------------------------------------------------

    def publish(self, event: Event) -> None:
        """Best-effort, non-blocking submission of an event."""
        if not self._running:
            logger.debug("Event hub not running; ignoring {} event", event.kind)
            return
        if self._inbox.put_broadcast(event):
            self._stats.published += 1
            return
        self._stats.broadcast_dropped += 1
        self._drops_since_warning += 1
        self._warn_dropped()

    def publish_threadsafe(self, event: Event) -> None:
        """Publish from a thread that does not run the hub's event loop.

        Events still waiting for the loop count against the broadcast
        capacity, so a busy loop makes thread producers drop instead of
        piling up callbacks. Drops are accounted on the loop in batches.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not self._running:
            logger.debug("Event hub not running; ignoring {} event", event.kind)
            return

        with self._handoff_lock:
            if self._handoffs + self._inbox.pending_broadcasts < self.config.broadcast_capacity:
                self._handoffs += 1
                callback, args = self._accept_handoff, (event,)
            else:
                self._handoff_dropped += 1
                if self._handoff_drop_scheduled:
                    return
                self._handoff_drop_scheduled = True
                callback, args = self._record_handoff_drops, ()
        loop.call_soon_threadsafe(callback, *args)

    def _accept_handoff(self, event: Event) -> None:
        with self._handoff_lock:
            self._handoffs -= 1
        self.publish(event)

    def _record_handoff_drops(self) -> None:
        with self._handoff_lock:
            dropped = self._handoff_dropped
            self._handoff_dropped = 0
            self._handoff_drop_scheduled = False
        self._stats.broadcast_dropped += dropped
        self._drops_since_warning += dropped
        self._warn_dropped()

    def publish_alert(self, alert: Any) -> None:
        self.publish(Event(events.ALERT, alert))

    def publish_ack(self, alert_id: int) -> None:
        self.publish(Event(events.ACK, {"alert_id": alert_id}))

    def publish_health(self, status: Any) -> None:
        self.publish(Event(events.HEALTH, status))

    def _warn_dropped(self) -> None:
        now = time.monotonic()
        interval = self.config.drop_warning_interval
        if self._last_drop_warning is not None and now - self._last_drop_warning < interval:
            return
        logger.warning(
            "Broadcast inbox full, dropped {} event(s) (total dropped: {})",
            self._drops_since_warning,
            self._stats.broadcast_dropped,
        )
        self._last_drop_warning = now
        self._drops_since_warning = 0

    # ------------------------------------------------------------------
    # Subscriber surface (used by the stream endpoint)
    # ------------------------------------------------------------------

    def new_subscriber(self, writer=None) -> Subscriber:
        return Subscriber(self._next_id(), self.config.mailbox_capacity, writer=writer)

    def register(self, sub: Subscriber) -> None:
        if not self._running:
            # Nothing will ever be delivered; let the pump finish at once.
            sub.mailbox.close()
            return
        self._inbox.put_control(_REGISTER, sub)

    def unregister(self, sub: Subscriber) -> None:
        """Ask the dispatcher to drop `sub`. Idempotent."""
        if not self._running:
            return
        self._inbox.put_control(_UNREGISTER, sub)

    def count(self) -> int:
        """Current number of registered subscribers."""
        return self._registry.count()

    def stats(self) -> dict:
        data = asdict(self._stats)
        data.update(running=self._running, subscribers=self.count())
        return data

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        while True:
            op, item = await self._inbox.get()
            if op == _STOP:
                break
            try:
                if op == _BROADCAST:
                    self._broadcast(item)
                elif op == _REGISTER:
                    self._add(item)
                elif op == _UNREGISTER:
                    self._remove(item)
            except Exception as e:
                logger.exception(f"Event hub failed handling {op}: {e}")
            # Let pumps drain between requests.
            await asyncio.sleep(0)

        for sub in self._registry.clear():
            logger.info("subscriber disconnected {}", sub.id)

    def _add(self, sub: Subscriber) -> None:
        self._registry.insert(sub)
        logger.info("subscriber connected {}", sub.id)

    def _remove(self, sub: Subscriber) -> None:
        if self._registry.get(sub.id) is not sub:
            return
        self._registry.remove(sub.id)
        logger.info("subscriber disconnected {}", sub.id)

    def _broadcast(self, event: Event) -> None:
        slow = []
        for sub in self._registry.snapshot():
            if sub.mailbox.offer(event):
                self._stats.delivered += 1
            else:
                slow.append(sub.id)

        if slow:
            for sub in self._registry.remove_many(slow):
                self._stats.evicted += 1
                logger.info("slow consumer evicted {}", sub.id)

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        interval = self.config.heartbeat_interval
        while self._running:
            await asyncio.sleep(interval)
            if not self._running:
                break
            if self.count() == 0:
                continue
            self.publish(Event(events.PING, {"timestamp": int(time.time())}))


__all__ = ["EventHub", "HubConfig", "HubStats"]
