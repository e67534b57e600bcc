"""Fan-out of telemetry snapshots to any number of subscribers.

Each subscriber owns a bounded queue. Publishing never blocks: when a queue
is full its oldest snapshot is discarded to make room for the newest, so a
slow client falls behind only by skipping stale readings and never delays
the sampler or other clients.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading

from ..models import TelemetrySnapshot

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscriber:
    """One consumer's view of the snapshot stream.

    Iterate with ``async for snapshot in subscriber``; iteration ends once
    the subscriber is closed (by the hub or by :meth:`BroadcastHub.unsubscribe`).
    """

    def __init__(self, sub_id: int, queue_size: int) -> None:
        self.id = sub_id
        self.dropped = 0
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))

    def offer(self, item) -> None:
        """Enqueue without blocking, evicting the oldest entry when full."""
        try:
            self._queue.put_nowait(item)
            return
        except asyncio.QueueFull:
            pass
        try:
            self._queue.get_nowait()
            self.dropped += 1
        except asyncio.QueueEmpty:
            pass
        self._queue.put_nowait(item)

    def _close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.offer(_CLOSED)

    async def get(self) -> TelemetrySnapshot | None:
        """Next snapshot, or ``None`` once closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def get_nowait(self) -> TelemetrySnapshot | None:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def __aiter__(self) -> Subscriber:
        return self

    async def __anext__(self) -> TelemetrySnapshot:
        item = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item


class BroadcastHub:
    """Registry of subscribers plus non-blocking publish.

    :meth:`publish` must be called on the event loop thread.
    :meth:`push_immediate` may be called from any thread.
    """

    def __init__(self, queue_size: int = 10) -> None:
        self.queue_size = queue_size
        self._subscribers: tuple[Subscriber, ...] = ()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                pass
        sub = Subscriber(next(self._ids), self.queue_size)
        if self._closed:
            sub._close()
            return sub
        with self._lock:
            self._subscribers = self._subscribers + (sub,)
        logger.debug("Subscriber %d added (%d total)", sub.id, len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        """Remove *sub*; no-op when it is already gone."""
        with self._lock:
            if sub not in self._subscribers:
                return
            self._subscribers = tuple(s for s in self._subscribers if s is not sub)
        sub._close()
        if sub.dropped:
            logger.debug("Subscriber %d removed after dropping %d snapshots", sub.id, sub.dropped)

    def publish(self, snapshot: TelemetrySnapshot) -> None:
        for sub in self._subscribers:
            if not sub.closed:
                sub.offer(snapshot)

    def push_immediate(self, snapshot: TelemetrySnapshot) -> None:
        """Publish out of band (media changes) from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self.publish(snapshot)
        else:
            loop.call_soon_threadsafe(self.publish, snapshot)

    def reopen(self) -> None:
        """Accept subscribers again after :meth:`close`."""
        with self._lock:
            self._closed = False

    def close(self) -> None:
        """Close every subscriber; later subscribers start closed."""
        with self._lock:
            subs, self._subscribers = self._subscribers, ()
            self._closed = True
        for sub in subs:
            sub._close()
