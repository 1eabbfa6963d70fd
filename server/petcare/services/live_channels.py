"""
In-process registry of live notification channels.

Each connected client owns one ``LiveChannel`` with a bounded queue; a
receiver may hold several (one per tab or device). Publishing never blocks:
a channel whose queue is full is considered broken, closed and dropped, and
its client catches up through replay when it reconnects.

The registry lives in process memory, so live push only reaches clients
connected to the same instance that created the notification.
"""

import asyncio
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable
from uuid import uuid4

from ..core.config import settings
from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass(frozen=True)
class LiveEvent:
    """One frame pushed to a live client."""

    event: str
    data: Any
    event_id: str | None = None
    # Notification row id; used to drop live copies of replayed rows
    sequence: int | None = None


def format_sse(event: LiveEvent) -> str:
    """Render an event as a Server-Sent Events frame."""
    lines = []
    if event.event_id:
        lines.append(f"id: {event.event_id}")
    lines.append(f"event: {event.event}")
    payload = event.data if isinstance(event.data, str) else json.dumps(event.data, default=str)
    lines.extend(f"data: {line}" for line in payload.splitlines() or [""])
    return "\n".join(lines) + "\n\n"


@dataclass(eq=False)
class LiveChannel:
    """A single client connection."""

    receiver_id: str
    maxsize: int = 256
    channel_id: str = field(default_factory=lambda: uuid4().hex)
    closed: bool = False

    def __post_init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._backlog: deque[LiveEvent] = deque()
        self._replayed: set[int] = set()

    def offer(self, event: LiveEvent) -> bool:
        """Queue an event without waiting. Returns False if the channel cannot take it."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def prime(self, events: Iterable[LiveEvent]) -> None:
        """
        Load replayed events ahead of anything live.

        Live copies of the replayed rows that were queued meanwhile are
        skipped when read.
        """
        for event in events:
            self._backlog.append(event)
            if event.sequence is not None:
                self._replayed.add(event.sequence)

    @property
    def pending(self) -> int:
        return len(self._backlog) + self._queue.qsize()

    async def next_event(self, timeout: float | None = None) -> LiveEvent | None:
        """
        Next event to write, or None when ``timeout`` elapses or the channel closes.
        """
        if self._backlog:
            return self._backlog.popleft()

        while not self.closed:
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                return None
            if item is _CLOSED:
                return None
            if item.sequence is not None and item.sequence in self._replayed:
                continue
            return item
        return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)


class LiveChannelRegistry:
    """Thread-safe map of receiver id to that receiver's open channels."""

    def __init__(self, queue_size: int | None = None):
        self.queue_size = queue_size or settings.live_queue_size
        self._channels: dict[str, set[LiveChannel]] = {}
        self._lock = threading.Lock()

    def open(self, receiver_id: str) -> LiveChannel:
        channel = LiveChannel(receiver_id=receiver_id, maxsize=self.queue_size)
        with self._lock:
            self._channels.setdefault(receiver_id, set()).add(channel)
        metrics_collector.set_live_channels(self.connection_count())
        logger.info(
            "Live channel opened",
            extra={"receiver_id": receiver_id, "channel_id": channel.channel_id}
        )
        return channel

    def close(self, channel: LiveChannel) -> None:
        """Close a channel and forget it. Safe to call more than once."""
        with self._lock:
            channels = self._channels.get(channel.receiver_id)
            if channels is not None:
                channels.discard(channel)
                if not channels:
                    del self._channels[channel.receiver_id]
        channel.close()
        metrics_collector.set_live_channels(self.connection_count())
        logger.debug(
            "Live channel closed",
            extra={"receiver_id": channel.receiver_id, "channel_id": channel.channel_id}
        )

    def channels_of(self, receiver_id: str) -> list[LiveChannel]:
        with self._lock:
            return list(self._channels.get(receiver_id, ()))

    def connection_count(self) -> int:
        with self._lock:
            return sum(len(channels) for channels in self._channels.values())

    def publish(self, receiver_id: str, event: LiveEvent) -> int:
        """
        Offer an event to every channel of a receiver.

        Returns the number of channels that accepted it. Channels that
        refuse are closed and removed.
        """
        delivered = 0
        for channel in self.channels_of(receiver_id):
            if channel.offer(event):
                delivered += 1
                continue
            metrics_collector.record_live_event_dropped()
            logger.warning(
                "Dropping unresponsive live channel",
                extra={
                    "receiver_id": receiver_id,
                    "channel_id": channel.channel_id,
                    "event": event.event,
                }
            )
            self.close(channel)
        return delivered

    def close_all(self) -> None:
        with self._lock:
            channels = [c for group in self._channels.values() for c in group]
            self._channels.clear()
        for channel in channels:
            channel.close()
        metrics_collector.set_live_channels(0)
        if channels:
            logger.info("Closed all live channels", extra={"count": len(channels)})


async def event_stream(
    channel: LiveChannel,
    registry: LiveChannelRegistry,
    keepalive_seconds: float | None = None,
    retry_millis: int | None = None,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for a channel until it closes or the client goes away.

    The channel is always unregistered when the generator finishes.
    """
    keepalive = keepalive_seconds or settings.live_keepalive_seconds
    retry = retry_millis or settings.live_retry_millis
    try:
        yield f"retry: {retry}\n\n"
        yield format_sse(LiveEvent(event="keepalive", data="ok"))
        while not channel.closed:
            event = await channel.next_event(timeout=keepalive)
            if event is None:
                if channel.closed:
                    break
                yield ": keepalive\n\n"
                continue
            yield format_sse(event)
    finally:
        registry.close(channel)


# Process-wide registry used by the application
live_channels = LiveChannelRegistry()
