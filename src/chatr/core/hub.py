"""Broadcast hub: live feed connections and fan-out.

Each live connection owns a bounded outbound queue drained by its own SSE
generator. The hub never awaits a client:

  ┌──────────────┐  publish   ┌─────────────────┐  put_nowait  ┌──────────┐
  │  MessageLog  │───────────▶│  BroadcastHub   │─────────────▶│ queue #1 │──▶ SSE
  └──────────────┘            │ (registry lock) │─────────────▶│ queue #2 │──▶ SSE
                              └─────────────────┘              └──────────┘

Connection lifecycle: ``CONNECTING → OPEN → CLOSED``.
  - CONNECTING: admitted and registered; live events are buffered.
  - OPEN: the ``history`` frame is queued first, then buffered events newer
    than the snapshot, then live events.
  - CLOSED: transport went away or the queue overflowed; deregistered.

A connection that falls behind far enough to fill its queue is dropped; the
client reconnects and re-derives state from the history replay.
"""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from chatr.core.directory import AgentDirectory
from chatr.core.message_log import MessageLog
from chatr.core.payloads import StatsOut, message_payload
from chatr.exceptions import CapacityExceeded, TooManyConnections
from chatr.observability import global_metrics
from chatr.store.base import MessageRecord

logger = logging.getLogger("chatr.hub")


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionClosed(Exception):
    """Raised when delivering to, or reading from, a closed connection."""
    pass


@dataclass(frozen=True)
class HubEvent:
    """One frame on the live feed."""
    type: str
    data: Dict[str, Any]
    message_id: Optional[int] = None

    def encode(self) -> str:
        return f"event: {self.type}\ndata: {json.dumps(self.data, default=str)}\n\n"


# Wakes a reader blocked on an empty queue when the connection closes
_CLOSED = object()


class LiveConnection:
    """A single live feed subscriber."""

    def __init__(self, connection_id: int, client_addr: str, queue_size: int = 256):
        self.id = connection_id
        self.client_addr = client_addr
        self.state = ConnectionState.CONNECTING
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._pending: List[HubEvent] = []
        self._last_message_id = 0

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def deliver(self, event: HubEvent) -> None:
        """Queue an event without blocking.

        Raises:
            ConnectionClosed: the connection is closed or its queue is full.
        """
        if self.state is ConnectionState.CLOSED:
            raise ConnectionClosed(f"connection {self.id} is closed")
        if self.state is ConnectionState.CONNECTING:
            self._pending.append(event)
            return
        if event.message_id is not None:
            # Already covered by the history snapshot
            if event.message_id <= self._last_message_id:
                return
            self._last_message_id = event.message_id
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            raise ConnectionClosed(f"connection {self.id} outbound queue full") from None

    def activate(self, history: List[MessageRecord]) -> None:
        """Queue the history frame, flush buffered events, and go OPEN."""
        self._last_message_id = history[-1].id if history else 0
        self._queue.put_nowait(
            HubEvent("history", {"messages": [message_payload(m) for m in history]})
        )
        pending, self._pending = self._pending, []
        self.state = ConnectionState.OPEN
        for event in pending:
            self.deliver(event)

    async def next_event(self, timeout: Optional[float] = None) -> Optional[HubEvent]:
        """Wait for the next frame. Returns None if ``timeout`` elapses first."""
        if self.state is ConnectionState.CLOSED and self._queue.empty():
            raise ConnectionClosed(f"connection {self.id} is closed")
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            raise ConnectionClosed(f"connection {self.id} is closed")
        return item

    def close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self._pending.clear()
        # Undelivered frames are discarded; the reader only needs the wake-up
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __repr__(self) -> str:
        return f"<LiveConnection(id={self.id}, client={self.client_addr!r}, state={self.state.value})>"


class BroadcastHub:
    """Registry of live connections with best-effort fan-out.

    Parameters:
        directory: Source of agent counts for stats frames.
        log: Message log; the hub subscribes to its appends and reads the
            history snapshot from it.
        max_connections: Global cap on open live feeds.
        max_per_client: Cap per source address.
        queue_size: Outbound frames buffered per connection.
        history_size: Messages replayed to each new connection.
    """

    def __init__(
        self,
        directory: AgentDirectory,
        log: MessageLog,
        *,
        max_connections: int = 1000,
        max_per_client: int = 5,
        queue_size: int = 256,
        history_size: int = 100,
    ):
        self._directory = directory
        self._log = log
        self._max_connections = max_connections
        self._max_per_client = max_per_client
        self._queue_size = queue_size
        self._history_size = history_size
        self._connections: Dict[int, LiveConnection] = {}
        self._per_client: Dict[str, int] = {}
        self._next_id = 0
        # Never held across an await or a delivery
        self._lock = threading.Lock()
        log.subscribe(self.publish_message)

    # -- Connections ----------------------------------------------------------

    async def open(self, client_addr: str) -> LiveConnection:
        """Admit a new live feed and queue its history replay.

        Raises:
            CapacityExceeded: the global cap is reached.
            TooManyConnections: ``client_addr`` is at its own cap.
        """
        with self._lock:
            if len(self._connections) >= self._max_connections:
                raise CapacityExceeded("Live feed at capacity")
            if self._per_client.get(client_addr, 0) >= self._max_per_client:
                raise TooManyConnections("Too many live connections from this address")
            self._next_id += 1
            connection = LiveConnection(self._next_id, client_addr, self._queue_size)
            self._connections[connection.id] = connection
            self._per_client[client_addr] = self._per_client.get(client_addr, 0) + 1
        global_metrics.adjust_gauge("chatr.stream.open", 1)

        try:
            history = await self._log.recent(self._history_size)
            connection.activate(history)
        except ConnectionClosed:
            self.close(connection)
        except BaseException:
            self.close(connection)
            raise

        global_metrics.increment_counter("chatr.stream.connections")
        logger.info(
            "Live connection %d opened from %s (%d open)",
            connection.id, client_addr, self.connection_count,
        )
        return connection

    def close(self, connection: LiveConnection) -> None:
        """Deregister a connection. Safe to call more than once."""
        with self._lock:
            removed = self._connections.pop(connection.id, None)
            if removed is not None:
                remaining = self._per_client.get(connection.client_addr, 0) - 1
                if remaining > 0:
                    self._per_client[connection.client_addr] = remaining
                else:
                    self._per_client.pop(connection.client_addr, None)
        connection.close()
        if removed is not None:
            global_metrics.adjust_gauge("chatr.stream.open", -1)
            logger.info("Live connection %d closed (%d open)", connection.id, self.connection_count)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def count_for(self, client_addr: str) -> int:
        return self._per_client.get(client_addr, 0)

    def shutdown(self) -> None:
        with self._lock:
            connections = list(self._connections.values())
        for connection in connections:
            self.close(connection)

    # -- Fan-out --------------------------------------------------------------

    def broadcast(self, event_type: str, payload: Dict[str, Any], *, message_id: Optional[int] = None) -> int:
        """Deliver an event to every connection. Returns how many accepted it."""
        event = HubEvent(event_type, payload, message_id)
        with self._lock:
            snapshot = list(self._connections.values())

        delivered = 0
        for connection in snapshot:
            try:
                connection.deliver(event)
                delivered += 1
            except ConnectionClosed as e:
                logger.warning("Dropping live connection %d: %s", connection.id, e)
                global_metrics.increment_counter("chatr.broadcast.dropped")
                self.close(connection)
        return delivered

    def publish_message(self, message: MessageRecord) -> int:
        delivered = self.broadcast("message", message_payload(message), message_id=message.id)
        global_metrics.record_histogram("chatr.broadcast.fanout", delivered)
        return delivered

    async def stats(self) -> StatsOut:
        return StatsOut(
            total_agents=await self._directory.count(),
            online_agents=await self._directory.count_online(),
            total_messages=await self._log.count(),
        )

    async def broadcast_stats(self) -> int:
        if not self._connections:
            return 0
        stats = await self.stats()
        return self.broadcast("stats", stats.model_dump(by_alias=True))
