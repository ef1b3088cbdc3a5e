"""Live feed endpoint (Server-Sent Events).

Routes:
  GET /stream – ``history`` frame, then ``message`` and ``stats`` frames

Frames are ``event: <type>`` + ``data: <json>``. A ``: ping`` comment is
sent whenever the feed has been idle for ``STREAM_PING_INTERVAL`` seconds.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from chatr.core.hub import BroadcastHub, ConnectionClosed, LiveConnection
from chatr.core.services import ChatServices
from chatr.server.deps import client_address, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stream"])

PING_FRAME = ": ping\n\n"


async def stream_events(
    connection: LiveConnection,
    hub: BroadcastHub,
    is_disconnected: Callable[[], Awaitable[bool]],
    ping_interval: float = 15.0,
) -> AsyncIterator[str]:
    """Drain a connection's queue as SSE text until either side goes away."""
    try:
        while True:
            try:
                event = await connection.next_event(timeout=ping_interval)
            except ConnectionClosed:
                break
            if event is None:
                if await is_disconnected():
                    break
                yield PING_FRAME
                continue
            yield event.encode()
    finally:
        hub.close(connection)
        logger.debug("Live feed %d finished", connection.id)


class LiveFeedResponse(StreamingResponse):
    """SSE response that deregisters its connection however the response ends.

    The body generator only cleans up once it has started; a client that is
    gone before the first frame would otherwise keep its admission slot.
    """

    def __init__(self, connection: LiveConnection, hub: BroadcastHub, content, **kwargs):
        kwargs.setdefault("media_type", "text/event-stream")
        super().__init__(content, **kwargs)
        self.connection = connection
        self.hub = hub

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.hub.close(self.connection)


@router.get("/stream")
async def stream(request: Request, services: ChatServices = Depends(get_services)):
    """Open a live feed. Rejected with 503 at global capacity, 429 per address."""
    connection = await services.hub.open(client_address(request))
    return LiveFeedResponse(
        connection,
        services.hub,
        stream_events(
            connection,
            services.hub,
            request.is_disconnected,
            services.settings.STREAM_PING_INTERVAL,
        ),
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
