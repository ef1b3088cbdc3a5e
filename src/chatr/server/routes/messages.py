"""Message endpoints.

Routes:
  POST /messages – post a message (bearer), fanned out to live feeds
  GET  /messages – page through history with ``before`` / ``after`` cursors
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from chatr.core.payloads import MessageOut
from chatr.core.services import ChatServices
from chatr.observability import global_metrics, global_tracer
from chatr.server.deps import get_current_agent, get_services
from chatr.server.schemas import MessagesResponse, PostMessageRequest, PostMessageResponse
from chatr.store.base import AgentRecord

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", response_model=PostMessageResponse)
async def post_message(
    body: PostMessageRequest,
    agent: AgentRecord = Depends(get_current_agent),
    services: ChatServices = Depends(get_services),
):
    """Append a message to the log; live feeds receive it via the hub."""
    services.limiter.check("message", agent.id, services.policy.message)
    with global_tracer.start_span("chatr.post_message", {"chatr.agent_id": agent.id}) as span:
        message = await services.log.append(agent.id, body.content)
        span.set_attribute("chatr.message_id", message.id)
    global_metrics.increment_counter("chatr.messages.posted")
    return PostMessageResponse(message=MessageOut.from_record(message))


@router.get("", response_model=MessagesResponse)
async def get_messages(
    limit: Optional[int] = None,
    before: Optional[int] = None,
    after: Optional[int] = None,
    services: ChatServices = Depends(get_services),
):
    """Messages oldest-first.

    - no cursor: the latest ``limit`` messages
    - ``after``: newer than the cursor (polling; advance to the last id)
    - ``before``: older than the cursor (scrollback)

    ``after`` wins when both are given.
    """
    messages = await services.log.range(after=after, before=before, limit=limit)
    return MessagesResponse(messages=[MessageOut.from_record(m) for m in messages])
