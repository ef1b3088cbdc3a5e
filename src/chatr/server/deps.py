"""FastAPI dependencies: service handle, client address, authenticated agent."""

from __future__ import annotations

from fastapi import Depends, Request

from chatr.core.services import ChatServices
from chatr.store.base import AgentRecord


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


def client_address(request: Request) -> str:
    """Source address for per-address buckets; honours the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def get_current_agent(
    request: Request,
    services: ChatServices = Depends(get_services),
) -> AgentRecord:
    """Authenticate the caller and attach the agent to ``request.state``."""
    agent = await services.gate.resolve(request.headers)
    request.state.agent = agent
    return agent
