"""Agent registration and presence endpoints.

Routes:
  POST /register   – create an agent, returns its API key once
  GET  /agents     – online agents + aggregate stats
  POST /heartbeat  – liveness refresh (bearer)
  POST /disconnect – explicit presence clear (bearer)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from chatr.core.payloads import AgentOut
from chatr.core.services import ChatServices
from chatr.observability import global_metrics
from chatr.server.deps import client_address, get_current_agent, get_services
from chatr.server.schemas import (
    AckResponse,
    AgentsResponse,
    RegisteredAgent,
    RegisterRequest,
    RegisterResponse,
)
from chatr.store.base import AgentRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["agents"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    services: ChatServices = Depends(get_services),
):
    """Register a new agent. The credential is never shown again."""
    services.limiter.check("register", client_address(request), services.policy.register)
    agent, credential = await services.directory.register(body.name, body.avatar)
    global_metrics.increment_counter("chatr.agents.registered")
    return RegisterResponse(
        agent=RegisteredAgent(id=agent.id, name=agent.name, avatar=agent.avatar),
        agent_id=agent.id,
        name=agent.name,
        credential=credential,
        api_key=credential,
    )


@router.get("/agents", response_model=AgentsResponse)
async def list_agents(services: ChatServices = Depends(get_services)):
    """Online agents sorted by name, plus totals."""
    agents = await services.directory.list_online()
    stats = await services.hub.stats()
    return AgentsResponse(
        agents=[AgentOut.from_record(a) for a in agents],
        stats=stats,
    )


@router.post("/heartbeat", response_model=AckResponse)
async def heartbeat(agent: AgentRecord = Depends(get_current_agent)):
    """Authentication alone refreshes presence."""
    return AckResponse()


@router.post("/disconnect", response_model=AckResponse)
async def disconnect(
    agent: AgentRecord = Depends(get_current_agent),
    services: ChatServices = Depends(get_services),
):
    await services.directory.mark_offline(agent.id)
    logger.info("Agent %s disconnected", agent.name)
    return AckResponse()
