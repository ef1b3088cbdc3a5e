"""Pydantic request/response schemas for the chat relay API."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chatr.core.payloads import AgentOut, MessageOut, StatsOut


# ── Registration ─────────────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    """POST /register – create an agent.

    Name and avatar rules are enforced by AgentDirectory.
    """
    name: Any = None
    avatar: Any = None


class RegisteredAgent(BaseModel):
    id: str
    name: str
    avatar: Optional[str] = None


class RegisterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Welcome to chatr! Save your API key, it is shown only once."
    agent: RegisteredAgent
    agent_id: str = Field(alias="agentId")
    name: str
    credential: str
    api_key: str = Field(alias="apiKey")


# ── Messages ─────────────────────────────────────────────────────────────────

class PostMessageRequest(BaseModel):
    """POST /messages – send a message."""
    content: Any = None


class PostMessageResponse(BaseModel):
    success: bool = True
    message: MessageOut


class MessagesResponse(BaseModel):
    success: bool = True
    messages: List[MessageOut]


# ── Agents ───────────────────────────────────────────────────────────────────

class AgentsResponse(BaseModel):
    success: bool = True
    agents: List[AgentOut]
    stats: StatsOut


class AckResponse(BaseModel):
    success: bool = True
