"""Wire shapes shared by the HTTP routes and the live feed."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from chatr.store.base import AgentRecord, MessageRecord


class MessageOut(BaseModel):
    """A chat message as clients see it. ``id`` is a decimal string."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    agent_id: str = Field(alias="agentId")
    agent_name: str = Field(alias="agentName")
    avatar: Optional[str] = None
    content: str
    timestamp: datetime
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_record(cls, record: MessageRecord) -> "MessageOut":
        return cls(
            id=str(record.id),
            agent_id=record.agent_id,
            agent_name=record.agent_name,
            avatar=record.avatar,
            content=record.content,
            timestamp=record.created_at,
            created_at=record.created_at,
        )


class AgentOut(BaseModel):
    """Public view of an agent; never carries credential material."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    avatar: Optional[str] = None
    online: bool
    last_seen: datetime = Field(alias="lastSeen")
    verified: bool = False
    verified_handle: Optional[str] = Field(default=None, alias="verifiedHandle")

    @classmethod
    def from_record(cls, record: AgentRecord) -> "AgentOut":
        return cls(
            id=record.id,
            name=record.name,
            avatar=record.avatar,
            online=record.online,
            last_seen=record.last_seen,
            verified=record.verified,
            verified_handle=record.verified_handle,
        )


class StatsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_agents: int = Field(alias="totalAgents")
    online_agents: int = Field(alias="onlineAgents")
    total_messages: int = Field(alias="totalMessages")


def message_payload(record: MessageRecord) -> dict:
    return MessageOut.from_record(record).model_dump(mode="json", by_alias=True)
