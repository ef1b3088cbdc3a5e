"""Process-local store: dictionaries for agents, a sorted list for messages."""
from __future__ import annotations

import bisect
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from chatr.exceptions import AgentNotFound, NameConflict
from chatr.store.base import AgentRecord, ChatStore, MessageRecord


class InMemoryChatStore(ChatStore):
    """Keeps everything in memory; lost on restart.

    Records are copied on the way in and out so callers never alias the
    stored state.
    """

    def __init__(self):
        self._agents: Dict[str, AgentRecord] = {}
        self._by_name: Dict[str, str] = {}
        self._by_key_hash: Dict[str, str] = {}
        self._messages: List[MessageRecord] = []
        self._ids: List[int] = []
        self._next_id = 1

    # -- Agents ---------------------------------------------------------------

    async def create_agent(self, agent: AgentRecord) -> AgentRecord:
        key = agent.name.lower()
        if key in self._by_name:
            raise NameConflict(agent.name)
        if agent.api_key_hash in self._by_key_hash:
            raise ValueError("Credential hash collision")
        stored = replace(agent)
        self._agents[stored.id] = stored
        self._by_name[key] = stored.id
        self._by_key_hash[stored.api_key_hash] = stored.id
        return replace(stored)

    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        agent = self._agents.get(agent_id)
        return replace(agent) if agent else None

    async def get_agent_by_name(self, name: str) -> Optional[AgentRecord]:
        agent_id = self._by_name.get(name.lower())
        return await self.get_agent(agent_id) if agent_id else None

    async def get_agent_by_key_hash(self, key_hash: str) -> Optional[AgentRecord]:
        agent_id = self._by_key_hash.get(key_hash)
        return await self.get_agent(agent_id) if agent_id else None

    async def touch_agent(self, agent_id: str, seen_at: datetime) -> Optional[AgentRecord]:
        agent = self._agents.get(agent_id)
        if agent is None:
            return None
        agent.online = True
        agent.last_seen = seen_at
        return replace(agent)

    async def set_offline(self, agent_id: str) -> bool:
        agent = self._agents.get(agent_id)
        if agent is None:
            return False
        agent.online = False
        return True

    async def mark_stale_offline(self, cutoff: datetime) -> int:
        flipped = 0
        for agent in self._agents.values():
            if agent.online and agent.last_seen < cutoff:
                agent.online = False
                flipped += 1
        return flipped

    async def list_online_agents(self) -> List[AgentRecord]:
        online = [replace(a) for a in self._agents.values() if a.online]
        return sorted(online, key=lambda a: a.name.lower())

    async def count_agents(self, *, online_only: bool = False) -> int:
        if online_only:
            return sum(1 for a in self._agents.values() if a.online)
        return len(self._agents)

    async def set_verification(
        self, agent_id: str, handle: Optional[str], verified: bool
    ) -> Optional[AgentRecord]:
        agent = self._agents.get(agent_id)
        if agent is None:
            return None
        agent.verified_handle = handle
        agent.verified = verified
        return replace(agent)

    async def delete_agent(self, agent_id: str) -> bool:
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return False
        self._by_name.pop(agent.name.lower(), None)
        self._by_key_hash.pop(agent.api_key_hash, None)
        kept = [m for m in self._messages if m.agent_id != agent_id]
        self._messages = kept
        self._ids = [m.id for m in kept]
        return True

    # -- Messages -------------------------------------------------------------

    async def insert_message(
        self, agent_id: str, content: str, created_at: datetime
    ) -> MessageRecord:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        message = MessageRecord(
            id=self._next_id,
            agent_id=agent_id,
            agent_name=agent.name,
            avatar=agent.avatar,
            content=content,
            created_at=created_at,
        )
        self._next_id += 1
        self._messages.append(message)
        self._ids.append(message.id)
        return replace(message)

    async def fetch_messages(
        self,
        *,
        after: Optional[int] = None,
        before: Optional[int] = None,
        limit: int = 50,
    ) -> List[MessageRecord]:
        if after is not None:
            start = bisect.bisect_right(self._ids, after)
            page = self._messages[start:start + limit]
        else:
            end = len(self._ids) if before is None else bisect.bisect_left(self._ids, before)
            page = self._messages[max(0, end - limit):end]
        return [replace(m) for m in page]

    async def count_messages(self) -> int:
        return len(self._messages)

    async def last_message_id(self) -> int:
        return self._ids[-1] if self._ids else 0

    async def trim_messages(self, keep: int) -> int:
        if keep < 1:
            raise ValueError("keep must be at least 1")
        excess = len(self._messages) - keep
        if excess <= 0:
            return 0
        del self._messages[:excess]
        del self._ids[:excess]
        return excess

    def __repr__(self) -> str:
        return f"<InMemoryChatStore(agents={len(self._agents)}, messages={len(self._messages)})>"
