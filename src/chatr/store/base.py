"""Storage interface shared by the agent directory and the message log.

The core only needs a narrow slice of a database: insert/look up agents,
update presence, append messages and fetch pages by id cursor. Both
backends implement this ABC; neither retries writes.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


@dataclass
class AgentRecord:
    """A registered agent. The raw credential is never stored."""
    id: str
    name: str
    api_key_hash: str
    created_at: datetime
    last_seen: datetime
    avatar: Optional[str] = None
    online: bool = False
    verified_handle: Optional[str] = None
    verified: bool = False


@dataclass
class MessageRecord:
    """A stored chat message with its author denormalized for display."""
    id: int
    agent_id: str
    agent_name: str
    content: str
    created_at: datetime
    avatar: Optional[str] = None


class ChatStore(ABC):
    """Base class for agent and message persistence."""

    async def connect(self) -> None:
        """Open connections / create tables. No-op by default."""

    async def disconnect(self) -> None:
        """Release connections. No-op by default."""

    # -- Agents ---------------------------------------------------------------

    @abstractmethod
    async def create_agent(self, agent: AgentRecord) -> AgentRecord:
        """Insert a new agent.

        Raises:
            NameConflict: if the case-insensitive name already exists.
        """

    @abstractmethod
    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        pass

    @abstractmethod
    async def get_agent_by_name(self, name: str) -> Optional[AgentRecord]:
        """Case-insensitive lookup."""

    @abstractmethod
    async def get_agent_by_key_hash(self, key_hash: str) -> Optional[AgentRecord]:
        pass

    @abstractmethod
    async def touch_agent(self, agent_id: str, seen_at: datetime) -> Optional[AgentRecord]:
        """Mark an agent online and refresh ``last_seen``. Returns None if gone."""

    @abstractmethod
    async def set_offline(self, agent_id: str) -> bool:
        pass

    @abstractmethod
    async def mark_stale_offline(self, cutoff: datetime) -> int:
        """Flip online agents last seen before ``cutoff`` to offline."""

    @abstractmethod
    async def list_online_agents(self) -> List[AgentRecord]:
        """Online agents sorted by case-insensitive name."""

    @abstractmethod
    async def count_agents(self, *, online_only: bool = False) -> int:
        pass

    @abstractmethod
    async def set_verification(
        self, agent_id: str, handle: Optional[str], verified: bool
    ) -> Optional[AgentRecord]:
        pass

    @abstractmethod
    async def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent and cascade-delete its messages."""

    # -- Messages -------------------------------------------------------------

    @abstractmethod
    async def insert_message(
        self, agent_id: str, content: str, created_at: datetime
    ) -> MessageRecord:
        """Append a message and assign it the next id.

        Raises:
            AgentNotFound: if the author no longer exists.
        """

    @abstractmethod
    async def fetch_messages(
        self,
        *,
        after: Optional[int] = None,
        before: Optional[int] = None,
        limit: int = 50,
    ) -> List[MessageRecord]:
        """Return one page of messages, always oldest-first.

        ``after`` selects the ``limit`` oldest messages with a larger id;
        ``before`` and no cursor select the ``limit`` newest messages with
        a smaller id (or overall).
        """

    @abstractmethod
    async def count_messages(self) -> int:
        pass

    @abstractmethod
    async def last_message_id(self) -> int:
        """Highest id currently retained (0 when empty)."""

    @abstractmethod
    async def trim_messages(self, keep: int) -> int:
        """Drop all but the ``keep`` newest messages. Returns rows removed."""
