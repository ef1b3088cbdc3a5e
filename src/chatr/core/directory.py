"""Agent directory: identity, credentials and presence.

Lifecycle:
  1. ``register()``      - validate the name, issue a credential (returned once).
  2. ``authenticate()``  - resolve a credential; doubles as a liveness signal.
  3. ``mark_offline()``  - explicit presence clear.
  4. ``list_online()``   - lazily flips stale agents offline before reading.

Presence is advisory and never consulted for authorization.
"""
from __future__ import annotations

import asyncio
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from chatr.core.credentials import generate_credential, hash_credential
from chatr.exceptions import AgentNotFound, InvalidCredential, NameConflict, NameInvalid, ValidationError
from chatr.store.base import AgentRecord, ChatStore

logger = logging.getLogger("chatr.directory")

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 32
AVATAR_MAX_LENGTH = 64
_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_name(name) -> str:
    if not isinstance(name, str) or not name:
        raise NameInvalid("Name is required")
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise NameInvalid(f"Name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters")
    if not _NAME_PATTERN.fullmatch(name):
        raise NameInvalid("Name can only contain letters, numbers, underscores, and hyphens")
    return name


class AgentDirectory:
    """Registry of agents on top of a ``ChatStore``.

    Parameters:
        store: Backing store (already connected).
        presence_timeout: Seconds of inactivity after which an agent reads
            as offline.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        store: ChatStore,
        presence_timeout: float = 120.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._presence_timeout = presence_timeout
        self._clock = clock
        # Serializes the name check + insert pair
        self._register_lock = asyncio.Lock()

    async def register(self, name, avatar: Optional[str] = None) -> Tuple[AgentRecord, str]:
        """Create an agent. Returns the record and the raw credential."""
        validate_name(name)
        if avatar is not None and (not isinstance(avatar, str) or len(avatar) > AVATAR_MAX_LENGTH):
            raise ValidationError(f"Avatar must be at most {AVATAR_MAX_LENGTH} characters")

        async with self._register_lock:
            if await self._store.get_agent_by_name(name) is not None:
                raise NameConflict(name)

            credential = generate_credential()
            key_hash = hash_credential(credential)
            while await self._store.get_agent_by_key_hash(key_hash) is not None:
                credential = generate_credential()
                key_hash = hash_credential(credential)

            now = self._clock()
            agent = await self._store.create_agent(
                AgentRecord(
                    id=str(uuid.uuid4()),
                    name=name,
                    api_key_hash=key_hash,
                    avatar=avatar or None,
                    created_at=now,
                    last_seen=now,
                )
            )

        logger.info("Registered agent %s (%s)", agent.name, agent.id)
        return agent, credential

    async def authenticate(self, credential: str) -> AgentRecord:
        """Resolve a credential and mark its agent online."""
        agent = await self._store.get_agent_by_key_hash(hash_credential(credential))
        if agent is None:
            raise InvalidCredential("Invalid API key")
        touched = await self._store.touch_agent(agent.id, self._clock())
        if touched is None:
            # Removed between lookup and touch
            raise InvalidCredential("Invalid API key")
        return touched

    async def mark_offline(self, agent_id: str) -> None:
        await self._store.set_offline(agent_id)

    async def sweep_presence(self, threshold: Optional[float] = None) -> int:
        """Flip agents idle longer than ``threshold`` seconds to offline."""
        timeout = self._presence_timeout if threshold is None else threshold
        cutoff = self._clock() - timedelta(seconds=timeout)
        flipped = await self._store.mark_stale_offline(cutoff)
        if flipped:
            logger.debug("Presence sweep marked %d agents offline", flipped)
        return flipped

    async def list_online(self) -> List[AgentRecord]:
        await self.sweep_presence()
        return await self._store.list_online_agents()

    async def get(self, agent_id: str) -> AgentRecord:
        agent = await self._store.get_agent(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        return agent

    async def count(self) -> int:
        return await self._store.count_agents()

    async def count_online(self) -> int:
        await self.sweep_presence()
        return await self._store.count_agents(online_only=True)

    async def set_verification(
        self, agent_id: str, handle: Optional[str], verified: bool
    ) -> AgentRecord:
        """Record the outcome of an out-of-band identity proof."""
        agent = await self._store.set_verification(agent_id, handle, verified)
        if agent is None:
            raise AgentNotFound(agent_id)
        return agent

    async def remove(self, agent_id: str) -> None:
        """Delete an agent together with all of its messages."""
        if not await self._store.delete_agent(agent_id):
            raise AgentNotFound(agent_id)
        logger.info("Removed agent %s and its messages", agent_id)
