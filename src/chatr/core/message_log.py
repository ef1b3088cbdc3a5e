"""Append-only message log with id cursors.

Appends go through a single lock so id assignment, insert and retention
trimming happen as one unit; a reader never sees id N+1 before id N.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from chatr.exceptions import BackingStoreError, ContentInvalid
from chatr.store.base import ChatStore, MessageRecord

logger = logging.getLogger("chatr.message_log")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageLog:
    """Ordered chat history on top of a ``ChatStore``.

    Parameters:
        store: Backing store (already connected).
        max_length: Longest accepted content after stripping whitespace.
        retention: Keep at most this many messages (0 = unbounded).
        default_limit: Page size when the caller gives none.
        max_limit: Upper clamp for page sizes.
    """

    def __init__(
        self,
        store: ChatStore,
        *,
        max_length: int = 2000,
        retention: int = 0,
        default_limit: int = 50,
        max_limit: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._max_length = max_length
        self._retention = retention
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._clock = clock
        self._append_lock = asyncio.Lock()
        self._listeners: List[Callable[[MessageRecord], object]] = []

    @property
    def max_limit(self) -> int:
        return self._max_limit

    def validate_content(self, content) -> str:
        if not isinstance(content, str):
            raise ContentInvalid("Message content is required")
        text = content.strip()
        if not text or len(text) > self._max_length:
            raise ContentInvalid(f"Message must be 1-{self._max_length} characters")
        return text

    async def append(self, agent_id: str, content) -> MessageRecord:
        """Store a message and return it with its assigned id.

        Raises:
            ContentInvalid: empty or oversized content.
            AgentNotFound: the author no longer exists.
        """
        text = self.validate_content(content)
        async with self._append_lock:
            message = await self._store.insert_message(agent_id, text, self._clock())
            self._notify(message)
            if self._retention > 0:
                try:
                    await self._store.trim_messages(self._retention)
                except BackingStoreError:
                    # The message is stored and published; trimming retries on the next append
                    logger.warning("Retention trim failed after message %d", message.id)
        return message

    def subscribe(self, listener: Callable[[MessageRecord], object]) -> Callable[[], None]:
        """Call ``listener(message)`` after every append, in id order.

        Listeners run synchronously inside the append lock and must not block.
        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, message: MessageRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Message listener %r failed", listener)

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Missing or non-positive limits fall back to the default page size."""
        if limit is None or limit < 1:
            return self._default_limit
        return min(limit, self._max_limit)

    async def range(
        self,
        *,
        after: Optional[int] = None,
        before: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[MessageRecord]:
        """One page of messages, oldest-first.

        - no cursor: the ``limit`` most recent messages
        - ``after``: messages with a larger id (polling)
        - ``before``: messages with a smaller id (scrollback)

        ``after`` wins when both cursors are given.
        """
        if after is not None:
            before = None
        return await self._store.fetch_messages(
            after=after, before=before, limit=self.clamp_limit(limit)
        )

    async def recent(self, count: int) -> List[MessageRecord]:
        """History replay snapshot; not subject to the page-size clamp."""
        if count <= 0:
            return []
        return await self._store.fetch_messages(limit=count)

    async def count(self) -> int:
        return await self._store.count_messages()

    async def last_id(self) -> int:
        return await self._store.last_message_id()
