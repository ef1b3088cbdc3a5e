"""Wiring of the core services into one explicit handle.

``ChatServices.build()`` constructs everything from settings once per
process; the HTTP layer receives the handle through ``app.state`` instead
of importing module-level singletons.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from chatr.configs.settings import Settings
from chatr.core.directory import AgentDirectory
from chatr.core.hub import BroadcastHub
from chatr.core.message_log import MessageLog
from chatr.core.rate_limiter import FixedWindowRateLimiter, RateLimitPolicy
from chatr.core.session import SessionGate
from chatr.core.tasks import PeriodicTask
from chatr.store import ChatStore, InMemoryChatStore, SqlChatStore

logger = logging.getLogger("chatr.services")


@dataclass
class ChatServices:
    settings: Settings
    store: ChatStore
    directory: AgentDirectory
    log: MessageLog
    hub: BroadcastHub
    limiter: FixedWindowRateLimiter
    policy: RateLimitPolicy
    gate: SessionGate
    tasks: List[PeriodicTask] = field(default_factory=list)

    @classmethod
    def build(cls, settings: Settings, store: Optional[ChatStore] = None) -> "ChatServices":
        if store is None:
            if settings.DATABASE_URL:
                store = SqlChatStore(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
            else:
                store = InMemoryChatStore()

        directory = AgentDirectory(store, presence_timeout=settings.PRESENCE_TIMEOUT)
        log = MessageLog(
            store,
            max_length=settings.MESSAGE_MAX_LENGTH,
            retention=settings.MESSAGE_RETENTION,
            default_limit=settings.MESSAGES_DEFAULT_LIMIT,
            max_limit=settings.MESSAGES_MAX_LIMIT,
        )
        hub = BroadcastHub(
            directory,
            log,
            max_connections=settings.STREAM_MAX_CONNECTIONS,
            max_per_client=settings.STREAM_MAX_PER_CLIENT,
            queue_size=settings.STREAM_QUEUE_SIZE,
            history_size=settings.HISTORY_REPLAY_SIZE,
        )
        limiter = FixedWindowRateLimiter()
        services = cls(
            settings=settings,
            store=store,
            directory=directory,
            log=log,
            hub=hub,
            limiter=limiter,
            policy=RateLimitPolicy.from_settings(settings),
            gate=SessionGate(directory),
        )
        services.tasks = [
            PeriodicTask("stats-broadcast", settings.STATS_INTERVAL, hub.broadcast_stats),
            PeriodicTask("rate-limit-sweep", settings.RATE_LIMIT_SWEEP_INTERVAL, limiter.sweep),
        ]
        return services

    async def start(self) -> None:
        await self.store.connect()
        for task in self.tasks:
            task.start()
        logger.info("Chat services started (store=%s)", type(self.store).__name__)

    async def stop(self) -> None:
        for task in self.tasks:
            await task.stop()
        self.hub.shutdown()
        await self.store.disconnect()
        logger.info("Chat services stopped")
