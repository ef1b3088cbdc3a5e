"""In-process broadcast and session layer of the chat relay."""

from .directory import AgentDirectory
from .hub import BroadcastHub, ConnectionClosed, ConnectionState, HubEvent, LiveConnection
from .message_log import MessageLog
from .rate_limiter import FixedWindowRateLimiter, RateLimitPolicy
from .services import ChatServices
from .session import SessionGate
from .tasks import PeriodicTask

__all__ = [
    "AgentDirectory",
    "BroadcastHub",
    "ChatServices",
    "ConnectionClosed",
    "ConnectionState",
    "FixedWindowRateLimiter",
    "HubEvent",
    "LiveConnection",
    "MessageLog",
    "PeriodicTask",
    "RateLimitPolicy",
    "SessionGate",
]
