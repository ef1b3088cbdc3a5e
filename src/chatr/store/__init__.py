from .base import AgentRecord, ChatStore, MessageRecord
from .memory import InMemoryChatStore
from .sql import SqlChatStore

__all__ = [
    "AgentRecord",
    "ChatStore",
    "MessageRecord",
    "InMemoryChatStore",
    "SqlChatStore",
]
