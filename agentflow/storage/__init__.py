from agentflow.storage.memory import InMemoryInterruptStore, InMemoryMemoryStore, InMemorySessionStore
from agentflow.storage.sql import Database, SqlInterruptStore, SqlMemoryStore, SqlSessionStore, SqlVectorDriver
from agentflow.storage.state import StateManager
from agentflow.storage.types import InterruptStore, MemoryStore, SessionRecord, SessionStore

__all__ = [
    "SessionRecord",
    "SessionStore",
    "InterruptStore",
    "MemoryStore",
    "InMemorySessionStore",
    "InMemoryInterruptStore",
    "InMemoryMemoryStore",
    "Database",
    "SqlSessionStore",
    "SqlInterruptStore",
    "SqlMemoryStore",
    "SqlVectorDriver",
    "StateManager",
]
