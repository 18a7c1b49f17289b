"""Persistence interfaces.

Every store is async; the in-memory implementations back tests and
single-process use, the SQLAlchemy implementations back production.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable

from agentflow.context import Message

if TYPE_CHECKING:
    from agentflow.interrupts.models import AgentInterrupt, InterruptStatus
    from agentflow.memory.records import AgentMemoryRecord


@dataclass
class SessionRecord:
    session_id: str
    agent_name: str
    state: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


class SessionStore(ABC):
    @abstractmethod
    async def load(self, session_id: str, agent_name: str) -> tuple[SessionRecord, list[Message]] | None:
        """Return the session row and its ordered history, or ``None``."""
        pass

    @abstractmethod
    async def save(self, record: SessionRecord, messages: Iterable[Message]) -> None:
        """Upsert *record* and replace its stored history with *messages*."""
        pass


class InterruptStore(ABC):
    @abstractmethod
    async def save(self, interrupt: 'AgentInterrupt') -> None:
        pass

    @abstractmethod
    async def get(self, interrupt_id: str) -> 'AgentInterrupt | None':
        pass

    @abstractmethod
    async def find(
            self,
            *,
            session_id: str | None = None,
            agent_name: str | None = None,
            status: 'InterruptStatus | None' = None,
    ) -> list['AgentInterrupt']:
        """Matching records, oldest first."""
        pass

    @abstractmethod
    async def delete(self, interrupt_ids: Iterable[str]) -> int:
        pass


class MemoryStore(ABC):
    @abstractmethod
    async def get(self, agent_name: str, user_id: str) -> 'AgentMemoryRecord | None':
        pass

    @abstractmethod
    async def save(self, record: 'AgentMemoryRecord') -> None:
        pass

    @abstractmethod
    async def all(self) -> list['AgentMemoryRecord']:
        pass

    @abstractmethod
    async def delete(self, agent_name: str, user_id: str) -> None:
        pass
