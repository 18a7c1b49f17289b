import asyncio
import copy
from datetime import datetime
from typing import Iterable

from agentflow.context import Message
from agentflow.interrupts.models import AgentInterrupt, InterruptStatus
from agentflow.memory.records import AgentMemoryRecord
from agentflow.storage.types import InterruptStore, MemoryStore, SessionRecord, SessionStore


class InMemorySessionStore(SessionStore):
    """Copies on the way in and out, so callers never share mutable rows."""

    def __init__(self):
        self._sessions: dict[tuple[str, str], tuple[SessionRecord, list[Message]]] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str, agent_name: str) -> tuple[SessionRecord, list[Message]] | None:
        stored = self._sessions.get((session_id, agent_name))
        return copy.deepcopy(stored) if stored is not None else None

    async def save(self, record: SessionRecord, messages: Iterable[Message]) -> None:
        async with self._lock:
            key = (record.session_id, record.agent_name)
            existing = self._sessions.get(key)
            record = copy.deepcopy(record)
            if existing is not None:
                record.created_at = existing[0].created_at
            record.updated_at = datetime.now()
            self._sessions[key] = (record, copy.deepcopy(list(messages)))


class InMemoryInterruptStore(InterruptStore):
    def __init__(self):
        self._interrupts: dict[str, AgentInterrupt] = {}

    async def save(self, interrupt: AgentInterrupt) -> None:
        self._interrupts[interrupt.id] = copy.deepcopy(interrupt)

    async def get(self, interrupt_id: str) -> AgentInterrupt | None:
        interrupt = self._interrupts.get(interrupt_id)
        return copy.deepcopy(interrupt) if interrupt is not None else None

    async def find(
            self,
            *,
            session_id: str | None = None,
            agent_name: str | None = None,
            status: InterruptStatus | None = None,
    ) -> list[AgentInterrupt]:
        matches = [
            copy.deepcopy(i) for i in self._interrupts.values()
            if (session_id is None or i.session_id == session_id)
            and (agent_name is None or i.agent_name == agent_name)
            and (status is None or i.status == status)
        ]
        return sorted(matches, key=lambda i: i.created_at)

    async def delete(self, interrupt_ids: Iterable[str]) -> int:
        count = 0
        for interrupt_id in interrupt_ids:
            if self._interrupts.pop(interrupt_id, None) is not None:
                count += 1
        return count


class InMemoryMemoryStore(MemoryStore):
    def __init__(self):
        self._records: dict[tuple[str, str], AgentMemoryRecord] = {}

    async def get(self, agent_name: str, user_id: str) -> AgentMemoryRecord | None:
        record = self._records.get((agent_name, user_id))
        return copy.deepcopy(record) if record is not None else None

    async def save(self, record: AgentMemoryRecord) -> None:
        self._records[(record.agent_name, record.user_id)] = copy.deepcopy(record)

    async def all(self) -> list[AgentMemoryRecord]:
        return [copy.deepcopy(r) for r in self._records.values()]

    async def delete(self, agent_name: str, user_id: str) -> None:
        self._records.pop((agent_name, user_id), None)
