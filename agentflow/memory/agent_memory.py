from datetime import datetime
from typing import Any

from ulid import ULID

from agentflow.memory.manager import MemoryManager


class AgentMemory:
    """Convenience view over ``MemoryManager`` bound to one agent and user.

    Facts, preferences and free-form memories are stored as typed entries in
    ``memory_data`` under prefixed keys.
    """

    def __init__(self, manager: MemoryManager, agent_name: str, user_id: str):
        self.manager = manager
        self.agent_name = agent_name
        self.user_id = user_id

    async def add_fact(self, fact: str, confidence: float = 1.0) -> str:
        return await self._store('fact', {'content': fact, 'confidence': confidence})

    async def add_preference(self, preference: str, category: str = 'general') -> str:
        return await self._store('preference', {'content': preference, 'category': category})

    async def remember(self, content: str, type: str = 'note', metadata: dict[str, Any] | None = None) -> str:
        return await self._store(type, {'content': content, 'metadata': metadata or {}})

    async def add_learning(self, learning: str) -> None:
        await self.manager.add_learning(self.agent_name, self.user_id, learning)

    async def update_summary(self, summary: str) -> None:
        await self.manager.update_summary(self.agent_name, self.user_id, summary)

    async def facts(self) -> list[dict[str, Any]]:
        return await self._entries('fact')

    async def preferences(self, category: str | None = None) -> list[dict[str, Any]]:
        entries = await self._entries('preference')
        if category is not None:
            entries = [e for e in entries if e.get('category') == category]
        return entries

    async def learnings(self) -> list[str]:
        record = await self.manager.get_or_create(self.agent_name, self.user_id)
        return list(record.key_learnings)

    async def summary(self) -> str | None:
        record = await self.manager.get_or_create(self.agent_name, self.user_id)
        return record.memory_summary

    async def _store(self, type: str, entry: dict[str, Any]) -> str:
        key = f"{type}_{ULID()}"
        entry = {**entry, 'type': type, 'created_at': datetime.now().isoformat()}
        await self.manager.add_fact(self.agent_name, self.user_id, key, entry)
        return key

    async def _entries(self, type: str) -> list[dict[str, Any]]:
        record = await self.manager.get_or_create(self.agent_name, self.user_id)
        return [
            {'key': key, **value}
            for key, value in record.memory_data.items()
            if isinstance(value, dict) and value.get('type') == type
        ]
