import logging
from datetime import datetime, timedelta
from typing import Any, Mapping

from agentflow.events import EventDispatcher, MemoryUpdated
from agentflow.memory.records import AgentMemoryRecord
from agentflow.storage.types import MemoryStore

logger = logging.getLogger(__name__)


class MemoryManager:
    """Per ``(agent, user)`` long-term memory.

    Every mutation persists the record and dispatches ``MemoryUpdated`` with
    the kind of update.
    """

    def __init__(self, store: MemoryStore, dispatcher: EventDispatcher | None = None):
        self.store = store
        self.dispatcher = dispatcher

    async def get_or_create(self, agent_name: str, user_id: str) -> AgentMemoryRecord:
        record = await self.store.get(agent_name, user_id)
        if record is None:
            record = AgentMemoryRecord(agent_name=agent_name, user_id=user_id)
            await self.store.save(record)
        return record

    async def add_learning(self, agent_name: str, user_id: str, learning: str) -> AgentMemoryRecord:
        record = await self.get_or_create(agent_name, user_id)
        if learning in record.key_learnings:
            return record
        record.key_learnings.append(learning)
        return await self._updated(record, 'learning_added')

    async def add_fact(self, agent_name: str, user_id: str, key: str, value: Any) -> AgentMemoryRecord:
        record = await self.get_or_create(agent_name, user_id)
        record.memory_data[key] = value
        return await self._updated(record, 'fact_added')

    async def update_memory_data(self, agent_name: str, user_id: str, data: Mapping[str, Any]) -> AgentMemoryRecord:
        record = await self.get_or_create(agent_name, user_id)
        record.memory_data.update(data)
        return await self._updated(record, 'data_updated')

    async def update_summary(self, agent_name: str, user_id: str, summary: str) -> AgentMemoryRecord:
        record = await self.get_or_create(agent_name, user_id)
        record.memory_summary = summary
        return await self._updated(record, 'summary_updated')

    async def increment_session_count(self, agent_name: str, user_id: str) -> AgentMemoryRecord:
        record = await self.get_or_create(agent_name, user_id)
        record.total_sessions += 1
        record.last_session_at = datetime.now()
        return await self._updated(record, 'session_incremented')

    async def get_memory_context(self, agent_name: str, user_id: str, max_length: int = 1000) -> str:
        """Prompt-ready memory text, cut to *max_length* characters."""
        record = await self.store.get(agent_name, user_id)
        if record is None:
            return ''

        parts = []
        if record.memory_summary:
            parts.append(f"Summary: {record.memory_summary}")
        if record.key_learnings:
            parts.append("Key learnings:\n" + "\n".join(f"- {learning}" for learning in record.key_learnings))
        if record.memory_data:
            parts.append("Facts:\n" + "\n".join(f"- {k}: {_fact_text(v)}" for k, v in record.memory_data.items()))

        context = "\n\n".join(parts)
        if len(context) > max_length:
            context = context[:max_length - 3] + '...'
        return context

    async def get_memory_context_dict(self, agent_name: str, user_id: str) -> dict[str, Any]:
        record = await self.store.get(agent_name, user_id)
        if record is None:
            return {'summary': None, 'key_learnings': [], 'facts': {}, 'total_sessions': 0}
        return {
            'summary': record.memory_summary,
            'key_learnings': list(record.key_learnings),
            'facts': dict(record.memory_data),
            'total_sessions': record.total_sessions,
        }

    async def cleanup_old_memories(self, days_old: int = 90, max_sessions: int = 1000) -> int:
        """Drop memories untouched for *days_old* days or with runaway session counts."""
        cutoff = datetime.now() - timedelta(days=days_old)
        removed = 0
        for record in await self.store.all():
            if record.memory_updated_at < cutoff or record.total_sessions > max_sessions:
                await self.store.delete(record.agent_name, record.user_id)
                removed += 1
        logger.info("Removed %d stale agent memories", removed)
        return removed

    async def _updated(self, record: AgentMemoryRecord, update_type: str) -> AgentMemoryRecord:
        record.memory_updated_at = datetime.now()
        await self.store.save(record)
        if self.dispatcher is not None:
            self.dispatcher.dispatch(MemoryUpdated(
                agent_name=record.agent_name,
                session_id=None,
                update_type=update_type,
                user_id=record.user_id,
            ))
        return record


def _fact_text(value: Any) -> str:
    if isinstance(value, Mapping) and 'content' in value:
        return str(value['content'])
    return str(value)
