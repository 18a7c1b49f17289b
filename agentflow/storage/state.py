import json
import logging
import uuid
from typing import Any

from agentflow.context import AgentContext, Message
from agentflow.storage.types import SessionRecord, SessionStore

logger = logging.getLogger(__name__)


class StateManager:
    """Loads and persists ``AgentContext`` objects for ``(session, agent)`` pairs.

    Saving is read-modify-write: the stored history is replaced wholesale, so
    there must be a single writer per ``(session, agent)`` at a time.
    """

    def __init__(self, store: SessionStore):
        self.store = store

    async def load_context(self, agent_name: str, session_id: str | None = None, user_input: Any = None) -> AgentContext:
        session_id = session_id or str(uuid.uuid4())
        loaded = await self.store.load(session_id, agent_name)
        if loaded is None:
            logger.debug("Starting new session %s for %s", session_id, agent_name)
            await self.store.save(SessionRecord(session_id=session_id, agent_name=agent_name), [])
            return AgentContext(session_id, user_input)

        record, messages = loaded
        logger.debug("Loaded session %s for %s with %d messages", session_id, agent_name, len(messages))
        return AgentContext(session_id, user_input, state=record.state, history=messages)

    async def save_context(self, context: AgentContext, agent_name: str) -> None:
        messages = []
        for message in context.get_conversation_history():
            content = message.content
            if not isinstance(content, str):
                content = json.dumps(content, ensure_ascii=False, default=str)
            messages.append(Message(
                role=message.role,
                content=content,
                tool_name=message.tool_name,
                tool_call_id=message.tool_call_id,
                tool_calls=message.tool_calls,
                timestamp=message.timestamp,
                turn_uuid=message.turn_uuid,
                variant_index=message.variant_index,
                user_message_id=message.user_message_id,
                feedback=message.feedback,
            ))
        record = SessionRecord(
            session_id=context.session_id,
            agent_name=agent_name,
            state=context.get_all_state(),
        )
        await self.store.save(record, messages)
        logger.debug("Saved session %s for %s", context.session_id, agent_name)
