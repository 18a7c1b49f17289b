from typing import Any

from agentflow.context import AgentContext
from agentflow.exceptions import ToolExecutionError
from agentflow.memory.manager import MemoryManager
from agentflow.tools.base import BaseTool


class MemoryTool(BaseTool):
    """Lets an agent curate its long-term memory about the current user."""

    ACTIONS = ('add_learning', 'add_fact', 'update_summary', 'get_context')

    def __init__(self, manager: MemoryManager, agent_name: str):
        self.manager = manager
        self.agent_name = agent_name

    def definition(self) -> dict[str, Any]:
        return {
            'name': 'manage_memory',
            'description': (
                "Store or recall long-term memory about the user: add a learning, "
                "record a fact, update the summary, or read the current memory context."
            ),
            'parameters': {
                'type': 'object',
                'properties': {
                    'action': {'type': 'string', 'enum': list(self.ACTIONS)},
                    'content': {'type': 'string', 'description': 'Learning, fact value or summary text'},
                    'key': {'type': 'string', 'description': 'Fact key, required for add_fact'},
                },
                'required': ['action'],
            },
        }

    async def execute(self, arguments: dict[str, Any], context: AgentContext) -> str:
        self.validate_arguments(arguments)
        user_id = context.get_state('user_id')
        if user_id is None:
            raise ToolExecutionError(self.name, "No user is associated with this session")
        user_id = str(user_id)
        action = arguments['action']
        content = arguments.get('content')

        if action == 'get_context':
            return self.result({'memory_context': await self.manager.get_memory_context(self.agent_name, user_id)})
        if not content:
            raise ToolExecutionError(self.name, f"'content' is required for {action}")
        if action == 'add_learning':
            await self.manager.add_learning(self.agent_name, user_id, content)
        elif action == 'add_fact':
            if not arguments.get('key'):
                raise ToolExecutionError(self.name, "'key' is required for add_fact")
            await self.manager.add_fact(self.agent_name, user_id, arguments['key'], content)
        elif action == 'update_summary':
            await self.manager.update_summary(self.agent_name, user_id, content)
        else:
            raise ToolExecutionError(self.name, f"Unknown action '{action}'")
        return self.result({'success': True, 'action': action})
