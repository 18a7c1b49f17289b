import json
import logging
from typing import TYPE_CHECKING, Any

from agentflow.context import AgentContext
from agentflow.events import EventDispatcher, TaskDelegated
from agentflow.exceptions import DelegationDepthExceededError
from agentflow.tools.base import BaseTool
from agentflow.tracer import trace_delegation

if TYPE_CHECKING:
    from agentflow.agents.llm import BaseLlmAgent
    from agentflow.agents.registry import AgentRegistry

logger = logging.getLogger(__name__)

DELEGATE_TOOL_NAME = 'delegate_to_sub_agent'

# State keys a sub-agent inherits from its parent context
INHERITED_STATE_KEYS = ('user_id', 'user_email', 'user_name', 'user_data', 'approved_tools')


class DelegateToSubAgentTool(BaseTool):
    """Synthetic tool that hands a task to one of the parent's sub-agents.

    The sub-agent runs on a fresh context, so it never sees the parent's
    history; only the optional summary is passed down as a system message.
    """

    def __init__(
            self,
            parent: 'BaseLlmAgent',
            registry: 'AgentRegistry',
            *,
            max_depth: int = 5,
            dispatcher: EventDispatcher | None = None,
    ):
        self.parent = parent
        self.registry = registry
        self.max_depth = max_depth
        self.dispatcher = dispatcher

    def definition(self) -> dict[str, Any]:
        names = list(self.parent.sub_agents)
        return {
            'name': DELEGATE_TOOL_NAME,
            'description': (
                "Delegate a task to a specialized sub-agent. "
                f"Available sub-agents: {', '.join(names)}"
            ),
            'parameters': {
                'type': 'object',
                'properties': {
                    'sub_agent_name': {
                        'type': 'string',
                        'enum': names,
                        'description': 'Name of the sub-agent to delegate to',
                    },
                    'task_input': {
                        'type': 'string',
                        'description': 'The task or question for the sub-agent',
                    },
                    'context_summary': {
                        'type': 'string',
                        'description': 'Optional summary of relevant context from the current conversation',
                    },
                },
                'required': ['sub_agent_name', 'task_input'],
            },
        }

    async def execute(self, arguments: dict[str, Any], context: AgentContext) -> str:
        self.validate_arguments(arguments)
        return await self.delegate(
            sub_agent_name=arguments['sub_agent_name'],
            task_input=arguments['task_input'],
            context_summary=arguments.get('context_summary'),
            context=context,
        )

    @trace_delegation()
    async def delegate(
            self,
            sub_agent_name: str,
            task_input: str,
            context_summary: str | None,
            context: AgentContext,
    ) -> str:
        depth = int(context.get_state('delegation_depth', 0) or 0)
        if depth >= self.max_depth:
            raise DelegationDepthExceededError(depth, self.max_depth)

        available = list(self.parent.sub_agents)
        if sub_agent_name not in available or not self.registry.has(sub_agent_name):
            return self.error(
                f"Sub-agent '{sub_agent_name}' not found. Available sub-agents: {', '.join(available) or 'none'}"
            )
        sub_agent = self.registry.get(sub_agent_name)

        sub_context = AgentContext(
            session_id=f"{context.session_id}_sub_{sub_agent_name}",
            user_input=task_input,
            state={
                **{k: context.get_state(k) for k in INHERITED_STATE_KEYS if context.get_state(k) is not None},
                'delegation_depth': depth + 1,
                'parent_agent': self.parent.name,
            },
        )
        if context_summary:
            sub_context.add_message({'role': 'system', 'content': f"Context from parent agent: {context_summary}"})

        logger.info("Delegating to sub-agent %s at depth %d", sub_agent_name, depth + 1)
        if self.dispatcher is not None:
            self.dispatcher.dispatch(TaskDelegated(
                agent_name=self.parent.name,
                session_id=context.session_id,
                sub_agent_name=sub_agent_name,
                sub_session_id=sub_context.session_id,
                task_input=task_input,
                context_summary=context_summary or '',
                delegation_depth=depth + 1,
            ))

        await self.parent.before_sub_agent_delegation(sub_agent_name, task_input, sub_context)
        result = await sub_agent.run(task_input, sub_context)
        result = await self.parent.after_sub_agent_delegation(sub_agent_name, result, sub_context)

        return json.dumps({
            'sub_agent': sub_agent_name,
            'task_input': task_input,
            'result': result,
            'success': True,
        }, ensure_ascii=False, default=str)
