import logging
import time
from typing import Any, Callable, ClassVar

from agentflow.agents.base import BaseAgent
from agentflow.config.settings import ExecutionConfig
from agentflow.context import AgentContext, Message
from agentflow.events import (
    AgentResponseGenerated,
    EventDispatcher,
    LlmCallFailed,
    LlmCallInitiating,
    LlmResponseReceived,
    StateUpdated,
    ToolCallCompleted,
    ToolCallFailed,
    ToolCallInitiating,
)
from agentflow.exceptions import DelegationDepthExceededError, LLMCallError, ToolNotFoundError, ToolRoundLimitError
from agentflow.interrupts.manager import InterruptManager
from agentflow.interrupts.models import InterruptSignal, InterruptType
from agentflow.llm.types import CompletionProvider, CompletionRequest, CompletionResponse, ToolCallRequest
from agentflow.memory.manager import MemoryManager
from agentflow.tools.base import BaseTool
from agentflow.tools.delegate import DelegateToSubAgentTool
from agentflow.tools.toolbox import AuthorizationContext, Toolbox
from agentflow.tools.types import ToolError
from agentflow.tracer import trace_agent_run, trace_llm, trace_tool

logger = logging.getLogger(__name__)

DELEGATION_INSTRUCTIONS = (
    "\n\nDELEGATION CAPABILITIES:\n"
    "You have access to specialized sub-agents for handling specific tasks. "
    "Available sub-agents: {sub_agents}. "
    "Use the 'delegate_to_sub_agent' tool when a task would be better handled by one of your sub-agents. "
    "This allows you to leverage specialized expertise and break down complex problems into manageable parts."
)

MEMORY_INSTRUCTIONS = (
    "\n\nMEMORY CONTEXT:\n"
    "Based on your previous interactions, here's what you should remember:\n\n"
    "{memory}\n\n"
    "Use this information to provide more personalized and contextual responses. "
    "Build upon previous conversations and maintain continuity in your interactions."
)

# Errors a tool may raise that end the run instead of becoming a tool message
FATAL_TOOL_ERRORS = (InterruptSignal, DelegationDepthExceededError)


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


class BaseLlmAgent(BaseAgent):
    """LLM-backed agent running the completion / tool-call loop.

    Subclasses declare their behaviour as class attributes::

        class SupportAgent(BaseLlmAgent):
            name = 'support'
            description = 'Answers customer questions'
            instructions = 'You are a friendly support agent.'
            tools = [LookupOrderTool]
            sub_agents = ['billing']

    The hook methods (``before_llm_call``, ``after_llm_response``,
    ``before_tool_call``, ``after_tool_result``, and the two delegation hooks)
    return the value they were given, possibly modified.
    """

    instructions: ClassVar[str] = ''
    model: ClassVar[str | None] = None
    temperature: ClassVar[float | None] = None
    max_tokens: ClassVar[int | None] = None
    top_p: ClassVar[float | None] = None
    streaming: ClassVar[bool] = False
    tools: ClassVar[list[BaseTool | type[BaseTool]]] = []
    toolboxes: ClassVar[list[Toolbox | type[Toolbox]]] = []
    sub_agents: ClassVar[list[str]] = []

    def __init__(
            self,
            provider: CompletionProvider,
            *,
            registry=None,
            interrupts: InterruptManager | None = None,
            dispatcher: EventDispatcher | None = None,
            config: ExecutionConfig | None = None,
            memory: MemoryManager | None = None,
            authorization_check: Callable[[str, Any], bool] | None = None,
            extra_tools: list[BaseTool] | None = None,
    ):
        self.provider = provider
        self.registry = registry
        self.interrupts = interrupts
        self.dispatcher = dispatcher
        self.config = config or ExecutionConfig()
        self.memory = memory
        self.authorization_check = authorization_check

        self._tools: dict[str, BaseTool] = {}
        for tool in [*type(self).tools, *(extra_tools or [])]:
            instance = tool() if isinstance(tool, type) else tool
            self._tools[instance.name] = instance
        self._toolboxes: list[Toolbox] = [
            toolbox() if isinstance(toolbox, type) else toolbox for toolbox in type(self).toolboxes
        ]
        self._delegate_tool: DelegateToSubAgentTool | None = None
        if self.sub_agents:
            if registry is None:
                logger.warning("Agent %s declares sub-agents but has no registry; delegation is disabled", self.name)
            else:
                self._delegate_tool = DelegateToSubAgentTool(
                    self,
                    registry,
                    max_depth=self.config.max_delegation_depth,
                    dispatcher=dispatcher,
                )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def before_llm_call(self, messages: list[dict[str, Any]], context: AgentContext) -> list[dict[str, Any]]:
        return messages

    async def after_llm_response(self, response: CompletionResponse, context: AgentContext) -> CompletionResponse:
        return response

    async def before_tool_call(self, tool_name: str, arguments: dict[str, Any], context: AgentContext) -> dict[str, Any]:
        return arguments

    async def after_tool_result(self, tool_name: str, result: str, context: AgentContext) -> str:
        return result

    async def before_sub_agent_delegation(self, sub_agent_name: str, task_input: str, sub_context: AgentContext) -> None:
        pass

    async def after_sub_agent_delegation(self, sub_agent_name: str, result: Any, sub_context: AgentContext) -> Any:
        return result

    # ------------------------------------------------------------------
    # Prompt assembly
    # ------------------------------------------------------------------

    def get_instructions(self, context: AgentContext) -> str:
        return self.instructions

    def get_instructions_with_memory(self, context: AgentContext) -> str:
        instructions = self.get_instructions(context)
        if self.sub_agents:
            instructions += DELEGATION_INSTRUCTIONS.format(sub_agents=', '.join(self.sub_agents))
        memory = context.get_state('memory_context')
        if memory:
            instructions += MEMORY_INSTRUCTIONS.format(memory=memory)
        return instructions

    def tools_for(self, context: AgentContext) -> dict[str, BaseTool]:
        """Every tool the model may call in *context*, keyed by name."""
        tools = dict(self._tools)
        if self._toolboxes:
            auth = AuthorizationContext.from_agent_context(context, self.authorization_check)
            for toolbox in self._toolboxes:
                tools.update(toolbox.authorized_tools(context, auth))
        if self._delegate_tool is not None:
            tools[self._delegate_tool.name] = self._delegate_tool
        return tools

    def generation_params(self, context: AgentContext) -> dict[str, Any]:
        """Executor overrides, then agent attributes, then configured defaults."""
        overrides = context.get_state('generation_overrides') or {}
        params = {}
        for key in ('temperature', 'max_tokens', 'top_p'):
            value = overrides.get(key)
            if value is None:
                value = getattr(self, key)
            if value is None:
                value = getattr(self.config, key)
            params[key] = value
        return params

    def build_request(self, context: AgentContext, tools: dict[str, BaseTool]) -> CompletionRequest:
        messages: list[dict[str, Any]] = []
        system_prompt = self.get_instructions_with_memory(context)
        if system_prompt:
            messages.append({'role': 'system', 'content': system_prompt})
        for message in context.get_conversation_history():
            entry: dict[str, Any] = {'role': message.role, 'content': message.content}
            if message.tool_calls:
                entry['tool_calls'] = message.tool_calls
            if message.tool_call_id:
                entry['tool_call_id'] = message.tool_call_id
            if message.tool_name:
                entry['tool_name'] = message.tool_name
            messages.append(entry)
        return CompletionRequest(
            messages=messages,
            tools=[tool.definition() for tool in tools.values()],
            model=self.model,
            **self.generation_params(context),
        )

    # ------------------------------------------------------------------
    # Execution loop
    # ------------------------------------------------------------------

    @trace_agent_run()
    async def run(self, input: Any, context: AgentContext) -> str:
        context.set_user_input(input)
        context.add_message({'role': 'user', 'content': input})
        await self._load_memory_context(context)

        rounds = 0
        while True:
            tools = self.tools_for(context)
            request = self.build_request(context, tools)
            request.messages = await self.before_llm_call(request.messages, context)
            response = await self._complete(request, context)
            response = await self.after_llm_response(response, context)

            if not response.tool_calls:
                answer = response.content or ''
                context.add_message({'role': 'assistant', 'content': answer})
                self._dispatch(AgentResponseGenerated(agent_name=self.name, session_id=context.session_id, response=answer))
                self._dispatch(StateUpdated(agent_name=self.name, session_id=context.session_id, state=context.get_all_state()))
                return answer

            rounds += 1
            if rounds > self.config.max_tool_rounds:
                raise ToolRoundLimitError(self.name, self.config.max_tool_rounds)

            context.add_message(Message(
                role='assistant',
                content=response.content or '',
                tool_calls=[call.to_dict() for call in response.tool_calls],
            ))
            for call in response.tool_calls:
                await self._handle_tool_call(call, tools, context)

    @trace_llm(name_attr='name')
    async def _complete(self, request: CompletionRequest, context: AgentContext) -> CompletionResponse:
        self._dispatch(LlmCallInitiating(
            agent_name=self.name,
            session_id=context.session_id,
            messages=request.messages,
            model=request.model,
        ))
        start = time.monotonic()
        try:
            response = await self.provider.complete(request)
        except Exception as e:
            logger.error("LLM call for agent %s failed: %s", self.name, e)
            self._dispatch(LlmCallFailed(agent_name=self.name, session_id=context.session_id, error=str(e)))
            raise LLMCallError(self.name, e) from e

        self._dispatch(LlmResponseReceived(
            agent_name=self.name,
            session_id=context.session_id,
            content=response.content,
            tool_calls=[call.to_dict() for call in response.tool_calls],
            duration_ms=_elapsed_ms(start),
        ))
        return response

    async def _handle_tool_call(self, call: ToolCallRequest, tools: dict[str, BaseTool], context: AgentContext) -> None:
        arguments = await self.before_tool_call(call.name, call.arguments, context)
        await self._require_approval(call, arguments, context)

        self._dispatch(ToolCallInitiating(
            agent_name=self.name,
            session_id=context.session_id,
            tool_name=call.name,
            arguments=arguments,
        ))
        start = time.monotonic()
        try:
            result = await self.call_tool(tool_name=call.name, arguments=arguments, tools=tools, context=context)
        except FATAL_TOOL_ERRORS:
            raise
        except Exception as e:
            logger.warning("Tool %s failed for agent %s: %s", call.name, self.name, e)
            result = ToolError(error=str(e)).to_json()
            self._add_tool_message(call, result, context)
            self._dispatch(ToolCallFailed(
                agent_name=self.name,
                session_id=context.session_id,
                tool_name=call.name,
                error=str(e),
            ))
            await self.after_tool_result(call.name, result, context)
            return

        result = await self.after_tool_result(call.name, result, context)
        self._add_tool_message(call, result, context)
        self._dispatch(ToolCallCompleted(
            agent_name=self.name,
            session_id=context.session_id,
            tool_name=call.name,
            result=result,
            duration_ms=_elapsed_ms(start),
        ))

    @trace_tool()
    async def call_tool(
            self,
            tool_name: str,
            arguments: dict[str, Any],
            tools: dict[str, BaseTool],
            context: AgentContext,
    ) -> str:
        tool = tools.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name, list(tools))
        tool.validate_arguments(arguments)
        return await tool.execute(arguments, context)

    async def _require_approval(self, call: ToolCallRequest, arguments: dict[str, Any], context: AgentContext) -> None:
        """Pause with an approval interrupt when policy gates this tool."""
        if self.interrupts is None or not self.interrupts.tool_requires_approval(call.name):
            return
        if call.name in (context.get_state('approved_tools') or []):
            return

        permission = self.interrupts.tool_permission(call.name)
        interrupt = await self.interrupts.create(
            context,
            self.name,
            getattr(permission, 'reason', None) or f"Tool '{call.name}' requires approval",
            {'tool_name': call.name, 'arguments': arguments, 'tool_call_id': call.id},
            InterruptType.APPROVAL,
            expires_in_hours=getattr(permission, 'expires_in_hours', None),
        )
        # Keep the tool call answered so the history stays valid for the provider.
        self._add_tool_message(
            call,
            ToolError(error=f"Awaiting approval (interrupt {interrupt.id})").to_json(),
            context,
        )
        raise InterruptSignal(interrupt.reason, interrupt.data, interrupt=interrupt)

    async def _load_memory_context(self, context: AgentContext) -> None:
        if self.memory is None or context.get_state('memory_context'):
            return
        user_id = context.get_state('user_id')
        if user_id is None:
            return
        memory = await self.memory.get_memory_context(self.name, str(user_id))
        if memory:
            context.set_state('memory_context', memory)

    def _add_tool_message(self, call: ToolCallRequest, result: str, context: AgentContext) -> None:
        context.add_message(Message(role='tool', content=result, tool_name=call.name, tool_call_id=call.id))

    def _dispatch(self, event) -> None:
        if self.dispatcher is not None:
            self.dispatcher.dispatch(event)
