import json
import logging
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from agentflow.llm.oai.chat import to_openai_tools
from agentflow.llm.types import CompletionProvider, CompletionRequest, CompletionResponse, ToolCallRequest
from agentflow.tracer import get_active_tracer

logger = logging.getLogger(__name__)


def to_langchain_messages(messages: list[dict[str, Any]]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for msg in messages:
        content = msg.get('content')
        if content is None:
            content = ''
        elif not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        role = msg['role']
        if role == 'system':
            converted.append(SystemMessage(content=content))
        elif role == 'user':
            converted.append(HumanMessage(content=content))
        elif role == 'assistant':
            converted.append(AIMessage(
                content=content,
                tool_calls=[
                    {'name': c['name'], 'args': c.get('arguments') or {}, 'id': c['id']}
                    for c in msg.get('tool_calls') or []
                ],
            ))
        elif role == 'tool':
            converted.append(ToolMessage(
                content=content,
                tool_call_id=msg.get('tool_call_id') or '',
                name=msg.get('tool_name') or msg.get('name'),
            ))
        else:
            raise ValueError(f"Unsupported message role: {role}")
    return converted


class LangChainCompletionProvider(CompletionProvider):
    """Completion provider backed by any LangChain chat model.

    When a tracer is active its callback handler is attached to the call, so
    request and response data land on the current LLM span.
    """

    def __init__(self, chat_model: BaseChatModel):
        self.chat_model = chat_model

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self.chat_model
        if request.tools:
            model = model.bind_tools(to_openai_tools(request.tools))

        invoke_kwargs: dict[str, Any] = dict(request.generation_params())
        if request.json_format:
            invoke_kwargs['response_format'] = {'type': 'json_object'}

        config: dict[str, Any] = {}
        tracer = get_active_tracer()
        if tracer is not None:
            config['callbacks'] = [tracer.callback_handler]

        result = await model.ainvoke(to_langchain_messages(request.messages), config=config or None, **invoke_kwargs)
        content = result.content if isinstance(result.content, str) else json.dumps(result.content)

        tool_calls = []
        usage = {}
        if isinstance(result, AIMessage):
            tool_calls = [
                ToolCallRequest(id=tc.get('id') or f"call_{i}", name=tc['name'], arguments=tc.get('args') or {})
                for i, tc in enumerate(result.tool_calls)
            ]
            if result.usage_metadata:
                usage = {
                    'prompt_tokens': result.usage_metadata.get('input_tokens'),
                    'completion_tokens': result.usage_metadata.get('output_tokens'),
                    'total_tokens': result.usage_metadata.get('total_tokens'),
                }
        logger.debug("LangChain model returned %d tool call(s)", len(tool_calls))
        return CompletionResponse(
            content=content or None,
            tool_calls=tool_calls,
            model=request.model,
            usage=usage,
        )
