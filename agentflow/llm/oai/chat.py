import json
import logging
from typing import Any

import openai
from azure.identity import DefaultAzureCredential, get_bearer_token_provider
from openai import AsyncAzureOpenAI, AsyncOpenAI

from agentflow.config.llm import AzureOpenAIChatConfig, DeepSeekChatConfig, OpenAIChatConfig
from agentflow.exceptions import ProviderError
from agentflow.llm.types import (
    AsyncOpenAIClient,
    CompletionProvider,
    CompletionRequest,
    CompletionResponse,
    ToolCallRequest,
)
from agentflow.tracer import get_current_span

logger = logging.getLogger(__name__)


def to_openai_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert provider-neutral messages to the chat completions wire format."""
    converted = []
    for msg in messages:
        role = msg['role']
        content = msg.get('content')
        if content is not None and not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        if role == 'assistant' and msg.get('tool_calls'):
            converted.append({
                'role': 'assistant',
                'content': content or None,
                'tool_calls': [
                    {
                        'id': call['id'],
                        'type': 'function',
                        'function': {
                            'name': call['name'],
                            'arguments': json.dumps(call.get('arguments') or {}, ensure_ascii=False),
                        },
                    }
                    for call in msg['tool_calls']
                ],
            })
        elif role == 'tool':
            converted.append({
                'role': 'tool',
                'tool_call_id': msg.get('tool_call_id'),
                'content': content or '',
            })
        else:
            converted.append({'role': role, 'content': content or ''})
    return converted


def to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            'type': 'function',
            'function': {
                'name': tool['name'],
                'description': tool.get('description', ''),
                'parameters': tool.get('parameters') or {'type': 'object', 'properties': {}},
            },
        }
        for tool in tools
    ]


def _parse_arguments(raw: str | None, tool_name: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Model returned malformed arguments for tool %s: %s", tool_name, raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAICompletionProvider(CompletionProvider):
    def __init__(
            self,
            client: AsyncOpenAIClient,
            model: str,
            *,
            default_params: dict | None = None,
    ):
        self.client = client
        self.model = model
        self.default_params: dict = default_params or {}

    @classmethod
    def from_config(cls, config: AzureOpenAIChatConfig | OpenAIChatConfig | DeepSeekChatConfig) -> 'OpenAICompletionProvider':
        if isinstance(config, AzureOpenAIChatConfig):
            if config.api_key:
                credential = {"api_key": config.api_key}
            else:
                credential = {
                    "azure_ad_token_provider": get_bearer_token_provider(
                        DefaultAzureCredential(),
                        "https://cognitiveservices.azure.com/.default"
                    )
                }
            client = AsyncAzureOpenAI(
                azure_endpoint=config.endpoint,
                azure_deployment=config.deployment,
                api_version=config.api_version,
                timeout=config.timeout,
                **credential,
            )
        else:
            client = AsyncOpenAI(
                base_url=config.endpoint,
                api_key=config.api_key,
                timeout=config.timeout,
            )
        return cls(client, config.model, default_params=config.generation_params())

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        params: dict[str, Any] = {**self.default_params, **request.generation_params()}
        if 'max_tokens' in params:
            params['max_completion_tokens'] = params.pop('max_tokens')
        if request.tools:
            params['tools'] = to_openai_tools(request.tools)
        if request.json_format:
            params['response_format'] = {'type': 'json_object'}
        model = request.model or self.model

        try:
            resp = await self.client.chat.completions.create(
                messages=to_openai_messages(request.messages),
                model=model,
                **params,
            )
        except openai.OpenAIError as e:
            raise ProviderError(f"OpenAI chat completion failed: {e}") from e

        message = resp.choices[0].message
        tool_calls = [
            ToolCallRequest(
                id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.arguments, call.function.name),
            )
            for call in message.tool_calls or []
        ]
        usage = {}
        if resp.usage is not None:
            usage = {
                'prompt_tokens': resp.usage.prompt_tokens,
                'completion_tokens': resp.usage.completion_tokens,
                'total_tokens': resp.usage.total_tokens,
            }

        span = get_current_span()
        if span is not None:
            span.set_attribute('model', resp.model or model)
            if usage:
                span.set_attribute('token_usage', usage)

        return CompletionResponse(
            content=message.content,
            tool_calls=tool_calls,
            model=resp.model or model,
            usage=usage,
        )
