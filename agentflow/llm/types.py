from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncAzureOpenAI, AsyncOpenAI

AsyncOpenAIClient = AsyncAzureOpenAI | AsyncOpenAI


@dataclass
class ToolCallRequest:
    """A tool invocation chosen by the model."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'arguments': self.arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'ToolCallRequest':
        return cls(id=data['id'], name=data['name'], arguments=dict(data.get('arguments') or {}))


@dataclass
class CompletionRequest:
    """Provider-neutral chat completion request.

    ``messages`` are plain dicts with ``role`` and ``content``; assistant
    messages may carry ``tool_calls`` (``ToolCallRequest.to_dict`` records)
    and tool messages carry ``tool_call_id`` and ``name``.  ``tools`` are tool
    definitions (``name``, ``description``, ``parameters`` JSON schema).
    """
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] = field(default_factory=list)
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    json_format: bool = False

    def generation_params(self) -> dict[str, Any]:
        params = {
            'temperature': self.temperature,
            'max_tokens': self.max_tokens,
            'top_p': self.top_p,
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass
class CompletionResponse:
    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    model: str | None = None
    usage: dict[str, int | None] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class CompletionProvider(ABC):
    """Chat completion backend used by LLM agents."""

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send *request* and return the model's answer or tool calls.

        Transport and authentication failures surface as exceptions; the
        agent loop reports them as fatal provider errors.
        """
        pass
