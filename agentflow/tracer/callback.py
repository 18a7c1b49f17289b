import logging
from typing import Any, Optional
from uuid import UUID

from langchain_core.callbacks import AsyncCallbackHandler
from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from langchain_core.outputs import LLMResult

from agentflow.tracer.context import get_current_span
from agentflow.tracer.span import Span, SpanKind

logger = logging.getLogger(__name__)


def _tool_calls(msg: AIMessage) -> list[dict[str, Any]]:
    return [{"name": tc["name"], "args": tc["args"], "id": tc.get("id")} for tc in msg.tool_calls]


def _serialize_messages(messages: list[list[BaseMessage]]) -> list[dict[str, Any]]:
    """Flatten LangChain message batches into plain dicts.

    Assistant tool-call decisions and the ``tool_call_id`` of tool results are
    kept so the two can be correlated in the exported trace.
    """
    result: list[dict[str, Any]] = []
    for batch in messages:
        for msg in batch:
            entry: dict[str, Any] = {"role": msg.type, "content": str(msg.content)}
            if isinstance(msg, AIMessage) and msg.tool_calls:
                entry["tool_calls"] = _tool_calls(msg)
            if isinstance(msg, ToolMessage):
                entry["tool_call_id"] = msg.tool_call_id
                if msg.name:
                    entry["name"] = msg.name
            result.append(entry)
    return result


def _tool_names(tools: list[dict[str, Any]]) -> list[str]:
    return [tool.get("function", {}).get("name", "unknown") for tool in tools]


class TracerCallbackHandler(AsyncCallbackHandler):
    """Attaches chat model request/response data to the active LLM span.

    Start and end callbacks are correlated through the LangChain ``run_id``.
    Callbacks fired outside an ``LLM_CALL`` span are ignored.
    """

    def __init__(self) -> None:
        super().__init__()
        self._run_spans: dict[UUID, Span] = {}

    async def on_chat_model_start(
        self,
        serialized: dict[str, Any],
        messages: list[list[BaseMessage]],
        *,
        run_id: UUID,
        parent_run_id: Optional[UUID] = None,
        tags: Optional[list[str]] = None,
        metadata: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        span = get_current_span()
        if span is None or span.kind != SpanKind.LLM_CALL:
            return
        self._run_spans[run_id] = span

        serialized = serialized or {}
        model_name = serialized.get("kwargs", {}).get("model_name") or serialized.get("id", ["unknown"])[-1]
        span.set_attribute("model", model_name)

        request: dict[str, Any] = {"messages": _serialize_messages(messages)}
        invocation_params = kwargs.get("invocation_params") or {}
        if invocation_params.get("tools"):
            request["tools"] = _tool_names(invocation_params["tools"])
        span.set_attribute("request", request)

    async def on_llm_end(
        self,
        response: LLMResult,
        *,
        run_id: UUID,
        parent_run_id: Optional[UUID] = None,
        **kwargs: Any,
    ) -> None:
        span = self._run_spans.pop(run_id, None)
        if span is None:
            return

        msg = None
        content = ""
        if response.generations and response.generations[0]:
            generation = response.generations[0][0]
            content = generation.text or ""
            msg = getattr(generation, "message", None)
            if msg is not None:
                content = str(msg.content)

        data: dict[str, Any] = {"content": content}
        if isinstance(msg, AIMessage) and msg.tool_calls:
            data["tool_calls"] = _tool_calls(msg)
        span.set_attribute("response", data)

        usage = (response.llm_output or {}).get("token_usage") or {}
        if not usage and isinstance(msg, AIMessage) and msg.usage_metadata:
            usage = {
                "prompt_tokens": msg.usage_metadata.get("input_tokens"),
                "completion_tokens": msg.usage_metadata.get("output_tokens"),
                "total_tokens": msg.usage_metadata.get("total_tokens"),
            }
        if usage:
            span.set_attribute("token_usage", {
                k: usage.get(k) for k in ("prompt_tokens", "completion_tokens", "total_tokens")
            })

    async def on_llm_error(
        self,
        error: BaseException,
        *,
        run_id: UUID,
        parent_run_id: Optional[UUID] = None,
        **kwargs: Any,
    ) -> None:
        span = self._run_spans.pop(run_id, None)
        if span is None:
            return
        logger.debug("LLM call in span %s failed: %s", span.span_id, error)
        span.status = "error"
        span.error = str(error)
