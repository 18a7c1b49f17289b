"""Tracer decorators for the span levels.

Each decorator creates a span of the appropriate :class:`SpanKind`, pushes
it as the *current* span for the duration of the decorated ``async`` call,
and pops it on exit.  If no tracer has been activated the decorated function
runs untraced.

Usage::

    from agentflow.tracer import trace_agent_run, trace_tool

    class MyAgent(BaseAgent):
        @trace_agent_run(name_attr="name")
        async def run(self, input, context):
            ...

    @trace_tool()                      # name read from the ``tool_name`` argument
    async def _call_tool(self, tool_name, arguments, context):
        ...
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, TypeVar

from agentflow.tracer.context import get_active_tracer
from agentflow.tracer.span import SpanKind

F = TypeVar("F", bound=Callable[..., Any])


def _resolve_name(fn, args, kwargs, name, name_kwarg, name_attr) -> str:
    span_name = name or fn.__name__
    if name_attr is not None and args:
        span_name = getattr(args[0], name_attr, None) or span_name
    if name_kwarg is not None:
        value = kwargs.get(name_kwarg)
        if value is None:
            params = list(inspect.signature(fn).parameters.keys())
            if name_kwarg in params:
                idx = params.index(name_kwarg)
                if idx < len(args):
                    value = args[idx]
        if value is not None:
            span_name = str(value)
    return span_name


def _make_decorator(
    kind: SpanKind,
    name: str | None = None,
    *,
    auto_export: bool = False,
    name_kwarg: str | None = None,
    name_attr: str | None = None,
) -> Callable[[F], F]:
    """Build a decorator that wraps an *async* function in a span.

    Parameters
    ----------
    kind:
        The semantic span level.
    name:
        Fixed label for the span.  Defaults to the function name.
    auto_export:
        Export the trace once the span finishes, if it is a root span.
    name_kwarg:
        Read the span name from this argument of the decorated function.
    name_attr:
        Read the span name from this attribute of the bound instance
        (``self.name`` for agents and workflows).
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_active_tracer()
            if tracer is None:
                return await fn(*args, **kwargs)

            span_name = _resolve_name(fn, args, kwargs, name, name_kwarg, name_attr)
            span, token = tracer.start_span(kind, span_name)
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                span.status = "error"
                span.error = str(exc)
                raise
            finally:
                tracer.end_span(span, token)
                if auto_export and span.parent is None:
                    tracer.export(span)

        return wrapper  # type: ignore[return-value]

    return decorator


def trace_agent_run(name: str | None = None, *, name_attr: str = "name") -> Callable[[F], F]:
    """Mark an agent's ``run`` as an **agent-run** span.

    A top-level run exports its trace when it finishes.
    """
    return _make_decorator(SpanKind.AGENT_RUN, name, auto_export=True, name_attr=name_attr)


def trace_workflow(name: str | None = None, *, name_attr: str = "name") -> Callable[[F], F]:
    return _make_decorator(SpanKind.WORKFLOW, name, auto_export=True, name_attr=name_attr)


def trace_tool(name: str | None = None, *, name_kwarg: str = "tool_name") -> Callable[[F], F]:
    """Mark an async function as a **tool-call** span.

    By default the span name is read from the ``tool_name`` argument.
    """
    return _make_decorator(SpanKind.TOOL_CALL, name, name_kwarg=name_kwarg)


def trace_delegation(name: str | None = None, *, name_kwarg: str = "sub_agent_name") -> Callable[[F], F]:
    return _make_decorator(SpanKind.SUB_AGENT_DELEGATION, name, name_kwarg=name_kwarg)


def trace_llm(name: str | None = None, *, name_attr: str | None = None) -> Callable[[F], F]:
    """Mark an async function as an **LLM-call** span.

    The :class:`~agentflow.tracer.callback.TracerCallbackHandler` attaches
    request/response data to this span when the underlying chat model fires
    LangChain callbacks.
    """
    return _make_decorator(SpanKind.LLM_CALL, name, name_attr=name_attr)
