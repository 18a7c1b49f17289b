from agentflow.tracer.context import get_active_tracer, get_current_span, set_current_span
from agentflow.tracer.decorators import (
    trace_agent_run,
    trace_delegation,
    trace_llm,
    trace_tool,
    trace_workflow,
)
from agentflow.tracer.exporter import YAMLExporter
from agentflow.tracer.span import Span, SpanKind
from agentflow.tracer.tracer import Tracer

__all__ = [
    "Tracer",
    "YAMLExporter",
    "Span",
    "SpanKind",
    "get_active_tracer",
    "get_current_span",
    "set_current_span",
    "trace_agent_run",
    "trace_workflow",
    "trace_tool",
    "trace_delegation",
    "trace_llm",
]
