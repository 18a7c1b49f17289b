import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from agentflow.tracer.context import get_current_span, set_current_span

__all__ = ["Span", "SpanKind", "get_current_span", "set_current_span"]


class SpanKind(str, Enum):
    """Hierarchy level of a span inside an execution trace.

    The usual nesting (outermost to innermost) is::

        WORKFLOW  ->  AGENT_RUN  ->  LLM_CALL | TOOL_CALL  ->  SUB_AGENT_DELEGATION  ->  AGENT_RUN ...

    A delegation span nests the complete run of the sub-agent, so the trace
    tree mirrors the delegation chain.
    """

    AGENT_RUN = "agent_run"
    WORKFLOW = "workflow"
    LLM_CALL = "llm_call"
    TOOL_CALL = "tool_call"
    SUB_AGENT_DELEGATION = "sub_agent_delegation"


def _short_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class Span:
    """A single node in the trace tree.

    Parameters
    ----------
    kind:
        The semantic level of this span.
    name:
        A human-readable label (agent name, tool name, workflow name).
    """

    kind: SpanKind
    name: str
    span_id: str = field(default_factory=_short_id)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    status: str = "ok"
    error: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)
    children: list['Span'] = field(default_factory=list)
    parent: Optional['Span'] = field(default=None, repr=False)

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def add_child(self, child: 'Span') -> None:
        child.parent = self
        self.children.append(child)

    def finish(self, error: Exception | None = None) -> None:
        """Mark the span as finished, computing *duration_ms*.

        If *error* is provided the span status is set to ``"error"`` and the
        error message is recorded.
        """
        self.end_time = datetime.now()
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        if error is not None:
            self.status = "error"
            self.error = str(error)

    def iter_spans(self):
        """Depth-first walk over this span and all of its descendants."""
        yield self
        for child in self.children:
            yield from child.iter_spans()

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "name": self.name,
            "span_id": self.span_id,
            "start_time": self.start_time.isoformat(),
        }
        if self.end_time is not None:
            d["end_time"] = self.end_time.isoformat()
        if self.duration_ms is not None:
            d["duration_ms"] = round(self.duration_ms, 2)
        d["status"] = self.status
        if self.error is not None:
            d["error"] = self.error
        if self.attributes:
            d["attributes"] = self.attributes
        if self.children:
            d["children"] = [c.to_dict() for c in self.children]
        return d
