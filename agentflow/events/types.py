"""Lifecycle notifications emitted by the execution loop and workflow engine.

Every event is an immutable record that carries enough structure (agent
name, session, payload, duration) to rebuild a hierarchical execution trace
outside the core.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EventType(str, Enum):
    EXECUTION_STARTING = "execution_starting"
    EXECUTION_FINISHED = "execution_finished"
    LLM_CALL_INITIATING = "llm_call_initiating"
    LLM_RESPONSE_RECEIVED = "llm_response_received"
    LLM_CALL_FAILED = "llm_call_failed"
    TOOL_CALL_INITIATING = "tool_call_initiating"
    TOOL_CALL_COMPLETED = "tool_call_completed"
    TOOL_CALL_FAILED = "tool_call_failed"
    AGENT_RESPONSE_GENERATED = "agent_response_generated"
    STATE_UPDATED = "state_updated"
    TASK_DELEGATED = "task_delegated"
    MEMORY_UPDATED = "memory_updated"
    INTERRUPT_REQUESTED = "interrupt_requested"
    INTERRUPT_APPROVED = "interrupt_approved"
    INTERRUPT_REJECTED = "interrupt_rejected"


@dataclass(frozen=True)
class AgentEvent:
    """Base record for all events."""
    agent_name: str
    session_id: str | None
    occurred_at: datetime = field(default_factory=datetime.now, kw_only=True)

    type = None  # overridden by subclasses

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d['type'] = self.type.value if self.type else None
        d['occurred_at'] = self.occurred_at.isoformat()
        return d


@dataclass(frozen=True)
class AgentExecutionStarting(AgentEvent):
    type = EventType.EXECUTION_STARTING
    input: Any = None


@dataclass(frozen=True)
class AgentExecutionFinished(AgentEvent):
    type = EventType.EXECUTION_FINISHED
    outcome: str = "completed"
    duration_ms: float | None = None


@dataclass(frozen=True)
class LlmCallInitiating(AgentEvent):
    type = EventType.LLM_CALL_INITIATING
    messages: list[dict[str, Any]] = field(default_factory=list)
    model: str | None = None


@dataclass(frozen=True)
class LlmResponseReceived(AgentEvent):
    type = EventType.LLM_RESPONSE_RECEIVED
    content: str | None = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    duration_ms: float | None = None


@dataclass(frozen=True)
class LlmCallFailed(AgentEvent):
    type = EventType.LLM_CALL_FAILED
    error: str = ""


@dataclass(frozen=True)
class ToolCallInitiating(AgentEvent):
    type = EventType.TOOL_CALL_INITIATING
    tool_name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallCompleted(AgentEvent):
    type = EventType.TOOL_CALL_COMPLETED
    tool_name: str = ""
    result: str = ""
    duration_ms: float | None = None


@dataclass(frozen=True)
class ToolCallFailed(AgentEvent):
    type = EventType.TOOL_CALL_FAILED
    tool_name: str = ""
    error: str = ""


@dataclass(frozen=True)
class AgentResponseGenerated(AgentEvent):
    type = EventType.AGENT_RESPONSE_GENERATED
    response: str = ""


@dataclass(frozen=True)
class StateUpdated(AgentEvent):
    type = EventType.STATE_UPDATED
    state: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskDelegated(AgentEvent):
    type = EventType.TASK_DELEGATED
    sub_agent_name: str = ""
    sub_session_id: str = ""
    task_input: str = ""
    context_summary: str = ""
    delegation_depth: int = 0


@dataclass(frozen=True)
class MemoryUpdated(AgentEvent):
    type = EventType.MEMORY_UPDATED
    update_type: str = ""
    user_id: str | None = None


@dataclass(frozen=True)
class InterruptRequested(AgentEvent):
    type = EventType.INTERRUPT_REQUESTED
    interrupt_id: str = ""
    reason: str = ""
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InterruptApproved(AgentEvent):
    type = EventType.INTERRUPT_APPROVED
    interrupt_id: str = ""
    modifications: dict[str, Any] | None = None
    resolved_by: str | None = None


@dataclass(frozen=True)
class InterruptRejected(AgentEvent):
    type = EventType.INTERRUPT_REJECTED
    interrupt_id: str = ""
    reason: str | None = None
    resolved_by: str | None = None
