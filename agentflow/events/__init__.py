from agentflow.events.dispatcher import EventDispatcher, get_dispatcher
from agentflow.events.types import (
    AgentEvent,
    AgentExecutionFinished,
    AgentExecutionStarting,
    AgentResponseGenerated,
    EventType,
    InterruptApproved,
    InterruptRejected,
    InterruptRequested,
    LlmCallFailed,
    LlmCallInitiating,
    LlmResponseReceived,
    MemoryUpdated,
    StateUpdated,
    TaskDelegated,
    ToolCallCompleted,
    ToolCallFailed,
    ToolCallInitiating,
)

__all__ = [
    "EventDispatcher",
    "get_dispatcher",
    "EventType",
    "AgentEvent",
    "AgentExecutionStarting",
    "AgentExecutionFinished",
    "LlmCallInitiating",
    "LlmResponseReceived",
    "LlmCallFailed",
    "ToolCallInitiating",
    "ToolCallCompleted",
    "ToolCallFailed",
    "AgentResponseGenerated",
    "StateUpdated",
    "TaskDelegated",
    "MemoryUpdated",
    "InterruptRequested",
    "InterruptApproved",
    "InterruptRejected",
]
