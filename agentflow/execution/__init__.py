from agentflow.execution.callbacks import CallbackDescriptor, CallbackRegistry
from agentflow.execution.executor import AgentExecutor
from agentflow.execution.jobs import AgentJob, JobHandle, JobQueue, JobStatus

__all__ = [
    "AgentExecutor",
    "AgentJob",
    "JobHandle",
    "JobQueue",
    "JobStatus",
    "CallbackDescriptor",
    "CallbackRegistry",
]
