from agentflow.interrupts.manager import InterruptManager
from agentflow.interrupts.models import AgentInterrupt, InterruptSignal, InterruptStatus, InterruptType

__all__ = [
    "InterruptManager",
    "AgentInterrupt",
    "InterruptSignal",
    "InterruptStatus",
    "InterruptType",
]
