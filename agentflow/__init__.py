from agentflow.context import AgentContext, Message
from agentflow.exceptions import AgentFlowError
from agentflow.outcome import Completed, Failed, Interrupted, RunOutcome

__all__ = [
    "AgentContext",
    "Message",
    "AgentFlowError",
    "Completed",
    "Failed",
    "Interrupted",
    "RunOutcome",
]
