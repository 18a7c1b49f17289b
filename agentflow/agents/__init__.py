from agentflow.agents.base import BaseAgent
from agentflow.agents.llm import BaseLlmAgent
from agentflow.agents.registry import AgentFactory, AgentRegistry

__all__ = [
    "BaseAgent",
    "BaseLlmAgent",
    "AgentRegistry",
    "AgentFactory",
]
