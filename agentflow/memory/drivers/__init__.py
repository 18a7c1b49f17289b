from agentflow.memory.drivers.base import VectorDriver
from agentflow.memory.drivers.lance import LanceDBVectorDriver
from agentflow.memory.drivers.memory import InMemoryVectorDriver, cosine_similarity

__all__ = ["VectorDriver", "InMemoryVectorDriver", "LanceDBVectorDriver", "cosine_similarity"]
