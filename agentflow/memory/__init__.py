from agentflow.memory.agent_memory import AgentMemory
from agentflow.memory.chunker import DocumentChunker
from agentflow.memory.drivers import InMemoryVectorDriver, LanceDBVectorDriver, VectorDriver
from agentflow.memory.embedding import EmbeddingProvider
from agentflow.memory.manager import MemoryManager
from agentflow.memory.records import AgentMemoryRecord, VectorMemoryEntry, VectorSearchResult
from agentflow.memory.vector import VectorMemoryManager, content_hash

__all__ = [
    "AgentMemory",
    "AgentMemoryRecord",
    "MemoryManager",
    "DocumentChunker",
    "EmbeddingProvider",
    "VectorDriver",
    "InMemoryVectorDriver",
    "LanceDBVectorDriver",
    "VectorMemoryEntry",
    "VectorSearchResult",
    "VectorMemoryManager",
    "content_hash",
]
