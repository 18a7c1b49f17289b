from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ulid import ULID


@dataclass
class AgentMemoryRecord:
    """Long-lived memory of one agent about one user."""
    agent_name: str
    user_id: str
    memory_data: dict[str, Any] = field(default_factory=dict)
    key_learnings: list[str] = field(default_factory=list)
    memory_summary: str | None = None
    total_sessions: int = 0
    last_session_at: datetime | None = None
    memory_updated_at: datetime = field(default_factory=datetime.now)
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class VectorMemoryEntry:
    agent_name: str
    content: str
    content_hash: str
    embedding: list[float]
    namespace: str = 'default'
    metadata: dict[str, Any] = field(default_factory=dict)
    source: str | None = None
    source_id: str | None = None
    chunk_index: int | None = None
    embedding_provider: str | None = None
    embedding_model: str | None = None
    embedding_dimensions: int | None = None
    embedding_norm: float | None = None
    token_count: int | None = None
    id: str = field(default_factory=lambda: str(ULID()))
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self, include_embedding: bool = False) -> dict[str, Any]:
        d = {
            'id': self.id,
            'agent_name': self.agent_name,
            'namespace': self.namespace,
            'content': self.content,
            'content_hash': self.content_hash,
            'metadata': self.metadata,
            'source': self.source,
            'source_id': self.source_id,
            'chunk_index': self.chunk_index,
            'embedding_provider': self.embedding_provider,
            'embedding_model': self.embedding_model,
            'embedding_dimensions': self.embedding_dimensions,
            'token_count': self.token_count,
            'created_at': self.created_at.isoformat(),
        }
        if include_embedding:
            d['embedding'] = self.embedding
        return d


@dataclass
class VectorSearchResult:
    entry: VectorMemoryEntry
    similarity: float
