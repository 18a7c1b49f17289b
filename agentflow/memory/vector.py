import hashlib
import json
import logging
import math
from collections import Counter
from typing import Any

from agentflow.config.settings import RagConfig
from agentflow.exceptions import EmbeddingError
from agentflow.memory.chunker import DocumentChunker
from agentflow.memory.drivers.base import VectorDriver
from agentflow.memory.embedding import EmbeddingProvider
from agentflow.memory.records import VectorMemoryEntry, VectorSearchResult

logger = logging.getLogger(__name__)


def content_hash(agent_name: str, content: str) -> str:
    """Deduplication key of *content* within one agent's memory."""
    return hashlib.sha256(f"{agent_name}:{content.strip()}".encode('utf-8')).hexdigest()


def vector_norm(vector: list[float]) -> float:
    return math.sqrt(sum(x * x for x in vector))


class VectorMemoryManager:
    """Semantic memory for agents: chunk, embed, store, search, and build RAG context."""

    def __init__(
            self,
            embedder: EmbeddingProvider,
            driver: VectorDriver,
            chunker: DocumentChunker | None = None,
            rag_config: RagConfig | None = None,
    ):
        self.embedder = embedder
        self.driver = driver
        self.chunker = chunker or DocumentChunker()
        self.rag_config = rag_config or RagConfig()

    async def add_document(
            self,
            agent_name: str,
            content: str,
            metadata: dict[str, Any] | None = None,
            *,
            namespace: str = 'default',
            source: str | None = None,
            source_id: str | None = None,
    ) -> list[VectorMemoryEntry]:
        chunks = self.chunker.chunk(content)
        logger.info("Adding document of %d characters as %d chunk(s) for %s", len(content), len(chunks), agent_name)
        entries = []
        for index, chunk in enumerate(chunks):
            entry = await self.add_chunk(
                agent_name,
                chunk,
                {**(metadata or {}), 'chunk_index': index},
                namespace=namespace,
                source=source,
                source_id=source_id,
                chunk_index=index,
            )
            if entry is not None:
                entries.append(entry)
        return entries

    async def add_chunk(
            self,
            agent_name: str,
            content: str,
            metadata: dict[str, Any] | None = None,
            *,
            namespace: str = 'default',
            source: str | None = None,
            source_id: str | None = None,
            chunk_index: int = 0,
    ) -> VectorMemoryEntry | None:
        """Embed and store one chunk; returns the existing entry for duplicate content."""
        content = content.strip()
        if not content:
            return None

        digest = content_hash(agent_name, content)
        existing = await self.driver.find_by_hash(agent_name, digest)
        if existing is not None:
            logger.debug("Content already stored for %s (%s)", agent_name, digest[:12])
            return existing

        try:
            embedding = (await self.embedder.embed(content))[0]
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(self.embedder.provider_name, e) from e

        entry = VectorMemoryEntry(
            agent_name=agent_name,
            content=content,
            content_hash=digest,
            embedding=embedding,
            namespace=namespace,
            metadata=dict(metadata or {}),
            source=source,
            source_id=source_id,
            chunk_index=chunk_index,
            embedding_provider=self.embedder.provider_name,
            embedding_model=self.embedder.model,
            embedding_dimensions=len(embedding),
            embedding_norm=vector_norm(embedding),
            token_count=self.embedder.estimate_tokens(content),
        )
        stored, created = await self.driver.insert_if_absent(entry)
        if created:
            logger.debug("Stored vector memory %s for %s", stored.id, agent_name)
        return stored

    async def search(
            self,
            agent_name: str,
            query: str,
            *,
            namespace: str = 'default',
            limit: int = 5,
            threshold: float = 0.7,
    ) -> list[VectorSearchResult]:
        try:
            vector = (await self.embedder.embed(query))[0]
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(self.embedder.provider_name, e) from e
        return await self.driver.search(agent_name, vector, namespace, limit, threshold)

    async def generate_rag_context(
            self,
            agent_name: str,
            query: str,
            *,
            namespace: str = 'default',
            limit: int = 5,
            threshold: float = 0.7,
    ) -> dict[str, Any]:
        results = await self.search(agent_name, query, namespace=namespace, limit=limit, threshold=threshold)
        if not results:
            return {'context': '', 'sources': [], 'query': query, 'total_results': 0}

        parts: list[str] = []
        sources: list[dict[str, Any]] = []
        length = 0
        for result in results:
            entry = result.entry
            text = entry.content
            if self.rag_config.include_metadata and entry.metadata:
                text += f"\n[Metadata: {json.dumps(entry.metadata, ensure_ascii=False)}]"
            if length + len(text) > self.rag_config.max_context_length:
                break
            parts.append(text)
            sources.append({
                'id': entry.id,
                'source': entry.source,
                'source_id': entry.source_id,
                'similarity': result.similarity,
                'created_at': entry.created_at.isoformat(),
            })
            length += len(text)

        context = "\n\n---\n\n".join(parts)
        template = self.rag_config.context_template
        if template:
            context = template.replace('{context}', context).replace('{query}', query)
        return {
            'context': context,
            'sources': sources,
            'query': query,
            'total_results': len(results),
        }

    async def delete_memories(self, agent_name: str, namespace: str = 'default') -> int:
        return await self.driver.delete(agent_name, namespace)

    async def delete_memories_by_source(self, agent_name: str, source: str, namespace: str = 'default') -> int:
        return await self.driver.delete(agent_name, namespace, source)

    async def statistics(self, agent_name: str, namespace: str = 'default') -> dict[str, Any]:
        entries = await self.driver.entries(agent_name, namespace)
        return {
            'agent_name': agent_name,
            'namespace': namespace,
            'total_memories': len(entries),
            'total_tokens': sum(e.token_count or 0 for e in entries),
            'sources': dict(Counter(e.source or 'unknown' for e in entries)),
            'embedding_providers': dict(Counter(e.embedding_provider or 'unknown' for e in entries)),
            'embedding_models': dict(Counter(e.embedding_model or 'unknown' for e in entries)),
        }
