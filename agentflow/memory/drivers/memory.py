import asyncio
import math

from agentflow.memory.drivers.base import VectorDriver
from agentflow.memory.records import VectorMemoryEntry, VectorSearchResult


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector size mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorDriver(VectorDriver):
    """Process-local driver with brute-force cosine search."""

    def __init__(self):
        self._entries: dict[tuple[str, str], VectorMemoryEntry] = {}
        self._lock = asyncio.Lock()

    async def insert_if_absent(self, entry: VectorMemoryEntry) -> tuple[VectorMemoryEntry, bool]:
        key = (entry.agent_name, entry.content_hash)
        async with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing, False
            self._entries[key] = entry
            return entry, True

    async def find_by_hash(self, agent_name: str, content_hash: str) -> VectorMemoryEntry | None:
        return self._entries.get((agent_name, content_hash))

    async def search(self, agent_name, vector, namespace='default', limit=5, threshold=0.7):
        scored = [
            VectorSearchResult(entry, cosine_similarity(vector, entry.embedding))
            for entry in await self.entries(agent_name, namespace)
        ]
        scored = [r for r in scored if r.similarity >= threshold]
        scored.sort(key=lambda r: r.similarity, reverse=True)
        return scored[:limit]

    async def delete(self, agent_name: str, namespace: str = 'default', source: str | None = None) -> int:
        async with self._lock:
            doomed = [
                key for key, entry in self._entries.items()
                if entry.agent_name == agent_name
                and entry.namespace == namespace
                and (source is None or entry.source == source)
            ]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    async def entries(self, agent_name: str, namespace: str = 'default') -> list[VectorMemoryEntry]:
        return [
            entry for entry in self._entries.values()
            if entry.agent_name == agent_name and entry.namespace == namespace
        ]
