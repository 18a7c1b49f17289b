from abc import ABC, abstractmethod

from agentflow.memory.records import VectorMemoryEntry, VectorSearchResult


class VectorDriver(ABC):
    """Storage and similarity search for vector memory entries."""

    @abstractmethod
    async def insert_if_absent(self, entry: VectorMemoryEntry) -> tuple[VectorMemoryEntry, bool]:
        """Store *entry* unless ``(agent_name, content_hash)`` already exists.

        Returns the stored entry and whether it was newly created.  The check
        and the insert are a single step, so concurrent duplicates collapse
        to one row.
        """
        pass

    @abstractmethod
    async def find_by_hash(self, agent_name: str, content_hash: str) -> VectorMemoryEntry | None:
        pass

    @abstractmethod
    async def search(
            self,
            agent_name: str,
            vector: list[float],
            namespace: str = 'default',
            limit: int = 5,
            threshold: float = 0.7,
    ) -> list[VectorSearchResult]:
        """Entries with similarity >= *threshold*, most similar first."""
        pass

    @abstractmethod
    async def delete(self, agent_name: str, namespace: str = 'default', source: str | None = None) -> int:
        pass

    @abstractmethod
    async def entries(self, agent_name: str, namespace: str = 'default') -> list[VectorMemoryEntry]:
        pass
