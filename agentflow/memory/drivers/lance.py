import json
import logging
from datetime import datetime
from typing import Any, Optional

import lancedb
from lancedb import AsyncConnection, AsyncTable
from lancedb.pydantic import LanceModel, Vector

from agentflow.memory.drivers.base import VectorDriver
from agentflow.memory.records import VectorMemoryEntry, VectorSearchResult

logger = logging.getLogger(__name__)


def vector_memory_schema(dimensions: int) -> type[LanceModel]:
    """LanceDB row schema for entries embedded into *dimensions* floats."""

    class VectorMemoryRow(LanceModel):
        vector: Vector(dimensions)
        id: str
        agent_name: str
        namespace: str
        content: str
        content_hash: str
        metadata: str
        source: Optional[str] = None
        source_id: Optional[str] = None
        chunk_index: Optional[int] = None
        embedding_model: Optional[str] = None
        embedding_provider: Optional[str] = None
        embedding_dimensions: Optional[int] = None
        embedding_norm: Optional[float] = None
        token_count: Optional[int] = None
        created_at: str

    return VectorMemoryRow


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _to_row(entry: VectorMemoryEntry) -> dict[str, Any]:
    return {
        'vector': entry.embedding,
        'id': entry.id,
        'agent_name': entry.agent_name,
        'namespace': entry.namespace,
        'content': entry.content,
        'content_hash': entry.content_hash,
        'metadata': json.dumps(entry.metadata, ensure_ascii=False, sort_keys=True),
        'source': entry.source,
        'source_id': entry.source_id,
        'chunk_index': entry.chunk_index,
        'embedding_model': entry.embedding_model,
        'embedding_provider': entry.embedding_provider,
        'embedding_dimensions': entry.embedding_dimensions,
        'embedding_norm': entry.embedding_norm,
        'token_count': entry.token_count,
        'created_at': entry.created_at.isoformat(),
    }


def _from_row(row: dict[str, Any]) -> VectorMemoryEntry:
    return VectorMemoryEntry(
        id=row['id'],
        agent_name=row['agent_name'],
        namespace=row['namespace'],
        content=row['content'],
        content_hash=row['content_hash'],
        embedding=list(row['vector']),
        metadata=json.loads(row['metadata'] or '{}'),
        source=row.get('source'),
        source_id=row.get('source_id'),
        chunk_index=row.get('chunk_index'),
        embedding_model=row.get('embedding_model'),
        embedding_provider=row.get('embedding_provider'),
        embedding_dimensions=row.get('embedding_dimensions'),
        embedding_norm=row.get('embedding_norm'),
        token_count=row.get('token_count'),
        created_at=datetime.fromisoformat(row['created_at']),
    )


class LanceDBVectorDriver(VectorDriver):
    """Vector memory stored in a LanceDB table, searched by cosine distance.

    Attributes:
        connection: Async connection to LanceDB
        table: Table holding one row per memory entry
    """

    def __init__(self, connection: AsyncConnection, table: AsyncTable):
        self.connection = connection
        self.table = table

    @classmethod
    async def create(cls, uri: str, table_name: str, dimensions: int) -> 'LanceDBVectorDriver':
        connection = await lancedb.connect_async(uri)
        table = await connection.create_table(
            table_name,
            schema=vector_memory_schema(dimensions),
            exist_ok=True,
        )
        return cls(connection, table)

    async def insert_if_absent(self, entry: VectorMemoryEntry) -> tuple[VectorMemoryEntry, bool]:
        await self.table.merge_insert(["agent_name", "content_hash"]) \
            .when_not_matched_insert_all() \
            .execute([_to_row(entry)])
        stored = await self.find_by_hash(entry.agent_name, entry.content_hash)
        if stored is None:
            raise RuntimeError(f"Vector memory entry {entry.id} was not persisted")
        return stored, stored.id == entry.id

    async def find_by_hash(self, agent_name: str, content_hash: str) -> VectorMemoryEntry | None:
        rows = await self.table.query() \
            .where(f"agent_name = {_quote(agent_name)} AND content_hash = {_quote(content_hash)}") \
            .limit(1) \
            .to_list()
        return _from_row(rows[0]) if rows else None

    async def search(self, agent_name, vector, namespace='default', limit=5, threshold=0.7):
        query = self.table.vector_search(vector) \
            .distance_type("cosine") \
            .where(f"agent_name = {_quote(agent_name)} AND namespace = {_quote(namespace)}") \
            .limit(limit)
        results = []
        for row in await query.to_list():
            similarity = 1.0 - float(row['_distance'])
            if similarity >= threshold:
                results.append(VectorSearchResult(_from_row(row), similarity))
        return results

    async def delete(self, agent_name: str, namespace: str = 'default', source: str | None = None) -> int:
        where = f"agent_name = {_quote(agent_name)} AND namespace = {_quote(namespace)}"
        if source is not None:
            where += f" AND source = {_quote(source)}"
        count = await self.table.count_rows(where)
        if count:
            await self.table.delete(where)
            logger.info("Deleted %d vector memories for %s", count, agent_name)
        return count

    async def entries(self, agent_name: str, namespace: str = 'default') -> list[VectorMemoryEntry]:
        rows = await self.table.query() \
            .where(f"agent_name = {_quote(agent_name)} AND namespace = {_quote(namespace)}") \
            .to_list()
        return [_from_row(row) for row in rows]
