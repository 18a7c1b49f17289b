"""SQLAlchemy (asyncio) implementations of the stores.

Intended for PostgreSQL through asyncpg (``postgresql+asyncpg://...``), but
any async SQLAlchemy dialect works.
"""

import logging
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload

from agentflow.context import Message
from agentflow.interrupts.models import AgentInterrupt, InterruptStatus, InterruptType
from agentflow.memory.drivers.base import VectorDriver
from agentflow.memory.drivers.memory import cosine_similarity
from agentflow.memory.records import AgentMemoryRecord, VectorMemoryEntry, VectorSearchResult
from agentflow.storage.models import (
    AgentInterruptModel,
    AgentMemoryModel,
    AgentMessage,
    AgentSession,
    AgentVectorMemoryModel,
    Base,
)
from agentflow.storage.types import InterruptStore, MemoryStore, SessionRecord, SessionStore

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine and session factory shared by the SQL stores."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_dsn(cls, dsn: str, **engine_kwargs) -> 'Database':
        return cls(create_async_engine(dsn, **engine_kwargs))

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def session(self) -> AsyncSession:
        return self.sessionmaker()

    async def dispose(self) -> None:
        await self.engine.dispose()


class SqlSessionStore(SessionStore):
    def __init__(self, db: Database):
        self.db = db

    async def load(self, session_id: str, agent_name: str) -> tuple[SessionRecord, list[Message]] | None:
        async with self.db.session() as session:
            row = await session.scalar(
                select(AgentSession)
                .where(AgentSession.session_id == session_id, AgentSession.agent_name == agent_name)
                .options(selectinload(AgentSession.messages))
            )
            if row is None:
                return None
            record = SessionRecord(
                session_id=row.session_id,
                agent_name=row.agent_name,
                state=dict(row.state_data or {}),
                created_at=row.created_at,
                updated_at=row.updated_at,
            )
            messages = [
                Message(
                    role=m.role,
                    content=m.content,
                    tool_name=m.tool_name,
                    tool_call_id=m.tool_call_id,
                    tool_calls=m.tool_calls,
                    timestamp=m.created_at,
                    turn_uuid=m.turn_uuid,
                    variant_index=m.variant_index,
                    user_message_id=m.user_message_id,
                    feedback=m.feedback,
                )
                for m in row.messages
            ]
            return record, messages

    async def save(self, record: SessionRecord, messages: Iterable[Message]) -> None:
        async with self.db.session() as session, session.begin():
            row = await session.scalar(
                select(AgentSession)
                .where(AgentSession.session_id == record.session_id, AgentSession.agent_name == record.agent_name)
            )
            if row is None:
                row = AgentSession(session_id=record.session_id, agent_name=record.agent_name, state_data={})
                session.add(row)
                await session.flush()
            row.state_data = dict(record.state)
            user_id = record.state.get('user_id')
            row.user_id = str(user_id) if user_id is not None else None

            await session.execute(delete(AgentMessage).where(AgentMessage.agent_session_id == row.id))
            rows = [
                AgentMessage(
                    agent_session_id=row.id,
                    position=position,
                    role=m.role,
                    content=m.content if isinstance(m.content, str) else str(m.content),
                    tool_name=m.tool_name,
                    tool_call_id=m.tool_call_id,
                    tool_calls=m.tool_calls,
                    turn_uuid=m.turn_uuid,
                    variant_index=m.variant_index,
                    user_message_id=m.user_message_id,
                    feedback=m.feedback,
                    created_at=m.timestamp,
                )
                for position, m in enumerate(messages)
            ]
            session.add_all(rows)


def _interrupt_from_row(row: AgentInterruptModel) -> AgentInterrupt:
    return AgentInterrupt(
        id=row.id,
        session_id=row.session_id,
        agent_name=row.agent_name,
        reason=row.reason,
        type=InterruptType(row.type),
        data=dict(row.data or {}),
        status=InterruptStatus(row.status),
        workflow_id=row.workflow_id,
        step_name=row.step_name,
        modifications=row.modifications,
        rejection_reason=row.rejection_reason,
        user_response=row.user_response,
        resolved_by=row.resolved_by,
        resolved_at=row.resolved_at,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


class SqlInterruptStore(InterruptStore):
    def __init__(self, db: Database):
        self.db = db

    async def save(self, interrupt: AgentInterrupt) -> None:
        async with self.db.session() as session, session.begin():
            row = await session.get(AgentInterruptModel, interrupt.id)
            if row is None:
                row = AgentInterruptModel(id=interrupt.id, created_at=interrupt.created_at)
                session.add(row)
            row.session_id = interrupt.session_id
            row.workflow_id = interrupt.workflow_id
            row.step_name = interrupt.step_name
            row.agent_name = interrupt.agent_name
            row.type = interrupt.type.value
            row.reason = interrupt.reason
            row.data = dict(interrupt.data)
            row.status = interrupt.status.value
            row.modifications = interrupt.modifications
            row.rejection_reason = interrupt.rejection_reason
            row.user_response = interrupt.user_response
            row.resolved_by = interrupt.resolved_by
            row.resolved_at = interrupt.resolved_at
            row.expires_at = interrupt.expires_at

    async def get(self, interrupt_id: str) -> AgentInterrupt | None:
        async with self.db.session() as session:
            row = await session.get(AgentInterruptModel, interrupt_id)
            return _interrupt_from_row(row) if row is not None else None

    async def find(self, *, session_id=None, agent_name=None, status=None) -> list[AgentInterrupt]:
        stmt = select(AgentInterruptModel).order_by(AgentInterruptModel.created_at)
        if session_id is not None:
            stmt = stmt.where(AgentInterruptModel.session_id == session_id)
        if agent_name is not None:
            stmt = stmt.where(AgentInterruptModel.agent_name == agent_name)
        if status is not None:
            stmt = stmt.where(AgentInterruptModel.status == InterruptStatus(status).value)
        async with self.db.session() as session:
            return [_interrupt_from_row(row) for row in await session.scalars(stmt)]

    async def delete(self, interrupt_ids: Iterable[str]) -> int:
        ids = list(interrupt_ids)
        if not ids:
            return 0
        async with self.db.session() as session, session.begin():
            result = await session.execute(delete(AgentInterruptModel).where(AgentInterruptModel.id.in_(ids)))
            return result.rowcount or 0


class SqlMemoryStore(MemoryStore):
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _to_record(row: AgentMemoryModel) -> AgentMemoryRecord:
        return AgentMemoryRecord(
            agent_name=row.agent_name,
            user_id=row.user_id,
            memory_data=dict(row.memory_data or {}),
            key_learnings=list(row.key_learnings or []),
            memory_summary=row.memory_summary,
            total_sessions=row.total_sessions,
            last_session_at=row.last_session_at,
            memory_updated_at=row.memory_updated_at,
            created_at=row.created_at,
        )

    async def get(self, agent_name: str, user_id: str) -> AgentMemoryRecord | None:
        async with self.db.session() as session:
            row = await session.scalar(
                select(AgentMemoryModel)
                .where(AgentMemoryModel.agent_name == agent_name, AgentMemoryModel.user_id == user_id)
            )
            return self._to_record(row) if row is not None else None

    async def save(self, record: AgentMemoryRecord) -> None:
        async with self.db.session() as session, session.begin():
            row = await session.scalar(
                select(AgentMemoryModel)
                .where(AgentMemoryModel.agent_name == record.agent_name, AgentMemoryModel.user_id == record.user_id)
            )
            if row is None:
                row = AgentMemoryModel(agent_name=record.agent_name, user_id=record.user_id, created_at=record.created_at)
                session.add(row)
            row.memory_data = dict(record.memory_data)
            row.key_learnings = list(record.key_learnings)
            row.memory_summary = record.memory_summary
            row.total_sessions = record.total_sessions
            row.last_session_at = record.last_session_at
            row.memory_updated_at = record.memory_updated_at

    async def all(self) -> list[AgentMemoryRecord]:
        async with self.db.session() as session:
            return [self._to_record(row) for row in await session.scalars(select(AgentMemoryModel))]

    async def delete(self, agent_name: str, user_id: str) -> None:
        async with self.db.session() as session, session.begin():
            await session.execute(
                delete(AgentMemoryModel)
                .where(AgentMemoryModel.agent_name == agent_name, AgentMemoryModel.user_id == user_id)
            )


def _vector_from_row(row: AgentVectorMemoryModel) -> VectorMemoryEntry:
    return VectorMemoryEntry(
        id=row.id,
        agent_name=row.agent_name,
        namespace=row.namespace,
        content=row.content,
        content_hash=row.content_hash,
        embedding=list(row.embedding_vector or []),
        metadata=dict(row.vector_meta or {}),
        source=row.source,
        source_id=row.source_id,
        chunk_index=row.chunk_index,
        embedding_model=row.embedding_model,
        embedding_provider=row.embedding_provider,
        embedding_dimensions=row.embedding_dimensions,
        embedding_norm=row.embedding_norm,
        token_count=row.token_count,
        created_at=row.created_at,
    )


class SqlVectorDriver(VectorDriver):
    """Vector memory in the relational database with in-process cosine scoring.

    Suited to modest memory sizes; the unique ``(agent_name, content_hash)``
    constraint makes concurrent duplicate inserts collapse to one row.
    """

    def __init__(self, db: Database):
        self.db = db

    async def insert_if_absent(self, entry: VectorMemoryEntry) -> tuple[VectorMemoryEntry, bool]:
        try:
            async with self.db.session() as session, session.begin():
                session.add(AgentVectorMemoryModel(
                    id=entry.id,
                    agent_name=entry.agent_name,
                    namespace=entry.namespace,
                    content=entry.content,
                    content_hash=entry.content_hash,
                    vector_meta=dict(entry.metadata),
                    source=entry.source,
                    source_id=entry.source_id,
                    chunk_index=entry.chunk_index,
                    embedding_model=entry.embedding_model,
                    embedding_provider=entry.embedding_provider,
                    embedding_dimensions=entry.embedding_dimensions,
                    embedding_norm=entry.embedding_norm,
                    embedding_vector=list(entry.embedding),
                    token_count=entry.token_count,
                    created_at=entry.created_at,
                ))
        except IntegrityError:
            existing = await self.find_by_hash(entry.agent_name, entry.content_hash)
            if existing is None:
                raise
            logger.debug("Concurrent insert of %s resolved to %s", entry.content_hash[:12], existing.id)
            return existing, False
        return entry, True

    async def find_by_hash(self, agent_name: str, content_hash: str) -> VectorMemoryEntry | None:
        async with self.db.session() as session:
            row = await session.scalar(
                select(AgentVectorMemoryModel)
                .where(AgentVectorMemoryModel.agent_name == agent_name,
                       AgentVectorMemoryModel.content_hash == content_hash)
            )
            return _vector_from_row(row) if row is not None else None

    async def search(self, agent_name, vector, namespace='default', limit=5, threshold=0.7):
        scored = [
            VectorSearchResult(entry, cosine_similarity(vector, entry.embedding))
            for entry in await self.entries(agent_name, namespace)
        ]
        scored = [r for r in scored if r.similarity >= threshold]
        scored.sort(key=lambda r: r.similarity, reverse=True)
        return scored[:limit]

    async def delete(self, agent_name: str, namespace: str = 'default', source: str | None = None) -> int:
        stmt = delete(AgentVectorMemoryModel).where(
            AgentVectorMemoryModel.agent_name == agent_name,
            AgentVectorMemoryModel.namespace == namespace,
        )
        if source is not None:
            stmt = stmt.where(AgentVectorMemoryModel.source == source)
        async with self.db.session() as session, session.begin():
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def entries(self, agent_name: str, namespace: str = 'default') -> list[VectorMemoryEntry]:
        async with self.db.session() as session:
            rows = await session.scalars(
                select(AgentVectorMemoryModel)
                .where(AgentVectorMemoryModel.agent_name == agent_name,
                       AgentVectorMemoryModel.namespace == namespace)
            )
            return [_vector_from_row(row) for row in rows]
