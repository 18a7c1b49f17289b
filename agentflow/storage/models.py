from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class AgentSession(Base):
    __tablename__ = 'agent_sessions'
    __table_args__ = (
        UniqueConstraint('session_id', 'agent_name', name='uq_agent_sessions_session_agent'),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[str] = mapped_column(String(255), index=True)
    agent_name: Mapped[str] = mapped_column(String(255))
    user_id: Mapped[str | None] = mapped_column(String(255), index=True, default=None)
    # In-place mutations to JSON columns are not tracked; always assign a new dict.
    state_data: Mapped[dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    messages: Mapped[list['AgentMessage']] = relationship(
        back_populates='session',
        cascade='all, delete-orphan',
        order_by='AgentMessage.position',
    )


class AgentMessage(Base):
    __tablename__ = 'agent_messages'

    id: Mapped[int] = mapped_column(primary_key=True)
    agent_session_id: Mapped[int] = mapped_column(ForeignKey('agent_sessions.id', ondelete='CASCADE'), index=True)
    position: Mapped[int] = mapped_column(Integer)
    role: Mapped[str] = mapped_column(String(32))
    content: Mapped[str] = mapped_column(Text)
    tool_name: Mapped[str | None] = mapped_column(String(255), default=None)
    tool_call_id: Mapped[str | None] = mapped_column(String(255), default=None)
    tool_calls: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, default=None)
    turn_uuid: Mapped[str | None] = mapped_column(String(64), index=True, default=None)
    # Position of the answered user message within the same session
    user_message_id: Mapped[int | None] = mapped_column(Integer, default=None)
    variant_index: Mapped[int | None] = mapped_column(Integer, default=None)
    feedback: Mapped[str | None] = mapped_column(String(32), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    session: Mapped['AgentSession'] = relationship(back_populates='messages')


class AgentMemoryModel(Base):
    __tablename__ = 'agent_memories'
    __table_args__ = (
        UniqueConstraint('agent_name', 'user_id', name='uq_agent_memories_agent_user'),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    agent_name: Mapped[str] = mapped_column(String(255))
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    memory_data: Mapped[dict[str, Any]] = mapped_column(JSON)
    key_learnings: Mapped[list[str]] = mapped_column(JSON)
    memory_summary: Mapped[str | None] = mapped_column(Text, default=None)
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    last_session_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    memory_updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class AgentVectorMemoryModel(Base):
    """Relational mirror of vector memory rows; vectors are kept as JSON arrays."""
    __tablename__ = 'agent_vector_memories'
    __table_args__ = (
        UniqueConstraint('agent_name', 'content_hash', name='uq_agent_vector_memories_agent_hash'),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    agent_name: Mapped[str] = mapped_column(String(255), index=True)
    namespace: Mapped[str] = mapped_column(String(255), default='default', index=True)
    content: Mapped[str] = mapped_column(Text)
    content_hash: Mapped[str] = mapped_column(String(64))
    vector_meta: Mapped[dict[str, Any]] = mapped_column(JSON, name='metadata')
    source: Mapped[str | None] = mapped_column(String(255), default=None)
    source_id: Mapped[str | None] = mapped_column(String(255), default=None, index=True)
    chunk_index: Mapped[int | None] = mapped_column(Integer, default=None)
    embedding_model: Mapped[str | None] = mapped_column(String(255), default=None)
    embedding_provider: Mapped[str | None] = mapped_column(String(64), default=None)
    embedding_dimensions: Mapped[int | None] = mapped_column(Integer, default=None)
    embedding_norm: Mapped[float | None] = mapped_column(Float, default=None)
    embedding_vector: Mapped[list[float]] = mapped_column(JSON)
    token_count: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class AgentInterruptModel(Base):
    __tablename__ = 'agent_interrupts'

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(255), index=True)
    workflow_id: Mapped[str | None] = mapped_column(String(255), default=None)
    step_name: Mapped[str | None] = mapped_column(String(255), default=None)
    agent_name: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str] = mapped_column(String(32))
    reason: Mapped[str] = mapped_column(Text)
    data: Mapped[dict[str, Any]] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(32), index=True)
    modifications: Mapped[dict[str, Any] | None] = mapped_column(JSON, default=None)
    rejection_reason: Mapped[str | None] = mapped_column(Text, default=None)
    user_response: Mapped[Any] = mapped_column(JSON, default=None)
    resolved_by: Mapped[str | None] = mapped_column(String(255), default=None)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, index=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
