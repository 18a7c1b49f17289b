"""Tests for per-user agent memory, document chunking and vector memory."""

import json
from datetime import datetime, timedelta

import pytest

from agentflow.agents import BaseLlmAgent
from agentflow.config.settings import ChunkingStrategy, RagConfig
from agentflow.context import AgentContext
from agentflow.events import EventDispatcher
from agentflow.exceptions import EmbeddingError, InputTooLongError, ToolExecutionError
from agentflow.llm.types import CompletionProvider, CompletionRequest, CompletionResponse
from agentflow.memory import (
    AgentMemory,
    DocumentChunker,
    EmbeddingProvider,
    InMemoryVectorDriver,
    MemoryManager,
    VectorMemoryManager,
    content_hash,
)
from agentflow.memory.drivers import cosine_similarity
from agentflow.storage.memory import InMemoryMemoryStore
from agentflow.tools.memory import MemoryTool
from agentflow.tools.vector_memory import VectorMemoryTool

VOCABULARY = ('cat', 'dog', 'car')


class KeywordEmbedder(EmbeddingProvider):
    """Counts vocabulary words; texts about the same animal point the same way."""

    provider_name = 'keyword'
    max_input_length = 200

    def __init__(self):
        self.calls = 0

    @property
    def model(self) -> str:
        return 'keyword-v1'

    @property
    def dimensions(self) -> int:
        return len(VOCABULARY)

    async def embed(self, texts):
        self.calls += 1
        items = self.check_inputs(texts)
        return [[float(text.lower().count(word)) for word in VOCABULARY] for text in items]


class BrokenEmbedder(KeywordEmbedder):
    async def embed(self, texts):
        raise RuntimeError("quota exceeded")


class EchoProvider(CompletionProvider):
    def __init__(self):
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        return CompletionResponse(content="noted")


class RememberingAgent(BaseLlmAgent):
    name = 'rememberer'
    instructions = 'You remember things.'


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def memory(dispatcher):
    return MemoryManager(InMemoryMemoryStore(), dispatcher)


@pytest.fixture
def vectors():
    return VectorMemoryManager(KeywordEmbedder(), InMemoryVectorDriver())


# ---------------------------------------------------------------------------
# MemoryManager
# ---------------------------------------------------------------------------

class TestMemoryManager:
    @pytest.mark.asyncio
    async def test_learnings_facts_and_summary(self, memory, dispatcher):
        events = dispatcher.record()

        await memory.add_learning('support', 'u1', "Prefers email")
        await memory.add_learning('support', 'u1', "Prefers email")
        await memory.add_fact('support', 'u1', 'plan', 'premium')
        await memory.update_summary('support', 'u1', "Long-time customer")

        context = await memory.get_memory_context('support', 'u1')
        assert context == (
            "Summary: Long-time customer\n\n"
            "Key learnings:\n- Prefers email\n\n"
            "Facts:\n- plan: premium"
        )
        assert [e.update_type for e in events] == ['learning_added', 'fact_added', 'summary_updated']
        assert all(e.user_id == 'u1' for e in events)

    @pytest.mark.asyncio
    async def test_context_is_truncated(self, memory):
        await memory.update_summary('support', 'u1', "x" * 50)

        context = await memory.get_memory_context('support', 'u1', max_length=20)

        assert len(context) == 20
        assert context.endswith('...')

    @pytest.mark.asyncio
    async def test_unknown_user_has_empty_memory(self, memory):
        assert await memory.get_memory_context('support', 'nobody') == ''
        assert await memory.get_memory_context_dict('support', 'nobody') == {
            'summary': None, 'key_learnings': [], 'facts': {}, 'total_sessions': 0,
        }

    @pytest.mark.asyncio
    async def test_memories_are_scoped_per_agent_and_user(self, memory):
        await memory.add_fact('support', 'u1', 'tier', 'gold')
        await memory.add_fact('billing', 'u1', 'tier', 'silver')
        await memory.add_fact('support', 'u2', 'tier', 'bronze')

        assert (await memory.get_memory_context_dict('support', 'u1'))['facts'] == {'tier': 'gold'}
        assert (await memory.get_memory_context_dict('billing', 'u1'))['facts'] == {'tier': 'silver'}

    @pytest.mark.asyncio
    async def test_session_count_and_cleanup(self, memory):
        await memory.increment_session_count('support', 'u1')
        record = await memory.increment_session_count('support', 'u1')
        assert record.total_sessions == 2
        assert record.last_session_at is not None

        stale = await memory.get_or_create('support', 'old')
        stale.memory_updated_at = datetime.now() - timedelta(days=200)
        await memory.store.save(stale)

        removed = await memory.cleanup_old_memories(days_old=90, max_sessions=1)

        assert removed == 2
        assert await memory.store.all() == []


class TestAgentMemory:
    @pytest.mark.asyncio
    async def test_typed_entries(self, memory):
        view = AgentMemory(memory, 'support', 'u1')

        await view.add_fact("Lives in Lisbon", confidence=0.9)
        await view.add_preference("Dark mode", category='ui')
        await view.add_preference("Short answers")
        await view.remember("Asked about refunds", type='note')
        await view.add_learning("Is patient")
        await view.update_summary("Friendly")

        facts = await view.facts()
        assert [f['content'] for f in facts] == ["Lives in Lisbon"]
        assert facts[0]['confidence'] == 0.9
        assert [p['content'] for p in await view.preferences('ui')] == ["Dark mode"]
        assert len(await view.preferences()) == 2
        assert await view.learnings() == ["Is patient"]
        assert await view.summary() == "Friendly"
        assert "- fact_" in await memory.get_memory_context('support', 'u1')


class TestMemoryContextInPrompt:
    @pytest.mark.asyncio
    async def test_agent_prompt_includes_user_memory(self, memory):
        await memory.add_learning('rememberer', 'u1', "Likes haiku")
        provider = EchoProvider()
        agent = RememberingAgent(provider, memory=memory)
        context = AgentContext('s1', state={'user_id': 'u1'})

        await agent.run("Write me something", context)

        system_prompt = provider.requests[0].messages[0]['content']
        assert system_prompt.startswith('You remember things.')
        assert "Likes haiku" in system_prompt


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------

class TestDocumentChunker:
    def test_sentence_packing(self):
        chunker = DocumentChunker('sentence', chunk_size=30, overlap=0)

        chunks = chunker.chunk("One two three. Four five six. Seven eight nine.")

        assert chunks == ["One two three. Four five six.", "Seven eight nine."]

    def test_sentence_overlap_carries_tail(self):
        chunker = DocumentChunker(ChunkingStrategy.Sentence, chunk_size=30, overlap=10)

        chunks = chunker.chunk("One two three. Four five six. Seven eight nine.")

        assert len(chunks) == 2
        assert chunks[1].endswith("Seven eight nine.")
        assert chunks[1] != "Seven eight nine."

    def test_paragraphs(self):
        text = "Para one.\n\nPara two."

        assert DocumentChunker('paragraph', chunk_size=1000).chunk(text) == ["Para one.\n\nPara two."]
        assert DocumentChunker('paragraph', chunk_size=12).chunk(text) == ["Para one.", "Para two."]

    def test_fixed_size_cuts_at_words(self):
        chunker = DocumentChunker('fixed', chunk_size=10, overlap=0)

        assert chunker.chunk("aaaa bbbb cccc dddd") == ["aaaa bbbb", "cccc dddd"]

    def test_blank_document(self):
        assert DocumentChunker().chunk("   \n ") == []


# ---------------------------------------------------------------------------
# Vector memory
# ---------------------------------------------------------------------------

class TestVectorMemory:
    def test_cosine_similarity(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([0, 0], [1, 1]) == 0.0
        with pytest.raises(ValueError):
            cosine_similarity([1], [1, 2])

    @pytest.mark.asyncio
    async def test_duplicate_content_is_stored_once(self, vectors):
        first = await vectors.add_chunk('kb', "The cat sleeps.")
        second = await vectors.add_chunk('kb', "  The cat sleeps.  ")
        other_agent = await vectors.add_chunk('other', "The cat sleeps.")

        assert first.id == second.id
        assert other_agent.id != first.id
        assert vectors.embedder.calls == 2
        assert first.content_hash == content_hash('kb', "The cat sleeps.")
        assert first.embedding_dimensions == 3
        assert first.embedding_model == 'keyword-v1'
        assert (await vectors.statistics('kb'))['total_memories'] == 1

    @pytest.mark.asyncio
    async def test_search_ranks_and_filters(self, vectors):
        await vectors.add_chunk('kb', "A cat and another cat.")
        await vectors.add_chunk('kb', "A dog barks.")
        await vectors.add_chunk('kb', "A cat chased a dog.")

        results = await vectors.search('kb', "cat", threshold=0.5)

        assert [r.entry.content for r in results] == ["A cat and another cat.", "A cat chased a dog."]
        assert results[0].similarity == pytest.approx(1.0)
        assert await vectors.search('kb', "cat", namespace='elsewhere') == []

    @pytest.mark.asyncio
    async def test_rag_context(self):
        vectors = VectorMemoryManager(
            KeywordEmbedder(),
            InMemoryVectorDriver(),
            rag_config=RagConfig(context_template="Context:\n{context}\nQ: {query}"),
        )
        await vectors.add_chunk('kb', "Cats purr.", source='cats.md')

        rag = await vectors.generate_rag_context('kb', "cat")
        empty = await vectors.generate_rag_context('kb', "car")

        assert rag['context'] == "Context:\nCats purr.\nQ: cat"
        assert rag['sources'][0]['source'] == 'cats.md'
        assert rag['sources'][0]['source_id'] is None
        assert rag['total_results'] == 1
        assert empty == {'context': '', 'sources': [], 'query': "car", 'total_results': 0}

    @pytest.mark.asyncio
    async def test_documents_are_chunked_with_metadata(self):
        vectors = VectorMemoryManager(
            KeywordEmbedder(), InMemoryVectorDriver(), chunker=DocumentChunker('paragraph', chunk_size=20),
        )

        entries = await vectors.add_document('kb', "Cats purr a lot.\n\nDogs bark loudly.", {'lang': 'en'}, source='pets', source_id='doc-1')

        assert [e.chunk_index for e in entries] == [0, 1]
        assert entries[1].metadata == {'lang': 'en', 'chunk_index': 1}
        assert {(e.source_id, e.embedding_provider) for e in entries} == {('doc-1', 'keyword')}
        assert (await vectors.statistics('kb'))['embedding_providers'] == {'keyword': 2}
        assert await vectors.delete_memories_by_source('kb', 'pets') == 2
        assert await vectors.driver.entries('kb') == []

    @pytest.mark.asyncio
    async def test_embedding_failures(self):
        broken = VectorMemoryManager(BrokenEmbedder(), InMemoryVectorDriver())
        strict = VectorMemoryManager(KeywordEmbedder(), InMemoryVectorDriver())

        with pytest.raises(EmbeddingError):
            await broken.add_chunk('kb', "anything")
        with pytest.raises(EmbeddingError) as exc_info:
            await strict.add_chunk('kb', "x" * 500)

        assert isinstance(exc_info.value.cause, InputTooLongError)


# ---------------------------------------------------------------------------
# Memory tools
# ---------------------------------------------------------------------------

class TestMemoryTools:
    @pytest.mark.asyncio
    async def test_memory_tool_actions(self, memory):
        tool = MemoryTool(memory, 'support')
        context = AgentContext('s1', state={'user_id': 42})

        await tool.execute({'action': 'add_learning', 'content': "Uses Linux"}, context)
        await tool.execute({'action': 'add_fact', 'key': 'os', 'content': "Debian"}, context)
        output = json.loads(await tool.execute({'action': 'get_context'}, context))

        assert "Uses Linux" in output['memory_context']
        assert "- os: Debian" in output['memory_context']

    @pytest.mark.asyncio
    async def test_memory_tool_errors(self, memory):
        tool = MemoryTool(memory, 'support')

        with pytest.raises(ToolExecutionError):
            await tool.execute({'action': 'get_context'}, AgentContext('anonymous'))
        with pytest.raises(ToolExecutionError):
            await tool.execute({'action': 'add_fact', 'content': "no key"}, AgentContext('s', state={'user_id': 'u'}))

    @pytest.mark.asyncio
    async def test_vector_memory_tool(self, vectors):
        tool = VectorMemoryTool(vectors, 'kb')
        context = AgentContext('s1')

        stored = json.loads(await tool.execute({'action': 'store', 'content': "The dog fetches."}, context))
        found = json.loads(await tool.execute({'action': 'search', 'query': "dog"}, context))

        assert stored['chunks_stored'] == 1
        assert found['results'][0]['content'] == "The dog fetches."
        with pytest.raises(ToolExecutionError):
            await tool.execute({'action': 'search'}, context)
