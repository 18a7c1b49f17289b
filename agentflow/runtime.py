import importlib
import logging
from typing import Any

from agentflow.agents.base import BaseAgent
from agentflow.agents.llm import BaseLlmAgent
from agentflow.agents.registry import AgentRegistry
from agentflow.config.settings import AgentFlowConfig
from agentflow.events import EventDispatcher, get_dispatcher
from agentflow.exceptions import AgentConfigurationError
from agentflow.execution import AgentExecutor, CallbackRegistry, JobQueue
from agentflow.interrupts.manager import InterruptManager
from agentflow.llm.factory import CompletionProviderFactory, EmbeddingProviderFactory
from agentflow.memory.chunker import DocumentChunker
from agentflow.memory.drivers import InMemoryVectorDriver, LanceDBVectorDriver, VectorDriver
from agentflow.memory.manager import MemoryManager
from agentflow.memory.vector import VectorMemoryManager
from agentflow.planning.agent import PlanningAgent
from agentflow.scheduling import AgentScheduler
from agentflow.storage import (
    Database,
    InMemoryInterruptStore,
    InMemoryMemoryStore,
    InMemorySessionStore,
    SqlInterruptStore,
    SqlMemoryStore,
    SqlSessionStore,
    SqlVectorDriver,
    StateManager,
)
from agentflow.storage.types import InterruptStore, MemoryStore, SessionStore
from agentflow.template import TemplateEnvironment
from agentflow.workflows.base import Workflow

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_DIMENSIONS = 1536


def import_agent_class(path: str) -> type[BaseAgent]:
    """Resolve a ``package.module:ClassName`` path to an agent class."""
    module_name, sep, attr = path.partition(':')
    if not sep or not module_name or not attr:
        raise AgentConfigurationError(path, "expected 'module:Class'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise AgentConfigurationError(path, f"cannot import module '{module_name}': {e}") from e
    cls = getattr(module, attr, None)
    if not isinstance(cls, type) or not issubclass(cls, BaseAgent):
        raise AgentConfigurationError(path, f"'{attr}' is not an agent class")
    return cls


class AgentFlow:
    """Everything a process needs to run agents, wired from one config."""

    def __init__(
            self,
            config: AgentFlowConfig,
            *,
            session_store: SessionStore,
            interrupt_store: InterruptStore,
            memory_store: MemoryStore,
            vector_driver: VectorDriver | None = None,
            provider_factory: CompletionProviderFactory | None = None,
            embedding_factory: EmbeddingProviderFactory | None = None,
            dispatcher: EventDispatcher | None = None,
            database: Database | None = None,
    ):
        self.config = config
        self.database = database
        self.dispatcher = dispatcher or get_dispatcher()
        self.provider_factory = provider_factory or CompletionProviderFactory()
        self.embedding_factory = embedding_factory or EmbeddingProviderFactory()
        self.template_env = TemplateEnvironment(default_lang=config.template_lang)

        self.registry = AgentRegistry()
        self.callbacks = CallbackRegistry()
        self.jobs = JobQueue(self.callbacks)
        self.state_manager = StateManager(session_store)
        self.memory = MemoryManager(memory_store, self.dispatcher)
        self.interrupts = InterruptManager(
            interrupt_store,
            self.dispatcher,
            default_expiry_hours=config.human_in_loop.default_expiry_hours,
            tool_permissions=config.human_in_loop.tool_permissions,
        )
        self.vector_memory: VectorMemoryManager | None = None
        if vector_driver is not None and self.embedding_factory.default is not None:
            chunking = config.vector_memory.chunking
            self.vector_memory = VectorMemoryManager(
                self.embedding_factory.default,
                vector_driver,
                DocumentChunker(chunking.strategy, chunking.chunk_size, chunking.overlap),
                config.vector_memory.rag,
            )

        for name, path in config.agents.items():
            self.register_class(name, import_agent_class(path))

    @classmethod
    async def create(cls, config: AgentFlowConfig) -> 'AgentFlow':
        """Build providers and stores for the configured backends."""
        provider_factory = CompletionProviderFactory(
            CompletionProviderFactory.build(config.chat_llm) if config.chat_llm else None
        )
        embedding_factory = EmbeddingProviderFactory(
            EmbeddingProviderFactory.build(config.embedding) if config.embedding else None
        )

        database = None
        if config.storage.backend == 'sql':
            if not config.storage.dsn:
                raise AgentConfigurationError('storage', "the sql backend needs a dsn")
            database = Database.from_dsn(config.storage.dsn)
            await database.create_all()
            stores = dict(
                session_store=SqlSessionStore(database),
                interrupt_store=SqlInterruptStore(database),
                memory_store=SqlMemoryStore(database),
            )
        else:
            stores = dict(
                session_store=InMemorySessionStore(),
                interrupt_store=InMemoryInterruptStore(),
                memory_store=InMemoryMemoryStore(),
            )

        vector_driver = await cls._vector_driver(config, database)
        logger.info("AgentFlow initialized with %s storage and %s vector driver", config.storage.backend, config.vector_memory.driver)
        return cls(
            config,
            vector_driver=vector_driver,
            provider_factory=provider_factory,
            embedding_factory=embedding_factory,
            database=database,
            **stores,
        )

    @staticmethod
    async def _vector_driver(config: AgentFlowConfig, database: Database | None) -> VectorDriver | None:
        if config.embedding is None:
            return None
        settings = config.vector_memory
        if settings.driver == 'lancedb':
            if not settings.uri:
                raise AgentConfigurationError('vector_memory', "the lancedb driver needs a uri")
            dimensions = config.embedding.dimensions or settings.dimensions.get(config.embedding.model, DEFAULT_EMBEDDING_DIMENSIONS)
            return await LanceDBVectorDriver.create(settings.uri, settings.table_name, dimensions)
        if database is not None:
            return SqlVectorDriver(database)
        return InMemoryVectorDriver()

    # -- Agents -----------------------------------------------------------------

    def register_class(self, name: str, cls: type[BaseAgent]) -> None:
        self.registry.register(name, lambda: self.build_agent(cls))

    def build_agent(self, cls: type[BaseAgent]) -> BaseAgent:
        """Instantiate *cls* with the collaborators its base class expects."""
        if issubclass(cls, BaseLlmAgent):
            kwargs: dict[str, Any] = dict(
                registry=self.registry,
                interrupts=self.interrupts,
                dispatcher=self.dispatcher,
                config=self.config.execution,
                memory=self.memory,
            )
            if issubclass(cls, PlanningAgent):
                kwargs['template_env'] = self.template_env
            return cls(self.provider_factory.get(), **kwargs)
        agent = cls(self.registry) if issubclass(cls, Workflow) else cls()
        agent.interrupts = self.interrupts
        return agent

    def executor(self, agent_name: str, input: Any = None) -> AgentExecutor:
        return AgentExecutor(
            agent_name,
            input,
            registry=self.registry,
            state_manager=self.state_manager,
            job_queue=self.jobs,
            callbacks=self.callbacks,
            dispatcher=self.dispatcher,
        )

    def scheduler(self) -> AgentScheduler:
        scheduler = AgentScheduler(self.executor)
        scheduler.expire_interrupts(self.interrupts)
        return scheduler

    async def close(self) -> None:
        await self.jobs.shutdown()
        if self.database is not None:
            await self.database.dispose()
