import logging
import time
import uuid
from typing import Any, Mapping

from agentflow.agents.registry import AgentRegistry
from agentflow.context import AgentContext
from agentflow.events import AgentExecutionFinished, AgentExecutionStarting, EventDispatcher
from agentflow.execution.callbacks import CallbackDescriptor, CallbackRegistry
from agentflow.execution.jobs import AgentJob, JobHandle, JobQueue
from agentflow.exceptions import ConfigurationError
from agentflow.outcome import RunOutcome
from agentflow.storage.state import StateManager

logger = logging.getLogger(__name__)

# Keys of ``for_user`` objects copied into the context state
USER_FIELDS = ('id', 'email', 'name')


def _user_value(user: Any, key: str) -> Any:
    if isinstance(user, Mapping):
        return user.get(key)
    return getattr(user, key, None)


def _user_data(user: Any) -> dict[str, Any]:
    if isinstance(user, Mapping):
        return dict(user)
    if hasattr(user, 'to_dict'):
        return user.to_dict()
    if hasattr(user, 'model_dump'):
        return user.model_dump()
    return {key: _user_value(user, key) for key in USER_FIELDS if _user_value(user, key) is not None}


class AgentExecutor:
    """Fluent builder for one agent execution.

    ::

        outcome = await (
            AgentExecutor('support', 'Where is my order?', registry=registry, state_manager=states)
            .for_user({'id': 42, 'email': 'ada@example.com'})
            .temperature(0.2)
            .execute()
        )

    Synchronous mode returns the ``RunOutcome``; ``run_async()`` queues an
    ``AgentJob`` and returns a ``JobHandle`` right away.
    """

    def __init__(
            self,
            agent_name: str,
            input: Any,
            *,
            registry: AgentRegistry,
            state_manager: StateManager,
            job_queue: JobQueue | None = None,
            callbacks: CallbackRegistry | None = None,
            dispatcher: EventDispatcher | None = None,
    ):
        self.agent_name = agent_name
        self.input = input
        self.registry = registry
        self.state_manager = state_manager
        self.job_queue = job_queue
        self.callbacks = callbacks
        self.dispatcher = dispatcher

        self._user: Any = None
        self._user_context: dict[str, Any] = {}
        self._session_id: str | None = None
        self._context: dict[str, Any] = {}
        self._parameters: dict[str, Any] = {}
        self._streaming = False
        self._generation: dict[str, Any] = {}
        self._prompt_version: str | None = None
        self._async = False
        self._queue: str | None = None
        self._delay: float = 0
        self._tries = 3
        self._timeout: float = 300
        self._on_complete: CallbackDescriptor | None = None

    # -- Fluent configuration -----------------------------------------------

    def for_user(self, user: Any) -> 'AgentExecutor':
        self._user = user
        return self

    def with_user_context(self, user_context: Mapping[str, Any]) -> 'AgentExecutor':
        """Lightweight user data; takes precedence over ``for_user``."""
        self._user_context = dict(user_context)
        return self

    def with_session(self, session_id: str) -> 'AgentExecutor':
        self._session_id = session_id
        return self

    def with_context(self, context: Mapping[str, Any]) -> 'AgentExecutor':
        self._context.update(context)
        return self

    def with_parameters(self, parameters: Mapping[str, Any]) -> 'AgentExecutor':
        self._parameters = dict(parameters)
        return self

    def streaming(self, enabled: bool = True) -> 'AgentExecutor':
        self._streaming = enabled
        return self

    def temperature(self, temperature: float) -> 'AgentExecutor':
        self._generation['temperature'] = temperature
        return self

    def max_tokens(self, max_tokens: int) -> 'AgentExecutor':
        self._generation['max_tokens'] = max_tokens
        return self

    def top_p(self, top_p: float) -> 'AgentExecutor':
        self._generation['top_p'] = top_p
        return self

    def with_prompt_version(self, version: str) -> 'AgentExecutor':
        self._prompt_version = version
        return self

    def run_async(self, enabled: bool = True) -> 'AgentExecutor':
        self._async = enabled
        return self

    def on_queue(self, queue: str) -> 'AgentExecutor':
        self._queue = queue
        self._async = True
        return self

    def delay(self, seconds: float) -> 'AgentExecutor':
        self._delay = seconds
        return self

    def tries(self, tries: int) -> 'AgentExecutor':
        self._tries = tries
        return self

    def timeout(self, seconds: float) -> 'AgentExecutor':
        self._timeout = seconds
        return self

    def on_complete(self, handler_id: str, payload: Mapping[str, Any] | None = None) -> 'AgentExecutor':
        self._on_complete = CallbackDescriptor(handler_id, dict(payload or {}))
        return self

    # -- Resolution -----------------------------------------------------------

    @property
    def user_id(self) -> Any:
        if self._user_context:
            return self._user_context.get('user_id', self._user_context.get('id'))
        if self._user is not None:
            return _user_value(self._user, 'id')
        return None

    @property
    def is_async(self) -> bool:
        return self._async

    def resolve_session_id(self) -> str:
        """Resolve once; later calls and re-executions reuse the same id."""
        if self._session_id is None:
            if self._user is not None and self.user_id is not None:
                self._session_id = f"user_{self.user_id}_{uuid.uuid4().hex[:8]}"
            else:
                self._session_id = f"session_{uuid.uuid4().hex[:12]}"
        return self._session_id

    def seed_state(self, context: AgentContext) -> None:
        """Copy user, context and execution settings into *context*."""
        user_id = self.user_id
        if user_id is not None:
            context.set_state('user_id', user_id)
        if self._user is not None:
            context.set_state('user_data', _user_data(self._user))
        for key in ('email', 'name'):
            value = self._user_context.get(f'user_{key}', self._user_context.get(key))
            if value is None and self._user is not None:
                value = _user_value(self._user, key)
            if value is not None:
                context.set_state(f'user_{key}', value)
        for key, value in self._user_context.items():
            context.set_state(key, value)
        for key, value in self._context.items():
            context.set_state(key, value)
        if self._parameters:
            context.set_state('agent_parameters', self._parameters)
        if self._prompt_version is not None:
            context.set_state('prompt_version', self._prompt_version)
        context.set_state('execution_mode', 'async' if self._async else 'sync')
        context.set_state('streaming', self._streaming)
        context.set_state('generation_overrides', dict(self._generation))

    # -- Execution ------------------------------------------------------------

    async def execute(self) -> RunOutcome | JobHandle:
        if self._async:
            return self._dispatch_job()
        outcome = await self._execute_once()
        if self._on_complete is not None:
            await self._require_callbacks().invoke(self._on_complete, outcome, self._callback_info())
        return outcome

    async def go(self) -> RunOutcome | JobHandle:
        return await self.execute()

    async def _execute_once(self, job_id: str | None = None) -> RunOutcome:
        agent = self.registry.get(self.agent_name)
        session_id = self.resolve_session_id()
        context = await self.state_manager.load_context(self.agent_name, session_id, self.input)
        self.seed_state(context)
        if job_id is not None:
            context.set_state('background_job', True)
            context.set_state('job_id', job_id)

        self._dispatch(AgentExecutionStarting(agent_name=self.agent_name, session_id=session_id, input=self.input))
        logger.info("Executing agent %s in session %s", self.agent_name, session_id)
        start = time.monotonic()
        try:
            outcome = await agent.execute(self.input, context)
        finally:
            await self.state_manager.save_context(context, self.agent_name)

        self._dispatch(AgentExecutionFinished(
            agent_name=self.agent_name,
            session_id=session_id,
            outcome=outcome.status,
            duration_ms=(time.monotonic() - start) * 1000,
        ))
        return outcome

    def _dispatch_job(self) -> JobHandle:
        if self.job_queue is None:
            raise ConfigurationError("Asynchronous execution requires a job queue")
        if self._on_complete is not None:
            self._require_callbacks()
        job = AgentJob(
            agent_name=self.agent_name,
            session_id=self.resolve_session_id(),
            attempt=self._execute_once,
            tries=self._tries,
            timeout=self._timeout,
            callback=self._on_complete,
            user_id=self.user_id,
        )
        return self.job_queue.dispatch(job, self._queue, self._delay)

    def _require_callbacks(self) -> CallbackRegistry:
        registry = self.callbacks or (self.job_queue.callbacks if self.job_queue else None)
        if registry is None:
            raise ConfigurationError("on_complete requires a callback registry")
        if self._on_complete is not None:
            registry.resolve(self._on_complete.handler_id)
        return registry

    def _callback_info(self) -> dict[str, Any]:
        return {'agent': self.agent_name, 'session_id': self.resolve_session_id(), 'user_id': self.user_id}

    def _dispatch(self, event) -> None:
        if self.dispatcher is not None:
            self.dispatcher.dispatch(event)

    def __repr__(self) -> str:
        mode = 'async' if self._async else 'sync'
        return f"AgentExecutor(agent={self.agent_name!r}, session={self._session_id!r}, mode={mode})"
