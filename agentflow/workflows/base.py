"""Shared machinery for workflow agents.

A workflow is itself an agent: it can be registered, nested as a step of
another workflow, or handed to an ``AgentExecutor``. Steps name the agent to
run (a registered name, an agent instance, or a plain callable) together with
how to derive its input and how hard to try.
"""

import asyncio
import inspect
import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Union

from ulid import ULID

from agentflow.agents.base import BaseAgent
from agentflow.context import AgentContext
from agentflow.exceptions import AgentConfigurationError, WorkflowStepError
from agentflow.interrupts.models import InterruptSignal
from agentflow.tracer import trace_workflow

if TYPE_CHECKING:
    from agentflow.agents.registry import AgentRegistry

logger = logging.getLogger(__name__)

StepAgent = Union[str, BaseAgent, Callable[..., Any]]

# Context keys owned by the workflow and never copied back from a step
STEP_STATE_KEYS = ('workflow_id', 'workflow_step')


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def step_name_for(agent: StepAgent) -> str:
    if isinstance(agent, str):
        return agent
    if isinstance(agent, BaseAgent):
        return agent.name
    return getattr(agent, '__name__', type(agent).__name__)


@dataclass
class WorkflowStep:
    agent: StepAgent
    params: Any = None
    retries: int = 0
    retry_delay: float = 0
    timeout: float | None = 300
    condition: Callable[..., Any] | None = None
    name: str = ''
    is_finally: bool = False

    def __post_init__(self):
        if not self.name:
            self.name = step_name_for(self.agent)


@dataclass
class WorkflowResult:
    """What a workflow run returns.

    ``output`` is the value a following step receives; ``data`` holds the
    workflow-specific report. Item access reads from ``to_dict()``.
    """
    workflow_type: str
    output: Any = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {**self.data, 'workflow_type': self.workflow_type}

    def __getitem__(self, key: str) -> Any:
        return self.to_dict()[key]

    def __contains__(self, key: str) -> bool:
        return key in self.to_dict()

    def get(self, key: str, default: Any = None) -> Any:
        return self.to_dict().get(key, default)


class Workflow(BaseAgent):
    """Base class of the workflow agents.

    Subclasses implement ``execute_workflow``; ``run`` wraps it with the
    completion callbacks and re-raises failures so ``execute`` can turn them
    into a ``Failed`` outcome.
    """

    name: ClassVar[str] = 'workflow'
    workflow_type: ClassVar[str] = 'workflow'

    def __init__(self, registry: 'AgentRegistry | None' = None, *, name: str | None = None):
        if name is not None:
            self.name = name
        self.registry = registry
        self.steps: list[WorkflowStep] = []
        self.results: dict[str, Any] = {}
        self.workflow_id: str | None = None
        self._default_timeout: float | None = 300
        self._default_retries = 0
        self._default_retry_delay: float = 0
        self._on_success: Callable[..., Any] | None = None
        self._on_failure: Callable[..., Any] | None = None
        self._on_complete: Callable[..., Any] | None = None

    # -- Building -------------------------------------------------------------

    def add_step(
            self,
            agent: StepAgent,
            params: Any = None,
            *,
            retries: int | None = None,
            retry_delay: float | None = None,
            timeout: float | None = None,
            condition: Callable[..., Any] | None = None,
            name: str | None = None,
            is_finally: bool = False,
    ) -> 'Workflow':
        step = WorkflowStep(
            agent=agent,
            params=params,
            retries=self._default_retries if retries is None else retries,
            retry_delay=self._default_retry_delay if retry_delay is None else retry_delay,
            timeout=self._default_timeout if timeout is None else timeout,
            condition=condition,
            name=name or '',
            is_finally=is_finally,
        )
        step.name = self._unique_name(step.name)
        self.steps.append(step)
        return self

    def _unique_name(self, name: str) -> str:
        taken = {step.name for step in self.steps}
        if name not in taken:
            return name
        index = 2
        while f"{name}_{index}" in taken:
            index += 1
        return f"{name}_{index}"

    def on_success(self, callback: Callable[..., Any]) -> 'Workflow':
        """``callback(result, results)`` after a successful run."""
        self._on_success = callback
        return self

    def on_failure(self, callback: Callable[..., Any]) -> 'Workflow':
        """``callback(error, results)`` after a failed run."""
        self._on_failure = callback
        return self

    def on_complete(self, callback: Callable[..., Any]) -> 'Workflow':
        """``callback(result, success, results)`` after every run."""
        self._on_complete = callback
        return self

    def step_timeout(self, seconds: float | None) -> 'Workflow':
        """Default timeout of steps added afterwards; ``None`` disables it."""
        self._default_timeout = seconds
        return self

    def retry_on_failure(self, attempts: int, delay: float = 1.0) -> 'Workflow':
        """Default retries (and delay in seconds) of steps added afterwards."""
        self._default_retries = attempts
        self._default_retry_delay = delay
        return self

    def get_step_result(self, step_name: str) -> Any:
        return self.results.get(step_name)

    def reset(self) -> 'Workflow':
        self.steps = []
        self.results = {}
        return self

    # -- Execution ------------------------------------------------------------

    @abstractmethod
    async def execute_workflow(self, input: Any, context: AgentContext) -> WorkflowResult:
        pass

    @trace_workflow()
    async def run(self, input: Any, context: AgentContext) -> WorkflowResult:
        self.results = {}
        self.workflow_id = str(ULID())
        logger.info("Starting %s workflow %s (%s)", self.workflow_type, self.name, self.workflow_id)
        try:
            result = await self.execute_workflow(input, context)
        except InterruptSignal:
            raise
        except Exception as e:
            logger.warning("Workflow %s failed: %s", self.name, e)
            await self._handle_completion(None, False, e)
            raise
        await self._handle_completion(result, True, None)
        return result

    async def execute_step(self, step: WorkflowStep, input: Any, context: AgentContext) -> Any:
        """Run one step with retries and a per-attempt timeout.

        Returns ``None`` without running when the step's condition is false.
        """
        if step.condition is not None and not await maybe_await(step.condition(input, self.results, context)):
            logger.debug("Skipping step %s: condition not met", step.name)
            return None

        params = await self.prepare_step_params(step, input, context)
        attempts = max(step.retries, 0) + 1
        last_error: BaseException | None = None
        for attempt in range(1, attempts + 1):
            try:
                if step.timeout is None:
                    result = await self._invoke(step, params, context)
                else:
                    result = await asyncio.wait_for(self._invoke(step, params, context), timeout=step.timeout)
            except InterruptSignal:
                raise
            except Exception as e:
                last_error = e
                logger.warning("Step %s attempt %d/%d failed: %s", step.name, attempt, attempts, e)
                if attempt < attempts and step.retry_delay > 0:
                    await asyncio.sleep(step.retry_delay)
                continue
            self.results[step.name] = result
            return result
        raise WorkflowStepError(step.name, last_error)

    async def prepare_step_params(self, step: WorkflowStep, input: Any, context: AgentContext) -> Any:
        if callable(step.params):
            return await maybe_await(step.params(input, self.results, context))
        return input if step.params is None else step.params

    async def _invoke(self, step: WorkflowStep, params: Any, context: AgentContext) -> Any:
        agent = self.resolve_agent(step)
        if not isinstance(agent, BaseAgent):
            return await maybe_await(agent(params, context))

        step_context = AgentContext(
            session_id=context.session_id,
            user_input=params,
            state={**context.get_all_state(), 'workflow_id': self.workflow_id, 'workflow_step': step.name},
        )
        result = await agent.run(params, step_context)
        context.load_state({
            k: v for k, v in step_context.get_all_state().items() if k not in STEP_STATE_KEYS
        })
        # A nested workflow hands on its output, not its report
        return result.output if isinstance(result, WorkflowResult) else result

    def resolve_agent(self, step: WorkflowStep) -> BaseAgent | Callable[..., Any]:
        if not isinstance(step.agent, str):
            return step.agent
        if self.registry is None:
            raise AgentConfigurationError(self.name, f"step '{step.name}' names an agent but no registry is set")
        return self.registry.get(step.agent)

    async def _handle_completion(self, result: Any, success: bool, error: BaseException | None) -> None:
        try:
            if success and self._on_success is not None:
                await maybe_await(self._on_success(result, self.results))
            if not success and self._on_failure is not None:
                await maybe_await(self._on_failure(error, self.results))
            if self._on_complete is not None:
                await maybe_await(self._on_complete(result, success, self.results))
        except Exception:
            logger.exception("Workflow callback failed for %s", self.name)
