import logging
from collections.abc import Iterable, Mapping, Sized
from typing import Any, Callable, ClassVar

from agentflow.context import AgentContext
from agentflow.exceptions import AgentConfigurationError, LoopLimitExceededError
from agentflow.interrupts.models import InterruptSignal
from agentflow.workflows.base import StepAgent, Workflow, WorkflowResult, maybe_await

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100


class LoopWorkflow(Workflow):
    """Repeats one step.

    ``while_``/``until`` re-check their predicate ``(input, context)`` before
    every iteration, ``times(n)`` runs exactly ``n`` iterations and
    ``for_each`` runs once per item. Each iteration's result becomes the next
    iteration's input, except in ``for_each`` loops, where every iteration
    receives ``{item, key, iteration, original_input}``. A loop that still
    wants to continue at ``max_iterations`` fails with
    ``LoopLimitExceededError``.
    """

    name: ClassVar[str] = 'loop_workflow'
    description: ClassVar[str] = 'Repeats agent execution based on conditions'
    workflow_type: ClassVar[str] = 'loop'

    def __init__(self, registry=None, *, name: str | None = None):
        super().__init__(registry, name=name)
        self.loop_type = 'while'
        self._predicate: Callable[[Any, AgentContext], Any] | None = None
        self._times = 0
        self._collection: Iterable[Any] | None = None
        self._max_iterations = DEFAULT_MAX_ITERATIONS
        self._break_on_error = True

    def agent(self, agent: StepAgent, params: Any = None, **options: Any) -> 'LoopWorkflow':
        self.steps = []
        return self.add_step(agent, params, **options)

    def while_(self, predicate: Callable[[Any, AgentContext], Any]) -> 'LoopWorkflow':
        self.loop_type = 'while'
        self._predicate = predicate
        return self

    def until(self, predicate: Callable[[Any, AgentContext], Any]) -> 'LoopWorkflow':
        self.loop_type = 'until'
        self._predicate = predicate
        return self

    def times(self, count: int) -> 'LoopWorkflow':
        self.loop_type = 'times'
        self._times = max(count, 0)
        self._max_iterations = max(self._max_iterations, self._times)
        return self

    def for_each(self, collection: Iterable[Any]) -> 'LoopWorkflow':
        self.loop_type = 'for_each'
        self._collection = collection
        if isinstance(collection, Sized):
            self._max_iterations = max(self._max_iterations, len(collection))
        return self

    def max_iterations(self, count: int) -> 'LoopWorkflow':
        self._max_iterations = count
        return self

    def break_on_error(self, enabled: bool = True) -> 'LoopWorkflow':
        self._break_on_error = enabled
        return self

    def continue_on_error(self) -> 'LoopWorkflow':
        return self.break_on_error(False)

    @classmethod
    def create_while(cls, agent: StepAgent, predicate, max_iterations: int = DEFAULT_MAX_ITERATIONS, registry=None) -> 'LoopWorkflow':
        return cls(registry).agent(agent).while_(predicate).max_iterations(max_iterations)

    @classmethod
    def create_times(cls, agent: StepAgent, count: int, registry=None) -> 'LoopWorkflow':
        return cls(registry).agent(agent).times(count)

    @classmethod
    def create_for_each(cls, agent: StepAgent, collection: Iterable[Any], registry=None) -> 'LoopWorkflow':
        return cls(registry).agent(agent).for_each(collection)

    async def execute_workflow(self, input: Any, context: AgentContext) -> WorkflowResult:
        if not self.steps:
            raise AgentConfigurationError(self.name, "no agent specified for loop execution")
        step = self.steps[0]
        items = self._items()
        iteration = 0
        iterations: list[dict[str, Any]] = []
        current = input

        while await self._should_continue(iteration, current, context, items):
            if iteration >= self._max_iterations:
                partial = self._result(iteration, iterations, current, completed_normally=False)
                raise LoopLimitExceededError(self._max_iterations, partial)

            key, value = items[iteration] if items is not None else (None, None)
            iteration += 1
            if self.loop_type == 'for_each':
                step_input = {'item': value, 'key': key, 'iteration': iteration, 'original_input': input}
            else:
                step_input = current

            record = {'iteration': iteration, 'input': step_input, 'key': key, 'value': value}
            try:
                result = await self.execute_step(step, step_input, context)
            except InterruptSignal:
                raise
            except Exception as e:
                iterations.append({**record, 'error': str(e), 'success': False})
                if self._break_on_error:
                    raise
                logger.warning("Loop %s iteration %d failed, continuing: %s", self.name, iteration, e)
                continue

            iterations.append({**record, 'result': result, 'success': True})
            if self.loop_type != 'for_each':
                current = result

        return self._result(iteration, iterations, current, completed_normally=True)

    def _items(self) -> list[tuple[Any, Any]] | None:
        if self.loop_type != 'for_each':
            return None
        if self._collection is None:
            return []
        if isinstance(self._collection, Mapping):
            return list(self._collection.items())
        return list(enumerate(self._collection))

    async def _should_continue(self, iteration: int, current: Any, context: AgentContext, items) -> bool:
        if self.loop_type == 'times':
            return iteration < self._times
        if self.loop_type == 'for_each':
            return iteration < len(items)
        if self._predicate is None:
            return False
        holds = bool(await maybe_await(self._predicate(current, context)))
        return holds if self.loop_type == 'while' else not holds

    def _result(self, iteration: int, iterations: list[dict[str, Any]], current: Any, completed_normally: bool) -> WorkflowResult:
        return WorkflowResult(
            self.workflow_type,
            output=current,
            data={
                'iterations': iteration,
                'results': iterations,
                'loop_type': self.loop_type,
                'completed_normally': completed_normally,
                'final_input': current,
            },
        )

    def successful_iterations(self, result: WorkflowResult) -> list[dict[str, Any]]:
        return [r for r in result['results'] if r['success']]

    def failed_iterations(self, result: WorkflowResult) -> list[dict[str, Any]]:
        return [r for r in result['results'] if not r['success']]
