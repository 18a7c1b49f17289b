import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, Callable, ClassVar

from agentflow.context import AgentContext
from agentflow.workflows.base import StepAgent, Workflow, WorkflowResult, WorkflowStep, maybe_await

logger = logging.getLogger(__name__)

Predicate = Callable[[Any, AgentContext], Any]

_MISSING = object()


def get_value(data: Any, path: str) -> Any:
    """Look up a dot path in mappings, sequences and attributes.

    ``.`` addresses *data* itself, which is the only way to reach a scalar
    input. Missing segments resolve to ``None``.
    """
    if path == '.':
        return data
    current = data
    for segment in path.split('.'):
        current = _child(current, segment)
        if current is _MISSING:
            return None
    return current


def _child(value: Any, segment: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(segment, _MISSING)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        if segment.lstrip('-').isdigit():
            index = int(segment)
            return value[index] if -len(value) <= index < len(value) else _MISSING
        return _MISSING
    if isinstance(value, (str, bytes, int, float, bool)) or value is None:
        return _MISSING
    return getattr(value, segment, _MISSING)


def equals(path: str, expected: Any) -> Predicate:
    return lambda input, context: get_value(input, path) == expected


def greater_than(path: str, bound: Any) -> Predicate:
    def predicate(input, context):
        value = get_value(input, path)
        return value is not None and value > bound
    return predicate


def less_than(path: str, bound: Any) -> Predicate:
    def predicate(input, context):
        value = get_value(input, path)
        return value is not None and value < bound
    return predicate


def exists(path: str) -> Predicate:
    return lambda input, context: get_value(input, path) is not None


def empty(path: str) -> Predicate:
    return lambda input, context: not get_value(input, path)


def matches(path: str, pattern: str) -> Predicate:
    regex = re.compile(pattern)

    def predicate(input, context):
        value = get_value(input, path)
        return regex.search('' if value is None else str(value)) is not None
    return predicate


class ConditionalWorkflow(Workflow):
    """Routes the input to the first branch whose predicate holds.

    Predicates are called with ``(input, context)``. Without a match and
    without an ``otherwise`` branch the workflow does nothing and reports
    ``matched=None``.
    """

    name: ClassVar[str] = 'conditional_workflow'
    description: ClassVar[str] = 'Routes execution to different agents based on conditions'
    workflow_type: ClassVar[str] = 'conditional'

    def __init__(self, registry=None, *, name: str | None = None):
        super().__init__(registry, name=name)
        self.branches: list[tuple[Predicate, WorkflowStep]] = []
        self.default: WorkflowStep | None = None

    def _step(self, agent: StepAgent, params: Any, options: dict[str, Any]) -> WorkflowStep:
        self.add_step(agent, params, **options)
        return self.steps[-1]

    def when(self, predicate: Predicate, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        self.branches.append((predicate, self._step(agent, params, options)))
        return self

    def when_equals(self, path: str, value: Any, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        return self.when(equals(path, value), agent, params, **options)

    def when_greater_than(self, path: str, value: Any, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        return self.when(greater_than(path, value), agent, params, **options)

    def when_less_than(self, path: str, value: Any, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        return self.when(less_than(path, value), agent, params, **options)

    def when_exists(self, path: str, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        return self.when(exists(path), agent, params, **options)

    def when_empty(self, path: str, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        return self.when(empty(path), agent, params, **options)

    def when_matches(self, path: str, pattern: str, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        return self.when(matches(path, pattern), agent, params, **options)

    def otherwise(self, agent: StepAgent, params: Any = None, **options: Any) -> 'ConditionalWorkflow':
        self.default = self._step(agent, params, options)
        return self

    @classmethod
    def create(
            cls,
            predicate: Predicate,
            then_agent: StepAgent,
            else_agent: StepAgent | None = None,
            registry=None,
    ) -> 'ConditionalWorkflow':
        workflow = cls(registry).when(predicate, then_agent)
        if else_agent is not None:
            workflow.otherwise(else_agent)
        return workflow

    async def execute_workflow(self, input: Any, context: AgentContext) -> WorkflowResult:
        for predicate, step in self.branches:
            if await maybe_await(predicate(input, context)):
                logger.debug("Conditional workflow %s matched %s", self.name, step.name)
                result = await self.execute_step(step, input, context)
                return self._result(result, step.name, was_default=False)

        if self.default is not None:
            result = await self.execute_step(self.default, input, context)
            return self._result(result, self.default.name, was_default=True)

        logger.info("Conditional workflow %s: no branch matched", self.name)
        return self._result(None, None, was_default=False)

    def _result(self, result: Any, matched: str | None, was_default: bool) -> WorkflowResult:
        return WorkflowResult(
            self.workflow_type,
            output=result,
            data={'result': result, 'matched': matched, 'was_default': was_default},
        )
