"""Declarative workflow definitions.

A definition is plain data (typically loaded from YAML) validated with
pydantic and turned into workflow objects by ``WorkflowManager``::

    type: sequential
    steps:
      - agent: triage
      - agent:
          type: conditional
          branches:
            - when: {op: equals, path: priority, value: high}
              step: {agent: escalation}
          otherwise: {agent: responder}

Predicates are either names looked up in a ``PredicateRegistry`` or
comparison specs applied to the step input.
"""

import logging
from enum import Enum
from typing import Any, Callable, Mapping, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator
from typing_extensions import Annotated, Literal

from agentflow.exceptions import PredicateNotRegisteredError, UnknownWorkflowTypeError
from agentflow.workflows import conditional as predicates
from agentflow.workflows.base import Workflow
from agentflow.workflows.conditional import ConditionalWorkflow, Predicate
from agentflow.workflows.loop import DEFAULT_MAX_ITERATIONS, LoopWorkflow
from agentflow.workflows.parallel import ParallelWorkflow
from agentflow.workflows.sequential import SequentialWorkflow

logger = logging.getLogger(__name__)


class WorkflowType(str, Enum):
    Sequential = "sequential"
    Parallel = "parallel"
    Conditional = "conditional"
    Loop = "loop"


class ComparisonOp(str, Enum):
    Equals = "equals"
    GreaterThan = "greater_than"
    LessThan = "less_than"
    Exists = "exists"
    Empty = "empty"
    Matches = "matches"


class PredicateSpec(BaseModel):
    op: Annotated[ComparisonOp, Field(description="Comparison applied to the value at `path`")]
    path: Annotated[str, Field(
        description="Dot path into the input; `.` is the input itself",
        default='.',
    )]
    value: Annotated[Any, Field(
        description="Operand for equals / greater_than / less_than, or the pattern for matches",
        default=None,
    )]


PredicateRef = Annotated[str | PredicateSpec, Field(
    description="Name of a registered predicate, or an inline comparison",
)]


class StepDefinition(BaseModel):
    agent: Annotated[Union[str, 'WorkflowDefinition'], Field(
        description="Registered agent name or a nested workflow definition",
    )]
    name: Annotated[str | None, Field(default=None)]
    params: Annotated[Any, Field(
        description="Fixed input for the step; the incoming input when omitted",
        default=None,
    )]
    retries: Annotated[int, Field(default=0, ge=0)]
    retry_delay: Annotated[float, Field(description="Seconds between attempts", default=0, ge=0)]
    timeout: Annotated[float | None, Field(description="Seconds per attempt", default=300)]
    condition: Annotated[PredicateRef | None, Field(
        description="Skip the step unless this predicate holds for its input",
        default=None,
    )]


class SequentialDefinition(BaseModel):
    type: Literal[WorkflowType.Sequential]
    name: Annotated[str | None, Field(default=None)]
    steps: Annotated[list[StepDefinition], Field(default_factory=list)]
    finally_steps: Annotated[list[StepDefinition], Field(
        description="Steps that always run after the main steps",
        default_factory=list,
        alias='finally',
    )]


class ParallelDefinition(BaseModel):
    type: Literal[WorkflowType.Parallel]
    name: Annotated[str | None, Field(default=None)]
    branches: Annotated[list[StepDefinition], Field(default_factory=list)]
    wait_for: Annotated[Literal['all', 'any'] | int, Field(
        description="Number of branches that must succeed",
        default='all',
    )]
    fail_fast: Annotated[bool, Field(default=False)]
    timeout: Annotated[float | None, Field(description="Overall deadline in seconds", default=None)]


class ConditionalBranch(BaseModel):
    when: PredicateRef
    step: StepDefinition


class ConditionalDefinition(BaseModel):
    type: Literal[WorkflowType.Conditional]
    name: Annotated[str | None, Field(default=None)]
    branches: Annotated[list[ConditionalBranch], Field(default_factory=list)]
    otherwise: Annotated[StepDefinition | None, Field(default=None)]


class LoopDefinition(BaseModel):
    type: Literal[WorkflowType.Loop]
    name: Annotated[str | None, Field(default=None)]
    step: StepDefinition
    loop_type: Annotated[Literal['while', 'until', 'times', 'for_each'], Field(default='times')]
    predicate: Annotated[PredicateRef | None, Field(
        description="Loop predicate for while / until loops",
        default=None,
    )]
    times: Annotated[int, Field(default=0, ge=0)]
    items: Annotated[list[Any] | dict[str, Any] | None, Field(
        description="Collection iterated by for_each loops",
        default=None,
    )]
    max_iterations: Annotated[int, Field(default=DEFAULT_MAX_ITERATIONS, ge=0)]
    continue_on_error: Annotated[bool, Field(default=False)]

    @model_validator(mode='after')
    def _predicate_required(self) -> 'LoopDefinition':
        if self.loop_type in ('while', 'until') and self.predicate is None:
            raise ValueError(f"a {self.loop_type} loop needs a predicate")
        return self


WorkflowDefinition = Annotated[
    SequentialDefinition | ParallelDefinition | ConditionalDefinition | LoopDefinition,
    Field(discriminator='type'),
]

for _model in (StepDefinition, SequentialDefinition, ParallelDefinition, ConditionalBranch, ConditionalDefinition, LoopDefinition):
    _model.model_rebuild()

_definition_adapter = TypeAdapter(WorkflowDefinition)


def _check_types(data: Any) -> None:
    """Reject unknown workflow types before pydantic reports a vaguer error."""
    if not isinstance(data, Mapping):
        return
    workflow_type = data.get('type')
    if workflow_type is not None and workflow_type not in {t.value for t in WorkflowType}:
        raise UnknownWorkflowTypeError(str(workflow_type))

    candidates = [*data.get('steps', []), *data.get('finally', []), *data.get('branches', [])]
    candidates += [data[key] for key in ('step', 'otherwise') if data.get(key) is not None]
    for step in candidates:
        if isinstance(step, Mapping) and isinstance(step.get('step'), Mapping):
            step = step['step']
        if isinstance(step, Mapping) and isinstance(step.get('agent'), Mapping):
            _check_types(step['agent'])


def validate_workflow_definition(data: Any) -> WorkflowDefinition:
    _check_types(data)
    return _definition_adapter.validate_python(data)


class PredicateRegistry:
    """Named ``(input, context)`` predicates usable from definitions."""

    def __init__(self):
        self._predicates: dict[str, Predicate] = {}

    def register(self, name: str, predicate: Predicate | None = None):
        """Register *predicate*, or return a decorator when it is omitted."""
        if predicate is not None:
            self._predicates[name] = predicate
            return predicate

        def decorator(fn: Predicate) -> Predicate:
            self._predicates[name] = fn
            return fn
        return decorator

    def get(self, name: str) -> Predicate:
        try:
            return self._predicates[name]
        except KeyError:
            raise PredicateNotRegisteredError(name) from None

    def has(self, name: str) -> bool:
        return name in self._predicates


class WorkflowManager:
    """Creates workflows bound to an agent registry, fluently or from definitions."""

    def __init__(self, registry=None, predicates: PredicateRegistry | None = None):
        self.registry = registry
        self.predicates = predicates or PredicateRegistry()

    def sequential(self, *agents) -> SequentialWorkflow:
        return SequentialWorkflow.create(*agents, registry=self.registry)

    def parallel(self, agents=()) -> ParallelWorkflow:
        return ParallelWorkflow.create(list(agents) if not isinstance(agents, Mapping) else agents, registry=self.registry)

    def conditional(self) -> ConditionalWorkflow:
        return ConditionalWorkflow(self.registry)

    def loop(self, agent=None) -> LoopWorkflow:
        workflow = LoopWorkflow(self.registry)
        return workflow.agent(agent) if agent is not None else workflow

    def from_definition(self, data: Mapping[str, Any] | BaseModel) -> Workflow:
        definition = data if isinstance(data, BaseModel) else validate_workflow_definition(data)
        return self.build(definition)

    def build(self, definition: WorkflowDefinition) -> Workflow:
        if isinstance(definition, SequentialDefinition):
            workflow = SequentialWorkflow(self.registry, name=definition.name)
            for step in definition.steps:
                agent, params, options = self._step_args(step)
                workflow.then(agent, params, **options)
            for step in definition.finally_steps:
                agent, params, options = self._step_args(step)
                workflow.finally_(agent, params, **options)
            return workflow

        if isinstance(definition, ParallelDefinition):
            workflow = ParallelWorkflow(self.registry, name=definition.name)
            for step in definition.branches:
                agent, params, options = self._step_args(step)
                workflow.add_step(agent, params, **options)
            if definition.wait_for == 'any':
                workflow.wait_for_any()
            elif isinstance(definition.wait_for, int):
                workflow.wait_for(definition.wait_for)
            return workflow.fail_fast(definition.fail_fast).timeout(definition.timeout)

        if isinstance(definition, ConditionalDefinition):
            workflow = ConditionalWorkflow(self.registry, name=definition.name)
            for branch in definition.branches:
                agent, params, options = self._step_args(branch.step)
                workflow.when(self.resolve_predicate(branch.when), agent, params, **options)
            if definition.otherwise is not None:
                agent, params, options = self._step_args(definition.otherwise)
                workflow.otherwise(agent, params, **options)
            return workflow

        if isinstance(definition, LoopDefinition):
            workflow = LoopWorkflow(self.registry, name=definition.name)
            agent, params, options = self._step_args(definition.step)
            workflow.agent(agent, params, **options)
            if definition.loop_type == 'times':
                workflow.times(definition.times)
            elif definition.loop_type == 'for_each':
                workflow.for_each(definition.items or [])
            else:
                predicate = self.resolve_predicate(definition.predicate)
                if definition.loop_type == 'while':
                    workflow.while_(predicate)
                else:
                    workflow.until(predicate)
            workflow.max_iterations(max(definition.max_iterations, definition.times))
            return workflow.break_on_error(not definition.continue_on_error)

        raise UnknownWorkflowTypeError(type(definition).__name__)

    def resolve_predicate(self, ref: str | PredicateSpec) -> Predicate:
        if isinstance(ref, str):
            return self.predicates.get(ref)
        match ref.op:
            case ComparisonOp.Equals:
                return predicates.equals(ref.path, ref.value)
            case ComparisonOp.GreaterThan:
                return predicates.greater_than(ref.path, ref.value)
            case ComparisonOp.LessThan:
                return predicates.less_than(ref.path, ref.value)
            case ComparisonOp.Exists:
                return predicates.exists(ref.path)
            case ComparisonOp.Empty:
                return predicates.empty(ref.path)
            case ComparisonOp.Matches:
                return predicates.matches(ref.path, str(ref.value))

    def _step_args(self, step: StepDefinition) -> tuple[Any, Any, dict[str, Any]]:
        agent = step.agent if isinstance(step.agent, str) else self.build(step.agent)
        options: dict[str, Any] = {
            'retries': step.retries,
            'retry_delay': step.retry_delay,
            'timeout': step.timeout,
        }
        if step.name:
            options['name'] = step.name
        if step.condition is not None:
            options['condition'] = self._step_condition(self.resolve_predicate(step.condition))
        return agent, step.params, options

    @staticmethod
    def _step_condition(predicate: Predicate) -> Callable[..., Any]:
        return lambda input, results, context: predicate(input, context)
