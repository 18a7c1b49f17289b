import logging
from typing import Any, Callable, ClassVar

from agentflow.context import AgentContext
from agentflow.interrupts.models import InterruptSignal
from agentflow.workflows.base import StepAgent, Workflow, WorkflowResult, WorkflowStep

logger = logging.getLogger(__name__)


class SequentialWorkflow(Workflow):
    """Runs steps one after another, feeding each result into the next step.

    ``finally_`` steps run after the main steps whatever happened; their own
    failures are logged and never change the outcome.
    """

    name: ClassVar[str] = 'sequential_workflow'
    description: ClassVar[str] = 'Executes agents sequentially, passing results between steps'
    workflow_type: ClassVar[str] = 'sequential'

    def start(self, agent: StepAgent, params: Any = None, **options: Any) -> 'SequentialWorkflow':
        return self.add_step(agent, params, **options)

    def then(self, agent: StepAgent, params: Any = None, **options: Any) -> 'SequentialWorkflow':
        return self.add_step(agent, params, **options)

    def when(
            self,
            agent: StepAgent,
            condition: Callable[..., Any],
            params: Any = None,
            **options: Any,
    ) -> 'SequentialWorkflow':
        """Add a step that only runs when ``condition(input, results, context)`` holds."""
        return self.add_step(agent, params, condition=condition, **options)

    def finally_(self, agent: StepAgent, params: Any = None, **options: Any) -> 'SequentialWorkflow':
        return self.add_step(agent, params, is_finally=True, **options)

    @classmethod
    def create(cls, *agents: StepAgent, registry=None) -> 'SequentialWorkflow':
        workflow = cls(registry)
        for agent in agents:
            workflow.then(agent)
        return workflow

    async def execute_workflow(self, input: Any, context: AgentContext) -> WorkflowResult:
        current = input
        step_results: dict[str, Any] = {}
        finally_steps = [step for step in self.steps if step.is_finally]

        try:
            for step in self.steps:
                if step.is_finally:
                    continue
                result = await self.execute_step(step, current, context)
                if result is not None:
                    step_results[step.name] = result
                    current = result
        finally:
            await self._run_finally_steps(finally_steps, current, context)

        return WorkflowResult(
            self.workflow_type,
            output=current,
            data={'final_result': current, 'step_results': step_results},
        )

    async def _run_finally_steps(self, steps: list[WorkflowStep], input: Any, context: AgentContext) -> None:
        for step in steps:
            try:
                await self.execute_step(step, input, context)
            except InterruptSignal:
                logger.error("Finally step %s requested an interrupt; ignoring it", step.name)
            except Exception:
                logger.exception("Finally step %s failed", step.name)
