import asyncio
import logging
from typing import Any, ClassVar, Mapping

from agentflow.context import AgentContext
from agentflow.exceptions import ParallelFailureError, ParallelTimeoutError
from agentflow.interrupts.models import InterruptSignal
from agentflow.workflows.base import StepAgent, Workflow, WorkflowResult

logger = logging.getLogger(__name__)


class ParallelWorkflow(Workflow):
    """Runs every step concurrently on the same input.

    By default all branches run to completion and each branch's error is
    reported next to the other branches' results. ``fail_fast`` aborts on the
    first failure instead; ``wait_for_any``/``wait_for(n)`` stop as soon as
    enough branches succeeded and cancel the rest.
    """

    name: ClassVar[str] = 'parallel_workflow'
    description: ClassVar[str] = 'Executes agents in parallel and collects results'
    workflow_type: ClassVar[str] = 'parallel'

    def __init__(self, registry=None, *, name: str | None = None):
        super().__init__(registry, name=name)
        self._wait_for_all = True
        self._wait_count = 0
        self._fail_fast = False
        self._timeout: float | None = None

    def agents(
            self,
            agents: StepAgent | list[StepAgent] | Mapping[str, Any],
            params: Any = None,
            **options: Any,
    ) -> 'ParallelWorkflow':
        """Add branches; a mapping pairs each agent name with its params."""
        if isinstance(agents, Mapping):
            for agent, agent_params in agents.items():
                self.add_step(agent, agent_params, **options)
        elif isinstance(agents, (list, tuple)):
            for agent in agents:
                self.add_step(agent, params, **options)
        else:
            self.add_step(agents, params, **options)
        return self

    def wait_for_all(self) -> 'ParallelWorkflow':
        self._wait_for_all = True
        self._wait_count = 0
        return self

    def wait_for_any(self) -> 'ParallelWorkflow':
        return self.wait_for(1)

    def wait_for(self, count: int) -> 'ParallelWorkflow':
        self._wait_for_all = False
        self._wait_count = count
        return self

    def fail_fast(self, enabled: bool = True) -> 'ParallelWorkflow':
        self._fail_fast = enabled
        return self

    def timeout(self, seconds: float | None) -> 'ParallelWorkflow':
        """Overall deadline for the whole fan-out."""
        self._timeout = seconds
        return self

    @classmethod
    def create(cls, agents: list[StepAgent] | Mapping[str, Any], registry=None) -> 'ParallelWorkflow':
        return cls(registry).agents(agents)

    @property
    def target_count(self) -> int:
        return len(self.steps) if self._wait_for_all else self._wait_count

    async def execute_workflow(self, input: Any, context: AgentContext) -> WorkflowResult:
        loop = asyncio.get_running_loop()
        deadline = None if self._timeout is None else loop.time() + self._timeout
        target = self.target_count
        results: dict[str, Any] = {}
        errors: dict[str, BaseException] = {}

        tasks = {
            asyncio.create_task(self.execute_step(step, input, context)): step
            for step in self.steps
        }
        pending = set(tasks)
        try:
            while pending and len(results) < target:
                remaining = None if deadline is None else max(deadline - loop.time(), 0)
                done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
                if not done:
                    raise ParallelTimeoutError(self._timeout, self._result(results, errors))

                for task in done:
                    step = tasks[task]
                    error = task.exception()
                    if error is None:
                        results[step.name] = task.result()
                        continue
                    if isinstance(error, InterruptSignal):
                        raise error
                    errors[step.name] = error
                    if self._fail_fast:
                        raise error
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        result = self._result(results, errors)
        if len(results) < target:
            raise ParallelFailureError(len(results), target, result)
        return result

    def _result(self, results: dict[str, Any], errors: dict[str, BaseException]) -> WorkflowResult:
        return WorkflowResult(
            self.workflow_type,
            output=dict(results),
            data={
                'results': dict(results),
                'errors': dict(errors),
                'completed_count': len(results),
                'total_count': len(self.steps),
            },
        )
