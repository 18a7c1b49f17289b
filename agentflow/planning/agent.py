import json
import logging
import re
from typing import Any, ClassVar

from agentflow.agents.llm import BaseLlmAgent
from agentflow.context import AgentContext
from agentflow.exceptions import PlanExecutionError, PlanValidationError, ValidationError
from agentflow.interrupts.models import InterruptSignal
from agentflow.llm.mixin import LLMMixin
from agentflow.planning.plan import Plan, PlanStep
from agentflow.planning.reflection import Reflection
from agentflow.planning.response import PlanningResponse
from agentflow.template import TemplateEnvironment
from agentflow.tracer import trace_agent_run

logger = logging.getLogger(__name__)

JSON_BLOCK = re.compile(r'\{[\s\S]*\}')

# Characters of each earlier step result quoted in a step prompt
PREVIOUS_RESULT_LIMIT = 500


def extract_json(text: str) -> str:
    """Return the outermost ``{...}`` block of *text*, or *text* unchanged."""
    match = JSON_BLOCK.search(text or '')
    return match.group(0) if match else (text or '')


class PlanningAgent(LLMMixin, BaseLlmAgent):
    """Plan, act, reflect, and replan until the reflection is satisfactory.

    Each attempt asks the model for a JSON plan, executes its steps in
    dependency order (every step is a full tool-using agent turn), synthesizes
    the step results and lets the model grade the outcome. An unsatisfactory
    reflection or a failed step feeds back into the next plan, for at most
    ``max_replan_attempts`` attempts.
    """

    name: ClassVar[str] = 'planning_agent'
    description: ClassVar[str] = 'Plans and executes complex multi-step tasks with self-reflection and iterative improvement'
    instructions: ClassVar[str] = (
        "You are an intelligent planning and execution agent. Break down complex tasks into "
        "manageable steps, execute each step thoroughly, and reflect on your work."
    )

    max_replan_attempts: int = 3

    plan_template: ClassVar[str] = 'plan.jinja2'
    reflect_template: ClassVar[str] = 'reflect.jinja2'
    step_template: ClassVar[str] = 'execute_step.jinja2'
    synthesize_template: ClassVar[str] = 'synthesize.jinja2'

    def __init__(
            self,
            provider,
            *,
            template_env: TemplateEnvironment | None = None,
            max_replan_attempts: int | None = None,
            satisfaction_threshold: float = 0.8,
            **kwargs: Any,
    ):
        BaseLlmAgent.__init__(self, provider, **kwargs)
        self.template_env = template_env or TemplateEnvironment()
        if max_replan_attempts is not None:
            self.max_replan_attempts = max_replan_attempts
        self.satisfaction_threshold = satisfaction_threshold

    @property
    def satisfaction_threshold(self) -> float:
        return self._satisfaction_threshold

    @satisfaction_threshold.setter
    def satisfaction_threshold(self, value: float) -> None:
        if not 0 <= value <= 1:
            raise ValidationError(f"Satisfaction threshold must be between 0 and 1, got {value}")
        self._satisfaction_threshold = value

    def get_instructions(self, context: AgentContext) -> str:
        return context.get_state('planning_instructions') or self.instructions

    # -- Entry points -----------------------------------------------------------

    @trace_agent_run()
    async def run(self, input: Any, context: AgentContext) -> str:
        context.set_user_input(input)
        context.add_message({'role': 'user', 'content': input})
        response = await self.plan(input, context)
        context.add_message({'role': 'assistant', 'content': response.result})
        context.set_state('planning_response', response.to_dict())
        return response.result

    async def plan(self, input: Any, context: AgentContext) -> PlanningResponse:
        context.set_state('agent_name', self.name)
        plan: Plan | None = None
        result: str | None = None
        reflection: Reflection | None = None
        feedback: str | None = None
        attempts = 0

        for attempt in range(1, self.max_replan_attempts + 1):
            attempts = attempt
            try:
                if feedback is None:
                    plan = await self.generate_plan(input, context)
                    logger.info("Plan generated for %s: %s (%d steps)", self.name, plan.goal, len(plan.steps))
                else:
                    plan = await self.replan(input, result, feedback, context)
                    logger.info("Replanned for %s on attempt %d: %s (%d steps)", self.name, attempt, plan.goal, len(plan.steps))
                context.set_state('current_plan', plan.to_dict())

                result = await self.execute_plan(plan, context)
                reflection = await self.reflect(input, result, plan, context)
                logger.info(
                    "Reflection for %s on attempt %d: score=%.2f satisfactory=%s",
                    self.name, attempt, reflection.score, reflection.satisfactory,
                )
                if not reflection.requires_improvement():
                    return PlanningResponse(result, plan, reflection, attempts, True, input)
                feedback = reflection.feedback()
            except PlanExecutionError as e:
                failed = e.failed_step.id if e.failed_step is not None else None
                logger.warning("Plan execution failed for %s on attempt %d (step %s): %s", self.name, attempt, failed, e)
                feedback = str(e)

        final = result if result is not None else f"Unable to complete task after {self.max_replan_attempts} attempts."
        return PlanningResponse(final, plan, reflection, attempts, False, input)

    # -- Phases -----------------------------------------------------------------

    async def generate_plan(self, input: Any, context: AgentContext) -> Plan:
        response = await self._call_json(
            self.plan_template,
            f"Create a plan for: {input}",
            context,
            instructions=self.instructions,
            tools=sorted(self.tools_for(context)),
        )
        return self.parse_plan(response, input)

    async def replan(self, input: Any, previous_result: str | None, feedback: str, context: AgentContext) -> Plan:
        response = await self._call_json(
            self.plan_template,
            f"Original Task: {input}",
            context,
            instructions=self.instructions,
            tools=sorted(self.tools_for(context)),
            previous_result=previous_result,
            feedback=feedback,
        )
        return self.parse_plan(response, input)

    def parse_plan(self, response: str, input: Any) -> Plan:
        """Parse model output into a plan.

        Output that is not JSON degrades to a one-step plan for the whole
        task; a structurally invalid plan fails the attempt so the next one
        receives the problem as feedback.
        """
        try:
            return Plan.from_json(response)
        except json.JSONDecodeError:
            logger.warning("Planner output is not JSON, falling back to a single step: %.200s", response)
            return Plan(goal=str(input), steps=(PlanStep(id=1, action=str(input)),))
        except PlanValidationError as e:
            raise PlanExecutionError(f"Invalid plan: {e}") from e

    async def execute_plan(self, plan: Plan, context: AgentContext) -> str:
        """Run the plan frontier by frontier, then synthesize the results."""
        results: dict[int, str] = {}
        while not plan.is_completed():
            frontier = sorted(plan.executable_steps(), key=lambda s: s.id)
            if not frontier:
                completed = plan.completed_step_ids()
                blocked = min((s for s in plan.steps if not s.completed), key=lambda s: s.id)
                missing = [d for d in blocked.dependencies if d not in completed]
                raise PlanExecutionError.unsatisfied_dependencies(blocked, missing)

            for step in frontier:
                try:
                    step_result = await self.execute_step(step, dict(results), plan, context)
                except InterruptSignal:
                    raise
                except Exception as e:
                    raise PlanExecutionError.for_step(step, str(e), e) from e
                results[step.id] = step_result
                step.mark_completed(step_result)
                context.set_state(f'step_{step.id}_result', step_result)

        return await self.synthesize_results(plan, results, context)

    async def execute_step(self, step: PlanStep, previous_results: dict[int, str], plan: Plan, context: AgentContext) -> str:
        """Run one step as an agent turn on a scratch context with the step prompt."""
        prompt = f"## Step to Execute\n{step.action}\n\n## Step ID\n{step.id}\n"
        if previous_results:
            prompt += "\nContext from previous steps:\n" + "".join(
                f"- Step {step_id}: {str(result)[:PREVIOUS_RESULT_LIMIT]}\n"
                for step_id, result in previous_results.items()
            )
        if step.tools:
            prompt += f"\nAvailable tools for this step: {', '.join(step.tools)}\n"
        prompt += "\nExecute this step thoroughly and provide the result."

        system_prompt = self.template_env.load_template(self.step_template).render(
            instructions=self.instructions,
            goal=plan.goal,
        )
        step_context = AgentContext(
            session_id=f"{context.session_id}_step_{step.id}",
            state={**context.get_all_state(), 'planning_instructions': system_prompt},
        )
        result = await BaseLlmAgent.run(self, prompt, step_context)
        return str(result)

    async def synthesize_results(self, plan: Plan, results: dict[int, str], context: AgentContext) -> str:
        return await self.call_template(
            self.synthesize_template,
            user_question="Synthesize these results into a comprehensive final output that achieves the goal.",
            generation_params=self._call_params(context),
            plan=plan,
            results=results,
        )

    async def reflect(self, input: Any, result: str, plan: Plan, context: AgentContext) -> Reflection:
        response = await self._call_json(
            self.reflect_template,
            f"Original Task: {input}\n\nPlan: {plan.to_json()}\n\nResult: {result}",
            context,
            plan=plan,
        )
        try:
            return Reflection.from_json(response)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("Invalid reflection from %s: %s", self.name, e)
            return Reflection(satisfactory=False, score=0.0, weaknesses=(f"Invalid evaluation: {e}",))

    async def _call_json(self, template_name: str, user_question: str, context: AgentContext, **kwargs: Any) -> str:
        response = await self.call_template(
            template_name,
            user_question=user_question,
            json_format=True,
            generation_params=self._call_params(context),
            **kwargs,
        )
        return extract_json(response)

    def _call_params(self, context: AgentContext) -> dict[str, Any]:
        return {'model': self.model, **self.generation_params(context)}
