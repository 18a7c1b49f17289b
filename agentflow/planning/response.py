import json
from dataclasses import dataclass
from typing import Any

from agentflow.planning.plan import Plan, PlanStep
from agentflow.planning.reflection import Reflection


@dataclass(frozen=True)
class PlanningResponse:
    result: str
    plan: Plan | None
    reflection: Reflection | None
    attempts: int
    success: bool
    input: Any = None

    def is_success(self) -> bool:
        return self.success

    def is_failed(self) -> bool:
        return not self.success

    @property
    def score(self) -> float | None:
        return self.reflection.score if self.reflection else None

    @property
    def goal(self) -> str | None:
        return self.plan.goal if self.plan else None

    @property
    def steps(self) -> tuple[PlanStep, ...]:
        return self.plan.steps if self.plan else ()

    def step_results(self) -> dict[int, str | None]:
        return {step.id: step.result for step in self.steps if step.completed}

    def strengths(self) -> tuple[str, ...]:
        return self.reflection.strengths if self.reflection else ()

    def weaknesses(self) -> tuple[str, ...]:
        return self.reflection.weaknesses if self.reflection else ()

    def suggestions(self) -> tuple[str, ...]:
        return self.reflection.suggestions if self.reflection else ()

    def metadata(self) -> dict[str, Any]:
        return {
            'input': self.input,
            'success': self.success,
            'attempts': self.attempts,
            'goal': self.goal,
            'score': self.score,
            'step_count': len(self.steps),
            'completed_steps': len(self.step_results()),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            'result': self.result,
            'success': self.success,
            'attempts': self.attempts,
            'input': self.input,
            'plan': self.plan.to_dict() if self.plan else None,
            'reflection': self.reflection.to_dict() if self.reflection else None,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def __str__(self) -> str:
        return self.result
