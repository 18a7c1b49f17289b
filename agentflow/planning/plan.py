"""Plan and PlanStep value objects.

A step's identity (id, action, dependencies, tools) is fixed at construction;
its execution progress lives in a separate ``StepProgress`` record that the
planning loop updates. Plans are validated on construction: step ids are
unique and every dependency names a step of the same plan.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from agentflow.exceptions import PlanValidationError


@dataclass
class StepProgress:
    completed: bool = False
    result: str | None = None


@dataclass(frozen=True)
class PlanStep:
    id: int
    action: str
    dependencies: tuple[int, ...] = ()
    tools: tuple[str, ...] = ()
    progress: StepProgress = field(default_factory=StepProgress, compare=False, repr=False)

    @property
    def completed(self) -> bool:
        return self.progress.completed

    @property
    def result(self) -> str | None:
        return self.progress.result

    def mark_completed(self, result: str | None) -> None:
        self.progress.completed = True
        self.progress.result = result

    def has_dependencies(self) -> bool:
        return bool(self.dependencies)

    def are_dependencies_satisfied(self, completed_ids: Iterable[int]) -> bool:
        completed = set(completed_ids)
        return all(dependency in completed for dependency in self.dependencies)

    def is_executable(self, completed_ids: Iterable[int]) -> bool:
        return not self.completed and self.are_dependencies_satisfied(completed_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'action': self.action,
            'dependencies': list(self.dependencies),
            'tools': list(self.tools),
            'completed': self.completed,
            'result': self.result,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PlanStep':
        try:
            step = cls(
                id=int(data['id']),
                action=str(data['action']),
                dependencies=tuple(int(d) for d in data.get('dependencies') or ()),
                tools=tuple(str(t) for t in data.get('tools') or ()),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PlanValidationError(f"Invalid plan step {dict(data)!r}: {e}") from e
        if data.get('completed'):
            step.mark_completed(data.get('result'))
        return step


@dataclass(frozen=True)
class Plan:
    goal: str
    steps: tuple[PlanStep, ...] = ()
    success_criteria: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'steps', tuple(self.steps))
        object.__setattr__(self, 'success_criteria', tuple(self.success_criteria))
        ids = [step.id for step in self.steps]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise PlanValidationError(f"Duplicate plan step ids: {duplicates}")
        known = set(ids)
        for step in self.steps:
            unknown = [d for d in step.dependencies if d not in known]
            if unknown:
                raise PlanValidationError(f"Step {step.id} depends on unknown steps: {unknown}")

    def get_step(self, step_id: int) -> PlanStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def is_completed(self) -> bool:
        return all(step.completed for step in self.steps)

    def completed_step_ids(self) -> list[int]:
        return [step.id for step in self.steps if step.completed]

    def executable_steps(self) -> list[PlanStep]:
        completed = self.completed_step_ids()
        return [step for step in self.steps if step.is_executable(completed)]

    def to_dict(self) -> dict[str, Any]:
        return {
            'goal': self.goal,
            'steps': [step.to_dict() for step in self.steps],
            'success_criteria': list(self.success_criteria),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Plan':
        return cls(
            goal=str(data.get('goal') or ''),
            steps=tuple(PlanStep.from_dict(step) for step in data.get('steps') or ()),
            success_criteria=tuple(str(c) for c in data.get('success_criteria') or ()),
        )

    @classmethod
    def from_json(cls, text: str) -> 'Plan':
        """Parse a plan; raises ``json.JSONDecodeError`` or ``PlanValidationError``."""
        data = json.loads(text)
        if not isinstance(data, Mapping):
            raise PlanValidationError("Plan JSON must be an object")
        return cls.from_dict(data)
