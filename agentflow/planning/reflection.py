import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from agentflow.exceptions import ReflectionScoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reflection:
    """Self-evaluation of one planning attempt.

    ``score`` is informational; ``satisfactory`` alone decides whether the
    planner tries again.
    """
    satisfactory: bool
    score: float
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()

    def __post_init__(self):
        if not 0 <= self.score <= 1:
            raise ReflectionScoreError(self.score)
        for name in ('strengths', 'weaknesses', 'suggestions'):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def requires_improvement(self) -> bool:
        return not self.satisfactory

    def summary(self) -> str:
        parts = []
        if self.weaknesses:
            parts.append("Weaknesses: " + ", ".join(self.weaknesses))
        if self.suggestions:
            parts.append("Suggestions: " + ", ".join(self.suggestions))
        return "\n".join(parts)

    def feedback(self) -> str:
        """Replanning feedback; unlike ``summary`` it always has both lines."""
        return (
            "Weaknesses: " + ", ".join(self.weaknesses)
            + "\nSuggestions: " + ", ".join(self.suggestions)
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        for name in ('strengths', 'weaknesses', 'suggestions'):
            d[name] = list(d[name])
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Reflection':
        return cls(
            satisfactory=bool(data.get('satisfactory', False)),
            score=float(data.get('score') or 0.0),
            strengths=tuple(data.get('strengths') or ()),
            weaknesses=tuple(data.get('weaknesses') or ()),
            suggestions=tuple(data.get('suggestions') or ()),
        )

    @classmethod
    def from_json(cls, text: str) -> 'Reflection':
        """Parse model output; unparseable text yields an unsatisfactory default.

        An out-of-range score is still rejected with ``ReflectionScoreError``.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Could not parse reflection output, using defaults: %.200s", text)
            return cls(satisfactory=False, score=0.0)
        if not isinstance(data, Mapping):
            logger.warning("Reflection output is not an object, using defaults")
            return cls(satisfactory=False, score=0.0)
        return cls.from_dict(data)
