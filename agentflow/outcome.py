"""Result of a single agent execution.

``BaseAgent.execute`` never raises for run-level failures; it returns one of
the three outcome variants below so that callers branch on the shape of the
result instead of catching exceptions.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from agentflow.exceptions import AgentInterruptedError

if TYPE_CHECKING:
    from agentflow.interrupts.models import AgentInterrupt


@dataclass(frozen=True)
class Completed:
    result: Any

    status = "completed"

    def unwrap(self) -> Any:
        return self.result


@dataclass(frozen=True)
class Interrupted:
    interrupt: 'AgentInterrupt'

    status = "interrupted"

    def unwrap(self) -> Any:
        raise AgentInterruptedError(self.interrupt.id, self.interrupt.reason)


@dataclass(frozen=True)
class Failed:
    error: Exception

    status = "failed"

    def unwrap(self) -> Any:
        raise self.error


RunOutcome = Union[Completed, Interrupted, Failed]
