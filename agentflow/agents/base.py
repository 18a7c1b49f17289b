import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from agentflow.context import AgentContext
from agentflow.interrupts.manager import InterruptManager
from agentflow.interrupts.models import AgentInterrupt, InterruptSignal
from agentflow.outcome import Completed, Failed, Interrupted, RunOutcome

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """Anything that can be run against an ``AgentContext``.

    ``run`` raises on failure and lets ``InterruptSignal`` escape; ``execute``
    is the boundary that turns both into a ``RunOutcome``.
    """

    name: ClassVar[str] = 'agent'
    description: ClassVar[str] = ''

    interrupts: InterruptManager | None = None

    @abstractmethod
    async def run(self, input: Any, context: AgentContext) -> Any:
        pass

    async def execute(self, input: Any, context: AgentContext) -> RunOutcome:
        try:
            result = await self.run(input, context)
        except InterruptSignal as signal:
            interrupt = signal.interrupt or await self._record_interrupt(signal, context)
            logger.info("Agent %s interrupted: %s", self.name, interrupt.reason)
            return Interrupted(interrupt)
        except Exception as e:
            logger.warning("Agent %s failed: %s", self.name, e)
            return Failed(e)
        return Completed(result)

    async def _record_interrupt(self, signal: InterruptSignal, context: AgentContext) -> AgentInterrupt:
        if self.interrupts is not None:
            return await self.interrupts.create(context, self.name, signal.reason, signal.data, signal.type)
        logger.warning("Agent %s has no interrupt manager; interrupt is not persisted", self.name)
        return AgentInterrupt(
            session_id=context.session_id,
            agent_name=self.name,
            reason=signal.reason,
            type=signal.type,
            data=signal.data,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
