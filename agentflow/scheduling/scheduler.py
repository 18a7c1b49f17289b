import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

from agentflow.exceptions import InvalidScheduleError
from agentflow.scheduling.cron import CronExpression

if TYPE_CHECKING:
    from agentflow.execution.executor import AgentExecutor
    from agentflow.interrupts.manager import InterruptManager

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[str, Any], 'AgentExecutor']

TIME_OF_DAY = re.compile(r'^(\d{1,2}):(\d{2})$')


@dataclass
class Schedule:
    """A named task triggered by a cron expression.

    ``next_at`` is the next trigger time; it is computed on registration and
    advanced past ``now`` every time the schedule runs.
    """
    name: str
    cron: CronExpression
    task: Callable[[], Awaitable[Any]]
    description: str | None = None
    next_at: datetime | None = None
    last_run: datetime | None = None
    running: bool = field(default=False, compare=False)

    def next_run(self, after: datetime | None = None) -> datetime:
        return self.cron.next_after(after or datetime.now())

    def is_due(self, now: datetime) -> bool:
        return self.next_at is not None and self.next_at <= now and not self.running

    async def run(self, now: datetime) -> Any:
        self.running = True
        self.last_run = now
        self.next_at = self.next_run(now)
        logger.info("Running scheduled task %s", self.name)
        try:
            result = await self.task()
        except Exception:
            logger.exception("Scheduled task %s failed", self.name)
            raise
        finally:
            self.running = False
        logger.info("Scheduled task %s completed; next run at %s", self.name, self.next_at.isoformat())
        return result


class ScheduleBuilder:
    """Fluent configuration of one scheduled agent run; ``register()`` commits it."""

    def __init__(self, scheduler: 'AgentScheduler', agent_name: str, input: Any, cron: CronExpression):
        self.scheduler = scheduler
        self.agent_name = agent_name
        self.input = input
        self.cron = cron
        self._context: dict[str, Any] = {}
        self._async = False
        self._queue: str | None = None
        self._name: str | None = None
        self._description: str | None = None

    def with_context(self, context: Mapping[str, Any]) -> 'ScheduleBuilder':
        self._context.update(context)
        return self

    def run_async(self, enabled: bool = True) -> 'ScheduleBuilder':
        self._async = enabled
        return self

    def on_queue(self, queue: str) -> 'ScheduleBuilder':
        self._queue = queue
        self._async = True
        return self

    def name(self, name: str) -> 'ScheduleBuilder':
        self._name = name
        return self

    def description(self, description: str) -> 'ScheduleBuilder':
        self._description = description
        return self

    def build_executor(self) -> 'AgentExecutor':
        executor = self.scheduler.executor_factory(self.agent_name, self.input)
        if self._context:
            executor.with_context(self._context)
        if self._async:
            executor.run_async()
        if self._queue:
            executor.on_queue(self._queue)
        return executor

    def register(self) -> Schedule:
        async def task():
            return await self.build_executor().execute()

        return self.scheduler.add(
            self._name or f"{self.agent_name} ({self.cron})",
            self.cron,
            task,
            description=self._description,
        )


class AgentScheduler:
    """Cron-style scheduling of agent runs inside an asyncio process.

    ``executor_factory(agent_name, input)`` returns a fresh ``AgentExecutor``
    for every trigger. Call ``run_due`` from an existing loop or let
    ``run_forever`` poll.
    """

    def __init__(self, executor_factory: ExecutorFactory, *, clock: Callable[[], datetime] = datetime.now):
        self.executor_factory = executor_factory
        self.clock = clock
        self.schedules: dict[str, Schedule] = {}

    # -- Frequencies ------------------------------------------------------------

    def daily(self, agent_name: str, input: Any = None) -> ScheduleBuilder:
        return ScheduleBuilder(self, agent_name, input, CronExpression('0 0 * * *'))

    def hourly(self, agent_name: str, input: Any = None) -> ScheduleBuilder:
        return ScheduleBuilder(self, agent_name, input, CronExpression('0 * * * *'))

    def weekly(self, agent_name: str, input: Any = None) -> ScheduleBuilder:
        return ScheduleBuilder(self, agent_name, input, CronExpression('0 0 * * 0'))

    def monthly(self, agent_name: str, input: Any = None) -> ScheduleBuilder:
        return ScheduleBuilder(self, agent_name, input, CronExpression('0 0 1 * *'))

    def every_minutes(self, minutes: int, agent_name: str, input: Any = None) -> ScheduleBuilder:
        if not 1 <= minutes <= 59:
            raise InvalidScheduleError(f"every {minutes} minutes", "minutes must be between 1 and 59")
        return ScheduleBuilder(self, agent_name, input, CronExpression(f'*/{minutes} * * * *'))

    def at(self, time: str, agent_name: str, input: Any = None) -> ScheduleBuilder:
        """Daily at ``HH:MM``."""
        match = TIME_OF_DAY.match(time)
        if match is None:
            raise InvalidScheduleError(time, "expected HH:MM")
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise InvalidScheduleError(time, "not a time of day")
        return ScheduleBuilder(self, agent_name, input, CronExpression(f'{minute} {hour} * * *'))

    def cron(self, expression: str, agent_name: str, input: Any = None) -> ScheduleBuilder:
        return ScheduleBuilder(self, agent_name, input, CronExpression(expression))

    # -- Registration -----------------------------------------------------------

    def add(
            self,
            name: str,
            cron: CronExpression | str,
            task: Callable[[], Awaitable[Any]],
            *,
            description: str | None = None,
    ) -> Schedule:
        if isinstance(cron, str):
            cron = CronExpression(cron)
        unique = name
        suffix = 2
        while unique in self.schedules:
            unique = f"{name}_{suffix}"
            suffix += 1
        schedule = Schedule(name=unique, cron=cron, task=task, description=description)
        schedule.next_at = schedule.next_run(self.clock())
        self.schedules[unique] = schedule
        logger.info("Registered schedule %s (%s), first run at %s", unique, cron, schedule.next_at.isoformat())
        return schedule

    def maintenance(self, name: str, expression: str, task: Callable[[], Awaitable[Any]], description: str | None = None) -> Schedule:
        return self.add(name, expression, task, description=description)

    def expire_interrupts(self, manager: 'InterruptManager', expression: str = '*/5 * * * *') -> Schedule:
        """Register the periodic sweep that expires overdue pending interrupts."""
        return self.maintenance(
            'expire-interrupts',
            expression,
            manager.expire_overdue,
            description='Expire overdue human-in-the-loop interrupts',
        )

    def remove(self, name: str) -> Schedule | None:
        return self.schedules.pop(name, None)

    # -- Running ----------------------------------------------------------------

    def due(self, now: datetime | None = None) -> list[Schedule]:
        now = now or self.clock()
        return [s for s in self.schedules.values() if s.is_due(now)]

    async def run_due(self, now: datetime | None = None) -> dict[str, Any]:
        """Run every due schedule concurrently.

        Returns each schedule's result, or the exception it raised, by name.
        A schedule still running from an earlier trigger is skipped.
        """
        now = now or self.clock()
        due = self.due(now)
        if not due:
            return {}
        results = await asyncio.gather(*(s.run(now) for s in due), return_exceptions=True)
        return {schedule.name: result for schedule, result in zip(due, results)}

    async def run_forever(self, poll_interval: float = 30.0, stop: asyncio.Event | None = None) -> None:
        logger.info("Scheduler started with %d schedule(s)", len(self.schedules))
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.run_due()
            try:
                await asyncio.wait_for(stop.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduler stopped")
