import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from ulid import ULID

from agentflow.exceptions import (
    ConfigurationError,
    JobNotFoundError,
    JobRetriesExhaustedError,
    JobTimeoutError,
    ValidationError,
)
from agentflow.execution.callbacks import CallbackDescriptor, CallbackRegistry
from agentflow.outcome import Failed, RunOutcome

logger = logging.getLogger(__name__)

DEFAULT_QUEUE = 'default'


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


@dataclass
class AgentJob:
    """One background agent execution with retries.

    ``attempt`` runs the agent once and returns its ``RunOutcome``. A
    ``Failed`` outcome or a timed-out attempt is retried until ``tries``
    attempts have been made. Interrupted runs are never retried, nor are
    configuration or validation errors.
    """
    agent_name: str
    session_id: str
    attempt: Callable[[str], Awaitable[RunOutcome]]
    tries: int = 3
    timeout: float = 300
    callback: CallbackDescriptor | None = None
    user_id: Any = None
    id: str = field(default_factory=lambda: str(ULID()))
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    outcome: RunOutcome | None = None

    async def run(self, callbacks: CallbackRegistry | None = None) -> RunOutcome:
        self.status = JobStatus.RUNNING
        logger.info("Starting agent job %s for %s (session %s)", self.id, self.agent_name, self.session_id)
        outcome = await self._run_attempts()
        self.outcome = outcome
        self.status = JobStatus(outcome.status)
        logger.info("Agent job %s finished with status %s after %d attempt(s)", self.id, outcome.status, self.attempts)

        if self.callback is not None and callbacks is not None:
            try:
                await callbacks.invoke(self.callback, outcome, self.info())
            except Exception:
                logger.exception("Completion callback %s failed for job %s", self.callback.handler_id, self.id)
        return outcome

    async def _run_attempts(self) -> RunOutcome:
        last_error: BaseException | None = None
        for number in range(1, max(self.tries, 1) + 1):
            self.attempts = number
            try:
                outcome = await asyncio.wait_for(self.attempt(self.id), timeout=self.timeout)
            except asyncio.TimeoutError:
                outcome = Failed(JobTimeoutError(self.id, self.timeout))
            except Exception as e:
                outcome = Failed(e)

            if not isinstance(outcome, Failed):
                return outcome
            if isinstance(outcome.error, (ConfigurationError, ValidationError)):
                logger.error("Job %s failed permanently: %s", self.id, outcome.error)
                return outcome
            last_error = outcome.error
            logger.warning("Attempt %d/%d of job %s failed: %s", number, self.tries, self.id, last_error)
        return Failed(JobRetriesExhaustedError(self.id, self.attempts, last_error))

    def info(self) -> dict[str, Any]:
        return {
            'agent': self.agent_name,
            'session_id': self.session_id,
            'user_id': self.user_id,
            'job_id': self.id,
        }


@dataclass(frozen=True)
class JobHandle:
    """Returned immediately when an execution is queued."""
    job_id: str
    queue: str
    agent: str
    session_id: str
    dispatched: bool = True
    dispatched_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            'job_id': self.job_id,
            'queue': self.queue,
            'agent': self.agent,
            'session_id': self.session_id,
            'dispatched': self.dispatched,
            'dispatched_at': self.dispatched_at.isoformat(),
        }


class JobQueue:
    """In-process background worker: one asyncio task per dispatched job.

    Finished jobs stay queryable until more than ``keep_finished`` of them
    have accumulated; the oldest are then forgotten on the next dispatch.
    """

    def __init__(self, callbacks: CallbackRegistry | None = None, keep_finished: int = 1000):
        self.callbacks = callbacks
        self.keep_finished = keep_finished
        self._jobs: dict[str, AgentJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._queues: dict[str, str] = {}

    def dispatch(self, job: AgentJob, queue: str | None = None, delay: float = 0) -> JobHandle:
        queue = queue or DEFAULT_QUEUE
        self._forget_finished()
        self._jobs[job.id] = job
        self._queues[job.id] = queue
        self._tasks[job.id] = asyncio.create_task(self._work(job, delay), name=f"agent-job-{job.id}")
        logger.info("Dispatched job %s for %s on queue %s", job.id, job.agent_name, queue)
        return JobHandle(job_id=job.id, queue=queue, agent=job.agent_name, session_id=job.session_id)

    def _forget_finished(self) -> None:
        finished = [job_id for job_id, task in self._tasks.items() if task.done()]
        for job_id in finished[:max(len(finished) - self.keep_finished, 0)]:
            del self._tasks[job_id]
            del self._jobs[job_id]
            del self._queues[job_id]

    async def _work(self, job: AgentJob, delay: float) -> RunOutcome:
        if delay > 0:
            await asyncio.sleep(delay)
        return await job.run(self.callbacks)

    def get(self, job_id: str) -> AgentJob:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise JobNotFoundError(job_id) from None

    def status(self, job_id: str) -> JobStatus:
        return self.get(job_id).status

    async def result(self, job_id: str) -> RunOutcome:
        """Wait for the job to finish and return its final outcome."""
        self.get(job_id)
        return await self._tasks[job_id]

    def pending(self, queue: str | None = None) -> list[AgentJob]:
        return [
            job for job_id, job in self._jobs.items()
            if not self._tasks[job_id].done() and (queue is None or self._queues[job_id] == queue)
        ]

    async def join(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in self._tasks.values():
            task.cancel()
        await self.join()
