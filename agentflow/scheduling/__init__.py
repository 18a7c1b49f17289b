from agentflow.scheduling.cron import CronExpression
from agentflow.scheduling.scheduler import AgentScheduler, Schedule, ScheduleBuilder

__all__ = [
    "AgentScheduler",
    "CronExpression",
    "Schedule",
    "ScheduleBuilder",
]
