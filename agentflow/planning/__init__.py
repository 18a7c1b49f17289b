from agentflow.planning.agent import PlanningAgent, extract_json
from agentflow.planning.plan import Plan, PlanStep, StepProgress
from agentflow.planning.reflection import Reflection
from agentflow.planning.response import PlanningResponse

__all__ = [
    "Plan",
    "PlanStep",
    "StepProgress",
    "Reflection",
    "PlanningResponse",
    "PlanningAgent",
    "extract_json",
]
