from agentflow.workflows.base import Workflow, WorkflowResult, WorkflowStep
from agentflow.workflows.conditional import ConditionalWorkflow, get_value
from agentflow.workflows.definition import (
    PredicateRegistry,
    PredicateSpec,
    WorkflowDefinition,
    WorkflowManager,
    validate_workflow_definition,
)
from agentflow.workflows.loop import LoopWorkflow
from agentflow.workflows.parallel import ParallelWorkflow
from agentflow.workflows.sequential import SequentialWorkflow

__all__ = [
    "Workflow",
    "WorkflowResult",
    "WorkflowStep",
    "SequentialWorkflow",
    "ParallelWorkflow",
    "ConditionalWorkflow",
    "LoopWorkflow",
    "get_value",
    "PredicateRegistry",
    "PredicateSpec",
    "WorkflowDefinition",
    "WorkflowManager",
    "validate_workflow_definition",
]
