from typing import Any


class AgentFlowError(Exception):
    """Base exception for agentflow errors"""
    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)

    def __str__(self):
        return self.msg


class ConfigurationError(AgentFlowError):
    """Bad agent/tool wiring. Never retried."""
    pass


class ProviderError(AgentFlowError):
    """Transport or authentication failure of an external provider."""
    pass


class ValidationError(AgentFlowError):
    pass


class WorkflowError(AgentFlowError):
    pass


class InterruptError(AgentFlowError):
    pass


class JobError(AgentFlowError):
    pass


# -- Configuration ----------------------------------------------------------

class AgentNotFoundError(ConfigurationError):
    """Raised when an agent name is not registered"""
    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        msg = f"Agent '{name}' is not registered."
        if self.available:
            msg += f" Available agents: {', '.join(self.available)}"
        super().__init__(msg)


class AgentConfigurationError(ConfigurationError):
    def __init__(self, name: str, details: str):
        self.name = name
        self.details = details
        super().__init__(f"Invalid configuration for agent '{name}': {details}")


class ToolNotFoundError(ConfigurationError):
    def __init__(self, tool_name: str, available: list[str]):
        self.tool_name = tool_name
        self.available = available
        super().__init__(
            f"Tool '{tool_name}' not found. Available tools: {', '.join(available) or 'none'}"
        )


class DelegationDepthExceededError(ConfigurationError):
    """Raised when a sub-agent chain is deeper than the configured limit"""
    def __init__(self, current_depth: int, max_depth: int):
        self.current_depth = current_depth
        self.max_depth = max_depth
        super().__init__(
            f"Maximum delegation depth ({max_depth}) reached at depth {current_depth}. "
            f"Cannot delegate further."
        )


class ToolRoundLimitError(ConfigurationError):
    def __init__(self, agent_name: str, max_rounds: int):
        self.agent_name = agent_name
        self.max_rounds = max_rounds
        super().__init__(f"Agent '{agent_name}' exceeded {max_rounds} consecutive tool rounds")


class UnknownWorkflowTypeError(ConfigurationError):
    def __init__(self, workflow_type: str):
        self.workflow_type = workflow_type
        super().__init__(f"Unknown workflow type: {workflow_type}")


class CallbackNotRegisteredError(ConfigurationError):
    def __init__(self, handler_id: str):
        self.handler_id = handler_id
        super().__init__(f"Callback handler '{handler_id}' is not registered")


class PredicateNotRegisteredError(ConfigurationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Predicate '{name}' is not registered")


# -- Provider / transport ---------------------------------------------------

class LLMCallError(ProviderError):
    def __init__(self, agent_name: str, cause: BaseException):
        self.agent_name = agent_name
        self.cause = cause
        super().__init__(f"LLM API call failed for agent '{agent_name}': {cause}")


class EmbeddingError(ProviderError):
    def __init__(self, provider: str, cause: BaseException | str):
        self.provider = provider
        self.cause = cause
        super().__init__(f"Failed to generate {provider} embeddings: {cause}")


# -- Tool execution ---------------------------------------------------------

class ToolExecutionError(AgentFlowError):
    """Raised by a tool on invalid arguments or internal failure"""
    def __init__(self, tool_name: str, details: str):
        self.tool_name = tool_name
        self.details = details
        super().__init__(f"Error executing tool '{tool_name}': {details}")


# -- Validation -------------------------------------------------------------

class ReflectionScoreError(ValidationError):
    def __init__(self, score: float):
        self.score = score
        super().__init__(f"Reflection score must be between 0 and 1, got {score}")


class InputTooLongError(ValidationError):
    def __init__(self, length: int, max_length: int):
        self.length = length
        self.max_length = max_length
        super().__init__(f"Input text of {length} characters exceeds maximum length of {max_length} characters")


class PlanValidationError(ValidationError):
    pass


class InvalidScheduleError(ValidationError):
    def __init__(self, expression: str, details: str):
        self.expression = expression
        super().__init__(f"Invalid schedule '{expression}': {details}")


class StructuredOutputError(ValidationError):
    """Model output still failed schema validation after every repair attempt"""
    def __init__(self, schema_name: str, errors: list[str], attempts: int, data: Any = None):
        self.schema_name = schema_name
        self.errors = errors
        self.attempts = attempts
        self.data = data
        super().__init__(
            f"Output did not match schema '{schema_name}' after {attempts} attempts: " + '; '.join(errors)
        )


# -- Workflow ---------------------------------------------------------------

class WorkflowStepError(WorkflowError):
    """Raised when a workflow step fails after all of its attempts"""
    def __init__(self, step_name: str, cause: BaseException, partial: Any = None):
        self.step_name = step_name
        self.cause = cause
        self.partial = partial
        super().__init__(f"Workflow step '{step_name}' failed: {cause}")


class ParallelFailureError(WorkflowError):
    def __init__(self, completed: int, required: int, partial: Any = None):
        self.completed = completed
        self.required = required
        self.partial = partial
        super().__init__(f"Only {completed} agents completed successfully, but {required} were required")


class WorkflowBoundExceededError(WorkflowError):
    """The plumbing gave up: an iteration ceiling or wait timeout was hit."""
    def __init__(self, msg: str, partial: Any = None):
        self.partial = partial
        super().__init__(msg)


class LoopLimitExceededError(WorkflowBoundExceededError):
    def __init__(self, max_iterations: int, partial: Any = None):
        self.max_iterations = max_iterations
        super().__init__(f"Loop exceeded the maximum of {max_iterations} iterations", partial)


class ParallelTimeoutError(WorkflowBoundExceededError):
    def __init__(self, timeout: float, partial: Any = None):
        self.timeout = timeout
        super().__init__(f"Parallel workflow timed out after {timeout} seconds", partial)


# -- Interrupts -------------------------------------------------------------

class InterruptNotFoundError(InterruptError):
    def __init__(self, interrupt_id: str):
        self.interrupt_id = interrupt_id
        super().__init__(f"Interrupt '{interrupt_id}' not found")


class InterruptAlreadyResolvedError(InterruptError):
    def __init__(self, interrupt_id: str, status: str):
        self.interrupt_id = interrupt_id
        self.status = status
        super().__init__(f"Interrupt '{interrupt_id}' has already been resolved (status: {status})")


class InterruptExpiredError(InterruptError):
    def __init__(self, interrupt_id: str):
        self.interrupt_id = interrupt_id
        super().__init__(f"Interrupt '{interrupt_id}' has expired")


class AgentInterruptedError(AgentFlowError):
    """Raised when unwrapping the outcome of a run that was interrupted"""
    def __init__(self, interrupt_id: str, reason: str):
        self.interrupt_id = interrupt_id
        self.reason = reason
        super().__init__(f"Execution interrupted ({interrupt_id}): {reason}")


# -- Jobs -------------------------------------------------------------------

class JobTimeoutError(JobError):
    def __init__(self, job_id: str, timeout: float):
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Job '{job_id}' timed out after {timeout} seconds")


class JobRetriesExhaustedError(JobError):
    def __init__(self, job_id: str, tries: int, last_error: BaseException | None):
        self.job_id = job_id
        self.tries = tries
        self.last_error = last_error
        super().__init__(f"Job '{job_id}' failed after {tries} attempts: {last_error}")


class JobNotFoundError(JobError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job '{job_id}' not found")


# -- Planning ---------------------------------------------------------------

class PlanExecutionError(AgentFlowError):
    """Raised when a plan cannot be executed.

    Carries the failing step so the planning loop can fold the failure into
    the feedback for the next attempt.
    """
    def __init__(self, msg: str, failed_step: Any = None, cause: BaseException | None = None):
        self.failed_step = failed_step
        self.cause = cause
        super().__init__(msg)

    @classmethod
    def for_step(cls, step: Any, reason: str, cause: BaseException | None = None) -> 'PlanExecutionError':
        return cls(f"Plan step {step.id} ({step.action}) failed: {reason}", failed_step=step, cause=cause)

    @classmethod
    def unsatisfied_dependencies(cls, step: Any, missing: list[int]) -> 'PlanExecutionError':
        missing_str = ', '.join(str(m) for m in missing)
        return cls(
            f"Cannot execute step {step.id}: dependencies not satisfied (missing: {missing_str})",
            failed_step=step,
        )


class ProviderNotConfiguredError(ConfigurationError):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No {kind} provider configured")
