import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar

from agentflow.context import AgentContext
from agentflow.exceptions import AgentConfigurationError, StructuredOutputError
from agentflow.llm.types import CompletionProvider, CompletionRequest, CompletionResponse
from agentflow.structured.validator import FieldError, OutputValidator, ValidationResult, build_repair_prompt

logger = logging.getLogger(__name__)


@dataclass
class StructuredResult:
    data: Any
    response: CompletionResponse
    retry_count: int = 0
    attempts: list[ValidationResult] = field(default_factory=list)


class StructuredOutputHandler:
    """Ask the provider for JSON and repair it until it validates.

    Every invalid answer is kept in the conversation, followed by a user
    message listing the validation errors, so the model sees what it got
    wrong. After ``max_retries`` repairs the last errors are raised as
    ``StructuredOutputError``.
    """

    def __init__(
            self,
            provider: CompletionProvider,
            schema: Any,
            max_retries: int = 3,
            on_retry: Callable[[int, list[FieldError]], None] | None = None,
    ):
        self.provider = provider
        self.validator = OutputValidator(schema)
        self.max_retries = max(max_retries, 0)
        self.on_retry = on_retry

    async def complete(self, request: CompletionRequest) -> StructuredResult:
        name = self.validator.schema_name
        messages = list(request.messages)
        attempts: list[ValidationResult] = []

        for attempt in range(self.max_retries + 1):
            response = await self.provider.complete(replace(request, messages=list(messages), json_format=True))
            result = self.validator.validate(response.content or '')
            attempts.append(result)
            if result.is_valid:
                if attempt:
                    logger.info("Structured output for %s validated after %d retries", name, attempt)
                return StructuredResult(result.data, response, attempt, attempts)

            if attempt < self.max_retries:
                logger.warning(
                    "Structured output for %s failed validation (retry %d of %d): %s",
                    name, attempt + 1, self.max_retries, '; '.join(str(e) for e in result.errors),
                )
                if self.on_retry is not None:
                    self.on_retry(attempt + 1, result.errors)
                messages.append({'role': 'assistant', 'content': response.content or ''})
                messages.append({
                    'role': 'user',
                    'content': build_repair_prompt(result.errors, self.validator.json_schema()),
                })

        logger.error("Structured output for %s failed validation after %d attempts", name, len(attempts))
        raise StructuredOutputError(name, [str(e) for e in attempts[-1].errors], len(attempts), attempts[-1].raw)


class StructuredOutputMixin:
    """Lets a ``BaseLlmAgent`` answer with a validated ``output_schema`` object.

    ``run_structured`` sends the conversation without tools and returns the
    validated data instead of text.
    """

    output_schema: ClassVar[Any] = None
    structured_output_max_retries: ClassVar[int] = 3

    async def run_structured(self, input: Any, context: AgentContext) -> Any:
        if self.output_schema is None:
            raise AgentConfigurationError(self.name, "run_structured needs an output_schema")
        context.set_user_input(input)
        context.add_message({'role': 'user', 'content': input})

        handler = StructuredOutputHandler(self.provider, self.output_schema, self.structured_output_max_retries)
        result = await handler.complete(self.build_request(context, {}))
        context.add_message({'role': 'assistant', 'content': result.response.content or ''})
        return result.data
