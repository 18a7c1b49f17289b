from agentflow.structured.handler import StructuredOutputHandler, StructuredOutputMixin, StructuredResult
from agentflow.structured.validator import (
    FieldError,
    OutputValidator,
    ValidationResult,
    build_repair_prompt,
    strip_code_fence,
)

__all__ = [
    "FieldError",
    "OutputValidator",
    "ValidationResult",
    "StructuredResult",
    "StructuredOutputHandler",
    "StructuredOutputMixin",
    "build_repair_prompt",
    "strip_code_fence",
]
