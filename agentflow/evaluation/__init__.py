from agentflow.evaluation.assertions import (
    AssertionResult,
    BaseAssertion,
    ContainsAssertion,
    EmailFormatAssertion,
    JsonSchemaAssertion,
)

__all__ = [
    "AssertionResult",
    "BaseAssertion",
    "ContainsAssertion",
    "EmailFormatAssertion",
    "JsonSchemaAssertion",
]
