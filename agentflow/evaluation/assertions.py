"""Reusable checks for grading agent responses.

An assertion looks at one response and returns an ``AssertionResult``; it
never raises for a response that merely fails the check. Malformed
assertion arguments raise ``ValidationError``.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from agentflow.exceptions import ValidationError
from agentflow.structured.validator import OutputValidator, strip_code_fence

EMAIL_PATTERN = re.compile(r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}')


@dataclass(frozen=True)
class AssertionResult:
    status: bool
    message: str
    expected: Any = None
    actual: Any = None

    def __bool__(self) -> bool:
        return self.status

    def to_dict(self) -> dict[str, Any]:
        data = {'status': self.status, 'message': self.message}
        if self.expected is not None:
            data['expected'] = self.expected
        if self.actual is not None:
            data['actual'] = self.actual
        return data


class BaseAssertion(ABC):
    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def evaluate(self, response: str, *params: Any) -> AssertionResult:
        pass

    def result(self, status: bool, message: str, expected: Any = None, actual: Any = None) -> AssertionResult:
        return AssertionResult(status, message, expected, actual)


class ContainsAssertion(BaseAssertion):
    """Passes when every given phrase occurs in the response, ignoring case."""

    def evaluate(self, response: str, *params: Any) -> AssertionResult:
        if not params or not all(isinstance(p, str) and p for p in params):
            raise ValidationError(f"{self.name} needs one or more non-empty phrases")
        lowered = response.lower()
        missing = [p for p in params if p.lower() not in lowered]
        if missing:
            return self.result(False, f"Response is missing {', '.join(repr(m) for m in missing)}", list(params), missing)
        return self.result(True, "Response contains every expected phrase", list(params))


class EmailFormatAssertion(BaseAssertion):
    def evaluate(self, response: str, *params: Any) -> AssertionResult:
        found = EMAIL_PATTERN.findall(response)
        if found:
            return self.result(True, "Response contains an email address", 'email address', found)
        return self.result(False, "Response contains no email address", 'email address', 'none found')


class JsonSchemaAssertion(BaseAssertion):
    """The response must be JSON; with a schema argument it must also validate.

    The schema is anything pydantic accepts for a ``TypeAdapter``.
    """

    def evaluate(self, response: str, *params: Any) -> AssertionResult:
        if len(params) > 1:
            raise ValidationError(f"{self.name} takes at most one schema, got {len(params)}")
        schema = params[0] if params else Any
        try:
            validator = OutputValidator(schema)
        except TypeError as e:
            raise ValidationError(f"{self.name} cannot use schema {schema!r}: {e}") from e

        outcome = validator.validate(strip_code_fence(response))
        if outcome.is_valid:
            return self.result(True, "Response matches schema", 'matching schema', 'matches schema')
        if any(error.kind == 'json' for error in outcome.errors):
            return self.result(False, "Response is not valid JSON", 'valid JSON', str(outcome.errors[0]))
        return self.result(
            False,
            "Response does not match schema",
            'matching schema',
            '; '.join(str(error) for error in outcome.errors),
        )
