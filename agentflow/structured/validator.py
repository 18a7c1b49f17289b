"""Validate model output against a schema and describe what went wrong.

Schemas are anything pydantic can build a ``TypeAdapter`` for: a
``BaseModel`` subclass, a ``TypedDict``, ``list[int]`` and so on.  Each
validation error is reduced to a ``FieldError`` whose ``kind`` groups it for
the repair prompt sent back to the model.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

CODE_FENCE = re.compile(r'^\s*```(?:json)?\s*(.*?)\s*```\s*$', re.DOTALL)

REPAIR_SECTIONS = (
    ('required', 'Missing Required Fields'),
    ('type', 'Incorrect Types'),
    ('enum', 'Invalid Enum Values'),
)


@dataclass(frozen=True)
class FieldError:
    field: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass
class ValidationResult:
    data: Any = None
    errors: list[FieldError] = field(default_factory=list)
    raw: Any = None

    @property
    def is_valid(self) -> bool:
        return not self.errors


def strip_code_fence(text: str) -> str:
    match = CODE_FENCE.match(text)
    return match.group(1) if match else text.strip()


def _kind(error_type: str) -> str:
    if error_type == 'missing':
        return 'required'
    if error_type in ('enum', 'literal_error'):
        return 'enum'
    if error_type == 'json_invalid':
        return 'json'
    if error_type.endswith('_type') or error_type.endswith('_parsing'):
        return 'type'
    return error_type


def _field_errors(error: PydanticValidationError) -> list[FieldError]:
    return [
        FieldError(
            field='.'.join(str(part) for part in e['loc']) or '$',
            kind=_kind(e['type']),
            message=e['msg'],
        )
        for e in error.errors(include_url=False)
    ]


class OutputValidator:
    """Validates raw model output (JSON text or decoded data) against *schema*."""

    def __init__(self, schema: Any):
        self.schema = schema
        self.adapter = TypeAdapter(schema)

    @property
    def schema_name(self) -> str:
        return getattr(self.schema, '__name__', None) or str(self.schema)

    def json_schema(self) -> dict[str, Any]:
        return self.adapter.json_schema()

    def validate(self, output: Any) -> ValidationResult:
        try:
            if isinstance(output, str):
                data = self.adapter.validate_json(strip_code_fence(output))
            else:
                data = self.adapter.validate_python(output)
        except PydanticValidationError as e:
            return ValidationResult(errors=_field_errors(e), raw=output)
        return ValidationResult(data=data, raw=output)


def build_repair_prompt(errors: list[FieldError], json_schema: dict[str, Any] | None = None) -> str:
    lines = [
        "Your previous response did not match the required schema. Please fix the following issues:",
        "",
    ]
    grouped: dict[str, list[FieldError]] = {}
    for error in errors:
        grouped.setdefault(error.kind, []).append(error)

    for kind, title in REPAIR_SECTIONS:
        section = grouped.pop(kind, [])
        if not section:
            continue
        lines.append(f"## {title}")
        for error in section:
            if kind == 'required':
                lines.append(f"- `{error.field}` is required but was not provided")
            else:
                lines.append(f"- `{error.field}`: {error.message}")
        lines.append("")

    others = [error for section in grouped.values() for error in section]
    if others:
        lines.append("## Other Issues")
        lines.extend(f"- `{error.field}`: {error.message}" for error in others)
        lines.append("")

    if json_schema:
        lines.append("The response must validate against this JSON schema:")
        lines.append(json.dumps(json_schema, indent=2))
        lines.append("")
    lines.append("Respond with valid JSON matching the schema.")
    return '\n'.join(lines)
