"""Structured tool outputs.

Tools hand the loop a JSON string; these models are the conventional shapes
of that string.  ``ToolError`` serializes to ``{"error": ..., "success": false}``,
which is also what the loop writes into history when a tool raises.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing_extensions import Annotated, Literal


class ToolOutputType(str, Enum):
    OUTPUT = "output"
    ERROR = "error"


class ToolOutputBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Annotated[ToolOutputType, Field(description="Type of the output")]


class ToolError(ToolOutputBase):
    """Error encountered during tool execution"""
    type: Literal[ToolOutputType.ERROR] = ToolOutputType.ERROR  # type: ignore
    error: Annotated[str, Field(description="Error message")]
    success: Literal[False] = False

    def to_json(self) -> str:
        return json.dumps({"error": self.error, "success": False}, ensure_ascii=False)


class ToolResult(ToolOutputBase):
    """Successful tool output"""
    type: Literal[ToolOutputType.OUTPUT] = ToolOutputType.OUTPUT  # type: ignore
    result: Annotated[Any, Field(description="Result data")]

    def to_json(self) -> str:
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, ensure_ascii=False, default=str)


ToolOutput = Annotated[
    ToolResult | ToolError,
    Field(discriminator='type')
]


def validate_tool_output(data: dict) -> ToolOutput:
    return TypeAdapter(ToolOutput).validate_python(data)


def is_error_output(content: str) -> bool:
    """Whether a tool message body follows the error convention."""
    try:
        data = json.loads(content)
    except (TypeError, json.JSONDecodeError):
        return False
    return isinstance(data, dict) and data.get("success") is False and "error" in data
