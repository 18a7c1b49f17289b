from abc import ABC, abstractmethod
from typing import Any

from agentflow.context import AgentContext
from agentflow.exceptions import ToolExecutionError
from agentflow.tools.types import ToolError, ToolResult


class BaseTool(ABC):
    """Abstract base class for all tools.

    ``definition()`` returns ``{"name", "description", "parameters"}`` where
    ``parameters`` is a JSON schema object; ``execute`` receives the parsed
    arguments and the caller's context and returns a JSON string.
    """

    @abstractmethod
    def definition(self) -> dict[str, Any]:
        pass

    @abstractmethod
    async def execute(self, arguments: dict[str, Any], context: AgentContext) -> str:
        pass

    @property
    def name(self) -> str:
        return self.definition()['name']

    @property
    def description(self) -> str:
        return self.definition().get('description', '')

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Raise ``ToolExecutionError`` when a required parameter is missing."""
        required = self.definition().get('parameters', {}).get('required', [])
        missing = [key for key in required if arguments.get(key) is None]
        if missing:
            raise ToolExecutionError(self.name, f"Missing required parameter(s): {', '.join(missing)}")

    @staticmethod
    def result(result: Any) -> str:
        return ToolResult(result=result).to_json()

    @staticmethod
    def error(error_message: str) -> str:
        return ToolError(error=error_message).to_json()
