from agentflow.tools.base import BaseTool
from agentflow.tools.delegate import DELEGATE_TOOL_NAME, DelegateToSubAgentTool
from agentflow.tools.memory import MemoryTool
from agentflow.tools.toolbox import AuthorizationContext, Toolbox
from agentflow.tools.types import ToolError, ToolOutput, ToolResult, is_error_output, validate_tool_output
from agentflow.tools.vector_memory import VectorMemoryTool

__all__ = [
    "BaseTool",
    "Toolbox",
    "AuthorizationContext",
    "DelegateToSubAgentTool",
    "DELEGATE_TOOL_NAME",
    "MemoryTool",
    "VectorMemoryTool",
    "ToolResult",
    "ToolError",
    "ToolOutput",
    "validate_tool_output",
    "is_error_output",
]
