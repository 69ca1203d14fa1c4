"""工具系统 - Agent 可以调用的函数"""

from .base_tool import BaseTool
from .function_tool import FunctionTool, Tool, tool
from .tool_context import ToolContext
from .transfer_tool import TransferToAgentTool
from .escalate_tool import EscalateTool
from .agent_tool import AgentTool

__all__ = [
    'BaseTool',
    'Tool',
    'FunctionTool',
    'tool',
    'ToolContext',
    'TransferToAgentTool',
    'EscalateTool',
    'AgentTool',
]
