"""内置工具：Agent 跳转"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import Field

from .base_tool import BaseTool

if TYPE_CHECKING:
    from .tool_context import ToolContext


class TransferToAgentTool(BaseTool):
    """
    内置工具：跳转到另一个 Agent

    让 LLM 可以主动决定将控制权交给其他 Agent。
    工具本身只在 tool_context.actions 上记录跳转目标，由 Flow 执行实际跳转。

    使用场景：
    - 主 Agent 识别到需要专业处理，跳转到专家 Agent
    - 任务完成后返回给父 Agent
    - 在多个专家 Agent 之间路由
    """

    name: str = "transfer_to_agent"
    description: str = (
        "Transfer control to another agent. "
        "Use this when the task requires expertise from a different agent."
    )
    available_agents: list[str] = Field(default_factory=list)
    """可以跳转到的 Agent 名称列表"""

    async def run_async(self, *, args: dict[str, Any], tool_context: 'ToolContext') -> dict[str, Any]:
        agent_name = args.get('agent_name', '')

        if not agent_name:
            return {'error': 'agent_name is required'}

        if self.available_agents and agent_name not in self.available_agents:
            return {
                'error': f"Agent '{agent_name}' is not available. Available agents: {self.available_agents}"
            }

        tool_context.actions.transfer_to_agent = agent_name
        return {'transfer': True, 'target_agent': agent_name}

    def to_function_declaration(self) -> dict[str, Any]:
        """生成函数声明，agent_name 限定为可用 Agent 枚举"""
        agent_name_param: dict[str, Any] = {
            'type': 'string',
            'description': 'The name of the agent to transfer control to',
        }
        if self.available_agents:
            agent_name_param['enum'] = self.available_agents

        return {
            'name': self.name,
            'description': self.description,
            'parameters': {
                'type': 'object',
                'properties': {
                    'agent_name': agent_name_param,
                    'reason': {'type': 'string', 'description': 'Brief reason for the transfer'},
                },
                'required': ['agent_name'],
            },
        }
