"""内置工具：向上级报告/退出循环"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base_tool import BaseTool

if TYPE_CHECKING:
    from .tool_context import ToolContext


class EscalateTool(BaseTool):
    """
    内置工具：向上级报告/退出循环

    用于 LoopAgent 场景，让 Agent 可以主动退出循环。
    """

    name: str = "escalate"
    description: str = (
        "Signal that the current task is complete or needs to be escalated to a higher-level agent."
    )

    async def run_async(self, *, args: dict[str, Any], tool_context: 'ToolContext') -> dict[str, Any]:
        tool_context.actions.escalate = True
        # 结果不需要再交给模型总结
        tool_context.actions.skip_summarization = True
        return {'escalate': True, 'reason': args.get('reason', 'Task completed')}

    def to_function_declaration(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'parameters': {
                'type': 'object',
                'properties': {
                    'reason': {
                        'type': 'string',
                        'description': 'Reason for escalation or completion status',
                    },
                },
                'required': [],
            },
        }
