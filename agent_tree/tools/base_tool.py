"""工具基类"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from .tool_context import ToolContext


class BaseTool(BaseModel):
    """
    工具基类（使用 Pydantic）

    核心设计理念: 工具是带有描述的函数，LLM 可以理解并调用

    子类实现 run_async；to_function_declaration 返回 None 的工具不会暴露给模型。
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str

    is_long_running: bool = False
    """长时间运行的工具：返回的是进行中的句柄，结果稍后由外部回传"""

    async def run_async(self, *, args: dict[str, Any], tool_context: 'ToolContext') -> Any:
        """
        异步执行工具（子类应覆盖此方法）

        Args:
            args: 模型给出的工具参数
            tool_context: 执行上下文
        """
        raise NotImplementedError(f"Tool {self.name} must implement run_async")

    def to_function_declaration(self) -> Optional[dict[str, Any]]:
        """
        转换为函数声明格式（供 LLM 理解）

        Returns:
            {'name', 'description', 'parameters'(JSON Schema)}
        """
        return {
            'name': self.name,
            'description': self.description,
            'parameters': {'type': 'object', 'properties': {}},
        }
