"""LLM 响应的标准化格式"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ..types import Content, FunctionCall, Part


@dataclass
class LlmResponse:
    """
    标准化的 LLM 响应格式

    这个类统一了不同 LLM 的响应格式，使 Flow 层可以用一致的方式处理响应。

    Attributes:
        content: 模型输出（文本 / 工具调用），出错时可能为空
        partial: 是否是流式响应的部分内容
        turn_complete: live 模式下本轮输出是否结束
        finish_reason: 完成原因 (stop, tool_calls, length, etc.)
        error_code / error_message: 错误信息（如果有）
        usage: token 使用统计
    """

    content: Optional[Content] = None
    partial: bool = False
    turn_complete: bool = False
    finish_reason: Optional[str] = None
    model: str = ""
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    usage: dict[str, int] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def function_calls(self) -> list[FunctionCall]:
        if not self.content:
            return []
        return [p.function_call for p in self.content.parts if p.function_call]

    def has_function_calls(self) -> bool:
        """是否包含工具调用"""
        return len(self.function_calls) > 0

    def is_error(self) -> bool:
        """是否是错误响应"""
        return self.error_code is not None

    @classmethod
    def from_text(cls, text: str, **kwargs: Any) -> LlmResponse:
        return cls(content=Content.from_text(text, role='model'), **kwargs)

    @classmethod
    def from_error(cls, error: str, error_code: str = 'LLM_ERROR') -> LlmResponse:
        """从错误创建响应"""
        return cls(error_code=error_code, error_message=error)

    @classmethod
    def create_delta(cls, delta: str, chunk_index: int = 0) -> LlmResponse:
        """创建流式增量响应"""
        return cls(
            content=Content(role='model', parts=[Part.from_text(delta)]),
            partial=True,
            metadata={"chunk_index": chunk_index},
        )
