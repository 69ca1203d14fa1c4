"""LLM 请求的标准化格式"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..types import Content

if TYPE_CHECKING:
    from ..tools import BaseTool


class GenerateContentConfig(BaseModel):
    """
    生成参数

    Agent 上配置的部分（temperature 等）由 Flow 拷贝进请求；
    system_instruction / tools / response_schema 由请求处理器填充，
    不允许在 Agent 上直接设置。
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid')

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_output_tokens: Optional[int] = None
    stop_sequences: list[str] = Field(default_factory=list)

    system_instruction: Optional[str] = None
    tools: list[dict[str, Any]] = Field(default_factory=list)
    """函数声明列表（JSON Schema 风格）"""

    response_schema: Optional[type[BaseModel]] = None
    response_mime_type: Optional[str] = None


@dataclass
class LlmRequest:
    """
    标准化的 LLM 请求格式

    这个类将 Agent 的配置和会话历史转换为 LLM 可以理解的格式。
    不同的 LLM 实现会将这个统一格式转换为各自的 API 格式。

    Attributes:
        model: 模型名称
        contents: 历史消息（Content 列表）
        config: 生成参数 + 系统指令 + 工具声明
        tools_dict: 工具名 -> 工具实例（Flow 执行工具调用时查找）
    """

    model: str = ""
    contents: list[Content] = field(default_factory=list)
    config: GenerateContentConfig = field(default_factory=GenerateContentConfig)
    tools_dict: dict[str, 'BaseTool'] = field(default_factory=dict)

    def append_instructions(self, instructions: list[str]) -> None:
        """追加系统指令（多段之间空行分隔）"""
        text = '\n\n'.join(i for i in instructions if i)
        if not text:
            return
        if self.config.system_instruction:
            self.config.system_instruction += '\n\n' + text
        else:
            self.config.system_instruction = text

    def append_tools(self, tools: list['BaseTool']) -> None:
        """追加工具声明"""
        for tool in tools:
            declaration = tool.to_function_declaration()
            if declaration is None:
                continue
            self.config.tools.append(declaration)
            self.tools_dict[tool.name] = tool

    def set_output_schema(self, schema: type[BaseModel]) -> None:
        """要求模型按 JSON Schema 输出"""
        self.config.response_schema = schema
        self.config.response_mime_type = 'application/json'
