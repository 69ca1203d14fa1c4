"""函数工具 - 把普通 Python 函数包装为 Tool"""

from __future__ import annotations

import asyncio
import functools
import inspect
import re
from typing import TYPE_CHECKING, Any, Callable, Optional

from .base_tool import BaseTool

if TYPE_CHECKING:
    from .tool_context import ToolContext

# Python 类型名 -> JSON Schema 类型
_TYPE_MAPPING = {
    'str': 'string',
    'int': 'integer',
    'float': 'number',
    'bool': 'boolean',
    'list': 'array',
    'dict': 'object',
}


class Tool(BaseTool):
    """
    函数包装工具

    - 从函数签名和 docstring 自动提取参数信息
    - 名为 tool_context 的参数由框架注入，不暴露给模型
    - 同步函数在 executor（若配置）或线程池中执行，不阻塞事件循环
    """

    func: Callable[..., Any]
    parameters: Optional[dict[str, Any]] = None

    def model_post_init(self, __context: Any) -> None:
        """初始化后自动提取参数信息"""
        super().model_post_init(__context)
        if self.parameters is None:
            object.__setattr__(self, 'parameters', self._extract_parameters())

    def _accepts_tool_context(self) -> bool:
        return 'tool_context' in inspect.signature(self.func).parameters

    def _extract_parameters(self) -> dict[str, Any]:
        """从函数签名和 docstring 提取参数定义"""
        sig = inspect.signature(self.func)
        param_descriptions = self._parse_docstring_params(inspect.getdoc(self.func) or '')

        params = {}
        for name, param in sig.parameters.items():
            if name == 'tool_context':
                continue
            param_info: dict[str, Any] = {'name': name}

            if param.annotation != inspect.Parameter.empty:
                annotation = param.annotation
                param_info['type'] = annotation if isinstance(annotation, str) else annotation.__name__

            if param.default != inspect.Parameter.empty:
                param_info['default'] = param.default

            if name in param_descriptions:
                param_info['description'] = param_descriptions[name]

            params[name] = param_info

        return params

    def _parse_docstring_params(self, docstring: str) -> dict[str, str]:
        """
        解析 docstring 中的参数描述

        支持 Google 风格:
          Args:
            city: 城市名称

        和 Sphinx 风格:
          :param city: 城市名称
        """
        descriptions: dict[str, str] = {}
        if not docstring:
            return descriptions

        args_match = re.search(r'Args?:\s*\n((?:\s+\w+.*\n?)+)', docstring, re.IGNORECASE)
        if args_match:
            for match in re.finditer(r'^\s+(\w+)(?:\s*\([^)]*\))?:\s*(.+?)(?=\n\s+\w+|\n\n|\Z)',
                                     args_match.group(1), re.MULTILINE | re.DOTALL):
                descriptions[match.group(1)] = match.group(2).strip().replace('\n', ' ')

        for match in re.finditer(r':param\s+(\w+):\s*(.+?)(?=:|$)', docstring, re.MULTILINE):
            descriptions[match.group(1)] = match.group(2).strip()

        return descriptions

    async def run_async(self, *, args: dict[str, Any], tool_context: 'ToolContext') -> Any:
        """异步执行工具函数"""
        kwargs = dict(args)
        if self._accepts_tool_context():
            kwargs['tool_context'] = tool_context

        if inspect.iscoroutinefunction(self.func):
            return await self.func(**kwargs)

        executor = tool_context.invocation_context.executor
        if executor is not None:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(executor, functools.partial(self.func, **kwargs))
        return await asyncio.to_thread(self.func, **kwargs)

    def to_function_declaration(self) -> dict[str, Any]:
        """
        转换为函数声明格式（供 LLM 理解）
        这是与 LLM 交互的关键 - 让 LLM 知道有哪些工具可用
        """
        properties = {}
        required = []

        for param_name, param_info in (self.parameters or {}).items():
            prop: dict[str, Any] = {
                'type': _TYPE_MAPPING.get(param_info.get('type', 'str'), 'string'),
                'description': param_info.get('description', f'参数 {param_name}'),
            }
            if 'enum' in param_info:
                prop['enum'] = param_info['enum']
            properties[param_name] = prop

            if 'default' not in param_info:
                required.append(param_name)

        return {
            'name': self.name,
            'description': self.description,
            'parameters': {
                'type': 'object',
                'properties': properties,
                'required': required,
            },
        }


FunctionTool = Tool


def tool(name: str | None = None, description: str | None = None):
    """
    装饰器 - 将普通函数转换为 Tool

    用法:
      @tool(description="搜索网页")
      def search(query: str) -> str:
        return f"搜索结果: {query}"
    """
    def decorator(func: Callable[..., Any]) -> Tool:
        tool_name = name or func.__name__
        tool_desc = description or inspect.getdoc(func) or f"Function {func.__name__}"
        return Tool(name=tool_name, description=tool_desc, func=func)

    return decorator
