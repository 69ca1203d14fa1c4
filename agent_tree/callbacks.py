"""
回调分发

所有回调（before/after agent、model、tool）共用一个契约：
接收上下文 + 相关载荷，返回可选的替换值（None 表示不替换）。

- 配置时可以传入普通函数或协程函数，统一适配为异步回调
- 同一钩子的多个回调按注册顺序执行
- before 钩子：第一个非 None 结果短路
- after 钩子：链式组合，每个回调看到上一个回调的输出
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from concurrent.futures import Executor
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

if TYPE_CHECKING:
    from .agents.callback_context import CallbackContext
    from .agents.invocation_context import InvocationContext
    from .models import LlmRequest, LlmResponse
    from .tools import BaseTool, ToolContext

logger = logging.getLogger(__name__)

# 回调类型定义（返回值可以是普通值，也可以是 awaitable）
BeforeAgentCallback = Callable[['CallbackContext'], Any]  # -> Optional[Content]
AfterAgentCallback = Callable[['CallbackContext'], Any]  # -> Optional[Content]
BeforeModelCallback = Callable[['CallbackContext', 'LlmRequest'], Any]  # -> Optional[LlmResponse]
AfterModelCallback = Callable[['CallbackContext', 'LlmResponse'], Any]  # -> Optional[LlmResponse]
BeforeToolCallback = Callable[['InvocationContext', 'BaseTool', dict, 'ToolContext'], Any]  # -> Optional[dict]
AfterToolCallback = Callable[['InvocationContext', 'BaseTool', dict, 'ToolContext', dict], Any]  # -> Optional[dict]

AsyncCallback = Callable[..., Awaitable[Any]]
"""适配后的统一形态：async (*args, executor=None) -> Optional[value]"""

CallbackConfig = Union[Callable[..., Any], list[Callable[..., Any]], None]

_ADAPTED_MARKER = '__agent_tree_callback__'


def to_async_callback(func: Callable[..., Any]) -> AsyncCallback:
    """
    把同步回调适配为异步回调

    - 协程函数：直接 await
    - 普通函数：有 executor 时在 executor 中执行，否则在当前线程执行；
      若返回 awaitable 再 await 一次
    """
    if getattr(func, _ADAPTED_MARKER, False):
        return func

    if inspect.iscoroutinefunction(func):
        async def adapted(*args: Any, executor: Optional[Executor] = None) -> Any:
            return await func(*args)
    else:
        async def adapted(*args: Any, executor: Optional[Executor] = None) -> Any:
            if executor is None:
                result = func(*args)
            else:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(executor, functools.partial(func, *args))
            if inspect.isawaitable(result):
                result = await result
            return result

    functools.update_wrapper(adapted, func)
    setattr(adapted, _ADAPTED_MARKER, True)
    return adapted


def normalize_callbacks(value: CallbackConfig, hook: str) -> list[AsyncCallback]:
    """
    把配置值（单个回调 / 回调列表 / None）规整为异步回调列表

    列表中无法调用的对象会被跳过并记录警告。
    """
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]

    callbacks = []
    for callback in value:
        if callable(callback):
            callbacks.append(to_async_callback(callback))
        else:
            logger.warning(
                f"Invalid {hook} callback type: {type(callback).__name__}. Ignoring this callback."
            )
    return callbacks


async def run_before_callbacks(
    callbacks: list[AsyncCallback],
    *args: Any,
    executor: Optional[Executor] = None,
) -> Any:
    """按顺序执行 before 回调，返回第一个非 None 的结果"""
    for callback in callbacks:
        result = await callback(*args, executor=executor)
        if result is not None:
            return result
    return None


async def run_after_callbacks(
    callbacks: list[AsyncCallback],
    *args: Any,
    value: Any,
    executor: Optional[Executor] = None,
) -> Any:
    """
    按顺序执行 after 回调，链式替换 value

    每个回调以 (*args, 当前 value) 调用；返回 None 表示保留当前 value。
    """
    for callback in callbacks:
        result = await callback(*args, value, executor=executor)
        if result is not None:
            value = result
    return value
