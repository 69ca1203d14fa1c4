"""工具调用执行（只产生事件，不负责持久化）"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..callbacks import run_after_callbacks, run_before_callbacks
from ..errors import ToolNotFoundError
from ..events import Event, EventActions
from ..tools.tool_context import ToolContext
from ..types import Content, FunctionCall, Part

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..tools import BaseTool

logger = logging.getLogger(__name__)


async def handle_function_calls_async(
    ctx: 'InvocationContext',
    function_call_event: Event,
    tools_dict: dict[str, 'BaseTool'],
) -> Optional[Event]:
    """
    依次执行事件中的所有工具调用，合并为一个工具响应事件

    Raises:
        ToolNotFoundError: 模型调用了未注册的工具
    """
    response_events = []
    for function_call in function_call_event.get_function_calls():
        tool = tools_dict.get(function_call.name)
        if tool is None:
            raise ToolNotFoundError(function_call.name, ctx.agent.name)
        response_events.append(await _call_tool_async(ctx, tool, function_call))

    if not response_events:
        return None
    return merge_function_response_events(response_events)


async def _call_tool_async(
    ctx: 'InvocationContext',
    tool: 'BaseTool',
    function_call: FunctionCall,
) -> Event:
    agent = ctx.agent
    executor = agent.callback_executor(ctx)
    tool_context = ToolContext(ctx, function_call_id=function_call.id)
    args = function_call.args or {}

    logger.debug(f"[{agent.name}] Calling tool {tool.name} with args={args}")

    response = await run_before_callbacks(
        agent.before_tool_callback, ctx, tool, args, tool_context, executor=executor
    )
    if response is None:
        response = await tool.run_async(args=args, tool_context=tool_context)
        if response is None and tool.is_long_running:
            # 结果稍后由外部回传，这里只登记调用
            response = {'status': 'pending'}

    response = await run_after_callbacks(
        agent.after_tool_callback, ctx, tool, args, tool_context,
        value=_as_response_dict(response), executor=executor,
    )
    response = _as_response_dict(response)

    return Event(
        author=agent.name,
        invocation_id=ctx.invocation_id,
        content=Content(
            role='user',
            parts=[Part.from_function_response(tool.name, response, call_id=function_call.id)],
        ),
        actions=tool_context.actions,
    )


def _as_response_dict(response: Any) -> dict[str, Any]:
    """工具响应必须是字典，其他返回值包装为 {'result': value}"""
    if isinstance(response, dict):
        return response
    return {'result': response}


def merge_function_response_events(events: list[Event]) -> Event:
    """把多个工具响应事件合并为一个（parts 按调用顺序拼接，actions 合并）"""
    if len(events) == 1:
        return events[0]

    base = events[0]
    parts: list[Part] = []
    actions = EventActions()
    for event in events:
        if event.content:
            parts.extend(event.content.parts)
        actions.merge(event.actions)

    return Event(
        author=base.author,
        invocation_id=base.invocation_id,
        content=Content(role='user', parts=parts),
        actions=actions,
    )


def get_long_running_call_ids(function_calls: list[FunctionCall], tools_dict: dict[str, Any]) -> set[str]:
    """长时间运行工具的调用 id"""
    return {
        call.id for call in function_calls
        if call.name in tools_dict and tools_dict[call.name].is_long_running
    }
