"""ToolContext - 工具执行时的上下文"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..agents.callback_context import CallbackContext

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..events import EventActions


class ToolContext(CallbackContext):
    """
    工具上下文

    每次工具调用一个实例；actions 会合并进工具响应事件，
    因此工具可以通过它修改状态、请求跳转（transfer_to_agent）或升级（escalate）。
    """

    def __init__(
        self,
        invocation_context: 'InvocationContext',
        function_call_id: Optional[str] = None,
        event_actions: Optional['EventActions'] = None,
    ) -> None:
        super().__init__(invocation_context, event_actions=event_actions)
        self.function_call_id = function_call_id
