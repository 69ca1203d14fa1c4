"""InvocationContext - 单次调用的临时上下文"""

from __future__ import annotations

import asyncio
import dataclasses
import threading
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict

from ..errors import LlmCallsLimitExceededError
from ..events import Event

if TYPE_CHECKING:
    from ..artifacts import BaseArtifactService
    from ..session import Session, SessionService
    from ..types import Content
    from .base_agent import BaseAgent


class RunConfig(BaseModel):
    """单次调用的运行配置"""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid')

    streaming: bool = False
    """是否以流式方式调用模型（yield partial 事件）"""

    max_llm_calls: int = 500
    """单次调用的 LLM 调用次数上限，<= 0 表示不限制"""

    max_transfer_hops: int = 10
    """单次调用中 Agent 跳转的总次数上限"""

    executor: Optional[Executor] = None
    """同步回调/工具的执行器（None 表示在驱动事件流的线程上执行）"""


class LiveRequestQueue:
    """
    live 模式的输入队列

    调用方持续 send_content，run_live 逐条消费；close 之后 run_live 结束。
    """

    def __init__(self):
        self._queue: asyncio.Queue[Optional['Content']] = asyncio.Queue()

    def send_content(self, content: 'Content') -> None:
        self._queue.put_nowait(content)

    def close(self) -> None:
        self._queue.put_nowait(None)

    async def get(self) -> Optional['Content']:
        """返回下一条输入，队列关闭时返回 None"""
        return await self._queue.get()


@dataclass
class _InvocationCounters:
    """同一次调用内所有 Agent 共享的计数器"""
    llm_calls: int = 0
    transfer_hops: int = 0
    output_saved_event_ids: set[str] = field(default_factory=set)


@dataclass
class InvocationContext:
    """
    单次调用的临时上下文

    核心设计理念:
    - InvocationContext 是短暂的，只存在于一次调用期间，不持久化
    - 它持有执行需要的所有引用（Session、服务、用户输入、运行配置）
    - 跳转到其他 Agent 时通过 for_agent 复制，计数器和取消信号共享
    """

    agent: 'BaseAgent'
    session: 'Session'
    session_service: Optional['SessionService'] = None
    artifact_service: Optional['BaseArtifactService'] = None

    invocation_id: str = field(default_factory=lambda: f"e-{uuid4()}")
    user_content: Optional['Content'] = None
    run_config: RunConfig = field(default_factory=RunConfig)
    live_request_queue: Optional[LiveRequestQueue] = None

    end_invocation: bool = False
    """设置后当前调用不再继续产生模型调用"""

    start_time: float = field(default_factory=time.time)

    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)
    _counters: _InvocationCounters = field(default_factory=_InvocationCounters, repr=False)

    # ==================== 便捷属性 ====================

    @property
    def app_name(self) -> str:
        return self.session.app_name

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def executor(self) -> Optional[Executor]:
        return self.run_config.executor

    @property
    def elapsed_time(self) -> float:
        """获取已用时间（秒）"""
        return time.time() - self.start_time

    # ==================== 取消 ====================

    def cancel(self) -> None:
        """请求取消本次调用（可以从任意线程调用）"""
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ==================== 计数 ====================

    def increment_llm_call_count(self) -> None:
        """
        记录一次 LLM 调用

        Raises:
            LlmCallsLimitExceededError: 超过 max_llm_calls
        """
        self._counters.llm_calls += 1
        limit = self.run_config.max_llm_calls
        if limit > 0 and self._counters.llm_calls > limit:
            raise LlmCallsLimitExceededError(limit)

    @property
    def llm_call_count(self) -> int:
        return self._counters.llm_calls

    def record_transfer(self) -> bool:
        """记录一次 Agent 跳转，超过 max_transfer_hops 时返回 False"""
        if self._counters.transfer_hops >= self.run_config.max_transfer_hops:
            return False
        self._counters.transfer_hops += 1
        return True

    @property
    def transfer_hops(self) -> int:
        return self._counters.transfer_hops

    async def append_user_content(self, content: 'Content') -> Event:
        """live 模式下把一条新输入记为用户事件，并作为本轮的 user_content"""
        user_event = Event(author='user', content=content, invocation_id=self.invocation_id)
        if self.session_service is not None:
            await self.session_service.append_event(self.session, user_event)
        else:
            self.session.events.append(user_event)
        self.user_content = content
        return user_event

    def claim_output_save(self, event_id: str) -> bool:
        """同一事件只允许写入一次 output_key，第一次认领时返回 True"""
        if event_id in self._counters.output_saved_event_ids:
            return False
        self._counters.output_saved_event_ids.add(event_id)
        return True

    def for_agent(self, agent: 'BaseAgent', **changes: Any) -> InvocationContext:
        """复制一份绑定到另一个 Agent 的上下文（共享计数器、取消信号和 Session）"""
        return dataclasses.replace(self, agent=agent, **changes)
