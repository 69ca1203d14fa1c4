"""BaseAgent：Agent 树的节点，负责父子关系和 before/after 回调"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import TYPE_CHECKING, Any, AsyncGenerator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ..callbacks import AsyncCallback, normalize_callbacks, run_before_callbacks
from ..events import Event
from ..types import Content
from .callback_context import CallbackContext

if TYPE_CHECKING:
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class BaseAgent(BaseModel):
    """
    所有 Agent 的公共部分

    设计理念：
    - Agent 是配置，不包含状态；运行期数据都在 InvocationContext 中
    - run_async / run_live 是模板方法，子类实现 _run_async_impl / _run_live_impl
    - 支持 before/after 回调钩子（单个回调或回调列表）
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid')

    name: str = Field(frozen=True)
    """Agent 名称，必须是有效的 Python 标识符，创建后不可修改"""

    description: str = ''
    """一句话说明能力，其他 LlmAgent 据此决定是否跳转过来"""

    sub_agents: list['BaseAgent'] = Field(default_factory=list)
    """子 Agent 列表"""

    parent_agent: Optional['BaseAgent'] = Field(default=None, exclude=True, repr=False)
    """父 Agent（挂载时自动设置，不序列化）"""

    # === 生命周期回调 ===
    before_agent_callback: list[AsyncCallback] = Field(default_factory=list)
    """Agent 执行前的回调，返回 Content 则跳过执行"""

    after_agent_callback: list[AsyncCallback] = Field(default_factory=list)
    """Agent 执行后的回调，返回 Content 则追加一个结束事件"""


    @field_validator('name', mode='after')
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not value:
            raise ValueError("Agent name cannot be empty.")
        if not value.isidentifier():
            raise ValueError(
                f"Invalid agent name: '{value}'. "
                "Must be a valid Python identifier."
            )
        if value == 'user':
            raise ValueError("Agent name cannot be 'user' (reserved).")
        return value

    @field_validator('before_agent_callback', 'after_agent_callback', mode='before')
    @classmethod
    def _normalize_agent_callbacks(cls, value: Any, info: ValidationInfo) -> list[AsyncCallback]:
        return normalize_callbacks(value, info.field_name)

    def model_post_init(self, __context: Any) -> None:
        self._set_parent_for_sub_agents()

    def _set_parent_for_sub_agents(self) -> None:
        for sub_agent in self.sub_agents:
            if sub_agent.parent_agent is not None:
                raise ValueError(
                    f"Agent '{sub_agent.name}' already has parent "
                    f"'{sub_agent.parent_agent.name}', cannot add to '{self.name}'"
                )
            sub_agent.parent_agent = self

    # === 树形结构操作 ===

    @property
    def root_agent(self) -> 'BaseAgent':
        """沿 parent_agent 向上到顶"""
        root = self
        while root.parent_agent is not None:
            root = root.parent_agent
        return root

    def find_agent(self, name: str) -> Optional['BaseAgent']:
        """按名称深度优先查找，包含自身"""
        if self.name == name:
            return self
        return self.find_sub_agent(name)

    def find_sub_agent(self, name: str) -> Optional['BaseAgent']:
        """同 find_agent，但不包含自身"""
        for sub_agent in self.sub_agents:
            if result := sub_agent.find_agent(name):
                return result
        return None

    # === 执行入口（模板方法） ===

    def _bind_context(self, parent_context: 'InvocationContext') -> 'InvocationContext':
        if parent_context.agent is self:
            return parent_context
        return parent_context.for_agent(self)

    async def run_async(
        self,
        parent_context: 'InvocationContext',
    ) -> AsyncGenerator[Event, None]:
        """
        事件流入口，子类只实现 _run_async_impl

        处理生命周期回调和取消信号，具体执行逻辑委托给 _run_async_impl
        """
        ctx = self._bind_context(parent_context)
        async for event in self._run_with_callbacks(ctx, self._run_async_impl):
            yield event

    async def run_live(
        self,
        parent_context: 'InvocationContext',
    ) -> AsyncGenerator[Event, None]:
        """live 模式执行入口，回调语义与 run_async 相同"""
        ctx = self._bind_context(parent_context)
        async for event in self._run_with_callbacks(ctx, self._run_live_impl):
            yield event

    async def _run_with_callbacks(self, ctx: 'InvocationContext', impl) -> AsyncGenerator[Event, None]:
        if ctx.is_cancelled:
            return
        logger.debug(f"[{self.name}] Starting execution")

        before_event = await self._handle_before_agent_callback(ctx)
        if before_event is not None:
            yield before_event
        if ctx.end_invocation:
            # 被 before 回调短路：after 回调返回的内容丢弃，状态变更照常提交
            cleanup_event = await self._handle_after_agent_callback(ctx)
            if cleanup_event is not None and cleanup_event.actions.state_delta:
                cleanup_event.content = None
                yield cleanup_event
            logger.debug(f"[{self.name}] Short-circuited by before_agent_callback")
            return

        async for event in impl(ctx):
            if ctx.is_cancelled:
                logger.info(f"[{self.name}] Invocation cancelled, stop emitting events")
                return
            yield event

        if ctx.is_cancelled:
            return
        after_event = await self._handle_after_agent_callback(ctx)
        if after_event is not None:
            yield after_event

        logger.debug(f"[{self.name}] Execution completed")

    def callback_executor(self, ctx: 'InvocationContext') -> Optional[Executor]:
        """同步回调使用的执行器"""
        return ctx.executor

    async def _handle_before_agent_callback(self, ctx: 'InvocationContext') -> Optional[Event]:
        if not self.before_agent_callback:
            return None

        callback_context = CallbackContext(ctx)
        content = await run_before_callbacks(
            self.before_agent_callback, callback_context, executor=self.callback_executor(ctx)
        )
        if content is not None:
            ctx.end_invocation = True
            return self._callback_event(ctx, callback_context, content)
        if callback_context.actions.state_delta:
            return self._callback_event(ctx, callback_context, None)
        return None

    async def _handle_after_agent_callback(self, ctx: 'InvocationContext') -> Optional[Event]:
        if not self.after_agent_callback:
            return None

        callback_context = CallbackContext(ctx)
        content = await run_before_callbacks(
            self.after_agent_callback, callback_context, executor=self.callback_executor(ctx)
        )
        if content is not None or callback_context.actions.state_delta:
            return self._callback_event(ctx, callback_context, content)
        return None

    def _callback_event(
        self,
        ctx: 'InvocationContext',
        callback_context: CallbackContext,
        content: Union[Content, str, None],
    ) -> Event:
        if isinstance(content, str):
            content = Content.from_text(content, role='model')
        return Event(
            author=self.name,
            invocation_id=ctx.invocation_id,
            content=content,
            actions=callback_context.actions,
        )

    async def _run_async_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator[Event, None]:
        """核心执行逻辑 - 子类必须实现"""
        raise NotImplementedError(
            f"_run_async_impl not implemented for {type(self).__name__}"
        )
        yield  # 保持为 AsyncGenerator

    async def _run_live_impl(
        self,
        ctx: 'InvocationContext',
    ) -> AsyncGenerator[Event, None]:
        """live 模式执行逻辑 - 子类按需实现"""
        raise NotImplementedError(
            f"_run_live_impl not implemented for {type(self).__name__}"
        )
        yield


    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'sub_agents': [a.name for a in self.sub_agents],
        }
