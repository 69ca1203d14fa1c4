"""SequentialAgent：依次运行子 Agent"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class SequentialAgent(BaseAgent):
    """
    按 sub_agents 的顺序各运行一次，自身不调用模型

    子 Agent 的顺序由这里决定，所以它们不能跳转到父 Agent 或兄弟 Agent。
    前一个子 Agent 的 output_key 可以在后一个的 instruction 中用 {key} 引用。

    Example:
        pipeline = SequentialAgent(
            name="pipeline",
            sub_agents=[
                LlmAgent(name="outline", instruction="列提纲", output_key="outline"),
                LlmAgent(name="draft", instruction="按提纲写初稿：{outline}"),
            ]
        )
    """

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        total = len(self.sub_agents)
        for position, sub_agent in enumerate(self.sub_agents, start=1):
            logger.info(f"[{self.name}] Step {position}/{total}: {sub_agent.name}")
            async for event in sub_agent.run_async(ctx):
                yield event
            if ctx.is_cancelled:
                return

    @override
    async def _run_live_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        """
        每条 live 输入只写入一次用户事件，然后子 Agent 依次以流式方式处理这一轮

        子 Agent 不直接读取 live_request_queue，队列关闭时结束。
        """
        queue = ctx.live_request_queue
        if queue is None:
            raise ValueError("run_live requires a live_request_queue in the invocation context.")

        streaming = ctx.run_config.model_copy(update={'streaming': True})
        while not ctx.is_cancelled:
            content = await queue.get()
            if content is None:
                logger.debug(f"[{self.name}] Live request queue closed")
                return
            await ctx.append_user_content(content)

            turn_ctx = ctx.for_agent(self, run_config=streaming, live_request_queue=None)
            for sub_agent in self.sub_agents:
                async for event in sub_agent.run_async(turn_ctx):
                    yield event
                if ctx.is_cancelled:
                    return
